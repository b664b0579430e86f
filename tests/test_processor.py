import pytest

from devtrail.config import load_runtime_config
from devtrail.errors import InvalidTransition
from devtrail.processor import (
    cancel_job,
    cleanup_old_jobs,
    clear_failed_jobs,
    get_job_status,
    job_stats,
    process_job_by_id,
    process_pending_jobs,
    trigger_job_processing,
    worker_health,
)
from devtrail.registry import JobRegistry
from devtrail.storage import claim_job, create_job, fail_job, get_job, init_db, record_heartbeat
from devtrail.utils import utc_now_iso_offset


def _echo_registry():
    registry = JobRegistry()
    registry.register("echo", lambda conn, job, cfg, job_logger: {"echo": cfg})
    return registry


def test_process_pending_jobs_respects_limit(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    ids = [create_job(conn, "echo", {"n": n}) for n in range(3)]

    summary = process_pending_jobs(conn, limit=2, registry=_echo_registry())
    assert summary == {"processed": 2, "succeeded": 2, "failed": 0}
    assert [get_job(conn, job_id).status for job_id in ids] == ["COMPLETED", "COMPLETED", "PENDING"]
    assert get_job(conn, ids[0]).result == {"echo": {"n": 0}}


def test_process_job_by_id_refuses_running_job(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    job_id = create_job(conn, "echo", {})
    claim_job(conn, job_id)
    with pytest.raises(InvalidTransition):
        process_job_by_id(conn, job_id, registry=_echo_registry())


def test_cancel_pending_job(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    job_id = create_job(conn, "echo", {})

    status = cancel_job(conn, job_id)
    assert status["status"] == "CANCELLED"
    assert status["error"] == "Job cancelled by user"
    assert status["completed_at"] is not None


def test_cancel_terminal_or_missing_job(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    job_id = create_job(conn, "echo", {})
    claim_job(conn, job_id)
    fail_job(conn, job_id, "boom")

    with pytest.raises(InvalidTransition):
        cancel_job(conn, job_id)
    with pytest.raises(LookupError):
        cancel_job(conn, "job_missing")


def test_cleanup_only_removes_old_terminal_jobs(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    old = create_job(conn, "echo", {})
    recent = create_job(conn, "echo", {})
    pending = create_job(conn, "echo", {})
    for job_id in (old, recent):
        claim_job(conn, job_id)
        fail_job(conn, job_id, "boom")
    conn.execute(
        "UPDATE jobs SET completed_at = ? WHERE id = ?",
        (utc_now_iso_offset(days=-45), old),
    )
    conn.commit()

    assert cleanup_old_jobs(conn, days_to_keep=30) == 1
    assert get_job(conn, old) is None
    assert get_job(conn, recent) is not None
    assert get_job(conn, pending) is not None


def test_clear_failed_and_stats(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    failed = create_job(conn, "echo", {})
    claim_job(conn, failed)
    fail_job(conn, failed, "boom")
    create_job(conn, "echo", {})
    running = create_job(conn, "echo", {})
    claim_job(conn, running)

    assert job_stats(conn) == {
        "total": 3,
        "pending": 1,
        "running": 1,
        "completed": 0,
        "failed": 1,
        "cancelled": 0,
    }
    assert clear_failed_jobs(conn) == 1
    assert job_stats(conn)["total"] == 2


def test_get_job_status_shape(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    job_id = create_job(conn, "echo", {"a": 1})
    status = get_job_status(conn, job_id)
    assert status["type"] == "echo"
    assert status["config"] == {"a": 1}
    assert status["logs"][0]["message"] == "Job created: echo"
    assert get_job_status(conn, "job_missing") is None


def test_worker_health(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    runtime = load_runtime_config(conn)
    assert worker_health(conn)["healthy"] is False

    record_heartbeat(conn, runtime.worker.heartbeat_key)
    assert worker_health(conn)["healthy"] is True

    record_heartbeat(conn, runtime.worker.heartbeat_key, utc_now_iso_offset(seconds=-60))
    health = worker_health(conn)
    assert health["healthy"] is False
    assert health["seconds_since_heartbeat"] >= 60


def test_trigger_job_processing_disabled_by_default(tmp_path):
    db_path = str(tmp_path / "state.sqlite3")
    conn = init_db(db_path)
    job_id = create_job(conn, "echo", {})
    assert trigger_job_processing(job_id, db_path) is False
    assert get_job(conn, job_id).status == "PENDING"
