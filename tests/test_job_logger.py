import pytest

from devtrail.errors import InvalidTransition
from devtrail.job_logger import JobLogger
from devtrail.storage import claim_next_job, create_job, fail_job, get_job, init_db


def _running_logger(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    create_job(conn, "sync_github", {})
    job = claim_next_job(conn)
    return conn, JobLogger.for_job(conn, job)


def test_logs_are_persisted_immediately(tmp_path):
    conn, job_logger = _running_logger(tmp_path)
    job_logger.info("first")
    job_logger.warn("second")

    stored = get_job(conn, job_logger.job_id)
    assert [(entry.level, entry.message) for entry in stored.logs][-2:] == [
        ("info", "first"),
        ("warn", "second"),
    ]


def test_progress_is_clamped_and_monotonic(tmp_path):
    conn, job_logger = _running_logger(tmp_path)
    assert job_logger.update_progress(40, "Forty") == 40
    assert job_logger.update_progress(10, "Back") == 40
    assert job_logger.update_progress(250) == 100

    stored = get_job(conn, job_logger.job_id)
    assert stored.progress == 100
    assert stored.status_message == "Back"


def test_set_status_follows_lifecycle(tmp_path):
    conn, job_logger = _running_logger(tmp_path)
    with pytest.raises(InvalidTransition):
        job_logger.set_status("RUNNING")

    job_logger.set_status("COMPLETED")
    assert job_logger.status == "COMPLETED"
    assert job_logger.progress == 100
    with pytest.raises(InvalidTransition):
        job_logger.set_status("FAILED")


def test_set_status_detects_concurrent_termination(tmp_path):
    conn, job_logger = _running_logger(tmp_path)
    fail_job(conn, job_logger.job_id, "stopped elsewhere")

    with pytest.raises(InvalidTransition) as excinfo:
        job_logger.set_status("COMPLETED")
    assert "FAILED" in str(excinfo.value)
    assert get_job(conn, job_logger.job_id).status == "FAILED"


def test_result_and_error_are_stored(tmp_path):
    conn, job_logger = _running_logger(tmp_path)
    job_logger.set_result({"items_saved": 3})
    job_logger.set_error("partial failure")

    stored = get_job(conn, job_logger.job_id)
    assert stored.result == {"items_saved": 3}
    assert stored.error == "partial failure"
