from __future__ import annotations

import logging
import threading
from typing import Any

from .config import load_runtime_config, process_jobs_immediately
from .errors import InvalidTransition
from .models import CANCELLED, COMPLETED, FAILED, PENDING, RUNNING, TERMINAL_STATUSES
from .registry import JobRegistry, build_default_registry
from .storage import (
    cancel_job as cancel_job_row,
    claim_job,
    claim_next_job,
    count_jobs_by_status,
    delete_jobs_by_status,
    delete_terminal_jobs_before,
    get_heartbeat,
    get_job,
    init_db,
)
from .utils import log_event, parse_iso, utc_now, utc_now_iso_offset
from .worker import process_job

logger = logging.getLogger("devtrail.processor")

CANCEL_REASON = "Job cancelled by user"


def process_pending_jobs(
    conn: Any, limit: int = 5, registry: JobRegistry | None = None
) -> dict[str, int]:
    registry = registry or build_default_registry()
    processed = 0
    succeeded = 0
    while processed < limit:
        job = claim_next_job(conn)
        if job is None:
            break
        processed += 1
        if process_job(conn, job, registry, logger):
            succeeded += 1
    log_event(logger, logging.INFO, "pending_jobs_processed", processed=processed, succeeded=succeeded)
    return {"processed": processed, "succeeded": succeeded, "failed": processed - succeeded}


def process_job_by_id(conn: Any, job_id: str, registry: JobRegistry | None = None) -> bool:
    job = claim_job(conn, job_id)
    if job is None:
        current = get_job(conn, job_id)
        raise InvalidTransition(job_id, current.status if current else None, RUNNING)
    return process_job(conn, job, registry or build_default_registry(), logger)


def cancel_job(conn: Any, job_id: str) -> dict[str, Any]:
    job = get_job(conn, job_id)
    if job is None:
        raise LookupError(f"Job {job_id} not found")
    if job.status in TERMINAL_STATUSES or not cancel_job_row(conn, job_id, CANCEL_REASON):
        current = get_job(conn, job_id)
        raise InvalidTransition(job_id, current.status if current else job.status, CANCELLED)
    log_event(logger, logging.INFO, "job_cancelled", job_id=job_id, previous_status=job.status)
    return get_job_status(conn, job_id) or {}


def get_job_status(conn: Any, job_id: str) -> dict[str, Any] | None:
    job = get_job(conn, job_id)
    if job is None:
        return None
    return {
        "id": job.id,
        "type": job.job_type,
        "status": job.status,
        "progress": job.progress,
        "status_message": job.status_message,
        "logs": [
            {"timestamp": entry.timestamp, "level": entry.level, "message": entry.message}
            for entry in job.logs
        ],
        "config": job.config,
        "result": job.result,
        "error": job.error,
        "created_at": job.created_at,
        "started_at": job.started_at,
        "completed_at": job.completed_at,
    }


def cleanup_old_jobs(conn: Any, days_to_keep: int = 30) -> int:
    deleted = delete_terminal_jobs_before(conn, utc_now_iso_offset(days=-days_to_keep))
    log_event(logger, logging.INFO, "jobs_cleaned_up", deleted=deleted, days_to_keep=days_to_keep)
    return deleted


def clear_failed_jobs(conn: Any) -> int:
    return delete_jobs_by_status(conn, [FAILED, CANCELLED])


def job_stats(conn: Any) -> dict[str, int]:
    counts = count_jobs_by_status(conn)
    return {
        "total": sum(counts.values()),
        "pending": counts[PENDING],
        "running": counts[RUNNING],
        "completed": counts[COMPLETED],
        "failed": counts[FAILED],
        "cancelled": counts[CANCELLED],
    }


def trigger_job_processing(job_id: str, db_path: str | None = None) -> bool:
    """Starts the job on a background thread when immediate processing is on."""
    conn = init_db(db_path)
    try:
        enabled = process_jobs_immediately(load_runtime_config(conn))
    finally:
        conn.close()
    if not enabled:
        return False
    thread = threading.Thread(
        target=_process_in_background,
        args=(job_id, db_path),
        name=f"job-{job_id}",
        daemon=True,
    )
    thread.start()
    return True


def worker_health(conn: Any) -> dict[str, Any]:
    runtime = load_runtime_config(conn)
    last = get_heartbeat(conn, runtime.worker.heartbeat_key)
    if last is None:
        return {
            "healthy": False,
            "last_heartbeat": None,
            "seconds_since_heartbeat": None,
            "message": "Worker has never run",
        }
    age = (utc_now() - parse_iso(last)).total_seconds()
    stale = runtime.worker.heartbeat_stale_seconds
    healthy = age <= stale
    return {
        "healthy": healthy,
        "last_heartbeat": last,
        "seconds_since_heartbeat": round(age, 1),
        "message": "Worker is running" if healthy else f"No heartbeat for {int(age)}s (threshold {stale}s)",
    }


def _process_in_background(job_id: str, db_path: str | None) -> None:
    conn = init_db(db_path)
    try:
        process_job_by_id(conn, job_id)
    except InvalidTransition as exc:
        # the worker claimed it first
        log_event(logger, logging.INFO, "immediate_processing_skipped", job_id=job_id, error=str(exc))
    finally:
        conn.close()
