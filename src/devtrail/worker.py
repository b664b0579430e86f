from __future__ import annotations

import argparse
import logging
import os
import signal
import time
from dataclasses import dataclass
from typing import Any, Callable

from .config import ConfigError, Config, load_runtime_config
from .db import store_errors
from .errors import InvalidTransition
from .job_logger import JobLogger
from .models import COMPLETED, Job
from .registry import JobRegistry, build_default_registry
from .storage import claim_next_job, fail_job, get_job, init_db, record_heartbeat, set_job_result
from .utils import configure_logging, log_event


@dataclass
class WorkerState:
    worker_id: str
    shutting_down: bool = False
    current_job_id: str | None = None
    cycles: int = 0
    jobs_processed: int = 0


def _setup_logging() -> logging.Logger:
    return configure_logging("devtrail.worker")


def install_signal_handlers(state: WorkerState, logger: logging.Logger) -> None:
    def _request_shutdown(signum, _frame) -> None:
        state.shutting_down = True
        log_event(
            logger,
            logging.INFO,
            "worker_shutdown_requested",
            signal=signal.Signals(signum).name,
            current_job_id=state.current_job_id,
        )

    signal.signal(signal.SIGINT, _request_shutdown)
    signal.signal(signal.SIGTERM, _request_shutdown)


def process_job(conn: Any, job: Job, registry: JobRegistry, logger: logging.Logger) -> bool:
    """Runs one claimed (RUNNING) job to a terminal state. Returns True when it completed."""
    job_logger = JobLogger.for_job(conn, job)
    log_event(logger, logging.INFO, "job_claimed", job_id=job.id, job_type=job.job_type)
    job_logger.info(f"Job started: {job.job_type}")
    started = time.monotonic()
    try:
        result = registry.dispatch(conn, job, job_logger)
    except store_errors():
        raise
    except Exception as exc:  # noqa: BLE001
        message = str(exc) or type(exc).__name__
        job_logger.error(f"Job failed: {message}")
        fail_job(conn, job.id, message)
        log_event(
            logger,
            logging.ERROR,
            "job_failed",
            job_id=job.id,
            job_type=job.job_type,
            error_type=type(exc).__name__,
            error=message,
        )
        return False

    if not set_job_result(conn, job.id, result):
        current = get_job(conn, job.id)
        log_event(
            logger,
            logging.WARNING,
            "job_result_dropped",
            job_id=job.id,
            status=current.status if current else None,
        )
        return False
    job_logger.update_progress(100, "Completed")
    job_logger.info(f"Job completed in {time.monotonic() - started:.1f}s")
    try:
        job_logger.set_status(COMPLETED)
    except InvalidTransition as exc:
        log_event(logger, logging.WARNING, "job_complete_skipped", job_id=job.id, error=str(exc))
        return False
    log_event(logger, logging.INFO, "job_succeeded", job_id=job.id, job_type=job.job_type)
    return True


def run_once(
    conn: Any,
    registry: JobRegistry,
    state: WorkerState,
    runtime: Config,
    logger: logging.Logger,
) -> bool:
    record_heartbeat(conn, runtime.worker.heartbeat_key)
    job = claim_next_job(conn)
    if job is None:
        return False
    state.current_job_id = job.id
    try:
        process_job(conn, job, registry, logger)
    finally:
        state.current_job_id = None
    state.jobs_processed += 1
    return True


def run_loop(
    conn: Any,
    registry: JobRegistry,
    state: WorkerState,
    runtime: Config,
    logger: logging.Logger,
    poll_interval: float | None = None,
    max_cycles: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    interval = runtime.worker.poll_interval_seconds if poll_interval is None else poll_interval
    log_event(
        logger,
        logging.INFO,
        "worker_started",
        worker_id=state.worker_id,
        poll_interval=interval,
        job_types=",".join(registry.names),
    )
    while not state.shutting_down:
        if max_cycles is not None and state.cycles >= max_cycles:
            break
        state.cycles += 1
        if not run_once(conn, registry, state, runtime, logger) and not state.shutting_down:
            sleep(interval)
    log_event(
        logger,
        logging.INFO,
        "worker_stopped",
        worker_id=state.worker_id,
        cycles=state.cycles,
        jobs_processed=state.jobs_processed,
    )
    return state.jobs_processed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="devtrail-worker")
    parser.add_argument("--once", action="store_true", help="Process at most one job and exit")
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between polls when the queue is empty (default: runtime config)",
    )
    parser.add_argument("--worker-id", default=os.environ.get("HOSTNAME", "worker"))
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logger = _setup_logging()
    try:
        conn = init_db()
        runtime = load_runtime_config(conn)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    except (OSError, *store_errors()) as exc:
        log_event(logger, logging.ERROR, "worker_startup_failed", error=str(exc))
        return 1

    registry = build_default_registry()
    state = WorkerState(worker_id=args.worker_id)
    install_signal_handlers(state, logger)
    try:
        if args.once:
            run_once(conn, registry, state, runtime, logger)
        else:
            run_loop(conn, registry, state, runtime, logger, poll_interval=args.poll_interval)
    except store_errors() as exc:
        log_event(logger, logging.ERROR, "worker_crashed", worker_id=state.worker_id, error=str(exc))
        return 1
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
