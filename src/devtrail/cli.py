from __future__ import annotations

import argparse
import json
import logging
import sys

from .config import ConfigError
from .errors import ConfigurationError, DeprecatedJobType, InvalidTransition, UnknownJobType
from .job_configs import validate_job_config
from .processor import cancel_job, cleanup_old_jobs, get_job_status, process_pending_jobs, worker_health
from .registry import build_default_registry
from .services.credentials_service import CREDENTIALS, set_credential
from .services.criteria_service import import_criteria, load_criteria_file
from .storage import create_job, init_db, list_jobs
from .utils import configure_logging, json_dumps, log_event


def _setup_logging() -> logging.Logger:
    return configure_logging("devtrail")


def _print_json(value: object) -> None:
    sys.stdout.write(json_dumps(value) + "\n")


def _cmd_jobs_enqueue(args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        raw = json.loads(args.config) if args.config else {}
    except json.JSONDecodeError as exc:
        log_event(logger, logging.ERROR, "config_error", error=f"--config is not valid JSON: {exc}")
        return 1
    try:
        build_default_registry().check(args.job_type)
        payload = validate_job_config(args.job_type, raw)
    except (UnknownJobType, DeprecatedJobType, ConfigurationError) as exc:
        log_event(logger, logging.ERROR, "job_rejected", job_type=args.job_type, error=str(exc))
        return 1

    conn = init_db()
    try:
        job_id = create_job(conn, args.job_type, payload)
    finally:
        conn.close()
    log_event(logger, logging.INFO, "job_enqueued", job_id=job_id, job_type=args.job_type)
    _print_json({"job_id": job_id, "job_type": args.job_type, "status": "PENDING"})
    return 0


def _cmd_jobs_list(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    try:
        jobs = list_jobs(
            conn,
            limit=args.limit,
            job_types=[args.job_type] if args.job_type else None,
            status=args.status,
        )
    finally:
        conn.close()
    for job in jobs:
        log_event(
            logger,
            logging.INFO,
            "job",
            job_id=job.id,
            job_type=job.job_type,
            status=job.status,
            progress=job.progress,
            created_at=job.created_at,
            completed_at=job.completed_at,
            error=job.error,
        )
    return 0


def _cmd_jobs_show(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    try:
        job = get_job_status(conn, args.job_id)
    finally:
        conn.close()
    if job is None:
        log_event(logger, logging.ERROR, "job_not_found", job_id=args.job_id)
        return 1
    _print_json(job)
    return 0


def _cmd_jobs_cancel(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    try:
        cancel_job(conn, args.job_id)
    except LookupError:
        log_event(logger, logging.ERROR, "job_not_found", job_id=args.job_id)
        return 1
    except InvalidTransition as exc:
        log_event(logger, logging.ERROR, "job_not_cancellable", job_id=args.job_id, error=str(exc))
        return 1
    finally:
        conn.close()
    return 0


def _cmd_jobs_cleanup(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    try:
        cleanup_old_jobs(conn, days_to_keep=args.days)
    finally:
        conn.close()
    return 0


def _cmd_jobs_process(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    try:
        summary = process_pending_jobs(conn, limit=args.limit)
    finally:
        conn.close()
    _print_json(summary)
    return 0 if summary["failed"] == 0 else 1


def _cmd_worker_health(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    try:
        health = worker_health(conn)
    finally:
        conn.close()
    _print_json(health)
    return 0 if health["healthy"] else 1


def _cmd_worker(args: argparse.Namespace, logger: logging.Logger) -> int:
    from .worker import main as worker_main

    argv: list[str] = []
    if args.once:
        argv.append("--once")
    if args.poll_interval is not None:
        argv.extend(["--poll-interval", str(args.poll_interval)])
    if args.worker_id:
        argv.extend(["--worker-id", args.worker_id])
    return worker_main(argv)


def _cmd_criteria_import(args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        criteria = load_criteria_file(args.path)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    except OSError as exc:
        log_event(logger, logging.ERROR, "criteria_file_unreadable", path=args.path, error=str(exc))
        return 1
    conn = init_db()
    try:
        count = import_criteria(conn, criteria)
    finally:
        conn.close()
    log_event(logger, logging.INFO, "criteria_imported", path=args.path, count=count)
    return 0


def _cmd_credentials_set(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    try:
        info = set_credential(conn, args.name, args.value)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    finally:
        conn.close()
    log_event(logger, logging.INFO, "credential_set", name=args.name, last4=info.get("last4"))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="devtrail")
    subparsers = parser.add_subparsers(dest="command", required=True)

    jobs_parser = subparsers.add_parser("jobs", help="Job queue commands")
    jobs_subparsers = jobs_parser.add_subparsers(dest="jobs_command", required=True)

    jobs_enqueue = jobs_subparsers.add_parser("enqueue", help="Enqueue a job")
    jobs_enqueue.add_argument("job_type", help="Job type, e.g. sync_github")
    jobs_enqueue.add_argument("--config", help="Job configuration as a JSON object")
    jobs_enqueue.set_defaults(func=_cmd_jobs_enqueue)

    jobs_list = jobs_subparsers.add_parser("list", help="List recent jobs")
    jobs_list.add_argument("--limit", type=int, default=20, help="Number of jobs to show")
    jobs_list.add_argument("--job-type", help="Only show this job type")
    jobs_list.add_argument("--status", help="Only show jobs in this status")
    jobs_list.set_defaults(func=_cmd_jobs_list)

    jobs_show = jobs_subparsers.add_parser("show", help="Show a job with its logs")
    jobs_show.add_argument("job_id")
    jobs_show.set_defaults(func=_cmd_jobs_show)

    jobs_cancel = jobs_subparsers.add_parser("cancel", help="Cancel a pending or running job")
    jobs_cancel.add_argument("job_id")
    jobs_cancel.set_defaults(func=_cmd_jobs_cancel)

    jobs_cleanup = jobs_subparsers.add_parser("cleanup", help="Delete old finished jobs")
    jobs_cleanup.add_argument("--days", type=int, default=30, help="Keep jobs newer than this")
    jobs_cleanup.set_defaults(func=_cmd_jobs_cleanup)

    jobs_process = jobs_subparsers.add_parser("process", help="Run pending jobs in this process")
    jobs_process.add_argument("--limit", type=int, default=5, help="Maximum jobs to run")
    jobs_process.set_defaults(func=_cmd_jobs_process)

    criteria_parser = subparsers.add_parser("criteria", help="Performance criteria")
    criteria_subparsers = criteria_parser.add_subparsers(dest="criteria_command", required=True)
    criteria_import = criteria_subparsers.add_parser("import", help="Import criteria from YAML")
    criteria_import.add_argument("path", help="Path to criteria YAML file")
    criteria_import.set_defaults(func=_cmd_criteria_import)

    credentials_parser = subparsers.add_parser("credentials", help="Stored API credentials")
    credentials_subparsers = credentials_parser.add_subparsers(
        dest="credentials_command", required=True
    )
    credentials_set = credentials_subparsers.add_parser("set", help="Encrypt and store a credential")
    credentials_set.add_argument("name", choices=sorted(CREDENTIALS))
    credentials_set.add_argument("value")
    credentials_set.set_defaults(func=_cmd_credentials_set)

    worker_parser = subparsers.add_parser("worker", help="Run the background job worker")
    worker_parser.add_argument("--once", action="store_true", help="Process at most one job and exit")
    worker_parser.add_argument("--poll-interval", type=float, default=None)
    worker_parser.add_argument("--worker-id", default=None)
    worker_parser.set_defaults(func=_cmd_worker)
    worker_subparsers = worker_parser.add_subparsers(dest="worker_command")
    worker_status = worker_subparsers.add_parser("health", help="Report worker heartbeat status")
    worker_status.set_defaults(func=_cmd_worker_health)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = _setup_logging()
    return args.func(args, logger)


if __name__ == "__main__":
    raise SystemExit(main())
