from __future__ import annotations

import logging
from typing import Any

from .errors import InvalidTransition
from .models import ALLOWED_PREDECESSORS, COMPLETED, Job, LogEntry
from .storage import (
    get_job,
    save_job_logs,
    set_job_error,
    set_job_result,
    update_job_progress,
    update_job_status,
    update_job_status_message,
)
from .utils import log_event, utc_now_iso

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class JobLogger:
    """Writes logs, progress and status for one job straight through to the job store.

    Every call persists immediately; nothing is buffered in memory that is not already
    in the store. Progress is clamped to 0..100 and never moves backwards within a run.
    """

    def __init__(
        self,
        conn: Any,
        job_id: str,
        status: str,
        progress: int = 0,
        logs: list[LogEntry] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.conn = conn
        self.job_id = job_id
        self._status = status
        self._progress = progress
        self._logs: list[LogEntry] = list(logs or [])
        self._logger = logger or logging.getLogger(f"devtrail.job.{job_id}")

    @classmethod
    def for_job(cls, conn: Any, job: Job, logger: logging.Logger | None = None) -> "JobLogger":
        return cls(conn, job.id, job.status, job.progress, job.logs, logger)

    @property
    def status(self) -> str:
        return self._status

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def logs(self) -> list[LogEntry]:
        return list(self._logs)

    def log(self, level: str, message: str) -> None:
        level = level if level in _LEVELS else "info"
        self._logs.append(LogEntry(timestamp=utc_now_iso(), level=level, message=message))
        save_job_logs(self.conn, self.job_id, self._logs)
        log_event(self._logger, _LEVELS[level], "job_log", job_id=self.job_id, message=message)

    def debug(self, message: str) -> None:
        self.log("debug", message)

    def info(self, message: str) -> None:
        self.log("info", message)

    def warn(self, message: str) -> None:
        self.log("warn", message)

    def error(self, message: str) -> None:
        self.log("error", message)

    def update_progress(self, value: int, message: str | None = None) -> int:
        clamped = max(0, min(100, int(value)))
        self._progress = max(self._progress, clamped)
        update_job_progress(self.conn, self.job_id, self._progress, message)
        return self._progress

    def set_status_message(self, message: str) -> None:
        update_job_status_message(self.conn, self.job_id, message)

    def set_status(self, status: str) -> None:
        allowed = ALLOWED_PREDECESSORS.get(status)
        if allowed is None or self._status not in allowed:
            raise InvalidTransition(self.job_id, self._status, status)
        if not update_job_status(self.conn, self.job_id, status):
            current = get_job(self.conn, self.job_id)
            raise InvalidTransition(self.job_id, current.status if current else None, status)
        self._status = status
        if status == COMPLETED:
            self._progress = 100

    def set_result(self, result: dict[str, object]) -> None:
        set_job_result(self.conn, self.job_id, result)

    def set_error(self, error: str) -> None:
        set_job_error(self.conn, self.job_id, error)
