from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from .errors import DeprecatedJobType, UnknownJobType
from .job_configs import SCHEMAS, JobConfig, parse_job_config
from .job_logger import JobLogger
from .models import Job
from .utils import log_event

Handler = Callable[[Any, Job, JobConfig, JobLogger], dict[str, Any]]

SYNC_REPLACEMENTS = ["sync_github", "sync_jira"]

DEPRECATED_JOB_TYPES: dict[str, list[str]] = {
    "github_sync": SYNC_REPLACEMENTS,
    "jira_sync": SYNC_REPLACEMENTS,
    "report_generation": SYNC_REPLACEMENTS,
    "goal_progress": SYNC_REPLACEMENTS,
    "goal_generation": SYNC_REPLACEMENTS,
}


@dataclass(frozen=True)
class JobType:
    name: str
    handler: Handler
    description: str


class JobRegistry:
    """Job type name -> handler, built once at process start."""

    def __init__(
        self,
        deprecated: dict[str, list[str]] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._types: dict[str, JobType] = {}
        self._deprecated = dict(DEPRECATED_JOB_TYPES if deprecated is None else deprecated)
        self._logger = logger or logging.getLogger("devtrail.registry")

    def register(self, name: str, handler: Handler, description: str = "") -> None:
        if name in self._types:
            raise ValueError(f"job type {name} already registered")
        if name in self._deprecated:
            raise ValueError(f"job type {name} is deprecated and cannot be registered")
        self._types[name] = JobType(name=name, handler=handler, description=description)

    def is_registered(self, name: str) -> bool:
        return name in self._types

    def is_deprecated(self, name: str) -> bool:
        return name in self._deprecated

    @property
    def names(self) -> list[str]:
        return list(self._types)

    def describe(self, name: str) -> str:
        job_type = self._types.get(name)
        if job_type is not None:
            return job_type.description or name
        if name in self._deprecated:
            return f"Deprecated; use {' or '.join(self._deprecated[name])}"
        return "Unknown job type"

    def check(self, name: str) -> JobType:
        job_type = self._types.get(name)
        if job_type is not None:
            return job_type
        if name in self._deprecated:
            raise DeprecatedJobType(name, self._deprecated[name])
        raise UnknownJobType(name, self.names)

    def dispatch(self, conn: Any, job: Job, job_logger: JobLogger) -> dict[str, Any]:
        """Validates the job config and runs its handler. Handler errors propagate unchanged."""
        job_type = self.check(job.job_type)
        if job.job_type in SCHEMAS:
            config: Any = parse_job_config(job.job_type, job.config)
        else:
            config = dict(job.config or {})
        log_event(self._logger, logging.DEBUG, "job_dispatch", job_id=job.id, job_type=job.job_type)
        return job_type.handler(conn, job, config, job_logger) or {}


def build_default_registry() -> JobRegistry:
    from .handlers.analysis import handle_analyze_evidence
    from .handlers.insight import handle_generate_insight
    from .handlers.review import handle_analyze_review
    from .handlers.sync import handle_sync_github, handle_sync_jira

    registry = JobRegistry()
    registry.register("sync_github", handle_sync_github, "Sync merged GitHub PRs into evidence")
    registry.register("sync_jira", handle_sync_jira, "Sync Jira tickets into evidence")
    registry.register(
        "analyze_evidence", handle_analyze_evidence, "Match evidence against performance criteria"
    )
    registry.register(
        "generate_insight", handle_generate_insight, "Generate a monthly activity insight"
    )
    registry.register("analyze_review", handle_analyze_review, "Analyze a performance review document")
    return registry
