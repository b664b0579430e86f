from __future__ import annotations

from typing import Any

from ..agent.orchestrator import run_github_sync, run_jira_sync
from ..config import load_runtime_config
from ..job_configs import SyncGithubConfig, SyncJiraConfig
from ..job_logger import JobLogger
from ..models import Job


def handle_sync_github(
    conn: Any, job: Job, cfg: SyncGithubConfig, job_logger: JobLogger
) -> dict[str, Any]:
    return run_github_sync(conn, job_logger, cfg, load_runtime_config(conn))


def handle_sync_jira(
    conn: Any, job: Job, cfg: SyncJiraConfig, job_logger: JobLogger
) -> dict[str, Any]:
    return run_jira_sync(conn, job_logger, cfg, load_runtime_config(conn))
