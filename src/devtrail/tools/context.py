from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..clients.github import GitHubClient
from ..clients.jira import JiraClient
from ..config import Config
from ..llm.client import AnthropicClient


@dataclass
class ToolContext:
    """Everything a tool may touch while one sync job runs."""

    conn: Any
    config: Config
    github: GitHubClient | None = None
    jira: JiraClient | None = None
    llm: AnthropicClient | None = None
    username: str | None = None
    jira_email: str | None = None
    dry_run: bool = False
    update_existing: bool = False
    job_id: str | None = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("devtrail.tools"))

    @property
    def search_limit(self) -> int | None:
        return self.config.sync.dry_run_limit if self.dry_run else None

    def require_github(self) -> GitHubClient:
        if self.github is None:
            raise RuntimeError("GitHub client not configured for this job")
        return self.github

    def require_jira(self) -> JiraClient:
        if self.jira is None:
            raise RuntimeError("Jira client not configured for this job")
        return self.jira
