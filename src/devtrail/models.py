from __future__ import annotations

from dataclasses import dataclass, field

PENDING = "PENDING"
RUNNING = "RUNNING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"
CANCELLED = "CANCELLED"

JOB_STATUSES = (PENDING, RUNNING, COMPLETED, FAILED, CANCELLED)
TERMINAL_STATUSES = frozenset({COMPLETED, FAILED, CANCELLED})

# next status -> statuses it may be entered from
ALLOWED_PREDECESSORS: dict[str, tuple[str, ...]] = {
    RUNNING: (PENDING,),
    COMPLETED: (RUNNING,),
    FAILED: (PENDING, RUNNING),
    CANCELLED: (PENDING, RUNNING),
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: str
    message: str


@dataclass(frozen=True)
class Job:
    id: str
    job_type: str
    status: str
    progress: int
    status_message: str | None
    logs: list[LogEntry]
    config: dict[str, object]
    result: dict[str, object] | None
    error: str | None
    created_at: str
    started_at: str | None
    completed_at: str | None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class Criterion:
    id: int
    area: str
    subarea: str
    description: str
    pr_detectable: bool


@dataclass(frozen=True)
class CriterionMatch:
    criterion_id: int
    confidence: float
    explanation: str


@dataclass(frozen=True)
class Evidence:
    id: str
    source: str
    external_id: str
    role: str
    evidence_type: str
    title: str
    description: str | None
    summary: str | None
    category: str | None
    scope: str | None
    occurred_at: str | None
    github_pr_id: str | None
    jira_ticket_id: str | None
    analyzed_at: str | None
    matches: list[CriterionMatch] = field(default_factory=list)


@dataclass(frozen=True)
class SaveOutcome:
    action: str
    id: str | None

    @property
    def already_exists(self) -> bool:
        return self.action == "skipped"
