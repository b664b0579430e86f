from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ..agent.tools import Tool, ToolResult
from ..models import CriterionMatch, SaveOutcome
from ..services import evidence_service
from ..services.criteria_service import list_criteria
from ..utils import log_event
from .context import ToolContext

EVIDENCE_SOURCES = ("github", "jira")


@dataclass(frozen=True)
class SavePrInput:
    repo: str
    number: int
    title: str
    user_role: str = "author"
    body: str | None = None
    url: str | None = None
    author: str | None = None
    state: str | None = None
    merged_at: str | None = None
    additions: int | None = None
    deletions: int | None = None
    changed_files: int | None = None
    components: list[str] | None = None


@dataclass(frozen=True)
class SaveTicketInput:
    key: str
    summary: str
    user_role: str = "assignee"
    description: str | None = None
    issue_type: str | None = None
    status: str | None = None
    priority: str | None = None
    story_points: float | None = None
    created: str | None = None
    resolved: str | None = None
    duration_days: int | None = None


@dataclass(frozen=True)
class SaveEvidenceInput:
    source: str
    external_id: str
    role: str
    title: str
    summary: str
    category: str
    scope: str
    description: str | None = None
    evidence_type: str | None = None
    occurred_at: str | None = None
    github_pr_id: str | None = None
    jira_ticket_id: str | None = None


@dataclass(frozen=True)
class LinkInput:
    pr_id: str
    jira_key: str


@dataclass(frozen=True)
class SaveMatchesInput:
    evidence_id: str
    matches: list[dict[str, Any]] = field(default_factory=list)


def outcome_result(outcome: SaveOutcome) -> ToolResult:
    return ToolResult.ok(action=outcome.action, id=outcome.id, already_exists=outcome.already_exists)


def dry_run_result() -> ToolResult:
    return ToolResult.ok(action="dry_run", id=None, already_exists=False)


def default_evidence_type(source: str, role: str) -> str:
    if source == "github":
        return {"author": "pr_authored", "reviewer": "pr_reviewed"}.get(role, "pr")
    return "jira_ticket"


def storage_tools(ctx: ToolContext) -> list[Tool]:
    def run_save_pr(params: SavePrInput) -> ToolResult:
        if ctx.dry_run:
            return dry_run_result()
        outcome = evidence_service.save_github_pr(
            ctx.conn,
            {
                "repo": params.repo,
                "number": params.number,
                "user_role": params.user_role,
                "title": params.title,
                "body": params.body,
                "url": params.url,
                "author": params.author,
                "state": params.state,
                "merged_at": params.merged_at,
                "additions": params.additions,
                "deletions": params.deletions,
                "changed_files": params.changed_files,
                "components": list(params.components) if params.components is not None else None,
            },
            update_existing=ctx.update_existing,
        )
        log_event(
            ctx.logger,
            logging.DEBUG,
            "github_pr_saved",
            repo=params.repo,
            number=params.number,
            action=outcome.action,
        )
        return outcome_result(outcome)

    def run_save_ticket(params: SaveTicketInput) -> ToolResult:
        if ctx.dry_run:
            return dry_run_result()
        outcome = evidence_service.save_jira_ticket(
            ctx.conn,
            {
                "key": params.key,
                "user_role": params.user_role,
                "summary": params.summary,
                "description": params.description,
                "issue_type": params.issue_type,
                "status": params.status,
                "priority": params.priority,
                "story_points": params.story_points,
                "created": params.created,
                "resolved": params.resolved,
                "duration_days": params.duration_days,
            },
            update_existing=ctx.update_existing,
        )
        log_event(ctx.logger, logging.DEBUG, "jira_ticket_saved", key=params.key, action=outcome.action)
        return outcome_result(outcome)

    def run_save_evidence(params: SaveEvidenceInput) -> ToolResult:
        if params.source not in EVIDENCE_SOURCES:
            return ToolResult.fail(f"source must be one of: {', '.join(EVIDENCE_SOURCES)}")
        if ctx.dry_run:
            return dry_run_result()
        outcome = evidence_service.save_evidence(
            ctx.conn,
            {
                "source": params.source,
                "external_id": params.external_id,
                "role": params.role,
                "evidence_type": params.evidence_type or default_evidence_type(params.source, params.role),
                "title": params.title,
                "description": params.description,
                "summary": params.summary,
                "category": params.category,
                "scope": params.scope,
                "occurred_at": params.occurred_at,
                "github_pr_id": params.github_pr_id,
                "jira_ticket_id": params.jira_ticket_id,
                "job_id": ctx.job_id,
            },
            update_existing=ctx.update_existing,
        )
        return outcome_result(outcome)

    def run_link(params: LinkInput) -> ToolResult:
        if ctx.dry_run:
            return dry_run_result()
        if not evidence_service.github_pr_exists(ctx.conn, params.pr_id):
            return ToolResult.fail(f"PR {params.pr_id} not found; save it with save_github_pr first")
        created = evidence_service.link_pr_to_jira(ctx.conn, params.pr_id, params.jira_key)
        return ToolResult.ok(linked=True, created=created)

    def run_save_matches(params: SaveMatchesInput) -> ToolResult:
        if ctx.dry_run:
            return ToolResult.ok(action="dry_run", count=len(params.matches))
        if evidence_service.get_evidence(ctx.conn, params.evidence_id) is None:
            return ToolResult.fail(f"evidence {params.evidence_id} not found")
        known = {criterion.id for criterion in list_criteria(ctx.conn)}
        matches: list[CriterionMatch] = []
        unknown: list[int] = []
        for item in params.matches:
            criterion_id = int(item["criterion_id"])
            if criterion_id not in known:
                unknown.append(criterion_id)
                continue
            matches.append(
                CriterionMatch(
                    criterion_id=criterion_id,
                    confidence=float(item["confidence"]),
                    explanation=str(item.get("explanation") or ""),
                )
            )
        count = evidence_service.replace_criterion_matches(ctx.conn, params.evidence_id, matches)
        return ToolResult.ok(count=count, ignored_criteria=unknown)

    return [
        Tool(
            name="save_github_pr",
            description=(
                "Store a PR for the given role. Returns action created/updated/skipped "
                "(already_exists) or dry_run. Returns the stored id used by save_evidence."
            ),
            input_type=SavePrInput,
            input_schema={
                "type": "object",
                "properties": {
                    "repo": {"type": "string"},
                    "number": {"type": "integer", "minimum": 1},
                    "title": {"type": "string"},
                    "user_role": {"type": "string", "enum": ["author", "reviewer"]},
                    "body": {"type": ["string", "null"]},
                    "url": {"type": ["string", "null"]},
                    "author": {"type": ["string", "null"]},
                    "state": {"type": ["string", "null"]},
                    "merged_at": {"type": ["string", "null"]},
                    "additions": {"type": "integer", "minimum": 0},
                    "deletions": {"type": "integer", "minimum": 0},
                    "changed_files": {"type": "integer", "minimum": 0},
                    "components": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["repo", "number", "title"],
            },
            run=run_save_pr,
        ),
        Tool(
            name="save_jira_ticket",
            description="Store a Jira ticket. Returns action created/updated/skipped (already_exists) or dry_run.",
            input_type=SaveTicketInput,
            input_schema={
                "type": "object",
                "properties": {
                    "key": {"type": "string", "pattern": "^[A-Z][A-Z0-9]+-\\d+$"},
                    "summary": {"type": "string"},
                    "user_role": {"type": "string"},
                    "description": {"type": ["string", "null"]},
                    "issue_type": {"type": ["string", "null"]},
                    "status": {"type": ["string", "null"]},
                    "priority": {"type": ["string", "null"]},
                    "story_points": {"type": ["number", "null"], "minimum": 0},
                    "created": {"type": ["string", "null"]},
                    "resolved": {"type": ["string", "null"]},
                    "duration_days": {"type": ["integer", "null"], "minimum": 0},
                },
                "required": ["key", "summary"],
            },
            run=run_save_ticket,
        ),
        Tool(
            name="save_evidence",
            description=(
                "Store an evidence entry (summary, category, scope) for a saved PR or ticket. "
                "Keyed by source, external_id and role."
            ),
            input_type=SaveEvidenceInput,
            input_schema={
                "type": "object",
                "properties": {
                    "source": {"type": "string", "enum": list(EVIDENCE_SOURCES)},
                    "external_id": {"type": "string"},
                    "role": {"type": "string"},
                    "title": {"type": "string"},
                    "summary": {"type": "string"},
                    "category": {"type": "string"},
                    "scope": {"type": "string", "enum": ["small", "medium", "large"]},
                    "description": {"type": ["string", "null"]},
                    "evidence_type": {"type": ["string", "null"]},
                    "occurred_at": {"type": ["string", "null"]},
                    "github_pr_id": {"type": ["string", "null"]},
                    "jira_ticket_id": {"type": ["string", "null"]},
                },
                "required": ["source", "external_id", "role", "title", "summary", "category", "scope"],
            },
            run=run_save_evidence,
        ),
        Tool(
            name="link_pr_to_jira",
            description="Link a stored PR (by id) to a Jira key. Linking twice is a no-op.",
            input_type=LinkInput,
            input_schema={
                "type": "object",
                "properties": {
                    "pr_id": {"type": "string"},
                    "jira_key": {"type": "string", "pattern": "^[A-Z][A-Z0-9]+-\\d+$"},
                },
                "required": ["pr_id", "jira_key"],
            },
            run=run_link,
        ),
        Tool(
            name="save_criteria_matches",
            description="Replace the criteria matches of an evidence entry with the given set.",
            input_type=SaveMatchesInput,
            input_schema={
                "type": "object",
                "properties": {
                    "evidence_id": {"type": "string"},
                    "matches": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "criterion_id": {"type": "integer"},
                                "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                                "explanation": {"type": "string"},
                            },
                            "required": ["criterion_id", "confidence"],
                        },
                    },
                },
                "required": ["evidence_id", "matches"],
            },
            run=run_save_matches,
        ),
    ]
