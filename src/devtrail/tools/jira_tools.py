from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..agent.tools import Tool, ToolResult
from ..clients.jira import build_jql
from ..services.evidence_service import find_jira_ticket
from ..utils import parse_iso, truncate
from .context import ToolContext


@dataclass(frozen=True)
class SearchTicketsInput:
    project: str | None = None
    start_date: str | None = None
    end_date: str | None = None


@dataclass(frozen=True)
class TicketRefInput:
    key: str
    user_role: str = "assignee"


def adf_text(node: Any) -> str:
    """Flattens an Atlassian document (or a plain string) into text."""
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return "".join(adf_text(child) for child in node)
    if not isinstance(node, dict):
        return ""
    if node.get("type") == "text":
        return node.get("text") or ""
    inner = adf_text(node.get("content"))
    if node.get("type") in {"paragraph", "heading", "listItem", "codeBlock"}:
        return inner + "\n"
    return inner


def duration_days(created: str | None, resolved: str | None) -> int | None:
    if not created or not resolved:
        return None
    try:
        delta = parse_iso(_iso_offset(resolved)) - parse_iso(_iso_offset(created))
    except ValueError:
        return None
    return max(0, delta.days)


def ticket_details(issue: dict[str, Any], story_points_field: str) -> dict[str, Any]:
    fields = issue.get("fields") or {}
    created = fields.get("created")
    resolved = fields.get("resolutiondate")
    points = fields.get(story_points_field)
    return {
        "key": issue.get("key"),
        "summary": fields.get("summary") or "",
        "description": truncate(adf_text(fields.get("description")).strip(), 4000),
        "issue_type": (fields.get("issuetype") or {}).get("name"),
        "status": (fields.get("status") or {}).get("name"),
        "priority": (fields.get("priority") or {}).get("name"),
        "story_points": float(points) if isinstance(points, (int, float)) else None,
        "created": created,
        "resolved": resolved,
        "duration_days": duration_days(created, resolved),
        "labels": list(fields.get("labels") or []),
    }


def jira_tools(ctx: ToolContext) -> list[Tool]:
    story_points_field = ctx.config.jira.story_points_field

    def run_search(params: SearchTicketsInput) -> ToolResult:
        if not ctx.jira_email:
            return ToolResult.fail("no Jira email configured")
        projects = [params.project] if params.project else None
        jql = build_jql(ctx.jira_email, projects, params.start_date, params.end_date)
        issues = ctx.require_jira().search(jql, limit=ctx.search_limit)
        tickets = []
        for issue in issues:
            fields = issue.get("fields") or {}
            tickets.append(
                {
                    "key": issue.get("key"),
                    "summary": fields.get("summary") or "",
                    "issue_type": (fields.get("issuetype") or {}).get("name"),
                    "status": (fields.get("status") or {}).get("name"),
                    "resolved": fields.get("resolutiondate"),
                }
            )
        return ToolResult.ok(jql=jql, tickets=tickets)

    def run_existing(params: TicketRefInput) -> ToolResult:
        existing = find_jira_ticket(ctx.conn, params.key, params.user_role)
        return ToolResult.ok(exists=existing is not None, ticket=existing)

    def run_fetch(params: TicketRefInput) -> ToolResult:
        issue = ctx.require_jira().get_issue(params.key, [story_points_field])
        return ToolResult.ok(ticket=ticket_details(issue, story_points_field))

    ticket_ref_schema = {
        "type": "object",
        "properties": {
            "key": {"type": "string", "pattern": "^[A-Z][A-Z0-9]+-\\d+$"},
            "user_role": {"type": "string"},
        },
        "required": ["key"],
    }
    return [
        Tool(
            name="search_user_jira_tickets",
            description="Search Jira tickets assigned to the user, optionally limited to one project and a date range.",
            input_type=SearchTicketsInput,
            input_schema={
                "type": "object",
                "properties": {
                    "project": {"type": ["string", "null"]},
                    "start_date": {"type": ["string", "null"]},
                    "end_date": {"type": ["string", "null"]},
                },
            },
            run=run_search,
        ),
        Tool(
            name="get_existing_jira_ticket",
            description="Check whether a Jira ticket is already stored. Skip it if it exists.",
            input_type=TicketRefInput,
            input_schema=ticket_ref_schema,
            run=run_existing,
        ),
        Tool(
            name="fetch_jira_ticket",
            description="Fetch a Jira ticket with description, story points and duration in days.",
            input_type=TicketRefInput,
            input_schema=ticket_ref_schema,
            run=run_fetch,
        ),
    ]


def _iso_offset(value: str) -> str:
    # Jira sends offsets as +0000
    if len(value) > 5 and value[-5] in "+-" and value[-4:].isdigit():
        return f"{value[:-2]}:{value[-2:]}"
    return value
