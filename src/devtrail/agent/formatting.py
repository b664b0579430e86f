from __future__ import annotations

from typing import Any

from ..utils import truncate
from .tools import ToolResult


def format_tool_log(name: str, args: dict[str, Any], result: ToolResult | None = None) -> str:
    arg_summary = arg_summary_for(name, args)
    result_summary = result_summary_for(name, result) if result is not None else None
    if result_summary:
        return f"{name}: {arg_summary} → {result_summary}"
    return f"{name}: {arg_summary}"


def arg_summary_for(name: str, args: dict[str, Any]) -> str:
    if name == "search_user_prs":
        return f"{args.get('username') or 'unknown'} | {args.get('role') or 'author'} | {args.get('repo') or 'all repos'}"
    if name in {"get_existing_github_pr", "fetch_pr_details", "save_github_pr"}:
        return f"{args.get('repo')}#{args.get('number')}"
    if name in {"extract_jira_keys", "extract_links"}:
        return truncate(str(args.get("text") or ""), 40)
    if name == "extract_components":
        return f"{len(args.get('files') or [])} files"
    if name in {"categorize", "summarize", "parse_pr_title", "match_criteria"}:
        return truncate(str(args.get("title") or ""), 40)
    if name == "estimate_scope":
        return f"+{args.get('additions', 0)}/-{args.get('deletions', 0)}"
    if name == "save_evidence":
        return truncate(str(args.get("summary") or args.get("title") or ""), 40)
    if name == "search_user_jira_tickets":
        return f"{args.get('project') or 'all'} | {args.get('start_date') or 'any'}..{args.get('end_date') or 'now'}"
    if name in {"get_existing_jira_ticket", "fetch_jira_ticket", "save_jira_ticket"}:
        return str(args.get("key"))
    if name == "link_pr_to_jira":
        return f"{args.get('pr_id')} → {args.get('jira_key')}"
    if name == "save_criteria_matches":
        return f"{args.get('evidence_id')} ({len(args.get('matches') or [])} matches)"
    for value in args.values():
        if isinstance(value, str):
            return truncate(value, 30)
    return "..."


def result_summary_for(name: str, result: ToolResult) -> str | None:
    if not result.success:
        return f"ERROR: {truncate(result.error or 'unknown error', 80)}"
    data = result.data
    if name == "search_user_prs":
        query = f" | Query: {truncate(str(data['query']), 60)}" if data.get("query") else ""
        return f"found {len(data.get('prs') or [])} PRs{query}"
    if name in {"get_existing_github_pr", "get_existing_jira_ticket"}:
        return "exists (skipping)" if data.get("exists") else "new (will process)"
    if name == "fetch_pr_details":
        pr = data.get("pr") or {}
        return f"+{pr.get('additions', 0)}/-{pr.get('deletions', 0)}, {len(pr.get('files') or [])} files"
    if name == "extract_jira_keys":
        keys = data.get("keys") or []
        return ", ".join(keys) if keys else "no key found"
    if name == "extract_links":
        return f"{data.get('total_links', 0)} links"
    if name == "extract_components":
        return ", ".join(data.get("top_components") or []) or "no components"
    if name == "categorize":
        return str(data.get("category") or "unknown")
    if name == "estimate_scope":
        return str(data.get("scope") or "unknown")
    if name == "summarize":
        return f"\"{truncate(str(data['summary']), 50)}\"" if data.get("summary") else "generated"
    if name == "match_criteria":
        return f"{len(data.get('matches') or [])} matches"
    if name in {"save_github_pr", "save_jira_ticket", "save_evidence"}:
        return {
            "created": "created new",
            "updated": "updated existing",
            "skipped": "already exists",
            "dry_run": "dry run (not saved)",
        }.get(str(data.get("action")), "saved")
    if name == "search_user_jira_tickets":
        jql = f" | JQL: {truncate(str(data['jql']), 50)}" if data.get("jql") else ""
        return f"found {len(data.get('tickets') or [])} tickets{jql}"
    if name == "fetch_jira_ticket":
        ticket = data.get("ticket") or {}
        return f"{ticket.get('issue_type')} | {ticket.get('status')} | {ticket.get('story_points') or 'no'} pts"
    if name == "link_pr_to_jira":
        return "linked"
    if name == "save_criteria_matches":
        return f"saved {data.get('count', 0)} matches"
    return None
