from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..agent.tools import Tool, ToolResult
from ..clients.github import build_pr_query, repo_from_url
from ..services.evidence_service import find_github_pr
from ..utils import truncate
from .context import ToolContext

PR_ROLES = ("author", "reviewer")


@dataclass(frozen=True)
class SearchPrsInput:
    username: str | None = None
    role: str = "author"
    repo: str | None = None
    start_date: str | None = None
    end_date: str | None = None


@dataclass(frozen=True)
class PrRefInput:
    repo: str
    number: int
    user_role: str = "author"


def summarize_search_item(item: dict[str, Any]) -> dict[str, Any]:
    pull = item.get("pull_request") or {}
    return {
        "repo": repo_from_url(item.get("repository_url")),
        "number": item.get("number"),
        "title": item.get("title") or "",
        "url": item.get("html_url"),
        "author": (item.get("user") or {}).get("login"),
        "merged_at": pull.get("merged_at") or item.get("closed_at"),
        "labels": [label.get("name") for label in item.get("labels") or [] if label.get("name")],
    }


def pr_details(pull: dict[str, Any], files: list[dict[str, Any]], reviews: list[dict[str, Any]]) -> dict[str, Any]:
    base_repo = ((pull.get("base") or {}).get("repo") or {}).get("full_name")
    return {
        "repo": base_repo,
        "number": pull.get("number"),
        "title": pull.get("title") or "",
        "body": truncate(pull.get("body") or "", 4000),
        "url": pull.get("html_url"),
        "author": (pull.get("user") or {}).get("login"),
        "state": "merged" if pull.get("merged_at") else pull.get("state"),
        "merged_at": pull.get("merged_at"),
        "created_at": pull.get("created_at"),
        "additions": int(pull.get("additions") or 0),
        "deletions": int(pull.get("deletions") or 0),
        "changed_files": int(pull.get("changed_files") or len(files)),
        "files": [item.get("filename") for item in files if item.get("filename")],
        "labels": [label.get("name") for label in pull.get("labels") or [] if label.get("name")],
        "head_branch": (pull.get("head") or {}).get("ref"),
        "reviews": [
            {"user": (review.get("user") or {}).get("login"), "state": review.get("state")}
            for review in reviews
        ],
    }


def github_tools(ctx: ToolContext) -> list[Tool]:
    def run_search(params: SearchPrsInput) -> ToolResult:
        username = params.username or ctx.username
        if not username:
            return ToolResult.fail("username is required (no GitHub username configured)")
        if params.role not in PR_ROLES:
            return ToolResult.fail(f"role must be one of: {', '.join(PR_ROLES)}")
        query = build_pr_query(username, params.role, params.repo, params.start_date, params.end_date)
        items = ctx.require_github().search_prs(query, limit=ctx.search_limit)
        return ToolResult.ok(
            query=query,
            role=params.role,
            prs=[summarize_search_item(item) for item in items],
        )

    def run_existing(params: PrRefInput) -> ToolResult:
        existing = find_github_pr(ctx.conn, params.repo, params.number, params.user_role)
        return ToolResult.ok(exists=existing is not None, pr=existing)

    def run_fetch(params: PrRefInput) -> ToolResult:
        client = ctx.require_github()
        pull = client.get_pull(params.repo, params.number)
        files = client.list_pull_files(params.repo, params.number)
        reviews = client.list_pull_reviews(params.repo, params.number)
        details = pr_details(pull, files, reviews)
        details["repo"] = details["repo"] or params.repo
        return ToolResult.ok(pr=details)

    pr_ref_schema = {
        "type": "object",
        "properties": {
            "repo": {"type": "string", "pattern": "^[^/\\s]+/[^/\\s]+$"},
            "number": {"type": "integer", "minimum": 1},
            "user_role": {"type": "string", "enum": list(PR_ROLES)},
        },
        "required": ["repo", "number"],
    }
    return [
        Tool(
            name="search_user_prs",
            description=(
                "Search merged pull requests where the user is the author or a reviewer. "
                "Dates are YYYY-MM-DD; repo is owner/name."
            ),
            input_type=SearchPrsInput,
            input_schema={
                "type": "object",
                "properties": {
                    "username": {"type": "string"},
                    "role": {"type": "string", "enum": list(PR_ROLES)},
                    "repo": {"type": ["string", "null"]},
                    "start_date": {"type": ["string", "null"]},
                    "end_date": {"type": ["string", "null"]},
                },
            },
            run=run_search,
        ),
        Tool(
            name="get_existing_github_pr",
            description="Check whether a PR is already stored for this role. Skip it if it exists.",
            input_type=PrRefInput,
            input_schema=pr_ref_schema,
            run=run_existing,
        ),
        Tool(
            name="fetch_pr_details",
            description="Fetch full PR details: body, additions, deletions, changed file paths and reviews.",
            input_type=PrRefInput,
            input_schema=pr_ref_schema,
            run=run_fetch,
        ),
    ]
