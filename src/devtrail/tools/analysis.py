from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from ..agent.tools import Tool, ToolResult
from ..config import CriteriaConfig
from ..errors import ExternalAPIError, ParseError
from ..llm.client import AnthropicClient, parse_json_response
from ..models import Criterion, CriterionMatch
from ..services.criteria_service import list_criteria
from ..utils import log_event, truncate
from .context import ToolContext

logger = logging.getLogger("devtrail.tools.analysis")

CATEGORIES = ("bug", "refactor", "docs", "devex", "recognition", "help", "feature")

_CI_RE = re.compile(r"\bci\b")

SUMMARY_PROMPT = """You are summarizing work for a software engineer's performance review.

Based on the following information, write a concise 2-3 sentence summary that describes
what was accomplished and the value it delivered, in professional language.

Context:
{context}

Write ONLY the summary. Do not start with "The engineer" or "This PR"; write it as a
direct statement of the accomplishment."""

MATCH_PROMPT = """You are matching software engineering work against performance review criteria.

Work being evaluated:
{context}

Performance criteria:
{criteria}

Only match criteria with clear evidence. Return up to {max_matches} matches and explain
the specific evidence for each.

Respond with JSON only:
{{"matches": [{{"criterion_id": <number>, "confidence": <0-100>, "explanation": "<evidence>"}}]}}

If no criteria match, return {{"matches": []}}"""


def categorize_work(
    title: str,
    description: str | None = None,
    issue_type: str | None = None,
    labels: list[str] | None = None,
    files: list[str] | None = None,
) -> tuple[str, float]:
    text = " ".join([title, description or "", issue_type or "", *(labels or [])]).lower()
    file_text = " ".join(files or []).lower()
    issue = (issue_type or "").lower()

    def has(*needles: str) -> bool:
        return any(needle in text for needle in needles)

    if issue == "bug" or has("bug", "fix", "error", "issue"):
        return "bug", 0.9
    if has("refactor", "clean", "improve", "optimize"):
        return "refactor", 0.85
    if has("doc", "readme", "comment") or ".md" in file_text or "readme" in file_text:
        return "docs", 0.85
    if has("test", "spec", "coverage") or "test" in file_text or "spec" in file_text:
        return "devex", 0.8
    if _CI_RE.search(text) or has("pipeline", "deploy", "build", "config", "bump", "upgrade", "dependency"):
        return "devex", 0.75
    if has("thank", "shout", "kudos", "great work", "awesome"):
        return "recognition", 0.9
    if has("help", "assist", "support", "unblock"):
        return "help", 0.75
    if issue == "story" or has("add", "create", "implement", "new", "feature"):
        return "feature", 0.7
    return "feature", 0.5


def estimate_scope(
    additions: int = 0,
    deletions: int = 0,
    changed_files: int = 0,
    story_points: float | None = None,
    duration_days: float | None = None,
) -> dict[str, Any]:
    score = 0
    factors: list[str] = []
    if story_points is not None:
        if story_points >= 8:
            score += 3
            factors.append(f"{story_points} story points (large)")
        elif story_points >= 3:
            score += 2
            factors.append(f"{story_points} story points (medium)")
        else:
            score += 1
            factors.append(f"{story_points} story points (small)")

    lines = (additions or 0) + (deletions or 0)
    if lines > 500:
        score += 2
        factors.append(f"{lines} lines changed (large)")
    elif lines > 100:
        score += 1
        factors.append(f"{lines} lines changed (medium)")
    elif lines > 0:
        factors.append(f"{lines} lines changed (small)")

    files = changed_files or 0
    if files > 20:
        score += 2
        factors.append(f"{files} files changed (large)")
    elif files > 5:
        score += 1
        factors.append(f"{files} files changed (medium)")
    elif files > 0:
        factors.append(f"{files} files changed (small)")

    if duration_days is not None:
        if duration_days > 14:
            score += 2
            factors.append(f"{duration_days} days to complete (long)")
        elif duration_days > 3:
            score += 1
            factors.append(f"{duration_days} days to complete (medium)")
        else:
            factors.append(f"{duration_days} days to complete (short)")

    if score >= 5:
        scope = "large"
    elif score >= 2:
        scope = "medium"
    else:
        scope = "small"
    return {"scope": scope, "score": score, "factors": factors}


def summarize_work(llm: AnthropicClient | None, context: list[str], fallback: str) -> dict[str, Any]:
    """LLM summary; any model or transport failure degrades to the fallback text."""
    if llm is None:
        return {"summary": fallback, "fallback": True, "error": "llm not configured"}
    try:
        text = llm.complete(SUMMARY_PROMPT.format(context="\n".join(context)), max_tokens=256)
    except (ExternalAPIError, ParseError) as exc:
        log_event(logger, logging.WARNING, "summarize_fallback", error=str(exc))
        return {"summary": fallback, "fallback": True, "error": str(exc)}
    summary = text.strip()
    if not summary:
        return {"summary": fallback, "fallback": True, "error": "empty summary"}
    return {"summary": summary, "fallback": False}


@dataclass
class CriteriaMatchResult:
    matches: list[CriterionMatch] = field(default_factory=list)
    criteria_evaluated: int = 0
    error: str | None = None


def match_criteria(
    conn: Any,
    llm: AnthropicClient | None,
    config: CriteriaConfig,
    context: list[str],
) -> CriteriaMatchResult:
    criteria = list_criteria(conn, pr_detectable_only=True)
    if not criteria:
        return CriteriaMatchResult(error="No criteria found in database")
    if llm is None:
        return CriteriaMatchResult(criteria_evaluated=len(criteria), error="llm not configured")
    prompt = MATCH_PROMPT.format(
        context="\n".join(context),
        criteria="\n".join(_criterion_line(criterion) for criterion in criteria),
        max_matches=config.max_matches,
    )
    raw = llm.complete(prompt, max_tokens=1024)
    try:
        matches = _parse_matches(raw, {criterion.id for criterion in criteria}, config)
    except ParseError as exc:
        log_event(logger, logging.WARNING, "criteria_parse_failed", error=str(exc))
        return CriteriaMatchResult(criteria_evaluated=len(criteria), error=str(exc))
    return CriteriaMatchResult(matches=matches, criteria_evaluated=len(criteria))


def work_context(
    title: str | None = None,
    description: str | None = None,
    summary: str | None = None,
    category: str | None = None,
    **extra: Any,
) -> list[str]:
    lines: list[str] = []
    if summary:
        lines.append(f"Summary: {summary}")
    if category:
        lines.append(f"Category: {category}")
    if title:
        lines.append(f"Title: {title}")
    if description:
        lines.append(f"Description: {truncate(description, 1000)}")
    for label, value in extra.items():
        if value is None or value == [] or value == "":
            continue
        if isinstance(value, list):
            shown = ", ".join(str(item) for item in value[:10])
            if len(value) > 10:
                shown += f" and {len(value) - 10} more"
            value = shown
        lines.append(f"{label.replace('_', ' ').capitalize()}: {value}")
    return lines


def _criterion_line(criterion: Criterion) -> str:
    area = f"{criterion.area} > {criterion.subarea}" if criterion.subarea else criterion.area
    return f"{criterion.id}. [{area}] {criterion.description}"


def _parse_matches(raw: str, known_ids: set[int], config: CriteriaConfig) -> list[CriterionMatch]:
    parsed = parse_json_response(raw)
    items = parsed.get("matches") if isinstance(parsed, dict) else None
    if not isinstance(items, list):
        raise ParseError("model response missing 'matches' list")
    best: dict[int, CriterionMatch] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            criterion_id = int(item["criterion_id"])
            confidence = float(item.get("confidence") or 0) / 100
        except (KeyError, TypeError, ValueError):
            continue
        if criterion_id not in known_ids:
            continue
        confidence = max(0.0, min(1.0, confidence))
        if confidence < config.min_confidence:
            continue
        current = best.get(criterion_id)
        if current is not None and current.confidence >= confidence:
            continue
        best[criterion_id] = CriterionMatch(
            criterion_id=criterion_id,
            confidence=confidence,
            explanation=str(item.get("explanation") or ""),
        )
    # one entry per criterion before capping
    matches = sorted(best.values(), key=lambda match: match.confidence, reverse=True)
    return matches[: config.max_matches]


@dataclass(frozen=True)
class SummarizeInput:
    title: str
    body: str | None = None
    additions: int | None = None
    deletions: int | None = None
    files: list[str] | None = None
    jira_key: str | None = None
    jira_summary: str | None = None
    jira_description: str | None = None
    issue_type: str | None = None
    story_points: float | None = None


@dataclass(frozen=True)
class CategorizeInput:
    title: str
    body: str | None = None
    issue_type: str | None = None
    labels: list[str] | None = None
    files: list[str] | None = None


@dataclass(frozen=True)
class ScopeInput:
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    story_points: float | None = None
    duration_days: float | None = None


@dataclass(frozen=True)
class MatchCriteriaInput:
    title: str
    description: str | None = None
    summary: str | None = None
    category: str | None = None


_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_OPTIONAL_NUMBER = {"type": ["number", "null"], "minimum": 0}


def analysis_tools(ctx: ToolContext) -> list[Tool]:
    def run_summarize(params: SummarizeInput) -> ToolResult:
        context = [f"Title: {params.title}"]
        if params.body:
            context.append(f"Description: {truncate(params.body, 1000)}")
        if params.additions is not None or params.deletions is not None:
            context.append(f"Code changes: +{params.additions or 0}/-{params.deletions or 0} lines")
        context.extend(
            work_context(
                files_changed=params.files or [],
                jira_ticket=params.jira_key,
                jira_summary=params.jira_summary,
                jira_description=truncate(params.jira_description, 500) if params.jira_description else None,
                issue_type=params.issue_type,
                story_points=params.story_points,
            )
        )
        return ToolResult.ok(**summarize_work(ctx.llm, context, params.title or params.jira_summary or "Work completed"))

    def run_categorize(params: CategorizeInput) -> ToolResult:
        category, confidence = categorize_work(
            params.title, params.body, params.issue_type, params.labels, params.files
        )
        return ToolResult.ok(
            category=category,
            confidence=confidence,
            reasoning=f"Keywords in title/description: \"{truncate(params.title, 50)}\"",
        )

    def run_scope(params: ScopeInput) -> ToolResult:
        return ToolResult.ok(
            **estimate_scope(
                params.additions,
                params.deletions,
                params.changed_files,
                params.story_points,
                params.duration_days,
            )
        )

    def run_match(params: MatchCriteriaInput) -> ToolResult:
        result = match_criteria(
            ctx.conn,
            ctx.llm,
            ctx.config.criteria,
            work_context(params.title, params.description, params.summary, params.category),
        )
        if result.criteria_evaluated == 0:
            return ToolResult.fail(result.error or "No criteria found in database", matches=[])
        data: dict[str, Any] = {
            "matches": [
                {
                    "criterion_id": match.criterion_id,
                    "confidence": match.confidence,
                    "explanation": match.explanation,
                }
                for match in result.matches
            ],
            "criteria_evaluated": result.criteria_evaluated,
        }
        if result.error:
            data["parse_error"] = result.error
        return ToolResult.ok(**data)

    return [
        Tool(
            name="summarize",
            description="Write a 2-3 sentence performance-review summary of a PR and/or Jira ticket.",
            input_type=SummarizeInput,
            input_schema={
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "body": {"type": ["string", "null"]},
                    "additions": {"type": ["integer", "null"], "minimum": 0},
                    "deletions": {"type": ["integer", "null"], "minimum": 0},
                    "files": _STRING_LIST,
                    "jira_key": {"type": ["string", "null"]},
                    "jira_summary": {"type": ["string", "null"]},
                    "jira_description": {"type": ["string", "null"]},
                    "issue_type": {"type": ["string", "null"]},
                    "story_points": _OPTIONAL_NUMBER,
                },
                "required": ["title"],
            },
            run=run_summarize,
        ),
        Tool(
            name="categorize",
            description=f"Categorize work as one of: {', '.join(CATEGORIES)}.",
            input_type=CategorizeInput,
            input_schema={
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "body": {"type": ["string", "null"]},
                    "issue_type": {"type": ["string", "null"]},
                    "labels": _STRING_LIST,
                    "files": _STRING_LIST,
                },
                "required": ["title"],
            },
            run=run_categorize,
        ),
        Tool(
            name="estimate_scope",
            description="Estimate scope (small/medium/large) from code size, story points and duration.",
            input_type=ScopeInput,
            input_schema={
                "type": "object",
                "properties": {
                    "additions": {"type": "integer", "minimum": 0},
                    "deletions": {"type": "integer", "minimum": 0},
                    "changed_files": {"type": "integer", "minimum": 0},
                    "story_points": _OPTIONAL_NUMBER,
                    "duration_days": _OPTIONAL_NUMBER,
                },
            },
            run=run_scope,
        ),
        Tool(
            name="match_criteria",
            description="Match work against the performance review criteria; returns scored matches.",
            input_type=MatchCriteriaInput,
            input_schema={
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "description": {"type": ["string", "null"]},
                    "summary": {"type": ["string", "null"]},
                    "category": {"type": ["string", "null"]},
                },
                "required": ["title"],
            },
            run=run_match,
        ),
    ]
