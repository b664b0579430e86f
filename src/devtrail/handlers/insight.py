from __future__ import annotations

import logging
from typing import Any

from ..config import load_runtime_config
from ..errors import ParseError
from ..job_configs import GenerateInsightConfig
from ..job_logger import JobLogger
from ..llm.client import AnthropicClient, build_llm_client, parse_json_response
from ..models import Job
from ..services.insight_service import get_monthly_insight, month_metrics, save_monthly_insight
from ..utils import log_event

logger = logging.getLogger("devtrail.handlers.insight")

INSIGHT_PROMPT = """You are reviewing one month of a software engineer's work for {month}.

Metrics:
- Merged PRs: {total_prs}
- Lines changed: {total_changes} (+{additions}/-{deletions})
- Components touched: {components_count}
- Categories: {categories}
- Top components: {top_components}

PR titles:
{titles}

Respond with JSON only:
{{"strengths": ["..."], "weaknesses": ["..."], "tags": ["..."], "summary": "<2-3 sentences>"}}

Keep strengths and weaknesses to at most 4 specific, evidence-based points each, and tags
to at most 6 short lowercase labels."""


def handle_generate_insight(
    conn: Any, job: Job, cfg: GenerateInsightConfig, job_logger: JobLogger
) -> dict[str, Any]:
    return generate_insight(conn, job_logger, cfg)


def generate_insight(
    conn: Any,
    job_logger: JobLogger,
    cfg: GenerateInsightConfig,
    llm: AnthropicClient | None = None,
) -> dict[str, Any]:
    if not cfg.force:
        existing = get_monthly_insight(conn, cfg.month)
        if existing is not None:
            job_logger.info(f"Using cached insight for {cfg.month}")
            return {"cached": True, "month": cfg.month, "generated_at": existing["generated_at"]}

    job_logger.update_progress(20, "Fetching month data")
    metrics = month_metrics(conn, cfg.month)
    if metrics["total_prs"] == 0:
        save_monthly_insight(conn, cfg.month, metrics, empty_insight(cfg.month))
        job_logger.info(f"No activity for {cfg.month}")
        return {"month": cfg.month, "no_activity": True}

    if llm is None:
        llm = build_llm_client(conn, load_runtime_config(conn).llm)
    job_logger.update_progress(40, "Generating AI analysis")
    raw = llm.complete(_prompt(cfg.month, metrics), max_tokens=2000)

    job_logger.update_progress(70, "Parsing AI response")
    try:
        insight = parse_insight(raw)
    except ParseError as exc:
        job_logger.warn(f"Could not parse insight response, using defaults: {exc}")
        insight = fallback_insight(cfg.month, metrics)

    job_logger.update_progress(85, "Saving insight")
    saved = save_monthly_insight(conn, cfg.month, metrics, insight)
    log_event(logger, logging.INFO, "insight_generated", month=cfg.month, total_prs=metrics["total_prs"])
    return {
        "month": cfg.month,
        "generated_at": saved.get("generated_at"),
        "metrics": {
            "total_prs": metrics["total_prs"],
            "total_changes": metrics["total_changes"],
            "components_count": metrics["components_count"],
        },
    }


def parse_insight(raw: str) -> dict[str, Any]:
    parsed = parse_json_response(raw)
    if not isinstance(parsed, dict):
        raise ParseError("insight response is not a JSON object")
    insight: dict[str, Any] = {}
    for key in ("strengths", "weaknesses", "tags"):
        value = parsed.get(key) or []
        if not isinstance(value, list):
            raise ParseError(f"insight field {key} is not a list")
        insight[key] = [str(item) for item in value]
    summary = parsed.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ParseError("insight summary missing")
    insight["summary"] = summary.strip()
    return insight


def empty_insight(month: str) -> dict[str, Any]:
    return {
        "strengths": [],
        "weaknesses": [],
        "tags": ["no-activity"],
        "summary": f"No pull request activity recorded for {month}.",
    }


def fallback_insight(month: str, metrics: dict[str, Any]) -> dict[str, Any]:
    categories = sorted(metrics.get("categories", {}).items(), key=lambda item: -item[1])
    return {
        "strengths": [],
        "weaknesses": [],
        "tags": [name for name, _ in categories[:3]],
        "summary": (
            f"{metrics['total_prs']} PRs merged in {month} with {metrics['total_changes']} lines changed "
            f"across {metrics['components_count']} components."
        ),
    }


def _prompt(month: str, metrics: dict[str, Any]) -> str:
    categories = ", ".join(f"{name} ({count})" for name, count in metrics["categories"].items())
    components = ", ".join(f"{c['name']} ({c['pr_count']})" for c in metrics["top_components"])
    return INSIGHT_PROMPT.format(
        month=month,
        total_prs=metrics["total_prs"],
        total_changes=metrics["total_changes"],
        additions=metrics["additions"],
        deletions=metrics["deletions"],
        components_count=metrics["components_count"],
        categories=categories or "none",
        top_components=components or "none",
        titles="\n".join(f"- {title}" for title in metrics["titles"][:40]) or "- none",
    )
