from __future__ import annotations

import logging
from typing import Any

from ..config import load_runtime_config
from ..errors import ParseError
from ..job_configs import AnalyzeReviewConfig
from ..job_logger import JobLogger
from ..llm.client import AnthropicClient, build_llm_client, parse_json_response
from ..models import Job
from ..services.review_service import save_review_analysis
from ..utils import log_event, truncate

logger = logging.getLogger("devtrail.handlers.review")

FALLBACK_CONFIDENCE = 10

REVIEW_PROMPT = """You are analyzing a {review_type} performance review titled "{title}"{year}.

Review text:
{review_text}

Extract:
1. summary: 2-3 sentences on the overall review
2. themes: 3-5 main themes or focus areas
3. strengths: specific strengths, with examples where the review gives them
4. growth_areas: areas for development or improvement
5. achievements: concrete accomplishments or results
6. confidence_score: 0-100, how clear and comprehensive the review is

Respond with JSON only:
{{"summary": "...", "themes": ["..."], "strengths": ["..."], "growth_areas": ["..."],
"achievements": ["..."], "confidence_score": 85}}"""


def handle_analyze_review(
    conn: Any, job: Job, cfg: AnalyzeReviewConfig, job_logger: JobLogger
) -> dict[str, Any]:
    return analyze_review(conn, job_logger, cfg)


def analyze_review(
    conn: Any,
    job_logger: JobLogger,
    cfg: AnalyzeReviewConfig,
    llm: AnthropicClient | None = None,
) -> dict[str, Any]:
    job_logger.update_progress(10, "Initializing AI client")
    if llm is None:
        llm = build_llm_client(conn, load_runtime_config(conn).llm)

    job_logger.update_progress(20, "Analyzing review content")
    raw = llm.complete(_prompt(cfg), max_tokens=4000)

    job_logger.update_progress(60, "Parsing AI analysis results")
    fallback = False
    try:
        analysis = parse_review_analysis(raw)
    except ParseError as exc:
        job_logger.warn(f"Could not parse review analysis, using defaults: {exc}")
        analysis = fallback_review_analysis(cfg)
        fallback = True

    job_logger.update_progress(80, "Saving analysis")
    analysis_id = save_review_analysis(conn, cfg, analysis, job_id=job_logger.job_id)
    log_event(
        logger,
        logging.INFO,
        "review_analyzed",
        review_analysis_id=analysis_id,
        themes=len(analysis["themes"]),
        fallback=fallback,
    )
    return {
        "review_analysis_id": analysis_id,
        "summary": analysis["summary"],
        "themes": analysis["themes"],
        "strengths": analysis["strengths"],
        "growth_areas": analysis["growth_areas"],
        "achievements": analysis["achievements"],
        "confidence_score": analysis["confidence_score"],
        "fallback": fallback,
    }


def parse_review_analysis(raw: str) -> dict[str, Any]:
    """Validate the model's review analysis.

    ``summary`` and a ``themes`` list are required; other list fields are
    coerced (a bare string becomes a one-item list) and a missing
    confidence score defaults to 50.
    """
    parsed = parse_json_response(raw)
    if not isinstance(parsed, dict):
        raise ParseError("review analysis is not a JSON object")
    summary = parsed.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise ParseError("review analysis summary missing")
    if not isinstance(parsed.get("themes"), list):
        raise ParseError("review analysis themes is not a list")
    analysis: dict[str, Any] = {"summary": summary.strip()}
    for key in ("themes", "strengths", "growth_areas", "achievements"):
        analysis[key] = [str(item) for item in _as_list(parsed.get(key)) if str(item).strip()]
    analysis["confidence_score"] = _confidence(parsed.get("confidence_score"))
    return analysis


def fallback_review_analysis(cfg: AnalyzeReviewConfig) -> dict[str, Any]:
    return {
        "summary": truncate(cfg.review_text.split("\n\n")[0].strip(), 300) or cfg.title,
        "themes": [],
        "strengths": [],
        "growth_areas": [],
        "achievements": [],
        "confidence_score": FALLBACK_CONFIDENCE,
    }


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _confidence(value: Any) -> int:
    if isinstance(value, bool):
        return 50
    try:
        score = int(value)
    except (TypeError, ValueError):
        return 50
    return max(0, min(100, score)) or 50


def _prompt(cfg: AnalyzeReviewConfig) -> str:
    return REVIEW_PROMPT.format(
        review_type=cfg.review_type.lower(),
        title=cfg.title,
        year=f" ({cfg.year})" if cfg.year else "",
        review_text=cfg.review_text,
    )
