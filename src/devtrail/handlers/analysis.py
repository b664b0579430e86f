from __future__ import annotations

import logging
from typing import Any

from ..config import Config, load_runtime_config
from ..errors import ConfigurationError, ExternalAPIError
from ..job_configs import AnalyzeEvidenceConfig
from ..job_logger import JobLogger
from ..llm.client import AnthropicClient, build_llm_client
from ..models import Job
from ..services.criteria_service import list_criteria
from ..services.evidence_service import get_evidence, mark_evidence_analyzed, replace_criterion_matches
from ..tools.analysis import match_criteria, work_context
from ..utils import log_event

logger = logging.getLogger("devtrail.handlers.analysis")


def handle_analyze_evidence(
    conn: Any, job: Job, cfg: AnalyzeEvidenceConfig, job_logger: JobLogger
) -> dict[str, Any]:
    runtime = load_runtime_config(conn)
    return analyze_evidence(conn, job_logger, cfg, runtime, build_llm_client(conn, runtime.llm))


def analyze_evidence(
    conn: Any,
    job_logger: JobLogger,
    cfg: AnalyzeEvidenceConfig,
    runtime: Config,
    llm: AnthropicClient,
) -> dict[str, Any]:
    job_logger.update_progress(10, "Loading performance criteria")
    criteria = list_criteria(conn, pr_detectable_only=True)
    if not criteria:
        raise ConfigurationError("No performance criteria loaded. Import criteria before analysis.")
    job_logger.info(f"Analyzing {len(cfg.evidence_ids)} evidence items against {len(criteria)} criteria")

    total = len(cfg.evidence_ids)
    results: list[dict[str, Any]] = []
    success_count = 0
    failed_count = 0
    for index, evidence_id in enumerate(cfg.evidence_ids, start=1):
        outcome = _analyze_one(conn, llm, runtime, evidence_id, cfg.force_reanalysis)
        results.append(outcome)
        if outcome["success"]:
            success_count += 1
            if outcome.get("skipped"):
                job_logger.info(f"{evidence_id}: already analyzed, skipped")
            else:
                job_logger.info(f"{evidence_id}: {outcome['match_count']} criteria matched")
        else:
            failed_count += 1
            job_logger.error(f"{evidence_id}: {outcome['error']}")
        job_logger.update_progress(15 + round(index / total * 70), f"Analyzed {index}/{total} evidence items")

    log_event(
        logger,
        logging.INFO,
        "evidence_analysis_finished",
        job_id=job_logger.job_id,
        total=total,
        success=success_count,
        failed=failed_count,
    )
    return {
        "total_items": total,
        "success_count": success_count,
        "failed_count": failed_count,
        "results": results,
    }


def _analyze_one(
    conn: Any, llm: AnthropicClient, runtime: Config, evidence_id: str, force: bool
) -> dict[str, Any]:
    evidence = get_evidence(conn, evidence_id)
    if evidence is None:
        return {"evidence_id": evidence_id, "success": False, "error": "Evidence not found"}
    if evidence.analyzed_at and not force:
        return {"evidence_id": evidence_id, "success": True, "skipped": True, "match_count": len(evidence.matches)}
    try:
        result = match_criteria(
            conn,
            llm,
            runtime.criteria,
            work_context(evidence.title, evidence.description, evidence.summary, evidence.category),
        )
    except ExternalAPIError as exc:
        return {"evidence_id": evidence_id, "success": False, "error": str(exc)}
    if result.error:
        # existing matches stay in place
        return {"evidence_id": evidence_id, "success": False, "error": result.error}
    count = replace_criterion_matches(conn, evidence_id, result.matches)
    mark_evidence_analyzed(conn, evidence_id)
    return {
        "evidence_id": evidence_id,
        "success": True,
        "match_count": count,
        "matches": [
            {"criterion_id": match.criterion_id, "confidence": match.confidence}
            for match in result.matches
        ],
    }
