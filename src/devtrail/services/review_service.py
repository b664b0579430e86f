from __future__ import annotations

import uuid
from typing import Any

from ..job_configs import AnalyzeReviewConfig
from ..utils import json_dumps, json_loads, utc_now_iso

_LIST_FIELDS = ("themes", "strengths", "growth_areas", "achievements")


def save_review_analysis(
    conn: Any, cfg: AnalyzeReviewConfig, analysis: dict[str, Any], job_id: str | None = None
) -> str:
    analysis_id = uuid.uuid4().hex
    conn.execute(
        """
        INSERT INTO review_analyses
            (id, title, year, review_type, source, original_text, summary, themes_json,
             strengths_json, growth_areas_json, achievements_json, confidence_score,
             job_id, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            analysis_id,
            cfg.title,
            cfg.year,
            cfg.review_type,
            cfg.source,
            cfg.review_text,
            str(analysis.get("summary") or ""),
            *(json_dumps(list(analysis.get(name) or [])) for name in _LIST_FIELDS),
            int(analysis.get("confidence_score") or 0),
            job_id,
            utc_now_iso(),
        ),
    )
    conn.commit()
    return analysis_id


def get_review_analysis(conn: Any, analysis_id: str) -> dict[str, Any] | None:
    row = conn.execute(
        """
        SELECT id, title, year, review_type, source, summary, themes_json, strengths_json,
               growth_areas_json, achievements_json, confidence_score, job_id, created_at
        FROM review_analyses
        WHERE id = ?
        """,
        (analysis_id,),
    ).fetchone()
    if not row:
        return None
    return {
        "id": row[0],
        "title": row[1],
        "year": row[2],
        "review_type": row[3],
        "source": row[4],
        "summary": row[5],
        "themes": json_loads(row[6], []),
        "strengths": json_loads(row[7], []),
        "growth_areas": json_loads(row[8], []),
        "achievements": json_loads(row[9], []),
        "confidence_score": row[10],
        "job_id": row[11],
        "created_at": row[12],
    }
