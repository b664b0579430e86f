from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any

from ..utils import json_dumps, json_loads, utc_now_iso
from .evidence_service import list_pr_evidence_between


def month_bounds(month: str) -> tuple[str, str]:
    """ISO start (inclusive) and end (exclusive) of a YYYY-MM month in UTC."""
    year, number = (int(part) for part in month.split("-"))
    start = datetime(year, number, 1, tzinfo=timezone.utc)
    end = datetime(year + (number == 12), number % 12 + 1, 1, tzinfo=timezone.utc)
    return start.isoformat(), end.isoformat()


def month_metrics(conn: Any, month: str) -> dict[str, Any]:
    start, end = month_bounds(month)
    seen: set[tuple[str, int]] = set()
    categories: Counter[str] = Counter()
    components: Counter[str] = Counter()
    metrics: dict[str, Any] = {
        "total_prs": 0,
        "additions": 0,
        "deletions": 0,
        "total_changes": 0,
        "titles": [],
    }
    for item in list_pr_evidence_between(conn, start, end):
        # a PR can carry both an authored and a reviewed evidence row
        key = (item["repo"], int(item["number"]))
        if key in seen:
            continue
        seen.add(key)
        additions = int(item.get("additions") or 0)
        deletions = int(item.get("deletions") or 0)
        metrics["total_prs"] += 1
        metrics["additions"] += additions
        metrics["deletions"] += deletions
        metrics["total_changes"] += additions + deletions
        if item.get("title"):
            metrics["titles"].append(item["title"])
        categories[item.get("category") or "other"] += 1
        for component in item.get("components") or []:
            name = component if isinstance(component, str) else (component or {}).get("name")
            if name:
                components[name] += 1
    metrics["categories"] = dict(categories)
    metrics["components_count"] = len(components)
    metrics["top_components"] = [
        {"name": name, "pr_count": count} for name, count in components.most_common(10)
    ]
    return metrics


def get_monthly_insight(conn: Any, month: str) -> dict[str, Any] | None:
    row = conn.execute(
        """
        SELECT month, total_prs, total_changes, components_count, categories_json,
               strengths_json, weaknesses_json, tags_json, summary, generated_at
        FROM monthly_insights
        WHERE month = ?
        """,
        (month,),
    ).fetchone()
    if not row:
        return None
    return {
        "month": row[0],
        "total_prs": row[1],
        "total_changes": row[2],
        "components_count": row[3],
        "categories": json_loads(row[4], {}),
        "strengths": json_loads(row[5], []),
        "weaknesses": json_loads(row[6], []),
        "tags": json_loads(row[7], []),
        "summary": row[8],
        "generated_at": row[9],
    }


def save_monthly_insight(
    conn: Any, month: str, metrics: dict[str, Any], insight: dict[str, Any]
) -> dict[str, Any]:
    conn.execute(
        """
        INSERT INTO monthly_insights
            (month, total_prs, total_changes, components_count, categories_json,
             strengths_json, weaknesses_json, tags_json, summary, generated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(month) DO UPDATE SET
            total_prs=excluded.total_prs,
            total_changes=excluded.total_changes,
            components_count=excluded.components_count,
            categories_json=excluded.categories_json,
            strengths_json=excluded.strengths_json,
            weaknesses_json=excluded.weaknesses_json,
            tags_json=excluded.tags_json,
            summary=excluded.summary,
            generated_at=excluded.generated_at
        """,
        (
            month,
            int(metrics.get("total_prs") or 0),
            int(metrics.get("total_changes") or 0),
            int(metrics.get("components_count") or 0),
            json_dumps(metrics.get("categories") or {}),
            json_dumps(list(insight.get("strengths") or [])),
            json_dumps(list(insight.get("weaknesses") or [])),
            json_dumps(list(insight.get("tags") or [])),
            str(insight.get("summary") or ""),
            utc_now_iso(),
        ),
    )
    conn.commit()
    return get_monthly_insight(conn, month) or {}
