from __future__ import annotations

import uuid
from typing import Any

from ..models import CriterionMatch, Evidence, SaveOutcome
from ..utils import json_dumps, json_loads, utc_now_iso

PR_FIELDS = (
    "title",
    "body",
    "url",
    "author",
    "state",
    "merged_at",
    "additions",
    "deletions",
    "changed_files",
    "components_json",
)
TICKET_FIELDS = (
    "summary",
    "description",
    "issue_type",
    "status",
    "priority",
    "story_points",
    "created",
    "resolved",
    "duration_days",
)
EVIDENCE_FIELDS = (
    "evidence_type",
    "title",
    "description",
    "summary",
    "category",
    "scope",
    "occurred_at",
    "github_pr_id",
    "jira_ticket_id",
)
_EVIDENCE_COLUMNS = (
    "id, source, external_id, role, evidence_type, title, description, summary, category, "
    "scope, occurred_at, github_pr_id, jira_ticket_id, analyzed_at"
)


def find_github_pr(conn: Any, repo: str, number: int, user_role: str) -> dict[str, Any] | None:
    row = conn.execute(
        """
        SELECT id, repo, number, user_role, title, additions, deletions, changed_files, merged_at
        FROM github_prs
        WHERE repo = ? AND number = ? AND user_role = ?
        """,
        (repo, int(number), user_role),
    ).fetchone()
    if not row:
        return None
    keys = ("id", "repo", "number", "user_role", "title", "additions", "deletions", "changed_files", "merged_at")
    return dict(zip(keys, row))


def save_github_pr(
    conn: Any, record: dict[str, Any], update_existing: bool = False
) -> SaveOutcome:
    values = dict(record)
    components = values.pop("components", None)
    values["components_json"] = json_dumps(components) if components is not None else None
    return _save_by_natural_key(
        conn,
        "github_prs",
        {"repo": values["repo"], "number": int(values["number"]), "user_role": values["user_role"]},
        {name: values.get(name) for name in PR_FIELDS},
        update_existing,
    )


def find_jira_ticket(conn: Any, key: str, user_role: str = "assignee") -> dict[str, Any] | None:
    row = conn.execute(
        """
        SELECT id, key, user_role, summary, status, story_points, duration_days
        FROM jira_tickets
        WHERE key = ? AND user_role = ?
        """,
        (key, user_role),
    ).fetchone()
    if not row:
        return None
    return dict(zip(("id", "key", "user_role", "summary", "status", "story_points", "duration_days"), row))


def save_jira_ticket(
    conn: Any, record: dict[str, Any], update_existing: bool = False
) -> SaveOutcome:
    return _save_by_natural_key(
        conn,
        "jira_tickets",
        {"key": record["key"], "user_role": record.get("user_role") or "assignee"},
        {name: record.get(name) for name in TICKET_FIELDS},
        update_existing,
    )


def find_evidence(conn: Any, source: str, external_id: str, role: str) -> Evidence | None:
    row = conn.execute(
        f"SELECT {_EVIDENCE_COLUMNS} FROM evidence WHERE source = ? AND external_id = ? AND role = ?",
        (source, external_id, role),
    ).fetchone()
    return _row_to_evidence(row) if row else None


def save_evidence(conn: Any, record: dict[str, Any], update_existing: bool = False) -> SaveOutcome:
    return _save_by_natural_key(
        conn,
        "evidence",
        {"source": record["source"], "external_id": str(record["external_id"]), "role": record["role"]},
        {name: record.get(name) for name in EVIDENCE_FIELDS},
        update_existing,
        # job_id is set once: the sync run that created the row owns it
        insert_only={"job_id": record.get("job_id")},
    )


def get_evidence(conn: Any, evidence_id: str) -> Evidence | None:
    row = conn.execute(
        f"SELECT {_EVIDENCE_COLUMNS} FROM evidence WHERE id = ?", (evidence_id,)
    ).fetchone()
    if not row:
        return None
    return _row_to_evidence(row, list_criterion_matches(conn, evidence_id))


def count_evidence(conn: Any) -> int:
    return int(conn.execute("SELECT COUNT(*) FROM evidence").fetchone()[0])


def mark_evidence_analyzed(conn: Any, evidence_id: str) -> None:
    now = utc_now_iso()
    conn.execute(
        "UPDATE evidence SET analyzed_at = ?, updated_at = ? WHERE id = ?",
        (now, now, evidence_id),
    )
    conn.commit()


def list_criterion_matches(conn: Any, evidence_id: str) -> list[CriterionMatch]:
    rows = conn.execute(
        """
        SELECT criterion_id, confidence, explanation
        FROM evidence_criteria
        WHERE evidence_id = ?
        ORDER BY confidence DESC, criterion_id ASC
        """,
        (evidence_id,),
    ).fetchall()
    return [
        CriterionMatch(criterion_id=int(row[0]), confidence=float(row[1]), explanation=row[2] or "")
        for row in rows
    ]


def replace_criterion_matches(
    conn: Any, evidence_id: str, matches: list[CriterionMatch]
) -> int:
    """Full replace: after this call the evidence has exactly `matches`, nothing older."""
    now = utc_now_iso()
    with conn.transaction():
        conn.execute("DELETE FROM evidence_criteria WHERE evidence_id = ?", (evidence_id,))
        if matches:
            conn.executemany(
                """
                INSERT INTO evidence_criteria
                    (evidence_id, criterion_id, confidence, explanation, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (evidence_id, match.criterion_id, match.confidence, match.explanation, now)
                    for match in _dedupe_matches(matches)
                ],
            )
    return len(_dedupe_matches(matches))


def link_pr_to_jira(conn: Any, pr_id: str, jira_key: str) -> bool:
    cursor = conn.execute(
        "INSERT OR IGNORE INTO pr_jira_links (pr_id, jira_key, created_at) VALUES (?, ?, ?)",
        (pr_id, jira_key, utc_now_iso()),
    )
    conn.commit()
    return cursor.rowcount == 1


def list_pr_jira_keys(conn: Any, pr_id: str) -> list[str]:
    rows = conn.execute(
        "SELECT jira_key FROM pr_jira_links WHERE pr_id = ? ORDER BY jira_key", (pr_id,)
    ).fetchall()
    return [row[0] for row in rows]


def github_pr_exists(conn: Any, pr_id: str) -> bool:
    return conn.execute("SELECT 1 FROM github_prs WHERE id = ?", (pr_id,)).fetchone() is not None


def list_pr_evidence_between(conn: Any, start_iso: str, end_iso: str) -> list[dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT e.id, e.category, e.occurred_at, p.repo, p.number, p.title,
               p.additions, p.deletions, p.components_json
        FROM evidence e
        JOIN github_prs p ON p.id = e.github_pr_id
        WHERE e.occurred_at >= ? AND e.occurred_at < ?
        ORDER BY e.occurred_at DESC
        """,
        (start_iso, end_iso),
    ).fetchall()
    keys = ("id", "category", "occurred_at", "repo", "number", "title", "additions", "deletions")
    items: list[dict[str, Any]] = []
    for row in rows:
        item = dict(zip(keys, row[:8]))
        item["components"] = json_loads(row[8], [])
        items.append(item)
    return items


def _save_by_natural_key(
    conn: Any,
    table: str,
    identity: dict[str, Any],
    fields: dict[str, Any],
    update_existing: bool,
    insert_only: dict[str, Any] | None = None,
) -> SaveOutcome:
    """Create, skip or update the row matching `identity`.

    Updates only touch columns with a new non-None value, so fields a
    caller did not supply keep their stored value.
    """
    where = " AND ".join(f"{column} = ?" for column in identity)
    row = conn.execute(
        f"SELECT id FROM {table} WHERE {where}", tuple(identity.values())
    ).fetchone()
    now = utc_now_iso()
    if row:
        if not update_existing:
            return SaveOutcome(action="skipped", id=row[0])
        changed = {column: value for column, value in fields.items() if value is not None}
        assignments = "".join(f"{column} = ?, " for column in changed)
        conn.execute(
            f"UPDATE {table} SET {assignments}updated_at = ? WHERE id = ?",
            (*changed.values(), now, row[0]),
        )
        conn.commit()
        return SaveOutcome(action="updated", id=row[0])

    record_id = uuid.uuid4().hex
    values = {**fields, **(insert_only or {})}
    columns = ["id", *identity, *values, "created_at", "updated_at"]
    conn.execute(
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(['?'] * len(columns))})",
        (record_id, *identity.values(), *values.values(), now, now),
    )
    conn.commit()
    return SaveOutcome(action="created", id=record_id)


def _dedupe_matches(matches: list[CriterionMatch]) -> list[CriterionMatch]:
    best: dict[int, CriterionMatch] = {}
    for match in matches:
        current = best.get(match.criterion_id)
        if current is None or match.confidence > current.confidence:
            best[match.criterion_id] = match
    return list(best.values())


def _row_to_evidence(row: tuple, matches: list[CriterionMatch] | None = None) -> Evidence:
    return Evidence(
        id=row[0],
        source=row[1],
        external_id=row[2],
        role=row[3],
        evidence_type=row[4],
        title=row[5],
        description=row[6],
        summary=row[7],
        category=row[8],
        scope=row[9],
        occurred_at=row[10],
        github_pr_id=row[11],
        jira_ticket_id=row[12],
        analyzed_at=row[13],
        matches=list(matches or []),
    )
