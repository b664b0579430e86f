from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from ..errors import ConfigError
from ..models import Criterion


def list_criteria(conn: Any, pr_detectable_only: bool = False) -> list[Criterion]:
    sql = "SELECT id, area, subarea, description, pr_detectable FROM criteria"
    if pr_detectable_only:
        sql += " WHERE pr_detectable = 1"
    rows = conn.execute(sql + " ORDER BY id ASC").fetchall()
    return [
        Criterion(
            id=int(row[0]),
            area=row[1],
            subarea=row[2],
            description=row[3],
            pr_detectable=bool(row[4]),
        )
        for row in rows
    ]


def upsert_criterion(conn: Any, criterion: Criterion) -> None:
    conn.execute(
        """
        INSERT INTO criteria (id, area, subarea, description, pr_detectable)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            area=excluded.area,
            subarea=excluded.subarea,
            description=excluded.description,
            pr_detectable=excluded.pr_detectable
        """,
        (
            criterion.id,
            criterion.area,
            criterion.subarea,
            criterion.description,
            1 if criterion.pr_detectable else 0,
        ),
    )
    conn.commit()


def load_criteria_file(path: str | Path) -> list[Criterion]:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    items = data.get("criteria") if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise ConfigError(f"{path}: expected a list of criteria or a 'criteria' key")
    criteria: list[Criterion] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ConfigError(f"{path}: criteria[{index}] must be a mapping")
        missing = [key for key in ("id", "area", "description") if key not in item]
        if missing:
            raise ConfigError(f"{path}: criteria[{index}] missing {', '.join(missing)}")
        criteria.append(
            Criterion(
                id=int(item["id"]),
                area=str(item["area"]),
                subarea=str(item.get("subarea") or ""),
                description=str(item["description"]),
                pr_detectable=bool(item.get("pr_detectable", True)),
            )
        )
    return criteria


def import_criteria(conn: Any, criteria: list[Criterion]) -> int:
    for criterion in criteria:
        upsert_criterion(conn, criterion)
    return len(criteria)
