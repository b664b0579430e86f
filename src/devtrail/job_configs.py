from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Union

import jsonschema

from .errors import ConfigurationError

_DATE = {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}"}
_STR_LIST = {"type": "array", "items": {"type": "string", "minLength": 1}}
_TEXT = {"type": "string", "pattern": r"\S"}


@dataclass(frozen=True)
class SyncGithubConfig:
    username: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    repositories: list[str] = field(default_factory=list)
    dry_run: bool = False
    update_existing: bool = False


@dataclass(frozen=True)
class SyncJiraConfig:
    start_date: str | None = None
    end_date: str | None = None
    projects: list[str] = field(default_factory=list)
    dry_run: bool = False
    update_existing: bool = False


@dataclass(frozen=True)
class AnalyzeEvidenceConfig:
    evidence_ids: list[str]
    force_reanalysis: bool = False


@dataclass(frozen=True)
class GenerateInsightConfig:
    month: str
    force: bool = False


@dataclass(frozen=True)
class AnalyzeReviewConfig:
    review_text: str
    title: str
    review_type: str = "EMPLOYEE"
    year: int | None = None
    source: str | None = None


JobConfig = Union[
    SyncGithubConfig, SyncJiraConfig, AnalyzeEvidenceConfig, GenerateInsightConfig, AnalyzeReviewConfig
]

REVIEW_TYPES = ("EMPLOYEE", "MANAGER", "PEER", "SELF")

SCHEMAS: dict[str, dict[str, Any]] = {
    "sync_github": {
        "type": "object",
        "properties": {
            "username": {"type": "string", "minLength": 1},
            "start_date": _DATE,
            "end_date": _DATE,
            "repositories": {
                "type": "array",
                "items": {"type": "string", "pattern": r"^[\w.-]+/[\w.-]+$"},
            },
            "dry_run": {"type": "boolean"},
            "update_existing": {"type": "boolean"},
        },
        "additionalProperties": False,
    },
    "sync_jira": {
        "type": "object",
        "properties": {
            "start_date": _DATE,
            "end_date": _DATE,
            "projects": _STR_LIST,
            "dry_run": {"type": "boolean"},
            "update_existing": {"type": "boolean"},
        },
        "additionalProperties": False,
    },
    "analyze_evidence": {
        "type": "object",
        "properties": {
            "evidence_id": {"type": "string", "minLength": 1},
            "evidence_ids": _STR_LIST,
            "force_reanalysis": {"type": "boolean"},
        },
        "anyOf": [
            {"required": ["evidence_id"]},
            {"required": ["evidence_ids"], "properties": {"evidence_ids": {"minItems": 1}}},
        ],
        "additionalProperties": False,
    },
    "generate_insight": {
        "type": "object",
        "properties": {
            "month": {"type": "string", "pattern": r"^\d{4}-\d{2}$"},
            "force": {"type": "boolean"},
        },
        "required": ["month"],
        "additionalProperties": False,
    },
    "analyze_review": {
        "type": "object",
        "properties": {
            "review_text": _TEXT,
            "title": _TEXT,
            "review_type": {"enum": list(REVIEW_TYPES)},
            "year": {"type": "integer", "minimum": 1900, "maximum": 2999},
            "source": {"type": "string"},
        },
        "required": ["review_text", "title"],
        "additionalProperties": False,
    },
}


def validate_job_config(job_type: str, raw: dict[str, Any] | None) -> dict[str, Any]:
    schema = SCHEMAS.get(job_type)
    payload = dict(raw or {})
    if schema is None:
        raise ConfigurationError(f"No config schema for job type {job_type}")
    try:
        jsonschema.validate(payload, schema)
    except jsonschema.ValidationError as exc:
        where = ".".join(str(part) for part in exc.absolute_path) or "config"
        raise ConfigurationError(f"Invalid {job_type} config at {where}: {exc.message}") from exc
    return payload


def parse_job_config(job_type: str, raw: dict[str, Any] | None) -> JobConfig:
    payload = validate_job_config(job_type, raw)
    if job_type == "sync_github":
        return SyncGithubConfig(
            username=payload.get("username"),
            start_date=payload.get("start_date"),
            end_date=payload.get("end_date"),
            repositories=list(payload.get("repositories") or []),
            dry_run=bool(payload.get("dry_run", False)),
            update_existing=bool(payload.get("update_existing", False)),
        )
    if job_type == "sync_jira":
        return SyncJiraConfig(
            start_date=payload.get("start_date"),
            end_date=payload.get("end_date"),
            projects=list(payload.get("projects") or []),
            dry_run=bool(payload.get("dry_run", False)),
            update_existing=bool(payload.get("update_existing", False)),
        )
    if job_type == "analyze_evidence":
        ids = [payload["evidence_id"]] if payload.get("evidence_id") else list(payload["evidence_ids"])
        return AnalyzeEvidenceConfig(
            evidence_ids=ids,
            force_reanalysis=bool(payload.get("force_reanalysis", False)),
        )
    if job_type == "generate_insight":
        if not re.match(r"^\d{4}-(0[1-9]|1[0-2])$", payload["month"]):
            raise ConfigurationError(f"Invalid generate_insight config at month: {payload['month']}")
        return GenerateInsightConfig(month=payload["month"], force=bool(payload.get("force", False)))
    if job_type == "analyze_review":
        return AnalyzeReviewConfig(
            review_text=payload["review_text"].strip(),
            title=payload["title"].strip(),
            review_type=payload.get("review_type", "EMPLOYEE"),
            year=payload.get("year"),
            source=payload.get("source"),
        )
    raise ConfigurationError(f"No config schema for job type {job_type}")
