from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

from .errors import ConfigError
from .storage import get_setting, get_state_db_path, set_setting

__all__ = [
    "CONFIG_KEY",
    "DEFAULT_CONFIG",
    "Config",
    "ConfigError",
    "bootstrap_runtime_config",
    "get_runtime_config",
    "get_state_db_path",
    "load_runtime_config",
    "process_jobs_immediately",
    "set_runtime_config",
    "validate_runtime_config",
]


@dataclass(frozen=True)
class AppConfig:
    name: str
    timezone: str


@dataclass(frozen=True)
class WorkerConfig:
    poll_interval_seconds: float
    heartbeat_key: str
    heartbeat_stale_seconds: int


@dataclass(frozen=True)
class JobsConfig:
    retention_days: int
    process_immediately: bool


@dataclass(frozen=True)
class AgentConfig:
    min_steps: int
    steps_per_item: int
    max_steps: int


@dataclass(frozen=True)
class ProgressConfig:
    sync_base: int
    sync_max: int


@dataclass(frozen=True)
class HttpConfig:
    api_base: str
    timeout_seconds: int
    max_retries: int
    backoff_seconds: float
    page_size: int


@dataclass(frozen=True)
class JiraConfig:
    http: HttpConfig
    story_points_field: str


@dataclass(frozen=True)
class LlmConfig:
    provider: str
    base_url: str
    model: str
    max_tokens: int
    timeout_seconds: int
    max_retries: int
    backoff_seconds: float

    def http(self) -> HttpConfig:
        return HttpConfig(
            api_base=self.base_url,
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
            page_size=0,
        )


@dataclass(frozen=True)
class CriteriaConfig:
    min_confidence: float
    max_matches: int


@dataclass(frozen=True)
class SyncConfig:
    dry_run_limit: int


@dataclass(frozen=True)
class Config:
    app: AppConfig
    worker: WorkerConfig
    jobs: JobsConfig
    agent: AgentConfig
    progress: ProgressConfig
    github: HttpConfig
    jira: JiraConfig
    llm: LlmConfig
    criteria: CriteriaConfig
    sync: SyncConfig


DEFAULT_CONFIG: dict[str, Any] = {
    "app": {
        "name": "DevTrail",
        "timezone": "UTC",
    },
    "worker": {
        "poll_interval_seconds": 2.0,
        "heartbeat_key": "worker_heartbeat",
        "heartbeat_stale_seconds": 10,
    },
    "jobs": {
        "retention_days": 30,
        "process_immediately": False,
    },
    "agent": {
        "min_steps": 500,
        "steps_per_item": 10,
        "max_steps": 2000,
    },
    "progress": {
        "sync_base": 25,
        "sync_max": 90,
    },
    "github": {
        "api_base": "https://api.github.com",
        "timeout_seconds": 30,
        "max_retries": 3,
        "backoff_seconds": 2.0,
        "page_size": 100,
    },
    "jira": {
        "http": {
            "api_base": "",
            "timeout_seconds": 30,
            "max_retries": 3,
            "backoff_seconds": 2.0,
            "page_size": 50,
        },
        "story_points_field": "customfield_10028",
    },
    "llm": {
        "provider": "anthropic",
        "base_url": "https://api.anthropic.com/v1",
        "model": "claude-3-5-sonnet-20241022",
        "max_tokens": 4096,
        "timeout_seconds": 120,
        "max_retries": 3,
        "backoff_seconds": 2.0,
    },
    "criteria": {
        "min_confidence": 0.4,
        "max_matches": 3,
    },
    "sync": {
        "dry_run_limit": 20,
    },
}

CONFIG_KEY = "config.runtime"


def bootstrap_runtime_config(conn) -> dict[str, Any]:
    cfg = get_setting(conn, CONFIG_KEY, None)
    if cfg is None:
        set_setting(conn, CONFIG_KEY, _deep_copy(DEFAULT_CONFIG))
        cfg = get_setting(conn, CONFIG_KEY, None)
    if not isinstance(cfg, dict):
        raise ConfigError("config.runtime must be a JSON object")
    return cfg


def get_runtime_config(conn) -> dict[str, Any]:
    cfg = bootstrap_runtime_config(conn)
    errors = validate_runtime_config(cfg)
    if errors:
        raise ConfigError("Invalid config.runtime: " + "; ".join(errors))
    return cfg


def set_runtime_config(conn, cfg: dict[str, Any]) -> None:
    errors = validate_runtime_config(cfg)
    if errors:
        raise ConfigError("Invalid config.runtime: " + "; ".join(errors))
    set_setting(conn, CONFIG_KEY, _deep_copy(cfg))


def load_runtime_config(conn) -> Config:
    return _build_config(get_runtime_config(conn))


def validate_runtime_config(cfg: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    _validate_value(cfg, DEFAULT_CONFIG, "config.runtime", errors)
    progress = cfg.get("progress") if isinstance(cfg, dict) else None
    if isinstance(progress, dict) and not errors:
        if not 0 <= progress["sync_base"] <= progress["sync_max"] <= 100:
            errors.append("config.runtime.progress must satisfy 0 <= sync_base <= sync_max <= 100")
    return errors


def process_jobs_immediately(config: Config | None = None) -> bool:
    raw = os.environ.get("PROCESS_JOBS_IMMEDIATELY")
    if raw is not None and raw.strip():
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    return bool(config and config.jobs.process_immediately)


def _validate_value(value: Any, default: Any, path: str, errors: list[str]) -> None:
    if isinstance(default, dict):
        if not isinstance(value, dict):
            errors.append(f"{path} must be an object")
            return
        for key in default:
            if key not in value:
                errors.append(f"missing {path}.{key}")
        for key in value:
            if key not in default:
                errors.append(f"unknown {path}.{key}")
        for key, nested in default.items():
            if key in value:
                _validate_value(value[key], nested, f"{path}.{key}", errors)
        return
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{path} must be a boolean")
        return
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"{path} must be an integer")
        return
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{path} must be a number")
        return
    if isinstance(default, str) and not isinstance(value, str):
        errors.append(f"{path} must be a string")


def _build_http(cfg: dict[str, Any]) -> HttpConfig:
    return HttpConfig(
        api_base=str(cfg["api_base"]),
        timeout_seconds=int(cfg["timeout_seconds"]),
        max_retries=int(cfg["max_retries"]),
        backoff_seconds=float(cfg["backoff_seconds"]),
        page_size=int(cfg["page_size"]),
    )


def _build_config(cfg: dict[str, Any]) -> Config:
    worker_cfg = cfg["worker"]
    poll_override = os.environ.get("DT_POLL_INTERVAL")
    poll_interval = float(worker_cfg["poll_interval_seconds"])
    if poll_override:
        try:
            poll_interval = float(poll_override)
        except ValueError as exc:
            raise ConfigError(f"DT_POLL_INTERVAL must be a number, got {poll_override!r}") from exc

    return Config(
        app=AppConfig(name=str(cfg["app"]["name"]), timezone=str(cfg["app"]["timezone"])),
        worker=WorkerConfig(
            poll_interval_seconds=poll_interval,
            heartbeat_key=str(worker_cfg["heartbeat_key"]),
            heartbeat_stale_seconds=int(worker_cfg["heartbeat_stale_seconds"]),
        ),
        jobs=JobsConfig(
            retention_days=int(cfg["jobs"]["retention_days"]),
            process_immediately=bool(cfg["jobs"]["process_immediately"]),
        ),
        agent=AgentConfig(
            min_steps=int(cfg["agent"]["min_steps"]),
            steps_per_item=int(cfg["agent"]["steps_per_item"]),
            max_steps=int(cfg["agent"]["max_steps"]),
        ),
        progress=ProgressConfig(
            sync_base=int(cfg["progress"]["sync_base"]),
            sync_max=int(cfg["progress"]["sync_max"]),
        ),
        github=_build_http(cfg["github"]),
        jira=JiraConfig(
            http=_build_http(cfg["jira"]["http"]),
            story_points_field=str(cfg["jira"]["story_points_field"]),
        ),
        llm=LlmConfig(
            provider=str(cfg["llm"]["provider"]),
            base_url=str(cfg["llm"]["base_url"]),
            model=str(cfg["llm"]["model"]),
            max_tokens=int(cfg["llm"]["max_tokens"]),
            timeout_seconds=int(cfg["llm"]["timeout_seconds"]),
            max_retries=int(cfg["llm"]["max_retries"]),
            backoff_seconds=float(cfg["llm"]["backoff_seconds"]),
        ),
        criteria=CriteriaConfig(
            min_confidence=float(cfg["criteria"]["min_confidence"]),
            max_matches=int(cfg["criteria"]["max_matches"]),
        ),
        sync=SyncConfig(dry_run_limit=int(cfg["sync"]["dry_run_limit"])),
    )


def _deep_copy(value: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(value))
