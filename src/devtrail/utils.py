from __future__ import annotations

import dataclasses
import json
import logging
import os
import sys
from datetime import date, datetime, timedelta, timezone
from typing import Any

_FORMATTER = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Emit a single ``event=<name> key=value ...`` line."""
    message = " ".join([f"event={event}", *(f"{key}={value}" for key, value in fields.items())])
    logger.log(level, message)


def configure_logging(logger_name: str, default_level: str = "INFO") -> logging.Logger:
    """Attach the process handlers once and return ``logger_name``.

    Safe to call from every entry point: repeated calls never duplicate
    the stdout handler or the ``DT_LOG_FILE`` handler.
    """
    level = _level(os.environ.get("DT_LOG_LEVEL", default_level))
    root = logging.getLogger()
    if not root.handlers:
        root.setLevel(level)

    if not any(_writes_to_stdout(handler) for handler in root.handlers):
        _attach(root, logging.StreamHandler(sys.stdout), level)

    log_file = os.environ.get("DT_LOG_FILE")
    if log_file:
        log_file = os.path.abspath(log_file)
        if not any(getattr(handler, "baseFilename", None) == log_file for handler in root.handlers):
            os.makedirs(os.path.dirname(log_file), exist_ok=True)
            _attach(root, logging.FileHandler(log_file), level)

    for name, override in _level_overrides(os.environ.get("DT_LOG_LEVELS", "")):
        logging.getLogger(name).setLevel(override)
    return logging.getLogger(logger_name)


def _level(name: str) -> int:
    return getattr(logging, name.strip().upper(), logging.INFO)


def _writes_to_stdout(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) is sys.stdout


def _attach(root: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(_FORMATTER)
    root.addHandler(handler)


def _level_overrides(raw: str) -> list[tuple[str, int]]:
    # "devtrail.agent=DEBUG,devtrail.tools=ERROR"
    pairs = []
    for chunk in raw.split(","):
        name, sep, level = chunk.partition("=")
        if sep and name.strip():
            pairs.append((name.strip(), _level(level)))
    return pairs


def json_dumps(value: Any) -> str:
    return json.dumps(value, default=_encode_extra, sort_keys=True)


def json_loads(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def _encode_extra(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def truncate(text: str | None, length: int) -> str:
    if not text:
        return ""
    if len(text) <= length:
        return text
    return text[: max(0, length - 3)] + "..."


def parse_iso(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def utc_now_iso_offset(*, seconds: float = 0, days: float = 0) -> str:
    return (utc_now() + timedelta(seconds=seconds, days=days)).isoformat()
