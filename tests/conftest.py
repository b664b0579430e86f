from __future__ import annotations

import logging

import pytest

from devtrail.services.credentials_service import CREDENTIALS

_ENV_VARS = (
    "DT_DB_URL",
    "DT_ADMIN_TOKEN",
    "DT_MASTER_KEY",
    "DT_KEY_ID",
    "DT_POLL_INTERVAL",
    "DT_LOG_FILE",
    "DT_LOG_LEVELS",
    "PROCESS_JOBS_IMMEDIATELY",
    *CREDENTIALS.values(),
)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DT_DATA_DIR", str(tmp_path / "data"))


@pytest.fixture(autouse=True)
def _restore_root_handlers():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
