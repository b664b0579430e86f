import copy

import pytest

from devtrail.config import (
    DEFAULT_CONFIG,
    ConfigError,
    get_runtime_config,
    load_runtime_config,
    process_jobs_immediately,
    set_runtime_config,
    validate_runtime_config,
)
from devtrail.storage import init_db


def test_runtime_config_bootstraps_defaults(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    config = load_runtime_config(conn)

    assert config.progress.sync_base == 25
    assert config.progress.sync_max == 90
    assert config.agent.min_steps == 500
    assert config.agent.max_steps == 2000
    assert config.worker.poll_interval_seconds == 2.0
    assert get_runtime_config(conn) == DEFAULT_CONFIG


def test_set_runtime_config_validates(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["sync"]["dry_run_limit"] = "lots"
    with pytest.raises(ConfigError):
        set_runtime_config(conn, cfg)

    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["sync"]["dry_run_limit"] = 5
    set_runtime_config(conn, cfg)
    assert load_runtime_config(conn).sync.dry_run_limit == 5


def test_progress_window_must_be_ordered():
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["progress"] = {"sync_base": 90, "sync_max": 25}
    assert validate_runtime_config(cfg) == [
        "config.runtime.progress must satisfy 0 <= sync_base <= sync_max <= 100"
    ]


def test_process_jobs_immediately_env_overrides_config(tmp_path, monkeypatch):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    config = load_runtime_config(conn)
    assert process_jobs_immediately(config) is False

    monkeypatch.setenv("PROCESS_JOBS_IMMEDIATELY", "true")
    assert process_jobs_immediately(config) is True
    monkeypatch.setenv("PROCESS_JOBS_IMMEDIATELY", "0")
    assert process_jobs_immediately(config) is False
