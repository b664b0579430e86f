import base64

import pytest

from devtrail.errors import ConfigurationError
from devtrail.security.secrets import decrypt_secret, encrypt_secret
from devtrail.services.credentials_service import load_credential, require_credential, set_credential
from devtrail.storage import init_db


def _set_master_env(monkeypatch):
    key = base64.urlsafe_b64encode(b"a" * 32).decode("utf-8")
    monkeypatch.setenv("DT_MASTER_KEY", key)
    monkeypatch.setenv("DT_KEY_ID", "v1")


def test_encrypt_decrypt_roundtrip(monkeypatch):
    _set_master_env(monkeypatch)
    key_id, blob = encrypt_secret("supersecret", b"credential:test")
    assert key_id == "v1"
    assert decrypt_secret(blob, b"credential:test") == "supersecret"


def test_encrypt_decrypt_aad_mismatch(monkeypatch):
    _set_master_env(monkeypatch)
    _, blob = encrypt_secret("supersecret", b"credential:test")
    with pytest.raises(Exception):
        decrypt_secret(blob, b"credential:other")


def test_missing_master_key_is_configuration_error():
    with pytest.raises(ConfigurationError):
        encrypt_secret("supersecret", b"credential:test")


def test_stored_credential_wins_over_environment(tmp_path, monkeypatch):
    _set_master_env(monkeypatch)
    conn = init_db(str(tmp_path / "state.sqlite3"))
    monkeypatch.setenv("GITHUB_TOKEN", "from-env")
    assert load_credential(conn, "github_token") == "from-env"

    info = set_credential(conn, "github_token", "ghp_stored1234")
    assert info["last4"] == "1234"
    assert load_credential(conn, "github_token") == "ghp_stored1234"
    stored = conn.execute("SELECT value_enc FROM credentials WHERE name = ?", ("github_token",)).fetchone()[0]
    assert "ghp_stored1234" not in stored


def test_require_credential_names_environment_fallback(tmp_path):
    conn = init_db(str(tmp_path / "state.sqlite3"))
    with pytest.raises(ConfigurationError) as excinfo:
        require_credential(conn, "jira_api_token")
    assert "JIRA_API_TOKEN" in str(excinfo.value)


def test_unknown_credential_rejected(tmp_path, monkeypatch):
    _set_master_env(monkeypatch)
    conn = init_db(str(tmp_path / "state.sqlite3"))
    with pytest.raises(ValueError):
        set_credential(conn, "aws_key", "x")
