from __future__ import annotations

import os
from typing import Any

from ..errors import ConfigurationError
from ..security.secrets import decrypt_secret, encrypt_secret
from ..utils import utc_now_iso

# credential name -> environment fallback
CREDENTIALS: dict[str, str] = {
    "github_token": "GITHUB_TOKEN",
    "github_username": "GITHUB_USERNAME",
    "jira_host": "JIRA_HOST",
    "jira_email": "JIRA_EMAIL",
    "jira_api_token": "JIRA_API_TOKEN",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
}


def set_credential(conn: Any, name: str, value: str) -> dict[str, Any]:
    if name not in CREDENTIALS:
        raise ValueError(f"unknown credential {name}")
    key_id, value_enc = encrypt_secret(value, _aad(name))
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO credentials (name, key_id, value_enc, value_last4, updated_at)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(name) DO UPDATE SET
            key_id=excluded.key_id,
            value_enc=excluded.value_enc,
            value_last4=excluded.value_last4,
            updated_at=excluded.updated_at
        """,
        (name, key_id, value_enc, value[-4:], now),
    )
    conn.commit()
    return {"name": name, "last4": value[-4:], "updated_at": now}


def clear_credential(conn: Any, name: str) -> None:
    conn.execute("DELETE FROM credentials WHERE name = ?", (name,))
    conn.commit()


def load_credential(conn: Any, name: str) -> str | None:
    row = conn.execute("SELECT value_enc FROM credentials WHERE name = ?", (name,)).fetchone()
    if row:
        return decrypt_secret(row[0], _aad(name))
    env_name = CREDENTIALS.get(name)
    value = os.environ.get(env_name, "").strip() if env_name else ""
    return value or None


def require_credential(conn: Any, name: str) -> str:
    value = load_credential(conn, name)
    if not value:
        env_name = CREDENTIALS.get(name, name.upper())
        raise ConfigurationError(
            f"Missing credential {name}. Store it with 'devtrail credentials set' or set {env_name}."
        )
    return value


def _aad(name: str) -> bytes:
    return f"credential:{name}".encode("utf-8")
