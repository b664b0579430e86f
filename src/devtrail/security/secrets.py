from __future__ import annotations

import base64
import binascii
import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..errors import ConfigurationError

MASTER_KEY_ENV = "DT_MASTER_KEY"
KEY_ID_ENV = "DT_KEY_ID"
NONCE_BYTES = 12


def _b64decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def _cipher() -> AESGCM:
    encoded = os.environ.get(MASTER_KEY_ENV, "")
    if not encoded:
        raise ConfigurationError(f"Master key is not set. Set {MASTER_KEY_ENV}.")
    try:
        master = _b64decode(encoded)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError(f"{MASTER_KEY_ENV} is not valid base64url") from exc
    if len(master) != 32:
        raise ConfigurationError(f"{MASTER_KEY_ENV} must decode to 32 bytes")
    key = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=b"devtrail:credentials:v1",
    ).derive(master)
    return AESGCM(key)


def current_key_id() -> str:
    return os.environ.get(KEY_ID_ENV) or "v1"


def encrypt_secret(plaintext: str, aad: bytes) -> tuple[str, str]:
    """Encrypt ``plaintext`` bound to ``aad``; returns ``(key_id, blob)``."""
    cipher = _cipher()
    nonce = os.urandom(NONCE_BYTES)
    sealed = nonce + cipher.encrypt(nonce, plaintext.encode("utf-8"), aad)
    return current_key_id(), base64.urlsafe_b64encode(sealed).decode("ascii")


def decrypt_secret(blob: str, aad: bytes) -> str:
    sealed = _b64decode(blob)
    nonce, ciphertext = sealed[:NONCE_BYTES], sealed[NONCE_BYTES:]
    return _cipher().decrypt(nonce, ciphertext, aad).decode("utf-8")
