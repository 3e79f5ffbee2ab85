from __future__ import annotations

import base64
import hashlib
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..settings import settings

_VERSION = "v1"
_IV_LEN = 12
_TAG_LEN = 16


def _get_key() -> bytes:
    # Production refuses to start without CURSOR_TOKEN_SECRET (see Settings).
    raw = settings.cursor_token_secret or "local-development-cursor-secret"
    return hashlib.sha256(str(raw).encode("utf-8")).digest()  # 32 bytes


def encrypt_string(plain_text: Any) -> str | None:
    if plain_text is None:
        return None

    iv = os.urandom(_IV_LEN)
    ct_with_tag = AESGCM(_get_key()).encrypt(iv, str(plain_text).encode("utf-8"), None)
    ciphertext, tag = ct_with_tag[:-_TAG_LEN], ct_with_tag[-_TAG_LEN:]

    return ":".join(
        [
            _VERSION,
            base64.urlsafe_b64encode(iv).decode("ascii"),
            base64.urlsafe_b64encode(tag).decode("ascii"),
            base64.urlsafe_b64encode(ciphertext).decode("ascii"),
        ]
    )


def decrypt_string(cipher_text: Any) -> str | None:
    """Return the plain text, or None for anything forged, truncated or foreign."""
    if not cipher_text:
        return None

    parts = str(cipher_text).split(":")
    if len(parts) != 4 or parts[0] != _VERSION:
        return None

    try:
        iv, tag, data = (base64.urlsafe_b64decode(p) for p in parts[1:])
    except (ValueError, TypeError):
        return None
    if len(iv) != _IV_LEN or len(tag) != _TAG_LEN:
        return None

    try:
        return AESGCM(_get_key()).decrypt(iv, data + tag, None).decode("utf-8")
    except (InvalidTag, UnicodeDecodeError):
        return None
