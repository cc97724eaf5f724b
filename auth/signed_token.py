from __future__ import annotations

import base64
import hashlib
import hmac
import json


def derive_key(client_secret: str, purpose: str = "state") -> str:
    """Derive a stable signing key from a provider client secret."""
    return hashlib.sha256(f"oauthgate:{purpose}:{client_secret}".encode()).hexdigest()


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def encode(payload: dict, key: str) -> str:
    data = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    sig = hmac.new(key.encode(), data, hashlib.sha256).digest()
    return f"{_b64encode(data)}.{_b64encode(sig)}"


def decode(token: str, key: str) -> dict:
    """Verify and unpack a token made by :func:`encode`.

    Raises ``ValueError`` for anything that is not a token signed with ``key``.
    """
    data_b64, sep, sig_b64 = token.partition(".")
    if not sep or not data_b64 or not sig_b64:
        raise ValueError("Invalid token format.")

    # binascii.Error is a ValueError
    data = _b64decode(data_b64)
    actual_sig = _b64decode(sig_b64)
    expected_sig = hmac.new(key.encode(), data, hashlib.sha256).digest()
    if not hmac.compare_digest(expected_sig, actual_sig):
        raise ValueError("Token signature verification failed.")

    payload = json.loads(data)
    if not isinstance(payload, dict):
        raise ValueError("Token payload must be a JSON object.")
    return payload
