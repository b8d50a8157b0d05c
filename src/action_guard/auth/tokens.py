"""Local verification of compact HS256-signed tokens.

A token is three base64url segments, ``header.payload.signature``.  Only
HMAC-SHA-256 is accepted; every other ``alg`` (``none`` included) is rejected
so a forged header cannot downgrade verification.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any

from action_guard._internal.clock import Clock, SystemClock, epoch_seconds

SUPPORTED_ALGORITHM = "HS256"


def b64url_encode(raw: bytes) -> str:
    """Encode *raw* as unpadded base64url."""
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """Decode an unpadded base64url *segment*.

    Strict: characters outside the base64url alphabet are rejected, and so is
    any non-canonical spelling, so two different segments never decode to
    the same bytes.

    Raises:
        ValueError: If *segment* is not canonical base64url.
    """
    padded = segment + "=" * (-len(segment) % 4)
    raw = base64.b64decode(padded, altchars=b"-_", validate=True)
    if b64url_encode(raw) != segment:
        raise ValueError("non-canonical base64url segment")
    return raw


def _sign(signing_input: str, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), signing_input.encode("utf-8"), hashlib.sha256).digest()


def sign_token(claims: dict[str, Any], secret: str) -> str:
    """Issue an HS256 token carrying *claims*."""
    header = b64url_encode(json.dumps({"alg": SUPPORTED_ALGORITHM, "typ": "JWT"}).encode("utf-8"))
    payload = b64url_encode(json.dumps(claims, separators=(",", ":")).encode("utf-8"))
    signature = b64url_encode(_sign(f"{header}.{payload}", secret))
    return f"{header}.{payload}.{signature}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def verify_token(token: str, secret: str, *, clock: Clock | None = None) -> dict[str, Any] | None:
    """Verify *token* with *secret* and return its claims, or ``None``.

    Never raises: malformed structure, unsupported algorithm, bad signature,
    unparsable or pathologically nested JSON, ``exp`` reached and ``nbf`` not
    yet reached all map to ``None``.
    """
    if not isinstance(token, str) or not isinstance(secret, str):
        return None
    try:
        return _verify(token, secret, clock or SystemClock())
    except (ValueError, TypeError, RecursionError):
        return None


def _verify(token: str, secret: str, clock: Clock) -> dict[str, Any] | None:
    parts = token.split(".")
    if len(parts) != 3:
        return None
    header_b64, payload_b64, signature_b64 = parts

    header = json.loads(b64url_decode(header_b64))
    if not isinstance(header, dict) or header.get("alg") != SUPPORTED_ALGORITHM:
        return None

    expected = _sign(f"{header_b64}.{payload_b64}", secret)
    actual = b64url_decode(signature_b64)
    if len(expected) != len(actual):
        return None
    if not hmac.compare_digest(expected, actual):
        return None

    payload = json.loads(b64url_decode(payload_b64))
    if not isinstance(payload, dict):
        return None

    now = epoch_seconds(clock)
    exp = payload.get("exp")
    if _is_number(exp) and now >= exp:
        return None
    nbf = payload.get("nbf")
    if _is_number(nbf) and now < nbf:
        return None

    return payload
