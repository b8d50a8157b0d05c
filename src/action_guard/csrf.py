"""Double-submit-cookie CSRF protection.

A token is issued as a cookie and the client echoes it in a request header.
A cross-origin attacker can make the browser send the cookie but cannot read
it, so cannot reproduce it in the header.
"""

from __future__ import annotations

import hmac
import uuid
from collections.abc import Mapping
from dataclasses import dataclass

from action_guard._internal.cookies import parse_cookie_value

DEFAULT_COOKIE_NAME = "actionguard-csrf"
DEFAULT_HEADER_NAME = "x-actionguard-csrf"


@dataclass(frozen=True)
class CsrfConfig:
    """Names of the cookie and header that carry the CSRF token."""

    cookie_name: str = DEFAULT_COOKIE_NAME
    header_name: str = DEFAULT_HEADER_NAME


@dataclass(frozen=True)
class CsrfValidation:
    valid: bool
    error: str | None = None


_DEFAULT_CONFIG = CsrfConfig()


def generate_csrf_token() -> str:
    """Return a fresh random token suitable for the CSRF cookie."""
    return str(uuid.uuid4())


def get_csrf_token_from_headers(
    headers: Mapping[str, str],
    config: CsrfConfig | None = None,
) -> str | None:
    """Return the trimmed header token, or ``None`` when missing or blank.

    *headers* should be case-insensitive (e.g. ``httpx.Headers``).
    """
    config = config or _DEFAULT_CONFIG
    value = headers.get(config.header_name)
    if value is None or not value.strip():
        return None
    return value.strip()


def get_csrf_token_from_cookie(
    headers: Mapping[str, str],
    config: CsrfConfig | None = None,
) -> str | None:
    """Return the CSRF token from the ``Cookie`` header, or ``None``."""
    config = config or _DEFAULT_CONFIG
    cookie_header = headers.get("cookie")
    if cookie_header is None or not cookie_header.strip():
        return None
    return parse_cookie_value(cookie_header, config.cookie_name)


def validate_csrf(
    headers: Mapping[str, str],
    config: CsrfConfig | None = None,
) -> CsrfValidation:
    """Validate the double-submit pattern: header token must equal cookie token."""
    config = config or _DEFAULT_CONFIG

    header_token = get_csrf_token_from_headers(headers, config)
    if header_token is None:
        return CsrfValidation(
            valid=False,
            error=f'Missing CSRF token in header "{config.header_name}"',
        )

    cookie_token = get_csrf_token_from_cookie(headers, config)
    if cookie_token is None:
        return CsrfValidation(
            valid=False,
            error=f'Missing CSRF token in cookie "{config.cookie_name}"',
        )

    if not hmac.compare_digest(header_token.encode("utf-8"), cookie_token.encode("utf-8")):
        return CsrfValidation(
            valid=False,
            error="CSRF token mismatch: header token does not match cookie token",
        )

    return CsrfValidation(valid=True)


def build_csrf_cookie_header(
    token: str,
    config: CsrfConfig | None = None,
    *,
    path: str = "/",
    max_age: int = 86400,
    secure: bool = True,
) -> str:
    """Build a ``Set-Cookie`` value issuing *token*.

    Always ``SameSite=Strict``.  Not ``HttpOnly``: client script must be able
    to read the cookie to copy it into the header.
    """
    config = config or _DEFAULT_CONFIG
    parts = [
        f"{config.cookie_name}={token}",
        f"Path={path}",
        "SameSite=Strict",
        f"Max-Age={max_age}",
    ]
    if secure:
        parts.append("Secure")
    return "; ".join(parts)
