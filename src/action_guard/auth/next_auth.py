"""NextAuthProvider — Auth.js / NextAuth session resolution."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from action_guard._internal.clock import Clock
from action_guard._internal.cookies import parse_cookie_value
from action_guard.auth.base import AuthProvider, fetch_json
from action_guard.auth.tokens import verify_token
from action_guard.exceptions import GuardConfigError

logger = logging.getLogger(__name__)

SECURE_COOKIE_NAME = "__Secure-next-auth.session-token"
COOKIE_NAME = "next-auth.session-token"

# Claims that are either mapped onto a field or are token bookkeeping.
_RESERVED_CLAIMS = frozenset(
    {"sub", "id", "name", "email", "image", "picture", "iat", "exp", "nbf", "jti", "iss", "aud"}
)


class NextAuthUser(BaseModel):
    """Session user.  Claims without a dedicated field are kept as extras."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str | None = None
    email: str | None = None
    image: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _numeric_id_as_text(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> NextAuthUser:
        fields: dict[str, Any] = {}

        if claims.get("sub"):
            fields["id"] = str(claims["sub"])
        elif claims.get("id"):
            fields["id"] = str(claims["id"])

        for key in ("name", "email"):
            if key in claims and (claims[key] is None or isinstance(claims[key], str)):
                fields[key] = claims[key]

        # NextAuth puts the avatar in ``picture``; the user shape calls it ``image``.
        for key in ("image", "picture"):
            if key in claims and (claims[key] is None or isinstance(claims[key], str)):
                fields["image"] = claims[key]
                break

        extras = {k: v for k, v in claims.items() if k not in _RESERVED_CLAIMS}
        return cls.model_validate({**extras, **fields})


class NextAuthProvider(AuthProvider):
    """Resolves the user from a NextAuth session.

    Two modes, at least one of which must be configured:

    * **Local** (``secret``): verify the session cookie as an HS256 token.
      Zero network calls.
    * **Session endpoint** (``session_endpoint``): GET the NextAuth session
      URL, forwarding the request cookies, and read ``{"user": {...}}``.

    With both configured the local mode runs first and the endpoint is only
    consulted when it yields no user (bad signature, malformed or missing
    token).

    Parameters:
        secret:           Signing secret.  Falls back to ``NEXTAUTH_SECRET``.
        session_endpoint: e.g. ``http://localhost:3000/api/auth/session``.
        cookie_name:      Session cookie override.
        secure:           Selects the ``__Secure-`` cookie name when
                          ``cookie_name`` is not given.
        timeout:          Session lookup timeout in seconds.
        client:           Optional shared ``httpx.AsyncClient``.
        clock:            Injectable clock for expiry checks.

    Raises:
        GuardConfigError: If neither mode is configured.
    """

    def __init__(
        self,
        *,
        secret: str | None = None,
        session_endpoint: str | None = None,
        cookie_name: str | None = None,
        secure: bool = True,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._secret = secret or os.getenv("NEXTAUTH_SECRET") or None
        self._session_endpoint = session_endpoint or None
        if not self._secret and not self._session_endpoint:
            raise GuardConfigError(
                "next_auth",
                "requires at least one of `secret` (for token verification) "
                "or `session_endpoint` (for session fetching)",
            )
        self.cookie_name = cookie_name or (SECURE_COOKIE_NAME if secure else COOKIE_NAME)
        self._timeout = timeout
        self._client = client
        self._clock = clock

    async def resolve(self, headers: httpx.Headers) -> NextAuthUser | None:
        token = self._extract_session_token(headers)

        if token and self._secret:
            claims = verify_token(token, self._secret, clock=self._clock)
            if claims is not None:
                return NextAuthUser.from_claims(claims)
            logger.debug("Session token failed local verification")

        if self._session_endpoint:
            return await self._fetch_session(headers)
        return None

    def _extract_session_token(self, headers: httpx.Headers) -> str | None:
        cookie_header = headers.get("cookie")
        if not cookie_header:
            return None
        return parse_cookie_value(cookie_header, self.cookie_name)

    async def _fetch_session(self, headers: httpx.Headers) -> NextAuthUser | None:
        cookie_header = headers.get("cookie")
        if not cookie_header or self._session_endpoint is None:
            return None

        session = await fetch_json(
            self._session_endpoint,
            headers={"cookie": cookie_header},
            timeout=self._timeout,
            client=self._client,
        )
        if not isinstance(session, dict) or not isinstance(session.get("user"), dict):
            return None

        try:
            return NextAuthUser.model_validate(session["user"])
        except ValidationError:
            logger.warning("Session endpoint returned an unexpected user shape")
            return None
