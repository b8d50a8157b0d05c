"""SupabaseAuthProvider — bearer-token resolution against Supabase Auth."""

from __future__ import annotations

import logging
import os
import re
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from action_guard._internal.clock import Clock
from action_guard.auth.base import AuthProvider, fetch_json
from action_guard.auth.tokens import verify_token
from action_guard.exceptions import GuardConfigError

logger = logging.getLogger(__name__)

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)

_RESERVED_CLAIMS = frozenset(
    {
        "sub",
        "email",
        "role",
        "app_metadata",
        "user_metadata",
        "iat",
        "exp",
        "nbf",
        "jti",
        "iss",
        "aud",
    }
)


class SupabaseUser(BaseModel):
    """Supabase user.  Unmapped token claims are kept as extras."""

    model_config = ConfigDict(extra="allow")

    id: str
    email: str | None = None
    role: str | None = None
    app_metadata: dict[str, Any] = Field(default_factory=dict)
    user_metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> SupabaseUser:
        def text(key: str) -> str | None:
            value = claims.get(key)
            return value if isinstance(value, str) else None

        def mapping(key: str) -> dict[str, Any]:
            value = claims.get(key)
            return value if isinstance(value, dict) else {}

        extras = {k: v for k, v in claims.items() if k not in _RESERVED_CLAIMS}
        return cls.model_validate(
            {
                **extras,
                "id": str(claims["sub"]) if claims.get("sub") else "",
                "email": text("email"),
                "role": text("role"),
                "app_metadata": mapping("app_metadata"),
                "user_metadata": mapping("user_metadata"),
            }
        )


class SupabaseAuthProvider(AuthProvider):
    """Resolves the user from an ``Authorization: Bearer <token>`` header.

    * **Local** (``jwt_secret``): verify the access token as an HS256 token.
    * **Network** (``url`` + ``anon_key``): GET ``<url>/auth/v1/user``.

    Local verification runs first when configured; the network lookup is the
    fallback when it yields no user.

    Parameters:
        url:        Project URL.  Falls back to ``SUPABASE_URL``.
        anon_key:   Anon key.  Falls back to ``SUPABASE_ANON_KEY``.
        jwt_secret: Token secret.  Falls back to ``SUPABASE_JWT_SECRET``.
        timeout:    Lookup timeout in seconds.
        client:     Optional shared ``httpx.AsyncClient``.
        clock:      Injectable clock for expiry checks.

    Raises:
        GuardConfigError: If neither ``jwt_secret`` nor ``url`` + ``anon_key``
            is available.
    """

    def __init__(
        self,
        *,
        url: str | None = None,
        anon_key: str | None = None,
        jwt_secret: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
    ) -> None:
        resolved_url = url or os.getenv("SUPABASE_URL", "")
        self._url = resolved_url.rstrip("/") if resolved_url else ""
        self._anon_key = anon_key or os.getenv("SUPABASE_ANON_KEY", "")
        self._jwt_secret = jwt_secret or os.getenv("SUPABASE_JWT_SECRET", "")
        if not self._jwt_secret and not (self._url and self._anon_key):
            raise GuardConfigError(
                "supabase",
                "requires `jwt_secret` (for token verification) "
                "or both `url` and `anon_key` (for user lookup)",
            )
        self._timeout = timeout
        self._client = client
        self._clock = clock

    @property
    def has_network_fallback(self) -> bool:
        return bool(self._url and self._anon_key)

    async def resolve(self, headers: httpx.Headers) -> SupabaseUser | None:
        token = self._extract_bearer_token(headers)
        if token is None:
            return None

        if self._jwt_secret:
            claims = verify_token(token, self._jwt_secret, clock=self._clock)
            if claims is not None:
                return SupabaseUser.from_claims(claims)
            logger.debug("Access token failed local verification")

        if self.has_network_fallback:
            return await self._fetch_user(token)
        return None

    @staticmethod
    def _extract_bearer_token(headers: httpx.Headers) -> str | None:
        authorization = headers.get("authorization")
        if not authorization:
            return None
        match = _BEARER_RE.match(authorization.strip())
        return match.group(1).strip() if match else None

    async def _fetch_user(self, token: str) -> SupabaseUser | None:
        data = await fetch_json(
            f"{self._url}/auth/v1/user",
            headers={"Authorization": f"Bearer {token}", "apikey": self._anon_key},
            timeout=self._timeout,
            client=self._client,
        )
        if not isinstance(data, dict) or not isinstance(data.get("id"), str) or not data["id"]:
            return None

        try:
            return SupabaseUser.model_validate(
                {
                    **data,
                    "app_metadata": data.get("app_metadata") or {},
                    "user_metadata": data.get("user_metadata") or {},
                }
            )
        except ValidationError:
            logger.warning("Supabase returned an unexpected user shape")
            return None
