"""CustomAuthProvider — wrap any callable as an auth provider."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import httpx

from action_guard.auth.base import AuthProvider

# Receives the request headers, returns the user or None.  May be sync or async.
Resolver = Callable[[httpx.Headers], Any]


class CustomAuthProvider(AuthProvider):
    def __init__(self, resolver: Resolver) -> None:
        self._resolver = resolver

    async def resolve(self, headers: httpx.Headers) -> Any | None:
        result = self._resolver(headers)
        if asyncio.iscoroutine(result):
            result = await result
        return result


def custom_auth(resolver: Resolver) -> CustomAuthProvider:
    """Build a provider from a plain ``(headers) -> user | None`` callable."""
    return CustomAuthProvider(resolver)
