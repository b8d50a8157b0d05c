"""AuthProvider ABC and the HTTP helper shared by network-backed providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class AuthProvider(ABC):
    """Resolves the calling user from request headers.

    ``resolve`` returns the user (any object) or ``None`` when the request is
    not authenticated.  Providers should not raise for ordinary
    authentication failures; an exception is reported as an internal error.
    """

    @abstractmethod
    async def resolve(self, headers: httpx.Headers) -> Any | None:
        """Return the user for *headers*, or ``None``."""
        ...


async def fetch_json(
    url: str,
    *,
    headers: dict[str, str],
    timeout: float,
    client: httpx.AsyncClient | None = None,
) -> Any | None:
    """GET *url* and decode its JSON body.

    Transport errors (timeouts included), non-2xx responses and malformed
    bodies all yield ``None``.
    """
    try:
        if client is not None:
            response = await client.get(url, headers=headers, timeout=timeout)
        else:
            async with httpx.AsyncClient() as owned:
                response = await owned.get(url, headers=headers, timeout=timeout)
    except httpx.HTTPError as e:
        logger.warning("Auth lookup to %s failed: %s", url, e)
        return None

    if not response.is_success:
        logger.debug("Auth lookup to %s returned HTTP %s", url, response.status_code)
        return None

    try:
        return response.json()
    except ValueError:
        logger.warning("Auth lookup to %s returned a malformed body", url)
        return None
