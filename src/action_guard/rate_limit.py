"""Sliding-window rate limiting — window parsing, stores, and a limiter factory."""

from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from action_guard._internal.clock import Clock, SystemClock, epoch_ms, from_epoch_ms
from action_guard.exceptions import GuardConfigError

_WINDOW_RE = re.compile(r"^(\d+)\s*([smhd])$", re.IGNORECASE)

_UNIT_MS = {
    "s": 1_000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}

_DEFAULT_KEY = "global"


def parse_window(window: str) -> int:
    """Parse a human-readable window such as ``"30s"`` or ``"5m"`` into milliseconds.

    Accepts ``<positive integer><unit>`` with unit one of ``s``, ``m``, ``h``,
    ``d`` (case-insensitive, whitespace allowed between number and unit).

    Raises:
        GuardConfigError: If the format is invalid or the value is not positive.
    """
    match = _WINDOW_RE.match(window.strip()) if isinstance(window, str) else None
    if match is None:
        raise GuardConfigError(
            "rate_limit",
            f'Invalid window format "{window}". Expected a number followed by '
            's, m, h, or d (e.g. "30s", "5m", "1h", "1d").',
        )

    value = int(match.group(1))
    if value <= 0:
        raise GuardConfigError(
            "rate_limit", f"Window value must be a positive integer, got {value}."
        )
    return value * _UNIT_MS[match.group(2).lower()]


@dataclass(frozen=True)
class RateLimitOutcome:
    """Result of a single limiter check.

    Attributes:
        allowed:   ``True`` if the request was admitted (and recorded).
        remaining: Requests still available in the current window.
        reset_at:  When the oldest counted request leaves the window.
    """

    allowed: bool
    remaining: int
    reset_at: datetime


class RateLimitStore(ABC):
    """Abstract base for rate-limit backends.

    A store owns the per-key request history; the limiter only tells it how
    many requests fit into how long a window.
    """

    @abstractmethod
    async def check(self, key: str, max_requests: int, window_ms: int) -> RateLimitOutcome:
        """Record a request for *key* if it fits, and report the outcome."""
        ...

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Forget all history for *key*.  No-op if the key is unknown."""
        ...


class MemoryRateLimitStore(RateLimitStore):
    """In-memory sliding-window store.  Data is lost on process exit.

    Keeps a ``dict[str, list[int]]`` of admitted-request timestamps (epoch
    milliseconds, non-decreasing per key).  Expired entries are pruned lazily,
    on the next check for the same key.  The prune-count-append cycle runs
    under a lock so concurrent callers, including ones on other threads,
    never over- or under-count.

    Parameters:
        clock: Injectable clock for testing.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._windows: dict[str, list[int]] = {}
        self._lock = threading.Lock()

    async def check(self, key: str, max_requests: int, window_ms: int) -> RateLimitOutcome:
        with self._lock:
            now = epoch_ms(self._clock)
            window_start = now - window_ms

            timestamps = [ts for ts in self._windows.get(key, []) if ts > window_start]

            allowed = len(timestamps) < max_requests
            if allowed:
                timestamps.append(now)

            self._windows[key] = timestamps

            reset_ms = timestamps[0] + window_ms if timestamps else now + window_ms
            remaining = max(0, max_requests - len(timestamps))

        return RateLimitOutcome(
            allowed=allowed,
            remaining=remaining,
            reset_at=from_epoch_ms(reset_ms),
        )

    async def reset(self, key: str) -> None:
        with self._lock:
            self._windows.pop(key, None)

    async def clear(self) -> None:
        """Forget every key."""
        with self._lock:
            self._windows.clear()

    def keys(self) -> list[str]:
        """Return the keys that currently hold history (possibly stale)."""
        with self._lock:
            return list(self._windows)


class RateLimiter:
    """Self-contained limiter bound to one budget.

    The window is parsed once, at construction, so a malformed window fails
    before any request is checked.

    Parameters:
        max_requests: Maximum admitted requests per window (>= 1).
        window:       Window string, e.g. ``"30s"``, ``"1m"``, ``"1h"``.
        key_fn:       Derives the bucket key from the call arguments.
                      Defaults to a single ``"global"`` bucket.
        store:        Backing store.  Defaults to a fresh
                      :class:`MemoryRateLimitStore`.

    Example:
        limiter = RateLimiter(max_requests=10, window="1m", key_fn=lambda uid: f"user:{uid}")
        outcome = await limiter("user-42")
        if not outcome.allowed:
            ...
    """

    def __init__(
        self,
        *,
        max_requests: int,
        window: str,
        key_fn: Callable[..., str] | None = None,
        store: RateLimitStore | None = None,
    ) -> None:
        if isinstance(max_requests, bool) or not isinstance(max_requests, int) or max_requests < 1:
            raise GuardConfigError(
                "rate_limit", f"max_requests must be a positive integer, got {max_requests!r}."
            )
        self.max_requests = max_requests
        self.window = window
        self.window_ms = parse_window(window)
        self._key_fn = key_fn or (lambda *args, **kwargs: _DEFAULT_KEY)
        self.store: RateLimitStore = store if store is not None else MemoryRateLimitStore()

    async def __call__(self, *args: Any, **kwargs: Any) -> RateLimitOutcome:
        return await self.check_key(self._key_fn(*args, **kwargs))

    async def check_key(self, key: str) -> RateLimitOutcome:
        """Check an explicit bucket key, bypassing ``key_fn``."""
        return await self.store.check(key, self.max_requests, self.window_ms)

    async def reset(self, *args: Any, **kwargs: Any) -> None:
        """Reset the bucket that ``key_fn(*args)`` resolves to."""
        await self.reset_key(self._key_fn(*args, **kwargs))

    async def reset_key(self, key: str) -> None:
        await self.store.reset(key)
