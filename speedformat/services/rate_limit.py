"""
Rate Limiter - Fixed-window request counters.

In-memory, single process. Counters do not survive a restart. A shared
store can replace InMemoryRateLimiter as long as it implements the same
``admit()`` contract.

Usage:
    decision = await rate_limiter.admit("api:sf_...", window_seconds=60, ceiling=100)
    if not decision.admitted:
        raise RateLimitExceededError(decision.current, decision.limit, decision.retry_after_seconds)
"""

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from structlog import get_logger

from speedformat.models.domain import CallerIdentity, RateDecision

logger = get_logger(__name__)


class RateLimitBackend(Protocol):
    """Contract every rate limit store implements."""

    async def admit(self, key: str, window_seconds: int, ceiling: int) -> RateDecision:
        """Count one hit against key and decide whether it is within ceiling."""
        ...


@dataclass
class _Window:
    started_at: float
    count: int


class InMemoryRateLimiter:
    """
    Fixed-window counters guarded by an asyncio.Lock.

    Every hit is counted, including rejected ones, so a client hammering a
    closed window keeps seeing Throttled until the window rolls over.
    """

    _CLEANUP_INTERVAL = 60.0

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._window_lengths: dict[str, int] = {}
        self._lock = asyncio.Lock()
        self._last_cleanup = clock()

    async def admit(self, key: str, window_seconds: int, ceiling: int) -> RateDecision:
        async with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)

            window = self._windows.get(key)
            if window is None or now - window.started_at >= window_seconds:
                window = _Window(started_at=now, count=0)
                self._windows[key] = window
                self._window_lengths[key] = window_seconds

            window.count += 1
            reset_at = window.started_at + window_seconds
            admitted = window.count <= ceiling

            decision = RateDecision(
                admitted=admitted,
                key=key,
                current=window.count,
                limit=ceiling,
                retry_after_seconds=max(1, math.ceil(reset_at - now)),
                reset_at=reset_at,
            )

        if not admitted:
            logger.warning(
                "rate_limit_exceeded",
                key=_redact(key),
                current=decision.current,
                limit=ceiling,
                retry_after=decision.retry_after_seconds,
            )
        return decision

    def _maybe_cleanup(self, now: float) -> None:
        if now - self._last_cleanup < self._CLEANUP_INTERVAL:
            return
        self._last_cleanup = now
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self._window_lengths.get(key, 0)
        ]
        for key in expired:
            del self._windows[key]
            self._window_lengths.pop(key, None)
        if expired:
            logger.debug("rate_windows_pruned", count=len(expired))

    def reset(self) -> None:
        """Drop all windows."""
        self._windows.clear()
        self._window_lengths.clear()

    def __len__(self) -> int:
        return len(self._windows)


def rate_key(
    scope: str,
    identity: CallerIdentity,
    client_ip: str,
) -> str:
    """
    Window key: API key string if one resolved, else account id, else IP.

    Scoped per endpoint so the public and API windows never share a counter.
    """
    if identity.api_key is not None:
        return f"{scope}:key:{identity.api_key}"
    if identity.account_id is not None:
        return f"{scope}:account:{identity.account_id}"
    return f"{scope}:ip:{client_ip}"


def _redact(key: str) -> str:
    """Keep API keys out of logs."""
    scope, _, rest = key.partition(":key:")
    if rest:
        return f"{scope}:key:{rest[:10]}..."
    return key


# Process-wide limiter shared by all requests
rate_limiter = InMemoryRateLimiter()
