"""Async per-model rate limiting and retry helpers."""

from __future__ import annotations

import asyncio
from collections import deque
import logging
import random
import time
from typing import Awaitable, Callable, TypeVar


T = TypeVar("T")

GLOBAL_RPM_KEY = "__global__"
DEFAULT_GLOBAL_RPM = 300
WINDOW_SECONDS = 60.0


class AsyncRateLimiter:
    """Sliding-window limiter keyed by ``provider:model``.

    Enforces both per-key RPM limits and a global RPM cap across all keys.
    A non-positive rpm disables limiting for that key.
    """

    def __init__(self, global_rpm: int = DEFAULT_GLOBAL_RPM) -> None:
        self._windows: dict[str, deque[float]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._global_rpm = global_rpm

    async def _acquire_one(self, key: str, rpm: int) -> None:
        if rpm <= 0:
            return

        window = self._windows.setdefault(key, deque())
        lock = self._locks.setdefault(key, asyncio.Lock())

        async with lock:
            while True:
                now = time.monotonic()
                while window and now - window[0] > WINDOW_SECONDS:
                    window.popleft()

                if len(window) < rpm:
                    window.append(now)
                    return

                await asyncio.sleep(max(0.01, WINDOW_SECONDS - (now - window[0])))

    async def acquire(self, key: str, rpm: int) -> None:
        """Wait until both the per-key and global limits allow a call."""
        await self._acquire_one(GLOBAL_RPM_KEY, self._global_rpm)
        await self._acquire_one(key, rpm)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
    fatal_exceptions: tuple[type[BaseException], ...] = (),
    logger: logging.Logger | None = None,
    description: str = "call",
) -> T:
    """Retry an awaitable factory with exponential backoff and jitter.

    ``fatal_exceptions`` are re-raised immediately even when they also match
    ``retryable_exceptions``.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except retryable_exceptions as exc:
            if isinstance(exc, fatal_exceptions):
                raise
            attempt += 1
            if attempt > max_retries:
                raise
            sleep_seconds = min(max_delay, base_delay * (2 ** (attempt - 1)))
            jitter = random.uniform(0.0, 0.25 * sleep_seconds)
            if logger is not None:
                logger.warning(
                    "%s failed (attempt %d/%d): %r; retrying in %.1fs",
                    description,
                    attempt,
                    max_retries,
                    exc,
                    sleep_seconds + jitter,
                )
            await asyncio.sleep(sleep_seconds + jitter)
