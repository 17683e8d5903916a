"""Concurrency limiting and timeout helpers for extraction calls."""
import asyncio
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

import anyio

from .exceptions import ExtractionTimeoutError

T = TypeVar("T")


class CapacityLimiter:
    """Async capacity limiter backed by ``anyio.CapacityLimiter``.

    A limiter created with ``total_tokens=None`` never blocks, which is the
    default for batch fan-out.
    """

    def __init__(self, total_tokens: Optional[int] = None):
        if total_tokens is not None and total_tokens < 1:
            raise ValueError("total_tokens must be at least 1")
        self.total_tokens = total_tokens
        self._limiter = anyio.CapacityLimiter(total_tokens) if total_tokens else None

    async def __aenter__(self):
        if self._limiter is not None:
            await self._limiter.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._limiter is not None:
            self._limiter.release()

    @property
    def is_bounded(self) -> bool:
        return self._limiter is not None

    @property
    def available_tokens(self) -> float:
        if self._limiter is None:
            return float("inf")
        return self._limiter.available_tokens

    @property
    def borrowed_tokens(self) -> int:
        if self._limiter is None:
            return 0
        return self._limiter.borrowed_tokens


async def run_with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_seconds: Optional[float] = None
) -> T:
    """Await ``operation()``, raising ExtractionTimeoutError past the deadline."""
    if timeout_seconds is None:
        return await operation()
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise ExtractionTimeoutError(timeout_seconds) from exc

