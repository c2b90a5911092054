"""Bounded exponential-backoff retry for remote calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from .errors import RemoteAPIError

logger = logging.getLogger(__name__)


def is_transient_error(error: BaseException) -> bool:
    """Network failures, 5xx and 429 answers are worth another attempt."""
    if isinstance(error, RemoteAPIError):
        return error.is_transient
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or status >= 500
    return isinstance(error, (httpx.TransportError, asyncio.TimeoutError))


class RetryPolicy:
    """Retries a coroutine function on transient failures.

    Delay before attempt ``n`` (1-based, n > 1) is ``base_delay * 2 ** (n - 2)``,
    capped at ``max_delay``. Non-transient errors are raised immediately.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 8.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep or asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    async def run(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        operation: str = "remote call",
        **kwargs: Any,
    ) -> Any:
        """Await ``func(*args, **kwargs)`` with retries."""
        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if not is_transient_error(e):
                    raise
                if attempt == self.max_attempts - 1:
                    logger.error(f"{operation} failed after {self.max_attempts} attempts: {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{operation} failed (attempt {attempt + 1}/{self.max_attempts}): {e}; "
                    f"retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
                attempt += 1
