"""Retry with exponential backoff for coroutines."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from shared.observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Backoff policy.

    ``max_attempts`` counts the first call, so 1 disables retrying.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def delays(self) -> list[float]:
        """Sleep durations between consecutive attempts."""
        delays = []
        delay = self.initial_delay
        for _ in range(max(0, self.max_attempts - 1)):
            delays.append(min(delay, self.max_delay))
            delay *= self.backoff_factor
        return delays


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    operation: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``fn()`` until it succeeds or the attempts are exhausted.

    Exceptions outside ``config.retry_on`` propagate immediately. When all
    attempts fail the last exception is re-raised. Cancellation is never
    retried.
    """
    config = config or RetryConfig()
    delays = config.delays()

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await fn()
        except config.retry_on as e:
            if attempt >= config.max_attempts:
                logger.debug(
                    "Retries exhausted",
                    operation=operation,
                    attempts=attempt,
                    error=str(e),
                )
                raise
            delay = delays[attempt - 1]
            logger.debug(
                "Retrying after failure",
                operation=operation,
                attempt=attempt,
                delay_seconds=delay,
                error=str(e),
            )
            await sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover
