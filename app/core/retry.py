"""
core/retry.py
-------------
Generic retry wrapper with exponential backoff.

Used only at the identity provider boundary (token resolve / refresh).
User-initiated mutations are never retried: their errors surface at once.

    result = await retry_async(
        lambda: provider.resolve(token),
        policy=BackoffPolicy(max_attempts=5, base_delay=1.0),
        retryable=is_rate_limited,
    )
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, TypeVar

from app.core.exceptions import IdentityRateLimited
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Attempts are 1-indexed and include the first call.
    Delay before attempt n+1 is base_delay * multiplier ** (n - 1), capped.
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def delays(self) -> Iterator[float]:
        for attempt in range(1, self.max_attempts):
            yield min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)


def is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, IdentityRateLimited)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: BackoffPolicy,
    retryable: Callable[[BaseException], bool],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` until it succeeds, raises a non-retryable error, or the
    policy runs out of attempts. The last error is re-raised unchanged.
    """
    delays = policy.delays()
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not retryable(exc):
                raise
            delay = next(delays, None)
            if delay is None:
                logger.error(
                    "Retry budget exhausted",
                    attempts=attempt,
                    error=str(exc),
                )
                raise
            logger.warning(
                "Retryable failure, backing off",
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_s=delay,
                error=str(exc),
            )
            await sleep(delay)
            attempt += 1
