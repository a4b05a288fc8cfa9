"""Shared concurrency primitives for the ingestion and embedding paths.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with every awaitable wrapped
   in a semaphore acquire/release.  Ingestion uses it to embed chunks in
   parallel without exceeding the embedding provider's rate limits.

2. **retry_with_backoff** -- re-invoke an async callable while it raises a
   retryable exception type, sleeping ``base_delay * 2 ** (attempt - 1)``
   between attempts, and re-raise the last error once attempts run out.

No semaphore is module-level: each caller passes its own limit, so
concurrent requests never share throttling state.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

_T = TypeVar("_T")

_logger = structlog.get_logger(logger_name=__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    limit: int = 1,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with at most *limit* in flight.

    Parameters
    ----------
    coros:
        Awaitable objects to execute.
    limit:
        Maximum number running at once.  Values below 1 are treated as 1.
    return_exceptions:
        Mirrors ``asyncio.gather``: when ``True``, exceptions are returned
        in the result list instead of raised.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input awaitables.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[_T]],
    retry_on: type[BaseException] | tuple[type[BaseException], ...],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    logger: structlog.BoundLogger | None = None,
    **log_context: object,
) -> _T:
    """Await ``operation()`` until it succeeds or attempts are exhausted.

    Only exceptions matching *retry_on* are retried; anything else
    propagates immediately.  ``**log_context`` is attached to the warning
    logged before each retry.
    """
    if logger is None:
        logger = _logger

    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "retrying_after_error",
                attempt=attempt,
                max_attempts=attempts,
                backoff_s=delay,
                error=str(exc),
                **log_context,
            )
            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises.
    raise RuntimeError("retry_with_backoff exhausted without result")
