"""Bounded retries with exponential backoff for external calls."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay: float,
    retry_on: Tuple[Type[BaseException], ...],
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
    retry_if: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """
    Run ``operation`` until it succeeds or ``attempts`` are used up.

    Only exceptions in ``retry_on`` are retried, and of those only the ones
    ``retry_if`` accepts when it is given. The wait before retry N
    (1-based) is ``base_delay * 2 ** (N - 1)``. The last exception is
    re-raised unchanged.
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return await operation()
        except retry_on as e:
            if attempt >= attempts - 1:
                raise
            if retry_if is not None and not retry_if(e):
                raise
            wait_time = base_delay * (2 ** attempt)
            logger.warning(
                "Retry %d/%d for %s in %.1fs: %s",
                attempt + 1,
                attempts - 1,
                description,
                wait_time,
                e,
            )
            if on_retry is not None:
                on_retry(attempt + 1, e)
            await sleep(wait_time)

    raise AssertionError("unreachable")
