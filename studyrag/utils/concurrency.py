"""Shared concurrency primitives for retrieval fan-out.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with a semaphore and an
   optional per-awaitable timeout.  A slow awaitable is cancelled at its
   deadline and surfaces as :class:`asyncio.TimeoutError` in the results
   list instead of stalling the whole gather.

2. **parallel_query** -- the fan-out-then-merge pattern used by the
   retrieval aggregator: dispatch N index queries concurrently, log the
   failures, and return the successful results in dispatch order.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from studyrag.utils.logging import get_logger

_T = TypeVar("_T")

_DEFAULT_CONCURRENCY = 8

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    timeout: float | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling and a deadline.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional semaphore for concurrency control.  A fresh semaphore of
        ``_DEFAULT_CONCURRENCY`` slots is created per call when omitted,
        so no primitive is shared across event loops.
    timeout:
        Per-awaitable deadline in seconds, measured from when the
        awaitable acquires its slot.  ``None`` disables the deadline.
    return_exceptions:
        If ``True``, exceptions (including timeouts) are returned in the
        results list rather than raised.  Mirrors ``asyncio.gather``.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(_DEFAULT_CONCURRENCY)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            if timeout is None:
                return await coro
            return await asyncio.wait_for(coro, timeout=timeout)

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def parallel_query(
    query_fn: Callable[..., Awaitable[_T]],
    queries: list[dict[str, Any]],
    timeout: float | None = None,
    logger: structlog.BoundLogger | None = None,
    error_msg: str = "parallel_query_failed",
) -> list[tuple[int, _T]]:
    """Execute several queries concurrently and keep only the successes.

    Parameters
    ----------
    query_fn:
        The async function to call for each query, with keyword arguments
        from each dict in ``queries``.
    queries:
        List of keyword-argument dicts, one per call.
    timeout:
        Per-call deadline in seconds.
    logger:
        Optional structured logger for warnings on failures.
    error_msg:
        Event name logged for each failed or timed-out call.

    Returns
    -------
    list[tuple[int, _T]]
        ``(query_position, result)`` pairs for successful calls, in
        dispatch order.
    """
    if logger is None:
        logger = _logger

    coros = [query_fn(**q) for q in queries]
    raw_results = await throttled_gather(coros, timeout=timeout, return_exceptions=True)

    successes: list[tuple[int, _T]] = []
    for idx, result in enumerate(raw_results):
        if isinstance(result, asyncio.TimeoutError):
            logger.warning(error_msg, query=queries[idx], error="timeout", timeout_s=timeout)
        elif isinstance(result, Exception):
            logger.warning(error_msg, query=queries[idx], error=str(result))
        elif isinstance(result, BaseException):
            # CancelledError and friends must not be swallowed.
            raise result
        else:
            successes.append((idx, result))
    return successes
