"""Bounded-concurrency helpers for the embedding stage.

The ingestion pipeline is sequential by default: one message at a time,
one chunk at a time.  When ``embedding_concurrency`` is raised above 1, the
chunks of a single message are embedded through :func:`throttled_gather`,
which caps in-flight embedding calls with a semaphore.

``asyncio.gather`` returns results in submission order regardless of
completion order, so the caller gets results back in chunk-index order and
the store write that follows stays ordered.  Messages themselves are never
processed concurrently.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    coros: list[Awaitable[_T]],
    limit: int = 1,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most *limit* at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute.
    limit:
        Maximum number of awaitables running at once.  Values below 1 are
        treated as 1.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

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
