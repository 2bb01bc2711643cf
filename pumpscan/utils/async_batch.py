"""Async batch utilities for parallel API operations."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence, TypeVar


T = TypeVar('T')
R = TypeVar('R')


async def batch_gather(
    items: Sequence[T],
    async_fn: Callable[[T], Awaitable[R]],
    max_concurrent: int | None = None,
    continue_on_error: bool = True,
    on_error: Callable[[T, Exception], Any] | None = None,
) -> list[R | None]:
    """Execute async function on items concurrently.

    Args:
        items: Items to process
        async_fn: Async function to call on each item
        max_concurrent: Max concurrent operations (None or 0 = all at once)
        continue_on_error: If True, errors return None; if False, propagate
        on_error: Called with (item, exception) for each swallowed error

    Returns:
        Results in the same order as ``items`` (None for failed items)
    """
    semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent else None

    async def guarded_call(item: T) -> R | None:
        try:
            if semaphore is None:
                return await async_fn(item)
            async with semaphore:
                return await async_fn(item)
        except Exception as e:
            if not continue_on_error:
                raise
            if on_error is not None:
                on_error(item, e)
            return None

    return await asyncio.gather(*[guarded_call(item) for item in items])
