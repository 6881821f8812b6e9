"""
Bounded fan-out for concurrent upstream calls.

Items are processed in fixed-size batches: every call in a batch runs
concurrently, and the next batch starts only once the whole batch has settled.
This caps in-flight connections at batch_size.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def fan_out_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    batch_size: int,
    *,
    delay_between_batches: float = 0.0,
) -> list[R | Exception]:
    """Run worker over items, batch_size at a time.

    Results come back in input order. A failing call yields its exception in
    that slot instead of aborting the other calls.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    results: list[R | Exception] = []
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        settled = await asyncio.gather(*(worker(item) for item in batch), return_exceptions=True)
        for outcome in settled:
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            results.append(outcome)
        if delay_between_batches and start + batch_size < len(items):
            await asyncio.sleep(delay_between_batches)
    return results
