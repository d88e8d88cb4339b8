"""
Batch helpers shared by the existence resolver and the persistence writer.

- chunked: split a sequence into bounded batches (no empty trailing batch)
- run_batches: fan batches out with a concurrency ceiling, stopping the
  remaining batches as soon as one fails or the caller is cancelled
- retry_batch: explicit bounded retry loop for RetryableStoreError
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from DEDUP.core.exceptions import RetryableStoreError
from DEDUP.core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """
    Split items into consecutive batches of at most size elements.

    Example:
        >>> chunked([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError(f"Batch size must be positive, got {size}")
    items = list(items)
    return [items[i:i + size] for i in range(0, len(items), size)]


@dataclass
class BatchOutcome:
    """Result of one batch: the worker's return value and retries spent."""
    index: int
    value: Any
    retries: int = 0


class RetriesExhausted(Exception):
    """Raised by retry_batch when a batch keeps failing with transient faults."""

    def __init__(self, last_error: RetryableStoreError, attempts: int):
        super().__init__(f"Gave up after {attempts} attempts: {last_error.message}")
        self.last_error = last_error
        self.attempts = attempts


async def retry_batch(
    operation: Callable[[], Awaitable[R]],
    *,
    max_retries: int,
    retry_delay: float,
    label: str,
) -> BatchOutcome:
    """
    Run operation, retrying RetryableStoreError up to max_retries times.

    Any other exception propagates on the first occurrence.

    Args:
        operation: Zero-argument coroutine factory performing one attempt
        max_retries: Retries allowed after the first attempt
        retry_delay: Fixed seconds to wait between attempts
        label: Batch description for log lines, e.g. "write batch 3/10"

    Returns:
        BatchOutcome: value and number of retries used (index left at 0)

    Raises:
        RetriesExhausted: If every attempt failed with a retryable fault
    """
    retries = 0
    while True:
        try:
            value = await operation()
            return BatchOutcome(index=0, value=value, retries=retries)
        except RetryableStoreError as e:
            if retries >= max_retries:
                raise RetriesExhausted(e, attempts=retries + 1)
            retries += 1
            logger.warning(
                f"{label} hit retryable fault ({e.message}); "
                f"retry {retries}/{max_retries} in {retry_delay:.1f}s"
            )
            await asyncio.sleep(retry_delay)


async def run_batches(
    batches: Sequence[T],
    worker: Callable[[int, T], Awaitable[R]],
    *,
    max_concurrency: int,
    label: str,
) -> List[Optional[R]]:
    """
    Run worker over every batch with at most max_concurrency in flight.

    Batches are numbered from 1. When one worker raises, batches still
    waiting for a slot are skipped and in-flight tasks are cancelled before
    the first error is re-raised. Cancelling the caller cancels every batch.

    Args:
        batches: Batches to process
        worker: Coroutine called as worker(index, batch)
        max_concurrency: Ceiling on simultaneously running workers
        label: Stage name for log lines

    Returns:
        List[Optional[R]]: Worker results in batch order
    """
    if max_concurrency < 1:
        raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
    if not batches:
        return []

    gate = asyncio.Semaphore(max_concurrency)
    abort = asyncio.Event()

    async def guarded(index: int, batch: T) -> Optional[R]:
        async with gate:
            # Set by a failed sibling before it released its slot
            if abort.is_set():
                logger.debug(f"{label}: skipping batch {index}/{len(batches)} after failure")
                return None
            try:
                return await worker(index, batch)
            except BaseException:
                abort.set()
                raise

    tasks = [
        asyncio.ensure_future(guarded(index, batch))
        for index, batch in enumerate(batches, 1)
    ]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
