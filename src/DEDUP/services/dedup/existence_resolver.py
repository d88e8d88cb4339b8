"""
Batched existence lookup against the known-identifier store.

This module provides the ExistenceResolver class, which answers "which of
these candidates have we seen before?" for an arbitrarily large candidate set
while respecting the store's per-request key limit and a concurrency ceiling.

Module Input:
    - Candidate identifiers from the value extractor
    - KnownIdentifierStore handle (passed in, never global)

Module Output:
    - Set of candidates already present in the store
    - ExistenceCheckError when any batch cannot be answered
"""

from typing import List, Optional, Sequence, Set

from DEDUP.core.exceptions import ExistenceCheckError, StoreError
from DEDUP.core.logging_config import get_logger
from DEDUP.services.dedup.batching import (
    BatchOutcome,
    RetriesExhausted,
    chunked,
    retry_batch,
    run_batches,
)
from DEDUP.services.extraction.value_extractor import Identifier
from DEDUP.services.storage.base import KnownIdentifierStore

logger = get_logger(__name__)

STAGE = "resolving"


class ExistenceResolver:
    """
    Resolves which candidate identifiers already exist in the store.

    Candidates are split into batches no larger than batch_size and looked up
    concurrently, with at most max_concurrency lookups in flight. Results are
    keyed, so merging is a plain set union regardless of completion order.

    A batch that keeps failing aborts the whole resolution: a partial answer
    would make unseen-but-unchecked identifiers look new.

    Attributes:
        store (KnownIdentifierStore): Store to query
        batch_size (int): Keys per lookup request
        max_concurrency (int): Lookups in flight at once
        max_retries (int): Retries per batch on transient faults
        retry_delay (float): Seconds between retries
    """

    def __init__(
        self,
        store: KnownIdentifierStore,
        batch_size: int = 100,
        max_concurrency: int = 10,
        max_retries: int = 5,
        retry_delay: float = 1.0,
    ):
        """
        Initialize resolver.

        Args:
            store (KnownIdentifierStore): Store handle
            batch_size (int): Keys per lookup (default: 100, capped at the
                store's max_lookup_batch)
            max_concurrency (int): Parallel lookup ceiling (default: 10)
            max_retries (int): Retries on retryable faults (default: 5)
            retry_delay (float): Fixed retry delay in seconds (default: 1.0)

        Raises:
            ValueError: If batch_size or max_concurrency is not positive
        """
        if batch_size < 1 or max_concurrency < 1:
            raise ValueError("batch_size and max_concurrency must be positive")

        self.store = store
        self.batch_size = min(batch_size, store.max_lookup_batch)
        self.max_concurrency = max_concurrency
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        logger.info(
            f"Initialized ExistenceResolver: store={store.name}, "
            f"batch_size={self.batch_size}, max_concurrency={max_concurrency}, "
            f"max_retries={max_retries}"
        )

    async def _lookup_batch(
        self, index: int, batch: List[Identifier], total: int
    ) -> BatchOutcome:
        label = f"lookup batch {index}/{total}"
        logger.debug(f"Fetching {label} ({len(batch)} keys)")

        try:
            outcome = await retry_batch(
                lambda: self.store.batch_exists(batch),
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                label=label,
            )
        except RetriesExhausted as e:
            logger.error(f"{label} failed after {e.attempts} attempts: {e.last_error.message}")
            raise ExistenceCheckError(
                f"Existence check failed for batch {index} of {total}",
                details={
                    "stage": STAGE,
                    "batch_index": index,
                    "batch_size": len(batch),
                    "attempts": e.attempts,
                    "error": e.last_error.message,
                }
            )
        except StoreError as e:
            logger.error(f"{label} failed: {e.message}", extra={"details": e.details})
            raise ExistenceCheckError(
                f"Existence check failed for batch {index} of {total}",
                details={
                    "stage": STAGE,
                    "batch_index": index,
                    "batch_size": len(batch),
                    "attempts": 1,
                    "error": e.message,
                }
            )

        outcome.index = index
        return outcome

    async def resolve(self, candidates: Sequence[Identifier]) -> Set[Identifier]:
        """
        Return the subset of candidates already present in the store.

        Args:
            candidates (Sequence[Identifier]): Duplicate-free identifiers

        Returns:
            Set[Identifier]: Existing identifiers (always a subset of candidates)

        Raises:
            ExistenceCheckError: If any batch fails fatally or exhausts retries

        Example:
            >>> resolver = ExistenceResolver(InMemoryIdentifierStore([7]))
            >>> await resolver.resolve([5, 7, 9])
            {7}
        """
        if not candidates:
            return set()

        batches = chunked(candidates, self.batch_size)
        total = len(batches)
        logger.info(f"Resolving {len(candidates)} candidates in {total} lookup batches")

        outcomes: List[Optional[BatchOutcome]] = await run_batches(
            batches,
            lambda index, batch: self._lookup_batch(index, batch, total),
            max_concurrency=self.max_concurrency,
            label="existence check",
        )

        candidate_set = set(candidates)
        existing: Set[Identifier] = set()
        retries = 0
        for outcome in outcomes:
            if outcome is None:
                continue
            # Guard against a store echoing keys that were never asked for
            existing.update(outcome.value & candidate_set)
            retries += outcome.retries

        logger.info(
            f"Existence check complete: {len(existing)}/{len(candidates)} already known "
            f"({total} batches, {retries} retries)"
        )
        return existing
