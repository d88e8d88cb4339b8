"""
Batched, retrying persistence of new identifiers.

This module provides the PersistenceWriter class which records every new
identifier in the known-identifier store using bounded-size batch writes,
bounded in-flight concurrency and a bounded fixed-delay retry per batch.

Module Input:
    - New identifiers from the partitioner
    - KnownIdentifierStore handle (passed in, never global)

Module Output:
    - WriteReport with batch and retry counts
    - PersistenceError when a batch fails fatally or exhausts its retries
"""

from dataclasses import dataclass
from typing import List, Sequence

from DEDUP.core.exceptions import PersistenceError, StoreError
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

STAGE = "persisting"


@dataclass
class WriteReport:
    """Summary of a completed write stage."""
    batches_total: int = 0
    batches_written: int = 0
    identifiers_written: int = 0
    retries: int = 0


class PersistenceWriter:
    """
    Durably inserts new identifiers into the store.

    Inserts are at-least-once: a retried batch may re-put identifiers that
    already landed, which the store's unique key absorbs. Nothing is rolled
    back on failure; batches committed before the failing one stay written.

    Retry policy:
        - RetryableStoreError: wait retry_delay seconds, try the same batch
          again, at most max_retries times
        - StoreError (fatal) or exhausted retries: abort the stage; batches
          that have not started yet are never attempted

    Attributes:
        store (KnownIdentifierStore): Store to write to
        batch_size (int): Items per write request
        max_concurrency (int): Batch writes in flight at once
        max_retries (int): Retries per batch on transient faults
        retry_delay (float): Seconds between retries
    """

    def __init__(
        self,
        store: KnownIdentifierStore,
        batch_size: int = 25,
        max_concurrency: int = 4,
        max_retries: int = 5,
        retry_delay: float = 1.0,
    ):
        """
        Initialize writer.

        Args:
            store (KnownIdentifierStore): Store handle
            batch_size (int): Items per batch (default: 25, capped at the
                store's max_write_batch)
            max_concurrency (int): In-flight batch ceiling (default: 4)
            max_retries (int): Retries on retryable faults (default: 5)
            retry_delay (float): Fixed retry delay in seconds (default: 1.0)

        Raises:
            ValueError: If batch_size or max_concurrency is not positive
        """
        if batch_size < 1 or max_concurrency < 1:
            raise ValueError("batch_size and max_concurrency must be positive")

        self.store = store
        self.batch_size = min(batch_size, store.max_write_batch)
        self.max_concurrency = max_concurrency
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        logger.info(
            f"Initialized PersistenceWriter: store={store.name}, "
            f"batch_size={self.batch_size}, max_concurrency={max_concurrency}, "
            f"max_retries={max_retries}, retry_delay={retry_delay}s"
        )

    async def _write_batch(
        self,
        index: int,
        batch: List[Identifier],
        total: int,
        report: WriteReport,
    ) -> BatchOutcome:
        label = f"write batch {index}/{total}"
        logger.debug(f"Writing {label} ({len(batch)} items)")

        try:
            outcome = await retry_batch(
                lambda: self.store.batch_insert(batch),
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                label=label,
            )
        except RetriesExhausted as e:
            logger.error(f"{label} failed after {e.attempts} attempts: {e.last_error.message}")
            raise PersistenceError(
                f"Writing batch {index} of {total} failed after {e.attempts} attempts",
                details={
                    "stage": STAGE,
                    "batch_index": index,
                    "batch_size": len(batch),
                    "attempts": e.attempts,
                    "batches_written": report.batches_written,
                    "error": e.last_error.message,
                }
            )
        except StoreError as e:
            logger.error(f"{label} failed: {e.message}", extra={"details": e.details})
            raise PersistenceError(
                f"Writing batch {index} of {total} failed",
                details={
                    "stage": STAGE,
                    "batch_index": index,
                    "batch_size": len(batch),
                    "attempts": 1,
                    "batches_written": report.batches_written,
                    "error": e.message,
                }
            )

        report.batches_written += 1
        report.identifiers_written += len(batch)
        report.retries += outcome.retries
        outcome.index = index

        logger.debug(f"{label} written ({outcome.retries} retries)")
        return outcome

    async def write(self, identifiers: Sequence[Identifier]) -> WriteReport:
        """
        Insert every identifier into the store.

        Args:
            identifiers (Sequence[Identifier]): New, duplicate-free identifiers

        Returns:
            WriteReport: Batch, item and retry counts

        Raises:
            PersistenceError: If any batch fails fatally or exhausts retries
        """
        if not identifiers:
            logger.info("No new identifiers to write")
            return WriteReport()

        batches = chunked(identifiers, self.batch_size)
        report = WriteReport(batches_total=len(batches))
        logger.info(f"Writing {len(identifiers)} identifiers in {len(batches)} batches")

        await run_batches(
            batches,
            lambda index, batch: self._write_batch(index, batch, len(batches), report),
            max_concurrency=self.max_concurrency,
            label="persistence",
        )

        logger.info(
            f"✓ Persisted {report.identifiers_written} identifiers "
            f"({report.batches_written}/{report.batches_total} batches, "
            f"{report.retries} retries)"
        )
        return report
