"""
In-memory known-identifier store.

Process-local implementation of KnownIdentifierStore used for local
development (STORE_BACKEND=memory) and as the default double in tests.
State is lost on restart.
"""

from threading import Lock
from typing import Collection, Dict, Iterable, Optional, Set

from DEDUP.core.exceptions import StoreError
from DEDUP.core.logging_config import get_logger
from DEDUP.core.settings import DYNAMODB_EXPONENT_RANGE, DYNAMODB_MAX_NUMBER_DIGITS
from DEDUP.services.extraction.value_extractor import Identifier
from DEDUP.services.storage.base import KnownIdentifierStore

logger = get_logger(__name__)


class InMemoryIdentifierStore(KnownIdentifierStore):
    """
    Thread-safe set-backed store.

    Enforces the same per-call batch limits and number limits as DynamoDB,
    so an upload gets the same outcome on either backend.

    Attributes:
        _known (Set[Identifier]): Every identifier inserted so far
        _lock (Lock): Guards _known
        lookup_calls (int): Number of batch_exists calls served
        insert_calls (int): Number of batch_insert calls served
    """

    max_number_digits = DYNAMODB_MAX_NUMBER_DIGITS
    number_exponent_range = DYNAMODB_EXPONENT_RANGE

    def __init__(self, initial: Optional[Iterable[Identifier]] = None):
        self._known: Set[Identifier] = set(initial or ())
        self._lock = Lock()
        self.lookup_calls = 0
        self.insert_calls = 0

        logger.info(f"Initialized InMemoryIdentifierStore with {len(self._known)} identifiers")

    def _check_size(self, operation: str, size: int, limit: int) -> None:
        if size > limit:
            raise StoreError(
                f"{operation} batch of {size} exceeds limit of {limit}",
                details={"operation": operation, "batch_size": size, "limit": limit}
            )

    async def batch_exists(self, keys: Collection[Identifier]) -> Set[Identifier]:
        self._check_size("batch_exists", len(keys), self.max_lookup_batch)
        with self._lock:
            self.lookup_calls += 1
            return {key for key in keys if key in self._known}

    async def batch_insert(self, items: Collection[Identifier]) -> None:
        self._check_size("batch_insert", len(items), self.max_write_batch)
        with self._lock:
            self.insert_calls += 1
            self._known.update(items)

    def snapshot(self) -> Set[Identifier]:
        """Copy of every stored identifier."""
        with self._lock:
            return set(self._known)

    def get_stats(self) -> Dict[str, int]:
        """
        Get statistics about current store state.

        Returns:
            Dict[str, int]: known_identifiers, lookup_calls, insert_calls
        """
        with self._lock:
            return {
                "known_identifiers": len(self._known),
                "lookup_calls": self.lookup_calls,
                "insert_calls": self.insert_calls,
            }
