"""Pytest configuration and fixtures for the deduplication service tests."""

import asyncio
import os
import tempfile
from typing import Callable, Collection, Iterable, List, Optional, Set, Tuple

import pytest

# Set test environment variables before importing the app
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="dedup-uploads-"))
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("STORE_RETRY_DELAY_SEC", "0")
os.environ.setdefault("DISCONNECT_POLL_SEC", "0.05")

from DEDUP.services.storage.base import KnownIdentifierStore  # noqa: E402

Fault = Optional[BaseException]


class ScriptedStore(KnownIdentifierStore):
    """
    Store double with scripted faults and call tracking.

    Each call to batch_exists / batch_insert consumes the next entry of the
    matching fault script (None means "succeed"); once a script is exhausted
    every further call succeeds. A fault_for callable can instead pick a
    fault from the batch contents.

    Attributes:
        known (Set): Stored identifiers
        calls (List[Tuple[str, Tuple]]): (operation, batch) for every call
        max_in_flight (int): Highest number of overlapping calls observed
    """

    def __init__(
        self,
        initial: Iterable = (),
        lookup_faults: Iterable[Fault] = (),
        insert_faults: Iterable[Fault] = (),
        insert_fault_for: Optional[Callable[[Tuple], Fault]] = None,
        delay: float = 0.0,
        echo_extra: Collection = (),
    ):
        self.known: Set = set(initial)
        self.lookup_faults: List[Fault] = list(lookup_faults)
        self.insert_faults: List[Fault] = list(insert_faults)
        self.insert_fault_for = insert_fault_for
        self.delay = delay
        self.echo_extra = set(echo_extra)
        self.calls: List[Tuple[str, Tuple]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _enter(self, operation: str, batch: Collection) -> None:
        self.calls.append((operation, tuple(batch)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    async def batch_exists(self, keys):
        assert len(keys) <= self.max_lookup_batch
        await self._enter("batch_exists", keys)
        if self.lookup_faults:
            fault = self.lookup_faults.pop(0)
            if fault is not None:
                raise fault
        return {key for key in keys if key in self.known} | self.echo_extra

    async def batch_insert(self, items):
        assert len(items) <= self.max_write_batch
        await self._enter("batch_insert", items)
        fault = None
        if self.insert_fault_for is not None:
            fault = self.insert_fault_for(tuple(items))
        elif self.insert_faults:
            fault = self.insert_faults.pop(0)
        if fault is not None:
            raise fault
        self.known.update(items)

    def calls_for(self, operation: str) -> List[Tuple]:
        return [batch for op, batch in self.calls if op == operation]


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
def scripted_store() -> Callable[..., ScriptedStore]:
    """Factory for ScriptedStore instances."""
    return ScriptedStore


@pytest.fixture
def output_dir(tmp_path):
    """Per-test directory for result files."""
    path = tmp_path / "uploads"
    path.mkdir()
    return path
