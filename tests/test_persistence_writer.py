"""Tests for batched, retrying persistence."""

import pytest

from DEDUP.core.exceptions import PersistenceError, RetryableStoreError, StoreError
from DEDUP.services.dedup.persistence_writer import PersistenceWriter, WriteReport
from DEDUP.services.storage.memory_store import InMemoryIdentifierStore

pytestmark = pytest.mark.anyio


async def test_writes_everything_in_bounded_batches(scripted_store):
    store = scripted_store()
    writer = PersistenceWriter(store, batch_size=25, retry_delay=0)

    report = await writer.write(list(range(60)))

    assert [len(batch) for batch in store.calls_for("batch_insert")] == [25, 25, 10]
    assert store.known == set(range(60))
    assert report == WriteReport(
        batches_total=3, batches_written=3, identifiers_written=60, retries=0
    )


async def test_empty_input_makes_no_store_call(scripted_store):
    store = scripted_store()
    writer = PersistenceWriter(store, retry_delay=0)

    assert await writer.write([]) == WriteReport()
    assert store.calls == []


async def test_batch_size_capped_at_store_limit():
    store = InMemoryIdentifierStore()
    writer = PersistenceWriter(store, batch_size=100, retry_delay=0)
    assert writer.batch_size == 25

    await writer.write(list(range(80)))
    assert store.snapshot() == set(range(80))
    assert store.get_stats()["insert_calls"] == 4


async def test_concurrency_ceiling(scripted_store):
    store = scripted_store(delay=0.01)
    writer = PersistenceWriter(store, batch_size=5, max_concurrency=2, retry_delay=0)

    await writer.write(list(range(50)))

    assert len(store.calls_for("batch_insert")) == 10
    assert store.max_in_flight <= 2


async def test_transient_fault_retries_same_batch(scripted_store):
    store = scripted_store(insert_faults=[RetryableStoreError("throttled")])
    writer = PersistenceWriter(store, batch_size=25, max_retries=3, retry_delay=0)

    report = await writer.write([1, 2, 3])

    assert store.calls_for("batch_insert") == [(1, 2, 3), (1, 2, 3)]
    assert store.known == {1, 2, 3}
    assert report.retries == 1


async def test_retry_replay_is_idempotent():
    store = InMemoryIdentifierStore([1, 2])
    writer = PersistenceWriter(store, retry_delay=0)

    await writer.write([1, 2, 3])
    await writer.write([3])

    assert store.snapshot() == {1, 2, 3}


async def test_exhausted_retries_fail_the_stage(scripted_store):
    store = scripted_store(insert_faults=[RetryableStoreError("throttled")] * 10)
    writer = PersistenceWriter(store, max_retries=2, retry_delay=0)

    with pytest.raises(PersistenceError) as exc_info:
        await writer.write([1, 2, 3])

    details = exc_info.value.details
    assert details["stage"] == "persisting"
    assert details["attempts"] == 3
    assert len(store.calls_for("batch_insert")) == 3
    assert store.known == set()


async def test_fatal_fault_is_not_retried(scripted_store):
    store = scripted_store(insert_faults=[StoreError("validation error")])
    writer = PersistenceWriter(store, max_retries=5, retry_delay=0)

    with pytest.raises(PersistenceError) as exc_info:
        await writer.write([1, 2])

    assert exc_info.value.details["attempts"] == 1
    assert len(store.calls_for("batch_insert")) == 1


async def test_committed_batches_stay_written_after_failure(scripted_store):
    """Batches before the failing one are kept; later ones never start."""
    items = list(range(100))
    store = scripted_store(insert_faults=[None, None, None, StoreError("access denied")])
    writer = PersistenceWriter(store, batch_size=10, max_concurrency=1, retry_delay=0)

    with pytest.raises(PersistenceError) as exc_info:
        await writer.write(items)

    assert exc_info.value.details["batch_index"] == 4
    assert exc_info.value.details["batches_written"] == 3
    assert store.known == set(range(30))
    assert len(store.calls_for("batch_insert")) == 4


def test_rejects_invalid_configuration():
    with pytest.raises(ValueError):
        PersistenceWriter(InMemoryIdentifierStore(), batch_size=0)
