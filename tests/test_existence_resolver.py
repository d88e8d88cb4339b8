"""Tests for the batched existence lookup stage."""

import pytest

from DEDUP.core.exceptions import ExistenceCheckError, RetryableStoreError, StoreError
from DEDUP.services.dedup.existence_resolver import ExistenceResolver
from DEDUP.services.storage.memory_store import InMemoryIdentifierStore

pytestmark = pytest.mark.anyio


async def test_returns_existing_subset():
    store = InMemoryIdentifierStore([7, 11, 500])
    resolver = ExistenceResolver(store, retry_delay=0)

    assert await resolver.resolve([5, 7, 9, 11]) == {7, 11}


async def test_empty_candidates_make_no_store_call(scripted_store):
    store = scripted_store()
    resolver = ExistenceResolver(store, retry_delay=0)

    assert await resolver.resolve([]) == set()
    assert store.calls == []


async def test_lookups_respect_batch_limit(scripted_store):
    candidates = list(range(250))
    store = scripted_store(initial=range(0, 250, 2))
    resolver = ExistenceResolver(store, batch_size=100, retry_delay=0)

    existing = await resolver.resolve(candidates)

    batches = store.calls_for("batch_exists")
    assert [len(batch) for batch in batches] == [100, 100, 50]
    assert sorted(key for batch in batches for key in batch) == candidates
    assert existing == set(range(0, 250, 2))


async def test_batch_size_capped_at_store_limit(scripted_store):
    store = scripted_store()
    resolver = ExistenceResolver(store, batch_size=500, retry_delay=0)
    assert resolver.batch_size == 100

    await resolver.resolve(list(range(150)))
    assert max(len(batch) for batch in store.calls_for("batch_exists")) == 100


async def test_concurrency_ceiling(scripted_store):
    store = scripted_store(delay=0.01)
    resolver = ExistenceResolver(store, batch_size=10, max_concurrency=3, retry_delay=0)

    await resolver.resolve(list(range(200)))

    assert len(store.calls_for("batch_exists")) == 20
    assert store.max_in_flight <= 3


async def test_result_is_subset_of_candidates(scripted_store):
    store = scripted_store(initial=[1], echo_extra=[42])
    resolver = ExistenceResolver(store, retry_delay=0)

    assert await resolver.resolve([1, 2, 3]) == {1}


async def test_transient_fault_is_retried(scripted_store):
    store = scripted_store(
        initial=[2],
        lookup_faults=[RetryableStoreError("throttled"), RetryableStoreError("throttled")],
    )
    resolver = ExistenceResolver(store, max_retries=5, retry_delay=0)

    assert await resolver.resolve([1, 2]) == {2}
    assert len(store.calls_for("batch_exists")) == 3


async def test_exhausted_retries_fail_the_stage(scripted_store):
    store = scripted_store(lookup_faults=[RetryableStoreError("throttled")] * 10)
    resolver = ExistenceResolver(store, max_retries=2, retry_delay=0)

    with pytest.raises(ExistenceCheckError) as exc_info:
        await resolver.resolve([1, 2, 3])

    details = exc_info.value.details
    assert details["stage"] == "resolving"
    assert details["batch_index"] == 1
    assert details["attempts"] == 3
    assert len(store.calls_for("batch_exists")) == 3


async def test_fatal_fault_is_not_retried(scripted_store):
    store = scripted_store(lookup_faults=[StoreError("access denied")])
    resolver = ExistenceResolver(store, max_retries=5, retry_delay=0)

    with pytest.raises(ExistenceCheckError) as exc_info:
        await resolver.resolve([1, 2, 3])

    assert exc_info.value.details["attempts"] == 1
    assert len(store.calls_for("batch_exists")) == 1


async def test_failure_in_one_batch_aborts_resolution(scripted_store):
    store = scripted_store(lookup_faults=[None, StoreError("access denied")])
    resolver = ExistenceResolver(store, batch_size=10, max_concurrency=1, retry_delay=0)

    with pytest.raises(ExistenceCheckError) as exc_info:
        await resolver.resolve(list(range(50)))

    assert exc_info.value.details["batch_index"] == 2
    assert len(store.calls_for("batch_exists")) == 2


def test_rejects_invalid_configuration():
    with pytest.raises(ValueError):
        ExistenceResolver(InMemoryIdentifierStore(), batch_size=0)
    with pytest.raises(ValueError):
        ExistenceResolver(InMemoryIdentifierStore(), max_concurrency=0)
