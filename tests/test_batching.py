"""Tests for chunking, bounded fan-out and bounded retry."""

import asyncio

import pytest

from DEDUP.core.exceptions import RetryableStoreError, StoreError
from DEDUP.services.dedup.batching import (
    RetriesExhausted,
    chunked,
    retry_batch,
    run_batches,
)


class TestChunked:

    @pytest.mark.parametrize("count, size, expected_sizes", [
        (0, 100, []),
        (1, 100, [1]),
        (100, 100, [100]),
        (101, 100, [100, 1]),
        (250, 25, [25] * 10),
        (251, 25, [25] * 10 + [1]),
    ])
    def test_batch_sizes(self, count, size, expected_sizes):
        batches = chunked(list(range(count)), size)
        assert [len(batch) for batch in batches] == expected_sizes

    def test_order_and_coverage(self):
        items = list(range(57))
        batches = chunked(items, 10)
        assert [item for batch in batches for item in batch] == items

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            chunked([1, 2], 0)


@pytest.mark.anyio
class TestRetryBatch:

    async def test_success_first_attempt(self):
        async def operation():
            return "ok"

        outcome = await retry_batch(operation, max_retries=3, retry_delay=0, label="batch 1/1")
        assert outcome.value == "ok"
        assert outcome.retries == 0

    async def test_transient_faults_then_success(self):
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise RetryableStoreError("throttled")
            return "ok"

        outcome = await retry_batch(operation, max_retries=5, retry_delay=0, label="batch 1/1")
        assert outcome.value == "ok"
        assert outcome.retries == 2
        assert len(attempts) == 3

    async def test_exhausts_after_max_retries(self):
        attempts = []

        async def operation():
            attempts.append(1)
            raise RetryableStoreError("throttled")

        with pytest.raises(RetriesExhausted) as exc_info:
            await retry_batch(operation, max_retries=2, retry_delay=0, label="batch 1/1")
        assert exc_info.value.attempts == 3
        assert len(attempts) == 3
        assert exc_info.value.last_error.message == "throttled"

    async def test_zero_retries_means_single_attempt(self):
        attempts = []

        async def operation():
            attempts.append(1)
            raise RetryableStoreError("throttled")

        with pytest.raises(RetriesExhausted):
            await retry_batch(operation, max_retries=0, retry_delay=0, label="batch 1/1")
        assert len(attempts) == 1

    async def test_fatal_error_is_not_retried(self):
        attempts = []

        async def operation():
            attempts.append(1)
            raise StoreError("access denied")

        with pytest.raises(StoreError):
            await retry_batch(operation, max_retries=5, retry_delay=0, label="batch 1/1")
        assert len(attempts) == 1


@pytest.mark.anyio
class TestRunBatches:

    async def test_results_in_batch_order(self):
        async def worker(index, batch):
            # Later batches finish first
            await asyncio.sleep(0.01 * (5 - index))
            return (index, sum(batch))

        results = await run_batches(
            [[1], [2, 2], [3], [4, 4]], worker, max_concurrency=4, label="test"
        )
        assert results == [(1, 1), (2, 4), (3, 3), (4, 8)]

    async def test_concurrency_ceiling(self):
        in_flight = 0
        peak = 0

        async def worker(index, batch):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return index

        results = await run_batches(
            [[i] for i in range(20)], worker, max_concurrency=3, label="test"
        )
        assert results == list(range(1, 21))
        assert peak == 3

    async def test_empty_input(self):
        async def worker(index, batch):
            raise AssertionError("never called")

        assert await run_batches([], worker, max_concurrency=2, label="test") == []

    async def test_failure_skips_waiting_batches(self):
        started = []

        async def worker(index, batch):
            started.append(index)
            if index == 2:
                raise StoreError("boom")
            return index

        with pytest.raises(StoreError):
            await run_batches(
                [[i] for i in range(6)], worker, max_concurrency=1, label="test"
            )
        assert started == [1, 2]

    async def test_failure_cancels_in_flight_batches(self):
        cancelled = []

        async def worker(index, batch):
            if index == 1:
                await asyncio.sleep(0.01)
                raise StoreError("boom")
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(index)
                raise

        with pytest.raises(StoreError):
            await run_batches([[1], [2], [3]], worker, max_concurrency=3, label="test")
        assert sorted(cancelled) == [2, 3]

    async def test_caller_cancellation_propagates(self):
        cancelled = []

        async def worker(index, batch):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(index)
                raise

        task = asyncio.ensure_future(
            run_batches([[1], [2]], worker, max_concurrency=2, label="test")
        )
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert sorted(cancelled) == [1, 2]

    async def test_rejects_non_positive_concurrency(self):
        async def worker(index, batch):
            return index

        with pytest.raises(ValueError):
            await run_batches([[1]], worker, max_concurrency=0, label="test")
