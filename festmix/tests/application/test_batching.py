import asyncio

import pytest

from festmix.application.batching import chunked, run_batched
from festmix.crosscutting.metrics import MetricsCollector


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested pauses."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestChunked:

    def test_splits_into_contiguous_groups(self):
        assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    def test_empty_input(self):
        assert chunked([], 3) == []

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            chunked([1], 0)


class TestRunBatched:
    """Tests for the rate-limited batch runner."""

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        async def operation(n):
            # Later items finish first
            await asyncio.sleep(0.001 * (5 - n))
            return n * 10

        results = await run_batched([1, 2, 3, 4], operation, batch_size=2, delay_ms=0)

        assert results == [10, 20, 30, 40]

    @pytest.mark.asyncio
    async def test_delay_only_between_groups(self):
        sleep = SleepRecorder()

        async def operation(n):
            return n

        await run_batched(list(range(10)), operation, batch_size=3, delay_ms=1000, sleep=sleep)

        # 4 groups, 3 pauses, none after the last group
        assert sleep.calls == [1.0, 1.0, 1.0]

    @pytest.mark.asyncio
    async def test_single_group_has_no_delay(self):
        sleep = SleepRecorder()

        async def operation(n):
            return n

        await run_batched([1, 2], operation, batch_size=5, delay_ms=500, sleep=sleep)

        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_empty_items_never_calls_operation(self):
        sleep = SleepRecorder()
        calls = []

        async def operation(n):
            calls.append(n)
            return n

        results = await run_batched([], operation, batch_size=3, delay_ms=1000, sleep=sleep)

        assert results == []
        assert calls == []
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_group_runs_concurrently(self):
        in_flight = 0
        peak = 0

        async def operation(n):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return n

        await run_batched(list(range(6)), operation, batch_size=3, delay_ms=0)

        assert peak == 3

    @pytest.mark.asyncio
    async def test_records_metrics_per_group(self):
        metrics = MetricsCollector(request_id="req", platform="spotify")
        sleep = SleepRecorder()

        async def operation(n):
            return None if n % 2 else [n]

        await run_batched([0, 1, 2, 3, 4], operation, batch_size=2, delay_ms=250,
                          sleep=sleep, metrics=metrics, phase="search")

        phase = metrics.get_phase("search")
        assert phase.total_batches == 3
        assert phase.total_items == 5
        assert phase.total_failures == 2
        assert phase.total_delays == 2
        assert phase.total_delay_ms == 500

    @pytest.mark.asyncio
    async def test_escaping_exception_propagates(self):
        async def operation(n):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await run_batched([1], operation, batch_size=1, delay_ms=0)
