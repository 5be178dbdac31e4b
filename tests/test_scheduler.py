import asyncio
import pytest
import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from scheduler import RetriesExhausted, run_concurrently, run_with_retries


class Tracker:
    """Records how many work items run at the same time."""

    def __init__(self):
        self.running  = 0
        self.peak     = 0
        self.started  = []
        self.finished = []

    def item(self, name, delay=0.01, fail=False):
        async def work():
            self.started.append(name)
            self.running += 1
            self.peak = max(self.peak, self.running)
            try:
                await asyncio.sleep(delay)
                if fail:
                    raise RuntimeError(f"{name} failed")
                return name
            finally:
                self.running -= 1
                self.finished.append(name)
        return work



class TestRunConcurrently:

    @pytest.mark.parametrize("n, limit", [(1, 1), (5, 1), (10, 3), (7, 7), (3, 10)])
    def test_never_exceeds_limit(self, n, limit):
        tracker = Tracker()
        items = [tracker.item(i) for i in range(n)]
        asyncio.run(run_concurrently(items, limit))
        assert tracker.peak <= limit
        assert tracker.peak == min(n, limit)

    def test_all_items_settle_before_return(self):
        tracker = Tracker()
        items = [tracker.item(i, delay=0.001 * (10 - i)) for i in range(10)]
        asyncio.run(run_concurrently(items, 4))
        assert sorted(tracker.finished) == list(range(10))
        assert tracker.running == 0

    def test_results_in_submission_order(self):
        tracker = Tracker()
        items = [tracker.item(i, delay=0.001 * (5 - i)) for i in range(5)]
        assert asyncio.run(run_concurrently(items, 5)) == [0, 1, 2, 3, 4]

    def test_completion_order_not_guaranteed(self):
        tracker = Tracker()
        items = [tracker.item("slow", delay=0.05), tracker.item("fast", delay=0.001)]
        asyncio.run(run_concurrently(items, 2))
        assert tracker.finished == ["fast", "slow"]

    def test_admits_in_submission_order(self):
        tracker = Tracker()
        items = [tracker.item(i) for i in range(6)]
        asyncio.run(run_concurrently(items, 2))
        assert tracker.started == list(range(6))

    def test_empty_sequence(self):
        assert asyncio.run(run_concurrently([], 3)) == []

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            asyncio.run(run_concurrently([], 0))

    def test_failure_propagates(self):
        tracker = Tracker()
        items = [tracker.item("ok"), tracker.item("bad", fail=True)]
        with pytest.raises(RuntimeError, match="bad failed"):
            asyncio.run(run_concurrently(items, 2))

    def test_failure_stops_admission_but_drains_in_flight(self):
        tracker = Tracker()
        items = [
            tracker.item("bad", delay=0.001, fail=True),
            tracker.item("long", delay=0.05),
            tracker.item("queued-1"),
            tracker.item("queued-2"),
        ]
        with pytest.raises(RuntimeError, match="bad failed"):
            asyncio.run(run_concurrently(items, 2))
        assert "long" in tracker.finished
        assert "queued-1" not in tracker.started
        assert "queued-2" not in tracker.started
        assert tracker.running == 0

    def test_failure_in_last_batch_propagates(self):
        tracker = Tracker()
        items = [tracker.item("a"), tracker.item("b"), tracker.item("c", fail=True)]
        with pytest.raises(RuntimeError, match="c failed"):
            asyncio.run(run_concurrently(items, 5))
        assert sorted(tracker.finished) == ["a", "b", "c"]



class TestRunWithRetries:

    def _flaky(self, failures, calls):
        async def op():
            calls.append(1)
            if len(calls) <= failures:
                raise ConnectionError("navigation failed")
            return "ok"
        return op

    def test_success_first_try(self):
        calls = []
        assert asyncio.run(run_with_retries(self._flaky(0, calls), "https://x", retries=2)) == "ok"
        assert len(calls) == 1

    def test_recovers_after_transient_failures(self):
        calls = []
        assert asyncio.run(run_with_retries(self._flaky(2, calls), "https://x", retries=2)) == "ok"
        assert len(calls) == 3

    @pytest.mark.parametrize("retries", [0, 1, 2, 5])
    def test_exactly_retries_plus_one_attempts(self, retries):
        calls = []
        with pytest.raises(RetriesExhausted):
            asyncio.run(run_with_retries(self._flaky(100, calls), "https://x", retries=retries))
        assert len(calls) == retries + 1

    def test_exhaustion_carries_target_and_attempts(self):
        calls = []
        with pytest.raises(RetriesExhausted) as info:
            asyncio.run(run_with_retries(self._flaky(100, calls), "https://www.target.com/p/x", retries=2))
        assert info.value.target == "https://www.target.com/p/x"
        assert info.value.attempts == 3
        assert isinstance(info.value.__cause__, ConnectionError)
        assert "Max retries exceeded" in str(info.value)

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            asyncio.run(run_with_retries(self._flaky(0, []), "https://x", retries=-1))

    def test_backoff_sleeps_between_attempts(self, monkeypatch):
        waits = []
        real_sleep = asyncio.sleep

        async def fake_sleep(seconds):
            waits.append(seconds)
            await real_sleep(0)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        calls = []
        with pytest.raises(RetriesExhausted):
            asyncio.run(run_with_retries(self._flaky(100, calls), "https://x", retries=3, backoff=0.5))
        assert waits == [0.5, 1.0, 2.0]

    def test_exhausted_item_aborts_batch(self):
        calls = []

        async def unit():
            return await run_with_retries(self._flaky(100, calls), "https://x", retries=1)

        with pytest.raises(RetriesExhausted):
            asyncio.run(run_concurrently([unit], 1))
        assert len(calls) == 2
