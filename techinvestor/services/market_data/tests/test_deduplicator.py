"""Unit tests for the single-flight request deduplicator."""

import threading
import time

import pytest

from ..deduplicator import RequestDeduplicator


def _run_concurrently(fn, count):
    results, errors = [], []

    def worker():
        try:
            results.append(fn())
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    return results, errors


class TestRequestDeduplicator:
    """Tests for single-flight request coalescing."""

    def test_concurrent_callers_share_one_call(self):
        """Test concurrent identical fetches run the function once."""
        dedup = RequestDeduplicator()
        calls = []
        release = threading.Event()

        def fetch():
            calls.append(1)
            release.wait(timeout=5)
            return "quote"

        def call():
            return dedup.execute("quote:AAPL", fetch)

        leader = threading.Thread(target=call)
        leader.start()
        while dedup.stats["in_flight"] == 0:
            time.sleep(0.001)

        waiter_results = []
        waiters = [threading.Thread(target=lambda: waiter_results.append(call())) for _ in range(3)]
        for t in waiters:
            t.start()
        while dedup.stats["deduplicated"] < 3:
            time.sleep(0.001)
        release.set()

        leader.join(timeout=5)
        for t in waiters:
            t.join(timeout=5)

        assert len(calls) == 1
        assert waiter_results == ["quote", "quote", "quote"]
        assert dedup.stats == {"requests": 4, "deduplicated": 3, "calls": 1, "in_flight": 0}

    def test_waiters_receive_the_same_exception(self):
        """Test every waiter sees the leader's exception."""
        dedup = RequestDeduplicator()

        def fetch():
            time.sleep(0.1)
            raise ValueError("upstream down")

        results, errors = _run_concurrently(lambda: dedup.execute("quote:AAPL", fetch), 4)

        assert results == []
        assert len(errors) == 4
        assert all(isinstance(e, ValueError) for e in errors)

    def test_settled_calls_are_not_reused(self):
        """Test a finished call is not handed to later callers."""
        dedup = RequestDeduplicator()
        counter = iter(range(10))

        first = dedup.execute("quote:AAPL", lambda: next(counter))
        second = dedup.execute("quote:AAPL", lambda: next(counter))

        assert (first, second) == (0, 1)
        assert dedup.stats["in_flight"] == 0

    def test_different_keys_do_not_coalesce(self):
        dedup = RequestDeduplicator()

        assert dedup.execute("quote:AAPL", lambda: "a") == "a"
        assert dedup.execute("quote:MSFT", lambda: "m") == "m"
        assert dedup.stats["calls"] == 2

    def test_waiter_timeout(self):
        """Test a waiter gives up after its timeout."""
        dedup = RequestDeduplicator()
        release = threading.Event()
        leader = threading.Thread(target=lambda: dedup.execute("k", lambda: release.wait(5)))
        leader.start()
        while dedup.stats["in_flight"] == 0:
            time.sleep(0.001)

        with pytest.raises(TimeoutError):
            dedup.execute("k", lambda: None, timeout=0.01)

        release.set()
        leader.join(timeout=5)
