"""Tests for PeriodicTask."""

import threading

from ..background import PeriodicTask


def test_runs_until_stopped():
    """Test the task ticks repeatedly until stop()."""
    ran = threading.Event()
    task = PeriodicTask("test-tick", 0.01, ran.set)

    task.start()
    try:
        assert ran.wait(timeout=2)
        assert task.is_running
    finally:
        task.stop()
    assert not task.is_running


def test_failures_do_not_stop_the_loop():
    """Test an exception in one tick does not end the loop."""
    calls = []
    second_call = threading.Event()

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first tick fails")
        second_call.set()

    task = PeriodicTask("test-flaky", 0.01, flaky)
    task.start()
    try:
        assert second_call.wait(timeout=2)
    finally:
        task.stop()


def test_non_positive_interval_disables_task():
    """Test interval <= 0 never starts a thread."""
    task = PeriodicTask("test-disabled", 0, lambda: None)

    task.start()

    assert not task.is_running
    task.stop()
