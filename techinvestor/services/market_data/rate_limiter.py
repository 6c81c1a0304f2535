"""
Rate Limiter / Request Queue

Serializes outbound calls to one upstream provider so the aggregate call
rate never exceeds that provider's quota.

- RateLimitWindow: fixed-window call counter (callCount <= quota per window)
- RequestQueue: FIFO of deferred provider calls, drained by a single
  background thread at a fixed cadence, with bounded depth for backpressure

Callers block in admit() until the drain thread has run their operation.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Optional

from .errors import RateLimitedError, ServiceUnavailableError

logger = logging.getLogger(__name__)


class RateLimitWindow:
    """Per-provider fixed window. All mutations happen under one lock."""

    def __init__(self, quota_per_window: int, window_seconds: float):
        self._quota = quota_per_window
        self._window_seconds = window_seconds
        self._call_count = 0
        self._window_start = time.monotonic()
        self._lock = threading.Lock()

    @property
    def quota(self) -> int:
        return self._quota

    def _roll(self, now: float) -> None:
        if now >= self._window_start + self._window_seconds:
            self._window_start = now
            self._call_count = 0

    def try_acquire(self) -> bool:
        """Count one call if the window has room. Returns False when exhausted."""
        with self._lock:
            self._roll(time.monotonic())
            if self._call_count < self._quota:
                self._call_count += 1
                return True
            return False

    def exhaust(self) -> None:
        """Fill the current window after the provider signalled a rate limit."""
        with self._lock:
            self._roll(time.monotonic())
            self._call_count = max(self._call_count, self._quota)

    def seconds_until_reset(self) -> float:
        with self._lock:
            return max(0.0, self._window_start + self._window_seconds - time.monotonic())

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            self._roll(time.monotonic())
            return {
                'call_count': self._call_count,
                'quota': self._quota,
                'window_seconds': self._window_seconds,
                'resets_in': round(max(0.0, self._window_start + self._window_seconds - time.monotonic()), 3),
            }


@dataclass
class QueuedRequest:
    """A deferred provider call waiting for admission."""
    operation: Callable[[], Any]
    future: Future = field(default_factory=Future)
    enqueued_at: float = field(default_factory=time.monotonic)


class RequestQueue:
    """
    FIFO request queue for a single provider.

    Usage:
        queue = RequestQueue("finnhub", RateLimitWindow(55, 60), min_interval=1.0)
        queue.start()
        quote = queue.admit(lambda: client.quote("AAPL"))
        queue.stop()
    """

    def __init__(
        self,
        name: str,
        window: RateLimitWindow,
        min_interval: float = 1.0,
        max_depth: int = 1000,
        tick_seconds: float = 0.1,
    ):
        self.name = name
        self._window = window
        self._min_interval = min_interval
        self._max_depth = max_depth
        self._tick_seconds = tick_seconds

        self._pending: Deque[QueuedRequest] = deque()
        self._condition = threading.Condition()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stats = {
            "submitted": 0,
            "processed": 0,
            "failed": 0,
            "rejected": 0,
        }
        self._total_wait = 0.0
        self._max_wait = 0.0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def depth(self) -> int:
        with self._condition:
            return len(self._pending)

    @property
    def window(self) -> RateLimitWindow:
        return self._window

    @property
    def stats(self) -> Dict[str, Any]:
        with self._condition:
            admitted = self._stats["processed"] + self._stats["failed"]
            return {
                **self._stats,
                "avg_wait_ms": round(self._total_wait / admitted * 1000, 1) if admitted else 0.0,
                "max_wait_ms": round(self._max_wait * 1000, 1),
                "depth": len(self._pending),
                "max_depth": self._max_depth,
                "running": self._running,
                "window": self._window.snapshot(),
            }

    def start(self, timeout: float = 5.0) -> None:
        """
        Start the drain thread.

        A drain thread left over from stop() may still be inside a slow
        upstream call; it is given `timeout` seconds to finish. Two drain
        threads must never share the window and the pending deque.

        Raises:
            ServiceUnavailableError: the previous drain thread is still running
        """
        if self._running:
            return

        previous = self._thread
        if previous is not None and previous is not threading.current_thread():
            previous.join(timeout=timeout)
            if previous.is_alive():
                raise ServiceUnavailableError(
                    f"{self.name} request queue is still finishing an in-flight request")
        self._thread = None

        self._stop_event.clear()
        self._running = True
        self._thread = threading.Thread(
            target=self._drain_loop,
            name=f"RequestQueue-{self.name}",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"[RateLimit] {self.name} queue started "
                    f"(quota {self._window.quota}, interval {self._min_interval:.2f}s)")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop draining and fail whatever is still queued."""
        if not self._running:
            return

        with self._condition:
            self._running = False
            self._stop_event.set()
            abandoned = list(self._pending)
            self._pending.clear()
            self._condition.notify_all()

        for request in abandoned:
            if request.future.set_running_or_notify_cancel():
                request.future.set_exception(ServiceUnavailableError(
                    f"{self.name} request queue shut down", retryable=False))

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                # Kept so start() can wait for it
                logger.warning(f"[RateLimit] {self.name} drain thread still busy after {timeout}s")
            else:
                self._thread = None
        logger.info(f"[RateLimit] {self.name} queue stopped ({len(abandoned)} pending requests failed)")

    def submit(self, operation: Callable[[], Any]) -> Future:
        """
        Enqueue an operation.

        Raises:
            RateLimitedError: queue is at max depth
            ServiceUnavailableError: queue is not running
        """
        with self._condition:
            if not self._running:
                raise ServiceUnavailableError(f"{self.name} request queue is not running", retryable=False)
            if len(self._pending) >= self._max_depth:
                self._stats["rejected"] += 1
                raise RateLimitedError("Request queue is full. Please try again later.")

            request = QueuedRequest(operation=operation)
            self._pending.append(request)
            self._stats["submitted"] += 1
            self._condition.notify()
            return request.future

    def admit(self, operation: Callable[[], Any]) -> Any:
        """Enqueue and wait for the operation's result (or its exception)."""
        return self.submit(operation).result()

    def _next_request(self) -> Optional[QueuedRequest]:
        """Wait for work. Returns the head without removing it."""
        with self._condition:
            while not self._pending and not self._stop_event.is_set():
                self._condition.wait(timeout=self._tick_seconds)
            if self._stop_event.is_set():
                return None
            return self._pending[0]

    def _drain_loop(self) -> None:
        while not self._stop_event.is_set():
            request = self._next_request()
            if request is None:
                break

            if request.future.cancelled():
                self._pop(request)
                continue

            if not self._window.try_acquire():
                wait = min(self._window.seconds_until_reset(), self._tick_seconds * 10) or self._tick_seconds
                logger.debug(f"[RateLimit] {self.name} quota exhausted, waiting {wait:.2f}s "
                             f"({self.depth} queued)")
                self._stop_event.wait(wait)
                continue

            if not self._pop(request):
                continue
            self._execute(request)

            if self._min_interval > 0:
                self._stop_event.wait(self._min_interval)

    def _pop(self, request: QueuedRequest) -> bool:
        with self._condition:
            if self._pending and self._pending[0] is request:
                self._pending.popleft()
                return True
            return False

    def _execute(self, request: QueuedRequest) -> None:
        if not request.future.set_running_or_notify_cancel():
            return

        waited = time.monotonic() - request.enqueued_at
        with self._condition:
            self._total_wait += waited
            self._max_wait = max(self._max_wait, waited)

        try:
            result = request.operation()
        except RateLimitedError as e:
            self._window.exhaust()
            self._record("failed")
            logger.warning(f"[RateLimit] {self.name} signalled rate limit, pausing until window resets")
            request.future.set_exception(e)
        except Exception as e:
            # Resolve the caller and keep draining
            self._record("failed")
            request.future.set_exception(e)
        else:
            self._record("processed")
            request.future.set_result(result)

    def _record(self, stat: str) -> None:
        with self._condition:
            self._stats[stat] += 1
