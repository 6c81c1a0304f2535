"""
Request Deduplicator (single-flight)

Coalesces concurrent fetches of the same uncached key:
1. First caller makes the actual provider call
2. Callers arriving while it is in flight wait for it
3. All callers receive the same result (or the same exception)

The in-flight entry is dropped as soon as the call settles; later callers
are served by the cache instead.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class InFlightRequest:
    """Tracks an in-flight request."""
    key: str
    event: threading.Event = field(default_factory=threading.Event)
    result: Any = None
    error: Optional[BaseException] = None
    waiters: int = 0


class RequestDeduplicator:
    """
    Thread-safe single-flight helper.

    Usage:
        dedup = RequestDeduplicator()
        quote = dedup.execute("quote:AAPL", lambda: fetch_quote("AAPL"))
    """

    def __init__(self):
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._lock = threading.Lock()
        self._stats = {
            "requests": 0,
            "deduplicated": 0,
            "calls": 0,
        }

    @property
    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {**self._stats, "in_flight": len(self._in_flight)}

    def execute(self, key: str, fetch_fn: Callable[[], Any], timeout: Optional[float] = None) -> Any:
        """
        Execute fetch_fn unless an identical request is already in flight.

        Raises:
            TimeoutError: waiting for the in-flight request timed out
            Exception: re-raises any exception from fetch_fn
        """
        with self._lock:
            self._stats["requests"] += 1
            existing = self._in_flight.get(key)
            if existing is not None:
                existing.waiters += 1
                self._stats["deduplicated"] += 1
                leader = False
                request = existing
            else:
                request = InFlightRequest(key=key)
                self._in_flight[key] = request
                self._stats["calls"] += 1
                leader = True

        if not leader:
            logger.debug(f"[Dedup] Waiting for in-flight request: {key}")
            if not request.event.wait(timeout=timeout):
                raise TimeoutError(f"Timed out waiting for {key}")
            if request.error is not None:
                raise request.error
            return request.result

        try:
            request.result = fetch_fn()
            return request.result
        except BaseException as e:
            request.error = e
            raise
        finally:
            with self._lock:
                self._in_flight.pop(key, None)
            request.event.set()

    def clear(self) -> None:
        """Clear all in-flight requests (for testing)."""
        with self._lock:
            self._in_flight.clear()
