"""Explicitly owned background tickers (cache sweep, health monitor)."""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a callable every interval seconds on a daemon thread until stopped."""

    def __init__(self, name: str, interval_seconds: float, fn: Callable[[], object]):
        self.name = name
        self.interval_seconds = interval_seconds
        self._fn = fn
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running or self.interval_seconds <= 0:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self._fn()
            except Exception as e:
                logger.error(f"[{self.name}] periodic task failed: {e}")
