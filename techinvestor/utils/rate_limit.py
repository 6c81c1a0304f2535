"""
Per-client inbound rate limiting.

Each client (keyed by remote address) gets its own fixed window, so one busy
caller cannot spend the upstream quota for everybody else.
"""

import logging
import threading
import time
from typing import Dict, Tuple

from ..services.market_data.rate_limiter import RateLimitWindow

logger = logging.getLogger(__name__)


class ClientRateLimiter:
    """
    Fixed-window limiter with one window per client.

    Usage:
        limiter = ClientRateLimiter(limit=50, window_seconds=60)
        allowed, retry_after = limiter.hit(request.remote_addr)
    """

    def __init__(self, limit: int, window_seconds: float, max_clients: int = 10000):
        self.limit = limit
        self.window_seconds = window_seconds
        self._max_clients = max_clients
        self._windows: Dict[str, RateLimitWindow] = {}
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._rejected = 0

    @property
    def enabled(self) -> bool:
        return self.limit > 0

    def hit(self, client_id: str) -> Tuple[bool, int]:
        """
        Count one request for `client_id`.

        Returns:
            (allowed, retry_after) where retry_after is whole seconds until the
            client's window resets, 0 when the request is allowed.
        """
        if not self.enabled:
            return True, 0

        client_id = client_id or 'unknown'
        now = time.monotonic()
        with self._lock:
            window = self._windows.get(client_id)
            if window is None:
                if len(self._windows) >= self._max_clients:
                    self._prune(now)
                window = RateLimitWindow(self.limit, self.window_seconds)
                self._windows[client_id] = window
            self._last_seen[client_id] = now

        if window.try_acquire():
            return True, 0

        with self._lock:
            self._rejected += 1
        retry_after = max(1, int(window.seconds_until_reset() + 0.999))
        logger.info(f"[RateLimit] Client {client_id} over {self.limit}/{self.window_seconds:g}s, "
                    f"retry after {retry_after}s")
        return False, retry_after

    def _prune(self, now: float) -> None:
        """Drop clients idle for a full window; if none are idle, drop the oldest."""
        idle = [cid for cid, seen in self._last_seen.items() if now - seen >= self.window_seconds]
        if not idle:
            idle = [min(self._last_seen, key=self._last_seen.get)]
        for cid in idle:
            self._windows.pop(cid, None)
            self._last_seen.pop(cid, None)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._last_seen.clear()

    @property
    def stats(self) -> Dict[str, float]:
        with self._lock:
            return {
                'limit': self.limit,
                'window_seconds': self.window_seconds,
                'clients': len(self._windows),
                'rejected': self._rejected,
            }
