"""
Base Provider Client with Common Utilities

Provides shared functionality for all provider clients:
- One HTTP GET per call with a bounded timeout
- Mapping of transport/HTTP failures onto the error taxonomy
- Health tracking (consecutive failures, last error)
- Safe numeric conversions for loosely typed JSON
"""

import logging
import threading
import time
from abc import ABC
from datetime import datetime
from typing import Any, Dict, Optional

import requests

from ..errors import (
    MalformedResponseError, MarketDataError, ProviderAuthError, ProviderError,
    ProviderTimeoutError, RateLimitedError, SymbolNotFoundError,
)
from ..interfaces import ProviderStatus

logger = logging.getLogger(__name__)

USER_AGENT = "TechInvestor-Production/1.0"


def safe_float(value, default: Optional[float] = None) -> Optional[float]:
    """Safely convert a value to float."""
    if value is None or value == '' or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def safe_str(value, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


class HealthTracker:
    """Tracks consecutive failures for a provider."""

    def __init__(self, max_failures: int = 3):
        self._max_failures = max_failures
        self._consecutive_failures = 0
        self._last_failure_at: Optional[float] = None
        self._last_success_at: Optional[float] = None
        self._last_error: Optional[str] = None
        self._rate_limited_until: Optional[float] = None
        self._lock = threading.Lock()

    def mark_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._last_success_at = time.time()

    def mark_failure(self, error: Exception) -> None:
        with self._lock:
            self._consecutive_failures += 1
            self._last_failure_at = time.time()
            self._last_error = str(error)

    def mark_rate_limited(self, cooldown_seconds: float) -> None:
        with self._lock:
            self._rate_limited_until = time.time() + cooldown_seconds

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    @property
    def last_failure_at(self) -> Optional[float]:
        with self._lock:
            return self._last_failure_at

    @property
    def is_rate_limited(self) -> bool:
        with self._lock:
            return self._rate_limited_until is not None and time.time() < self._rate_limited_until

    def status(self) -> ProviderStatus:
        if self.is_rate_limited:
            return ProviderStatus.RATE_LIMITED
        failures = self.consecutive_failures
        if failures >= self._max_failures:
            return ProviderStatus.UNAVAILABLE
        if failures > 0:
            return ProviderStatus.DEGRADED
        return ProviderStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "consecutive_failures": self._consecutive_failures,
                "last_failure": _iso(self._last_failure_at),
                "last_success": _iso(self._last_success_at),
                "last_error": self._last_error,
            }


def _iso(ts: Optional[float]) -> Optional[str]:
    return datetime.fromtimestamp(ts).isoformat() if ts else None


class BaseProviderClient(ABC):
    """
    Base class for provider clients.

    Subclasses build request params and translate the JSON body; this class
    owns the HTTP call and the failure classification. Thread-safe.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        max_failures: int = 3,
        rate_limit_cooldown: float = 60.0,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip('/')
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({'User-Agent': USER_AGENT})
        self._health = HealthTracker(max_failures=max_failures)
        self._rate_limit_cooldown = rate_limit_cooldown

    @property
    def consecutive_failures(self) -> int:
        return self._health.consecutive_failures

    @property
    def last_failure_at(self) -> Optional[float]:
        return self._health.last_failure_at

    def _get(self, url: str, params: Dict[str, Any]) -> Any:
        """
        Perform exactly one GET and return the decoded JSON body.

        Raises:
            ProviderTimeoutError, ProviderError, ProviderAuthError,
            RateLimitedError, MalformedResponseError
        """
        try:
            response = self._session.get(url, params=params, timeout=self._timeout)
        except requests.exceptions.Timeout:
            raise self._failed(ProviderTimeoutError(
                f"Request timeout - {self.name} took longer than {self._timeout}s"))
        except requests.exceptions.RequestException as e:
            raise self._failed(ProviderError(f"Network error: {e}", provider=self.name))

        status = response.status_code
        if status == 429:
            self._health.mark_rate_limited(self._rate_limit_cooldown)
            raise self._failed(RateLimitedError(f"Rate limit exceeded - too many requests to {self.name}"))
        if status in (401, 403):
            raise self._failed(ProviderAuthError(
                f"Invalid API key - check your {self.name} credentials",
                status_code=status, provider=self.name))
        if not 200 <= status < 300:
            raise self._failed(ProviderError(
                f"{self.name} API error: {status} {response.reason or ''}".strip(),
                status_code=status, provider=self.name))

        try:
            return response.json()
        except ValueError:
            raise self._failed(MalformedResponseError(
                f"{self.name} returned a non-JSON body", provider=self.name))

    def _failed(self, error: MarketDataError) -> MarketDataError:
        """Record a failure and hand the error back for raising."""
        if isinstance(error, RateLimitedError):
            self._health.mark_rate_limited(self._rate_limit_cooldown)
            logger.warning(f"[{self.name}] Rate limited")
        elif isinstance(error, SymbolNotFoundError):
            # Unknown symbols say nothing about provider health
            logger.debug(f"[{self.name}] {error}")
            return error
        else:
            logger.warning(f"[{self.name}] {error}")
        self._health.mark_failure(error)
        return error

    def _succeeded(self) -> None:
        self._health.mark_success()

    def health_check(self) -> ProviderStatus:
        if not self._api_key:
            return ProviderStatus.UNAVAILABLE
        return self._health.status()

    def get_status_info(self) -> Dict[str, Any]:
        """Get detailed status information for monitoring."""
        return {
            "health": self.health_check().value,
            "rate_limited": self._health.is_rate_limited,
            **self._health.to_dict(),
        }
