"""
Retry Controller

Bounded exponential backoff around a single provider call:

    delay = min(base_delay * 2 ** attempt, max_delay)

Timeouts, 5xx and explicit rate limits are retried; 4xx and input errors
fail immediately without consuming retry budget. Whatever error finally
escapes is marked retryable=False so callers do not retry again themselves.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from .config import RetryConfig
from .errors import MarketDataError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def compute_backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2 ** attempt), max_delay)


def default_is_retryable(error: Exception) -> bool:
    if isinstance(error, MarketDataError):
        return error.retryable
    return False


class RetryController:

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryController":
        return cls(
            max_retries=config.max_retries,
            base_delay=config.base_delay_seconds,
            max_delay=config.max_delay_seconds,
        )

    def with_retry(
        self,
        operation: Callable[[], T],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
        description: str = "operation",
    ) -> T:
        """
        Run operation, retrying retryable failures with backoff.

        Raises:
            The last observed error, with retryable set to False when it is
            a MarketDataError.
        """
        is_retryable = is_retryable or default_is_retryable
        attempt = 0

        while True:
            try:
                return operation()
            except Exception as e:
                if not is_retryable(e):
                    _mark_final(e)
                    raise

                if attempt >= self.max_retries:
                    logger.warning(f"[Retry] {description} failed after {attempt + 1} attempts: {e}")
                    _mark_final(e)
                    raise

                delay = compute_backoff_delay(attempt, self.base_delay, self.max_delay)
                attempt += 1
                logger.info(f"[Retry] {description} attempt {attempt}/{self.max_retries} "
                            f"after {delay:.2f}s ({e})")
                time.sleep(delay)


def _mark_final(error: Exception) -> None:
    if isinstance(error, MarketDataError):
        error.retryable = False
