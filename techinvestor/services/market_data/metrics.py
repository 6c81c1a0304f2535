"""
Market Data Metrics - Statistics and Monitoring

Tracks market data operations for the /stats and /health endpoints:
- Per-provider call tracking and latency
- Per-data-type cache hit and fallback rates
- Ring buffer of recent calls
- Structured JSON log line for every failed call
"""

import json
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Any, Deque, Dict, List, Optional

from .interfaces import DataType

logger = logging.getLogger(__name__)


class CallResult(Enum):
    """Result of a data fetch call."""
    SUCCESS = "success"
    CACHE_HIT = "cache_hit"
    FALLBACK = "fallback"       # Succeeded with fallback provider
    FAILURE = "failure"


@dataclass
class CallRecord:
    """Record of a single data fetch operation."""
    timestamp: datetime
    data_type: DataType
    key: str
    providers_tried: List[str]
    provider_used: Optional[str]
    result: CallResult
    latency_ms: float
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'data_type': self.data_type.value,
            'key': self.key,
            'providers_tried': self.providers_tried,
            'provider_used': self.provider_used,
            'result': self.result.value,
            'latency_ms': round(self.latency_ms, 2),
            'error_type': self.error_type,
            'error_message': self.error_message,
        }


@dataclass
class ProviderMetrics:
    """Aggregated metrics for a single provider."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    total_latency_ms: float = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    last_success_time: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return (self.successful_calls / self.total_calls) * 100

    @property
    def avg_latency_ms(self) -> float:
        if self.successful_calls == 0:
            return 0.0
        return self.total_latency_ms / self.successful_calls

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_calls': self.total_calls,
            'successful_calls': self.successful_calls,
            'failed_calls': self.failed_calls,
            'success_rate': round(self.success_rate, 2),
            'avg_latency_ms': round(self.avg_latency_ms, 2),
            'last_error': self.last_error,
            'last_error_time': self.last_error_time.isoformat() if self.last_error_time else None,
            'last_success_time': self.last_success_time.isoformat() if self.last_success_time else None,
        }


@dataclass
class DataTypeMetrics:
    """Aggregated metrics for a single data type."""
    total_calls: int = 0
    cache_hits: int = 0
    fallback_used: int = 0
    failures: int = 0

    @property
    def cache_hit_rate(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return (self.cache_hits / self.total_calls) * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_calls': self.total_calls,
            'cache_hits': self.cache_hits,
            'cache_hit_rate': round(self.cache_hit_rate, 2),
            'fallback_used': self.fallback_used,
            'failures': self.failures,
        }


class MetricsCollector:
    """
    Collects and aggregates metrics for one MarketDataService.

    Usage:
        metrics = MetricsCollector()
        metrics.record_call(
            data_type=DataType.QUOTE,
            key="AAPL",
            providers_tried=["finnhub"],
            provider_used="finnhub",
            latency_ms=150.5,
        )
        stats = metrics.get_stats()
    """

    def __init__(self, max_records: int = 1000):
        self._records: Deque[CallRecord] = deque(maxlen=max_records)
        self._provider_metrics: Dict[str, ProviderMetrics] = {}
        self._data_type_metrics: Dict[DataType, DataTypeMetrics] = {dt: DataTypeMetrics() for dt in DataType}
        self._start_time = datetime.now()
        self._lock = Lock()

    def record_call(
        self,
        data_type: DataType,
        key: str,
        providers_tried: List[str],
        provider_used: Optional[str],
        latency_ms: float,
        cache_hit: bool = False,
        success: bool = True,
        error: Optional[Exception] = None,
    ) -> None:
        """
        Record a data fetch operation.

        Args:
            data_type: Type of data requested
            key: Symbol or query
            providers_tried: Providers attempted, in order
            provider_used: Provider that returned data (None if failed or cached)
            latency_ms: Total response time
            cache_hit: Whether result was from cache
            success: Whether operation succeeded
            error: Final error if failed
        """
        fallback_used = (
            success
            and provider_used in providers_tried
            and providers_tried.index(provider_used) > 0
        )

        if cache_hit:
            result = CallResult.CACHE_HIT
        elif not success:
            result = CallResult.FAILURE
        elif fallback_used:
            result = CallResult.FALLBACK
        else:
            result = CallResult.SUCCESS

        now = datetime.now()
        record = CallRecord(
            timestamp=now,
            data_type=data_type,
            key=key,
            providers_tried=list(providers_tried),
            provider_used=provider_used,
            result=result,
            latency_ms=latency_ms,
            error_type=getattr(error, 'code', type(error).__name__) if error else None,
            error_message=str(error) if error else None,
        )

        with self._lock:
            self._records.append(record)

            dt_metrics = self._data_type_metrics[data_type]
            dt_metrics.total_calls += 1
            if cache_hit:
                dt_metrics.cache_hits += 1
            if fallback_used:
                dt_metrics.fallback_used += 1
            if not success:
                dt_metrics.failures += 1

            for provider in providers_tried:
                pm = self._provider_metrics.setdefault(provider, ProviderMetrics())
                pm.total_calls += 1

                if provider == provider_used and success:
                    pm.successful_calls += 1
                    pm.total_latency_ms += latency_ms
                    pm.last_success_time = now
                else:
                    pm.failed_calls += 1
                    pm.last_error = record.error_type or 'fallback'
                    pm.last_error_time = now

        if result == CallResult.FAILURE:
            logger.info(f"[Metrics] {json.dumps({'event': 'market_data_call', **record.to_dict()})}")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total_calls = sum(dt.total_calls for dt in self._data_type_metrics.values())
            total_cache_hits = sum(dt.cache_hits for dt in self._data_type_metrics.values())
            total_failures = sum(dt.failures for dt in self._data_type_metrics.values())
            total_fallbacks = sum(dt.fallback_used for dt in self._data_type_metrics.values())

            recent_errors = [
                r.to_dict() for r in self._records
                if r.result == CallResult.FAILURE
            ][-20:]

            return {
                'uptime_seconds': round((datetime.now() - self._start_time).total_seconds(), 1),
                'totals': {
                    'total_calls': total_calls,
                    'cache_hits': total_cache_hits,
                    'cache_hit_rate': round(total_cache_hits / total_calls * 100, 2) if total_calls > 0 else 0,
                    'failures': total_failures,
                    'fallback_used': total_fallbacks,
                },
                'by_provider': {
                    name: pm.to_dict() for name, pm in self._provider_metrics.items()
                },
                'by_data_type': {
                    dt.value: dtm.to_dict() for dt, dtm in self._data_type_metrics.items()
                },
                'recent_errors': recent_errors,
            }

    def get_provider_health(self, provider_name: str) -> Dict[str, Any]:
        with self._lock:
            pm = self._provider_metrics.get(provider_name)
            if pm is None or pm.total_calls == 0:
                return {'status': 'unknown', 'message': 'No data for this provider'}

            if pm.success_rate >= 95:
                status = 'healthy'
            elif pm.success_rate >= 80:
                status = 'degraded'
            else:
                status = 'unhealthy'
            return {'status': status, 'metrics': pm.to_dict()}

    def reset(self) -> None:
        with self._lock:
            self._records.clear()
            self._provider_metrics.clear()
            for dt in DataType:
                self._data_type_metrics[dt] = DataTypeMetrics()
            self._start_time = datetime.now()
