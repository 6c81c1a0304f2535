"""
Unit tests for Market Data Metrics module.
"""

import json
import logging

import pytest

from ..errors import QuoteUnavailableError
from ..interfaces import DataType
from ..metrics import MetricsCollector


@pytest.fixture
def collector():
    return MetricsCollector(max_records=100)


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_record_success(self, collector):
        """Test a successful call updates provider and data type metrics."""
        collector.record_call(
            data_type=DataType.QUOTE,
            key="AAPL",
            providers_tried=["finnhub"],
            provider_used="finnhub",
            latency_ms=150.0,
        )

        stats = collector.get_stats()
        assert stats['totals']['total_calls'] == 1
        assert stats['totals']['failures'] == 0
        assert stats['by_provider']['finnhub']['successful_calls'] == 1
        assert stats['by_provider']['finnhub']['avg_latency_ms'] == 150.0

    def test_record_cache_hit(self, collector):
        """Test cache hits are counted without touching providers."""
        collector.record_call(
            data_type=DataType.QUOTE,
            key="AAPL",
            providers_tried=[],
            provider_used=None,
            latency_ms=0.5,
            cache_hit=True,
        )

        quote_stats = collector.get_stats()['by_data_type']['quote']
        assert quote_stats['cache_hits'] == 1
        assert quote_stats['cache_hit_rate'] == 100.0

    def test_record_fallback(self, collector):
        """Test a call served by the second provider counts as a fallback."""
        collector.record_call(
            data_type=DataType.SEARCH,
            key="apple",
            providers_tried=["finnhub", "alpha_vantage"],
            provider_used="alpha_vantage",
            latency_ms=900.0,
        )

        stats = collector.get_stats()
        assert stats['totals']['fallback_used'] == 1
        assert stats['by_provider']['finnhub']['failed_calls'] == 1
        assert stats['by_provider']['alpha_vantage']['successful_calls'] == 1

    def test_record_failure_logs_structured_line(self, collector, caplog):
        """Test failed calls are logged as one JSON line."""
        error = QuoteUnavailableError("AAPL")

        with caplog.at_level(logging.INFO, logger='techinvestor.services.market_data.metrics'):
            collector.record_call(
                data_type=DataType.QUOTE,
                key="AAPL",
                providers_tried=["finnhub", "alpha_vantage"],
                provider_used=None,
                latency_ms=2000.0,
                success=False,
                error=error,
            )

        stats = collector.get_stats()
        assert stats['totals']['failures'] == 1
        assert stats['recent_errors'][0]['error_type'] == "QUOTE_UNAVAILABLE"

        line = next(r.getMessage() for r in caplog.records if '[Metrics]' in r.getMessage())
        payload = json.loads(line.split('[Metrics] ', 1)[1])
        assert payload['event'] == 'market_data_call'
        assert payload['key'] == "AAPL"
        assert payload['result'] == 'failure'

    def test_provider_health(self, collector):
        """Test health is derived from the provider's success rate."""
        assert collector.get_provider_health("finnhub")['status'] == 'unknown'

        for _ in range(9):
            collector.record_call(DataType.QUOTE, "AAPL", ["finnhub"], "finnhub", 10.0)
        collector.record_call(DataType.QUOTE, "AAPL", ["finnhub"], None, 10.0, success=False)

        health = collector.get_provider_health("finnhub")
        assert health['status'] == 'degraded'
        assert health['metrics']['success_rate'] == 90.0

    def test_reset(self, collector):
        """Test reset clears records and aggregates."""
        collector.record_call(DataType.QUOTE, "AAPL", ["finnhub"], "finnhub", 10.0)

        collector.reset()

        stats = collector.get_stats()
        assert stats['totals']['total_calls'] == 0
        assert stats['by_provider'] == {}
