"""
Unit tests for configuration loading and app wiring.

Covers MarketDataConfig.from_env(), the Flask Config bridge and the
fail-fast behaviour of create_app() without a Finnhub key.
"""
import pytest

from techinvestor.config import market_data_environ
from techinvestor.services.market_data import ConfigurationError, DataType, MarketDataConfig


class TestMarketDataConfigFromEnv:
    """Tests for MarketDataConfig.from_env()."""

    def test_missing_finnhub_key_fails_fast(self):
        """Test a missing Finnhub key is a ConfigurationError."""
        with pytest.raises(ConfigurationError):
            MarketDataConfig.from_env({})

    def test_blank_finnhub_key_fails_fast(self):
        """Test a whitespace-only key counts as missing."""
        with pytest.raises(ConfigurationError):
            MarketDataConfig.from_env({'FINNHUB_API_KEY': '   '})

    def test_defaults(self):
        """Test quotas, TTLs and retry defaults."""
        config = MarketDataConfig.from_env({'FINNHUB_API_KEY': 'fh'})

        finnhub = config.provider_config('finnhub')
        assert finnhub.api_key == 'fh'
        assert finnhub.priority < config.provider_config('alpha_vantage').priority
        assert finnhub.requests_per_window == 55
        assert finnhub.min_interval_seconds == 1.0
        assert config.cache.ttl_for(DataType.QUOTE) == 30
        assert config.cache.ttl_for(DataType.SEARCH) == 600
        assert config.cache.ttl_for(DataType.PROFILE) == 3600
        assert config.cache.shared_cache_url is None
        assert config.retry.max_retries == 3
        assert config.service.batch_max_symbols == 10

    def test_alpha_vantage_disabled_without_key(self):
        config = MarketDataConfig.from_env({'FINNHUB_API_KEY': 'fh'})
        assert config.provider_config('alpha_vantage').enabled is False

    def test_alpha_vantage_enabled_with_key(self):
        """Test the fallback is enabled and throttled once keyed."""
        config = MarketDataConfig.from_env({'FINNHUB_API_KEY': 'fh', 'ALPHA_VANTAGE_API_KEY': 'av'})

        alpha_vantage = config.provider_config('alpha_vantage')
        assert alpha_vantage.enabled is True
        assert alpha_vantage.requests_per_window == 5

    def test_overrides(self):
        """Test environment values override the defaults."""
        config = MarketDataConfig.from_env({
            'FINNHUB_API_KEY': 'fh',
            'REDIS_URL': 'redis://localhost:6379/0',
            'MARKET_DATA_QUOTE_TTL': '15',
            'MARKET_DATA_HEALTH_INTERVAL': '0',
        })

        assert config.cache.ttl_quote == 15
        assert config.cache.shared_cache_url == 'redis://localhost:6379/0'
        assert config.service.health_check_interval_seconds == 0

    def test_news_ttl(self):
        """Test news TTL defaults to five minutes and can be overridden."""
        assert MarketDataConfig.from_env({'FINNHUB_API_KEY': 'fh'}).cache.ttl_for(DataType.NEWS) == 300

        config = MarketDataConfig.from_env({'FINNHUB_API_KEY': 'fh', 'MARKET_DATA_NEWS_TTL': '60'})
        assert config.cache.ttl_for(DataType.NEWS) == 60

    def test_data_type_allowlist(self):
        """Test providers route every data type unless restricted."""
        config = MarketDataConfig.from_env({'FINNHUB_API_KEY': 'fh'})
        finnhub = config.provider_config('finnhub')
        assert finnhub.supported_data_types is None
        assert finnhub.allows(DataType.NEWS) is True

        finnhub.supported_data_types = [DataType.QUOTE]
        assert finnhub.allows(DataType.QUOTE) is True
        assert finnhub.allows(DataType.NEWS) is False

    def test_malformed_number(self):
        with pytest.raises(ConfigurationError):
            MarketDataConfig.from_env({'FINNHUB_API_KEY': 'fh', 'MARKET_DATA_QUOTE_TTL': 'soon'})

    def test_unknown_provider_gets_defaults(self):
        config = MarketDataConfig()
        assert config.provider_config('other').name == 'other'


class TestFlaskConfigBridge:
    """Tests for market_data_environ()."""

    def test_market_data_environ_skips_empty_values(self, test_config):
        environ = market_data_environ({
            'FINNHUB_API_KEY': 'fh',
            'ALPHA_VANTAGE_API_KEY': None,
            'REDIS_URL': '',
            'MARKET_DATA_QUOTE_TTL': 30,
            'UNRELATED': 'x',
        })

        assert environ == {'FINNHUB_API_KEY': 'fh', 'MARKET_DATA_QUOTE_TTL': '30'}


class TestCreateApp:
    """Tests for create_app() wiring."""

    def test_builds_default_providers(self, test_config):
        """Test the service starts with Finnhub only by default."""
        from techinvestor import create_app

        app = create_app(test_config)
        service = app.extensions['market_data']
        try:
            assert service.is_running
            assert [p.name for p in service.providers] == ['finnhub']
        finally:
            service.shutdown()

    def test_includes_alpha_vantage_when_keyed(self, test_config):
        from techinvestor import create_app

        class KeyedConfig(test_config):
            ALPHA_VANTAGE_API_KEY = 'av'

        app = create_app(KeyedConfig)
        service = app.extensions['market_data']
        try:
            assert [p.name for p in service.providers] == ['finnhub', 'alpha_vantage']
        finally:
            service.shutdown()

    def test_builds_client_rate_limits(self, test_config):
        """Test per-client limits come from the Flask config."""
        from techinvestor import create_app

        class LimitConfig(test_config):
            STOCKS_RATE_LIMIT = '5'
            NEWS_RATE_WINDOW = '60'

        app = create_app(LimitConfig)
        limits = app.extensions['rate_limits']
        try:
            assert limits['stocks'].limit == 5
            assert limits['stocks'].window_seconds == 60
            assert limits['news'].limit == 30
            assert limits['news'].window_seconds == 60
        finally:
            app.extensions['market_data'].shutdown()

    def test_missing_finnhub_key(self, test_config):
        """Test create_app refuses to start without a Finnhub key."""
        from techinvestor import create_app

        class NoKeyConfig(test_config):
            FINNHUB_API_KEY = None

        with pytest.raises(ConfigurationError):
            create_app(NoKeyConfig)
