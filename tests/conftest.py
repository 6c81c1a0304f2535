"""
Global test fixtures for the TechInvestor backend.

The market data service is wired with scripted providers, so no test
touches Finnhub, Alpha Vantage or Redis.
"""
import pytest
import os
import sys

# Ensure the package is importable without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from techinvestor.services.market_data import MarketDataService
from techinvestor.services.market_data.tests.fakes import (
    FakeProvider, default_headlines, default_matches, make_config,
)


@pytest.fixture
def test_config():
    from techinvestor.config import Config

    class TestConfig(Config):
        TESTING = True
        FINNHUB_API_KEY = 'test-finnhub-key'
        ALPHA_VANTAGE_API_KEY = None
        REDIS_URL = None
        MARKET_DATA_HEALTH_INTERVAL = '0'
        LOG_DIR = ''

    return TestConfig


@pytest.fixture
def primary():
    return FakeProvider(
        "finnhub",
        quotes={"AAPL": 190.0, "MSFT": 410.0},
        matches=default_matches(),
        profiles={"AAPL": "Apple Inc"},
        headlines=default_headlines(),
    )


@pytest.fixture
def secondary():
    return FakeProvider(
        "alpha_vantage",
        quotes={"AAPL": 189.5, "IBM": 180.0},
        matches=default_matches(),
        profiles={"IBM": "International Business Machines"},
    )


@pytest.fixture
def market_data(primary, secondary):
    config = make_config()
    config.providers = {
        "finnhub": config.providers["primary"],
        "alpha_vantage": config.providers["secondary"],
    }
    config.providers["finnhub"].name = "finnhub"
    config.providers["alpha_vantage"].name = "alpha_vantage"
    return MarketDataService(config, providers=[primary, secondary])


@pytest.fixture
def app(test_config, market_data):
    """Create Flask test application around the scripted market data service."""
    from techinvestor import create_app

    application = create_app(test_config, market_data_service=market_data)
    yield application
    market_data.shutdown()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()
