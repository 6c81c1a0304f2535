"""
Fixtures for market data unit tests.

Providers are scripted fakes; nothing here touches the network.
"""
import pytest

from ..service import MarketDataService
from .fakes import FakeProvider, default_headlines, default_matches, make_config


@pytest.fixture
def primary():
    return FakeProvider(
        "primary",
        quotes={"AAPL": 190.0, "MSFT": 410.0},
        matches=default_matches(),
        profiles={"AAPL": "Apple Inc"},
        headlines=default_headlines(),
    )


@pytest.fixture
def secondary():
    return FakeProvider(
        "secondary",
        quotes={"AAPL": 189.5, "MSFT": 409.0, "IBM": 180.0},
        matches=default_matches(),
        profiles={"AAPL": "Apple Inc", "IBM": "International Business Machines"},
    )


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def service(config, primary, secondary):
    svc = MarketDataService(config, providers=[secondary, primary])
    svc.start()
    yield svc
    svc.shutdown()
