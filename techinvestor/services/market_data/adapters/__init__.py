"""
Provider Clients

Each client implements the ProviderClient interface for one upstream
market data API and translates its responses into canonical records.
"""

from .finnhub_adapter import FinnhubClient
from .alphavantage_adapter import AlphaVantageClient

__all__ = [
    "FinnhubClient",
    "AlphaVantageClient",
]
