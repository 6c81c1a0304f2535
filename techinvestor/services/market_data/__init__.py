"""
Market Data Service - Multi-Provider Data Access Layer

Provides a single entry point for stock market data with:
- Multi-provider support (Finnhub primary, Alpha Vantage fallback)
- Per-provider rate limiting through FIFO request queues
- Bounded retry with exponential backoff
- Request deduplication (no duplicate API calls)
- Multi-level caching (memory -> optional Redis)
- Health monitoring per provider

Usage:
    from techinvestor.services.market_data import MarketDataConfig, MarketDataService

    service = MarketDataService(MarketDataConfig.from_env())
    service.start()

    # Get quote
    quote = service.get_quote("AAPL")

    # Search
    result = service.search_stocks("apple")

    # Batch quotes (per-symbol errors are isolated)
    batch = service.get_batch_quotes(["AAPL", "MSFT"])

    service.shutdown()
"""

from .service import MarketDataService
from .interfaces import (
    DataType,
    ProviderStatus,
    Quote,
    SearchMatch,
    SearchResult,
    CompanyProfile,
    BatchQuoteResult,
    ProviderClient,
)
from .config import (
    ProviderConfig,
    CacheConfig,
    RetryConfig,
    ServiceConfig,
    MarketDataConfig,
)
from .errors import (
    MarketDataError,
    ConfigurationError,
    InvalidInputError,
    InvalidSymbolError,
    InvalidQueryError,
    TooManySymbolsError,
    RateLimitedError,
    ProviderTimeoutError,
    ProviderError,
    ProviderAuthError,
    MalformedResponseError,
    SymbolNotFoundError,
    ServiceUnavailableError,
    QuoteUnavailableError,
)

__all__ = [
    # Main service
    "MarketDataService",
    # Interfaces
    "DataType",
    "ProviderStatus",
    "Quote",
    "SearchMatch",
    "SearchResult",
    "CompanyProfile",
    "BatchQuoteResult",
    "ProviderClient",
    # Config
    "ProviderConfig",
    "CacheConfig",
    "RetryConfig",
    "ServiceConfig",
    "MarketDataConfig",
    # Errors
    "MarketDataError",
    "ConfigurationError",
    "InvalidInputError",
    "InvalidSymbolError",
    "InvalidQueryError",
    "TooManySymbolsError",
    "RateLimitedError",
    "ProviderTimeoutError",
    "ProviderError",
    "ProviderAuthError",
    "MalformedResponseError",
    "SymbolNotFoundError",
    "ServiceUnavailableError",
    "QuoteUnavailableError",
]
