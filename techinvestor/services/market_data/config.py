"""
Market Data Configuration

Defines provider configurations, priorities, rate limits, retry policy and
cache settings. Everything is injected into MarketDataService; nothing here
is read at import time.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from .errors import ConfigurationError
from .interfaces import DataType

FINNHUB_BASE_URL = "https://finnhub.io/api/v1"
ALPHA_VANTAGE_BASE_URL = "https://www.alphavantage.co/query"


@dataclass
class ProviderConfig:
    """Configuration for a single upstream provider."""
    name: str
    enabled: bool = True
    priority: int = 100  # Lower = higher priority
    api_key: str = ""
    base_url: str = ""
    timeout_seconds: float = 10.0

    # Rate limiting
    requests_per_window: int = 60
    window_seconds: float = 60.0
    requests_per_second: float = 1.0     # Drain cadence of the request queue
    max_queue_depth: int = 1000

    # Restricts which data types are routed to this provider.
    # None routes everything the client itself supports.
    supported_data_types: Optional[List[DataType]] = None

    def allows(self, data_type: DataType) -> bool:
        return self.supported_data_types is None or data_type in self.supported_data_types

    @property
    def min_interval_seconds(self) -> float:
        if self.requests_per_second <= 0:
            return 0.0
        return 1.0 / self.requests_per_second


@dataclass
class CacheConfig:
    """Cache configuration for market data."""
    # L1: In-memory cache (fast, per-process)
    memory_enabled: bool = True
    ttl_quote: int = 30                 # Quotes are volatile
    ttl_search: int = 600               # 10 minutes
    ttl_profile: int = 3600             # Profiles rarely change
    ttl_news: int = 300                 # 5 minutes
    ttl_failed_search: int = 60         # Shed load during outages
    memory_max_size: int = 1000         # Max entries before eviction
    sweep_interval_seconds: float = 300

    # L2: Shared cache for multi-instance deployments
    shared_cache_url: Optional[str] = None
    key_prefix: str = "techinvestor:"
    shared_socket_timeout: float = 2.0

    def ttl_for(self, data_type: Optional[DataType]) -> int:
        ttl_map = {
            DataType.QUOTE: self.ttl_quote,
            DataType.SEARCH: self.ttl_search,
            DataType.PROFILE: self.ttl_profile,
            DataType.NEWS: self.ttl_news,
        }
        return ttl_map.get(data_type, 300)  # Default 5 minutes


@dataclass
class RetryConfig:
    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0


@dataclass
class ServiceConfig:
    batch_max_symbols: int = 10
    batch_delay_seconds: float = 0.2

    news_limit: int = 20
    company_news_limit: int = 15
    company_news_days: int = 7

    health_check_symbol: str = "AAPL"
    health_check_interval_seconds: float = 300  # 0 disables the monitor
    max_consecutive_failures: int = 3           # Failures before degraded
    failure_recovery_seconds: float = 60

    single_flight: bool = True
    queue_tick_seconds: float = 0.1


@dataclass
class MarketDataConfig:
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)
    cache: CacheConfig = field(default_factory=CacheConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)

    def provider_config(self, name: str) -> ProviderConfig:
        return self.providers.get(name) or ProviderConfig(name=name)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MarketDataConfig":
        """
        Build configuration from environment variables.

        Raises:
            ConfigurationError: FINNHUB_API_KEY is missing
        """
        env = os.environ if environ is None else environ

        finnhub_key = (env.get('FINNHUB_API_KEY') or '').strip()
        if not finnhub_key:
            raise ConfigurationError("FINNHUB_API_KEY environment variable is required")
        alpha_vantage_key = (env.get('ALPHA_VANTAGE_API_KEY') or '').strip()

        providers = {
            "finnhub": ProviderConfig(
                name="finnhub",
                priority=10,  # Primary provider
                api_key=finnhub_key,
                base_url=env.get('FINNHUB_BASE_URL', FINNHUB_BASE_URL),
                timeout_seconds=_float(env, 'FINNHUB_TIMEOUT', 8.0),
                requests_per_window=_int(env, 'FINNHUB_REQUESTS_PER_MINUTE', 55),  # Stay under 60/min
                window_seconds=60.0,
                requests_per_second=_float(env, 'FINNHUB_REQUESTS_PER_SECOND', 1.0),
            ),
            "alpha_vantage": ProviderConfig(
                name="alpha_vantage",
                enabled=bool(alpha_vantage_key),  # Auto-disable without API key
                priority=20,  # Fallback
                api_key=alpha_vantage_key,
                base_url=env.get('ALPHA_VANTAGE_BASE_URL', ALPHA_VANTAGE_BASE_URL),
                timeout_seconds=_float(env, 'ALPHA_VANTAGE_TIMEOUT', 15.0),
                requests_per_window=_int(env, 'ALPHA_VANTAGE_REQUESTS_PER_MINUTE', 5),  # Free tier
                window_seconds=60.0,
                requests_per_second=1.0,
            ),
        }

        cache = CacheConfig(
            ttl_quote=_int(env, 'MARKET_DATA_QUOTE_TTL', 30),
            ttl_search=_int(env, 'MARKET_DATA_SEARCH_TTL', 600),
            ttl_profile=_int(env, 'MARKET_DATA_PROFILE_TTL', 3600),
            ttl_news=_int(env, 'MARKET_DATA_NEWS_TTL', 300),
            shared_cache_url=env.get('REDIS_URL') or None,
        )
        service = ServiceConfig(
            health_check_interval_seconds=_float(env, 'MARKET_DATA_HEALTH_INTERVAL', 300),
        )
        return cls(providers=providers, cache=cache, service=service)


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw in (None, ''):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw in (None, ''):
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")
