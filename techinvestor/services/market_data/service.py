"""
Market Data Service - Central Entry Point

Provides a unified interface for all market data access with:
- Ordered provider list with automatic failover (Finnhub, then Alpha Vantage)
- Per-provider request queues enforcing upstream quotas
- Bounded retry with exponential backoff around every upstream call
- Request deduplication (no duplicate API calls)
- Multi-level caching
- Health monitoring per provider

The service is constructed explicitly and owns its background work:
start() launches the queue drain threads, the cache sweep and the health
monitor; shutdown() stops all of them.
"""

import logging
import time
from datetime import date, datetime, timedelta
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .adapters import AlphaVantageClient, FinnhubClient
from .background import PeriodicTask
from .cache import MultiLevelCache
from .config import ALPHA_VANTAGE_BASE_URL, FINNHUB_BASE_URL, MarketDataConfig
from .deduplicator import RequestDeduplicator
from .errors import (
    ConfigurationError, InvalidInputError, InvalidSymbolError, MarketDataError,
    ProviderError, ProviderTimeoutError, QuoteUnavailableError, RateLimitedError, ServiceUnavailableError,
    SymbolNotFoundError, TooManySymbolsError,
)
from .interfaces import (
    BatchQuoteResult, CompanyProfile, DataType, NewsResult, ProviderClient, Quote, SearchResult,
)
from .metrics import MetricsCollector
from .rate_limiter import RateLimitWindow, RequestQueue
from .retry import RetryController
from .validation import normalize_news_category, normalize_query, normalize_symbol

logger = logging.getLogger(__name__)

ProviderErrors = List[Tuple[str, MarketDataError]]


def _uniform_failure(errors: ProviderErrors, what: str) -> Optional[MarketDataError]:
    """
    Error to surface when every provider failed the same transient way.

    All rate limited -> RateLimitedError (429); all timed out ->
    ProviderTimeoutError (504). Mixed failures return None so the caller
    picks its own exhaustion error.
    """
    if not errors:
        return None
    if all(isinstance(e, RateLimitedError) for _, e in errors):
        return RateLimitedError(f"Rate limit exceeded for {what} on every provider. Please try again later.")
    if all(isinstance(e, ProviderTimeoutError) for _, e in errors):
        return ProviderTimeoutError(f"Request timeout for {what} on every provider. Please try again.")
    return None


class MarketDataService:
    """
    Central service for all market data access.

    Usage:
        service = MarketDataService(MarketDataConfig.from_env())
        service.start()

        quote = service.get_quote("AAPL")
        matches = service.search_stocks("apple")
        batch = service.get_batch_quotes(["AAPL", "MSFT"])

        service.shutdown()
    """

    def __init__(
        self,
        config: Optional[MarketDataConfig] = None,
        providers: Optional[Sequence[ProviderClient]] = None,
        cache: Optional[MultiLevelCache] = None,
        retry: Optional[RetryController] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._config = config or MarketDataConfig()
        if providers is None:
            providers = self._build_default_providers()
        self._providers = self._order_providers(providers)

        self._queues: Dict[str, RequestQueue] = {}
        for provider in self._providers:
            provider_config = self._config.provider_config(provider.name)
            self._queues[provider.name] = RequestQueue(
                provider.name,
                RateLimitWindow(provider_config.requests_per_window, provider_config.window_seconds),
                min_interval=provider_config.min_interval_seconds,
                max_depth=provider_config.max_queue_depth,
                tick_seconds=self._config.service.queue_tick_seconds,
            )

        self._cache = cache or MultiLevelCache(self._config.cache)
        self._retry = retry or RetryController.from_config(self._config.retry)
        self._metrics = metrics or MetricsCollector()
        self._deduplicator = RequestDeduplicator()

        self._cache_sweeper = PeriodicTask(
            "MarketDataCacheSweep",
            self._config.cache.sweep_interval_seconds,
            self._cache.cleanup_expired,
        )
        self._health_monitor = PeriodicTask(
            "MarketDataHealthMonitor",
            self._config.service.health_check_interval_seconds,
            self._monitor_health,
        )

        self._lifecycle_lock = Lock()
        self._running = False
        self._started_at: Optional[float] = None

        logger.info(f"[MarketData] Service initialized with providers: "
                    f"{', '.join(p.name for p in self._providers) or 'none'}")

    def _build_default_providers(self) -> List[ProviderClient]:
        """Build the Finnhub client, plus Alpha Vantage when it has a key."""
        finnhub = self._config.provider_config("finnhub")
        if not finnhub.api_key:
            raise ConfigurationError("FINNHUB_API_KEY environment variable is required")

        providers: List[ProviderClient] = [
            FinnhubClient(
                finnhub.api_key,
                base_url=finnhub.base_url or FINNHUB_BASE_URL,
                timeout=finnhub.timeout_seconds,
            )
        ]

        alpha_vantage = self._config.provider_config("alpha_vantage")
        if alpha_vantage.enabled and alpha_vantage.api_key:
            providers.append(AlphaVantageClient(
                alpha_vantage.api_key,
                base_url=alpha_vantage.base_url or ALPHA_VANTAGE_BASE_URL,
                timeout=alpha_vantage.timeout_seconds,
            ))
        else:
            logger.info("[MarketData] Alpha Vantage disabled (no API key)")
        return providers

    def _order_providers(self, providers: Sequence[ProviderClient]) -> List[ProviderClient]:
        """Drop disabled providers and sort by priority (lower = higher priority)."""
        enabled = [p for p in providers if self._config.provider_config(p.name).enabled]
        return sorted(enabled, key=lambda p: self._config.provider_config(p.name).priority)

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def providers(self) -> List[ProviderClient]:
        return list(self._providers)

    @property
    def cache(self) -> MultiLevelCache:
        return self._cache

    def start(self) -> None:
        with self._lifecycle_lock:
            if self._running:
                return
            for queue in self._queues.values():
                queue.start()
            self._cache_sweeper.start()
            self._health_monitor.start()
            self._running = True
            self._started_at = time.time()
        logger.info("[MarketData] Service started")

    def shutdown(self) -> None:
        with self._lifecycle_lock:
            if not self._running:
                return
            self._running = False
            self._health_monitor.stop()
            self._cache_sweeper.stop()
            for queue in self._queues.values():
                queue.stop()
            self._deduplicator.clear()
        logger.info("[MarketData] Service stopped")

    def _ensure_running(self) -> None:
        if not self._running:
            raise ServiceUnavailableError("Market data service is not running", retryable=False)

    # ─────────────────────────────────────────────────────────────
    # Fetch pipeline
    # ─────────────────────────────────────────────────────────────

    def _routes(self, provider: ProviderClient, data_type: DataType) -> bool:
        """Client supports the data type and its config does not exclude it."""
        return (data_type in provider.supported_data_types
                and self._config.provider_config(provider.name).allows(data_type))

    def _fetch_from_providers(
        self,
        data_type: DataType,
        description: str,
        call: Callable[[ProviderClient], Any],
    ) -> Tuple[Any, Optional[str], List[str], ProviderErrors]:
        """
        Try each provider in priority order until one succeeds.

        Every attempt, retries included, is admitted through that provider's
        request queue. Returns (result, provider_used, providers_tried, errors).
        """
        providers_tried: List[str] = []
        errors: ProviderErrors = []

        for provider in self._providers:
            if not self._routes(provider, data_type):
                continue
            providers_tried.append(provider.name)
            queue = self._queues[provider.name]

            def attempt(provider=provider, queue=queue):
                return queue.admit(lambda: call(provider))

            try:
                result = self._retry.with_retry(attempt, description=f"{provider.name} {description}")
            except MarketDataError as e:
                errors.append((provider.name, e))
            except Exception as e:
                logger.error(f"[MarketData] {provider.name} raised unexpected error for {description}: {e}")
                errors.append((provider.name, ProviderError(str(e), provider=provider.name, retryable=False)))
            else:
                if errors:
                    logger.info(f"[MarketData] {description} served by fallback provider {provider.name}")
                return result, provider.name, providers_tried, errors

            logger.warning(f"[MarketData] {provider.name} failed for {description}: {errors[-1][1]}")

        return None, None, providers_tried, errors

    def _get_record(
        self,
        data_type: DataType,
        cache_key: str,
        key: str,
        call: Callable[[ProviderClient], Any],
        on_exhausted: Callable[[ProviderErrors], Any],
        use_cache: bool = True,
    ) -> Any:
        """Cache lookup, then a (single-flight) provider fetch; cache on success."""
        self._ensure_running()
        start_time = time.time()

        if use_cache:
            cached = self._cache.get(cache_key)
            if cached is not None:
                self._metrics.record_call(
                    data_type=data_type,
                    key=key,
                    providers_tried=[],
                    provider_used=None,
                    latency_ms=(time.time() - start_time) * 1000,
                    cache_hit=True,
                )
                return cached

        def fetch():
            result, provider_used, providers_tried, errors = self._fetch_from_providers(
                data_type, f"{data_type.value} {key}", call)
            latency_ms = (time.time() - start_time) * 1000

            if provider_used is not None:
                logger.debug(f"[MarketData] {data_type.value} {key}: {provider_used} ({latency_ms:.0f}ms)")
                self._cache.set(cache_key, result, data_type=data_type, source=provider_used)
                self._metrics.record_call(
                    data_type=data_type,
                    key=key,
                    providers_tried=providers_tried,
                    provider_used=provider_used,
                    latency_ms=latency_ms,
                )
                return result

            self._metrics.record_call(
                data_type=data_type,
                key=key,
                providers_tried=providers_tried,
                provider_used=None,
                latency_ms=latency_ms,
                success=False,
                error=errors[-1][1] if errors else None,
            )
            return on_exhausted(errors)

        if self._config.service.single_flight:
            return self._deduplicator.execute(cache_key, fetch)
        return fetch()

    # ─────────────────────────────────────────────────────────────
    # Public API Methods
    # ─────────────────────────────────────────────────────────────

    def get_quote(self, symbol: str) -> Quote:
        """
        Get the current quote for a symbol.

        Raises:
            InvalidSymbolError: malformed symbol (no upstream call is made)
            SymbolNotFoundError: every provider reported the symbol unknown
            RateLimitedError: every provider was rate limited
            ProviderTimeoutError: every provider timed out
            QuoteUnavailableError: every provider failed
        """
        symbol = normalize_symbol(symbol)
        return self._quote(symbol)

    def _quote(self, symbol: str, use_cache: bool = True) -> Quote:
        def exhausted(errors: ProviderErrors):
            if errors and all(isinstance(e, SymbolNotFoundError) for _, e in errors):
                raise SymbolNotFoundError(symbol)
            raise _uniform_failure(errors, f"quote {symbol}") or QuoteUnavailableError(symbol, errors=errors)

        return self._get_record(
            DataType.QUOTE,
            f"quote:{symbol}",
            symbol,
            lambda provider: provider.quote(symbol),
            exhausted,
            use_cache=use_cache,
        )

    def search_stocks(self, query: str) -> SearchResult:
        """
        Search for stocks by symbol or company name.

        When every provider fails for reasons other than rate limiting, an
        empty result is returned and cached briefly to shed load.
        """
        query = normalize_query(query)
        cache_key = f"search:{query.lower()}"

        def exhausted(errors: ProviderErrors):
            failure = _uniform_failure(errors, f"search '{query}'")
            if isinstance(failure, RateLimitedError):
                raise failure
            empty = SearchResult(query=query, source="none")
            self._cache.set(
                cache_key, empty,
                ttl_seconds=self._config.cache.ttl_failed_search,
                data_type=DataType.SEARCH,
                source="none",
            )
            return empty

        return self._get_record(
            DataType.SEARCH,
            cache_key,
            query,
            lambda provider: provider.search(query),
            exhausted,
        )

    def get_company_profile(self, symbol: str) -> CompanyProfile:
        symbol = normalize_symbol(symbol)

        def exhausted(errors: ProviderErrors):
            if errors and all(isinstance(e, SymbolNotFoundError) for _, e in errors):
                raise SymbolNotFoundError(symbol)
            raise _uniform_failure(errors, f"profile {symbol}") or ServiceUnavailableError(
                f"Unable to fetch company profile for {symbol} from any source", errors=errors)

        return self._get_record(
            DataType.PROFILE,
            f"profile:{symbol}",
            symbol,
            lambda provider: provider.profile(symbol),
            exhausted,
        )

    def get_market_news(self, category: str = "general", use_cache: bool = True) -> NewsResult:
        """
        Get the latest market headlines for a category.

        Raises:
            InvalidInputError: unknown category
            RateLimitedError / ProviderTimeoutError: every news provider failed that way
            ServiceUnavailableError: no news provider could answer
        """
        category = normalize_news_category(category)
        limit = self._config.service.news_limit

        def exhausted(errors: ProviderErrors):
            raise _uniform_failure(errors, f"{category} news") or ServiceUnavailableError(
                f"Unable to fetch {category} news from any source", errors=errors)

        return self._get_record(
            DataType.NEWS,
            f"news:{category}",
            category,
            lambda provider: provider.news(category, limit),
            exhausted,
            use_cache=use_cache,
        )

    def get_company_news(self, symbol: str) -> NewsResult:
        """Get headlines for one company over the last company_news_days days."""
        symbol = normalize_symbol(symbol)
        service_config = self._config.service
        end = date.today()
        start = end - timedelta(days=service_config.company_news_days)

        def exhausted(errors: ProviderErrors):
            raise _uniform_failure(errors, f"{symbol} news") or ServiceUnavailableError(
                f"Unable to fetch news for {symbol} from any source", errors=errors)

        return self._get_record(
            DataType.NEWS,
            f"news:company:{symbol}:{end.isoformat()}",
            symbol,
            lambda provider: provider.company_news(symbol, start, end, service_config.company_news_limit),
            exhausted,
        )

    def get_batch_quotes(self, symbols: Sequence[str]) -> BatchQuoteResult:
        """
        Get quotes for several symbols.

        Invalid entries and per-symbol failures are reported in
        BatchQuoteResult.errors; one bad symbol never fails the batch.

        Raises:
            InvalidInputError: symbols is not a non-empty list
            TooManySymbolsError: more than batch_max_symbols entries
        """
        if not isinstance(symbols, (list, tuple)) or not symbols:
            raise InvalidInputError("Symbols must be a non-empty list")
        limit = self._config.service.batch_max_symbols
        if len(symbols) > limit:
            raise TooManySymbolsError(len(symbols), limit)
        self._ensure_running()

        batch = BatchQuoteResult()
        pending: List[str] = []
        for raw in symbols:
            try:
                symbol = normalize_symbol(raw)
            except InvalidSymbolError as e:
                label = raw.strip().upper() if isinstance(raw, str) else str(raw).upper()
                batch.errors[label] = e
                continue
            if symbol not in pending:
                pending.append(symbol)

        delay = self._config.service.batch_delay_seconds
        fetched = False
        for symbol in pending:
            cached = self._cache.get(f"quote:{symbol}")
            if cached is not None:
                self._metrics.record_call(
                    data_type=DataType.QUOTE,
                    key=symbol,
                    providers_tried=[],
                    provider_used=None,
                    latency_ms=0.0,
                    cache_hit=True,
                )
                batch.results[symbol] = cached
                continue

            # Spread network fetches out so a batch cannot burst the quota
            if fetched and delay > 0:
                time.sleep(delay)
            fetched = True

            try:
                batch.results[symbol] = self._quote(symbol, use_cache=False)
            except MarketDataError as e:
                batch.errors[symbol] = e

        logger.info(f"[MarketData] Batch quotes: {len(batch.results)} ok, {len(batch.errors)} failed")
        return batch

    def health_check(self) -> Dict[str, Any]:
        """
        Quote a known symbol through the pipeline and report overall status.

        Status is "unhealthy" when the check fails, "degraded" when the
        primary provider is failing repeatedly or failed recently, and
        "healthy" otherwise. The primary's failure state is read before the
        check runs, since a successful check resets its failure count.
        """
        check_symbol = self._config.service.health_check_symbol
        check: Dict[str, Any] = {'symbol': check_symbol}
        start_time = time.time()
        degraded_before_check = self._primary_degraded()

        try:
            quote = self._quote(normalize_symbol(check_symbol), use_cache=False)
            check.update(success=True, source=quote.source)
            degraded = degraded_before_check or self._primary_degraded()
            status = "degraded" if degraded else "healthy"
        except MarketDataError as e:
            check.update(success=False, error=e.to_dict())
            status = "unhealthy"
        check['responseTime'] = round((time.time() - start_time) * 1000, 1)

        primary = self._providers[0].name if self._providers else None
        return {
            'status': status,
            'api': {
                'primary': primary,
                'fallbacks': [p.name for p in self._providers[1:]],
                'check': check,
            },
            'timestamp': datetime.now().isoformat(),
            'stats': {
                'cache': self._cache.stats,
                'queues': {name: queue.depth for name, queue in self._queues.items()},
                'deduplication': self._deduplicator.stats,
            },
            'limits': {
                name: queue.window.snapshot() for name, queue in self._queues.items()
            },
            'providers': self.get_provider_status(),
        }

    def _primary_degraded(self) -> bool:
        if not self._providers:
            return False
        primary = self._providers[0]
        service_config = self._config.service
        if primary.consecutive_failures >= service_config.max_consecutive_failures:
            return True
        last_failure = primary.last_failure_at
        return last_failure is not None and time.time() - last_failure < service_config.failure_recovery_seconds

    def _monitor_health(self) -> None:
        result = self.health_check()
        if result['status'] != "healthy":
            logger.warning(f"[MarketData] Health check: {result['status']} "
                           f"(check: {result['api']['check']})")
        else:
            logger.debug("[MarketData] Health check: healthy")

    # ─────────────────────────────────────────────────────────────
    # Monitoring and maintenance
    # ─────────────────────────────────────────────────────────────

    def invalidate_cache(self, pattern: Optional[str] = None) -> int:
        """Clear cache entries matching pattern (all entries when omitted)."""
        return self._cache.invalidate(pattern)

    def get_provider_status(self) -> Dict[str, Dict[str, Any]]:
        """Get status of all registered providers."""
        status = {}
        for provider in self._providers:
            config = self._config.provider_config(provider.name)
            queue = self._queues[provider.name]
            status[provider.name] = {
                **provider.get_status_info(),
                'enabled': config.enabled,
                'priority': config.priority,
                'supported_data_types': [
                    dt.value for dt in provider.supported_data_types if config.allows(dt)
                ],
                'queue_depth': queue.depth,
                'call_health': self._metrics.get_provider_health(provider.name),
            }
        return status

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics including metrics."""
        uptime = time.time() - self._started_at if self._running and self._started_at else 0.0
        return {
            'running': self._running,
            'uptime_seconds': round(uptime, 1),
            'cache': self._cache.stats,
            'deduplication': self._deduplicator.stats,
            'queues': {name: queue.stats for name, queue in self._queues.items()},
            'providers': self.get_provider_status(),
            'metrics': self._metrics.get_stats(),
        }
