"""
Alpha Vantage Provider Client

Secondary provider, used when Finnhub fails.

Functions:
- SYMBOL_SEARCH   bestMatches[]
- GLOBAL_QUOTE    "Global Quote" {"05. price", ...}
- OVERVIEW        company fundamentals

Requires ALPHA_VANTAGE_API_KEY environment variable.
Free tier: 5 requests/minute, 500 requests/day
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from ..config import ALPHA_VANTAGE_BASE_URL
from ..errors import MalformedResponseError, ProviderError, RateLimitedError, SymbolNotFoundError
from ..interfaces import CompanyProfile, ProviderClient, Quote, SearchMatch, SearchResult, now_ms
from ..validation import is_valid_symbol
from .base import BaseProviderClient, safe_float, safe_str

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10


def _millions(value) -> float:
    number = safe_float(value)
    if number is None:
        return 0.0
    return number / 1e6


class AlphaVantageClient(BaseProviderClient, ProviderClient):
    """
    Alpha Vantage API client.

    Alpha Vantage answers throttling with HTTP 200 and a "Note" or
    "Information" body, so rate limits are detected from the payload.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = ALPHA_VANTAGE_BASE_URL,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        # Strict free tier, so back off longer after a throttle
        super().__init__(api_key, base_url, timeout=timeout, session=session,
                         max_failures=2, rate_limit_cooldown=120.0)

    @property
    def name(self) -> str:
        return "alpha_vantage"

    def _make_request(self, params: Dict[str, str]) -> Dict[str, Any]:
        params["apikey"] = self._api_key
        data = self._get(self._base_url, params)

        if not isinstance(data, dict):
            raise self._failed(MalformedResponseError("Alpha Vantage body is not an object", provider=self.name))

        if "Error Message" in data:
            logger.warning(f"[AlphaVantage] API Error: {data['Error Message']}")
            raise self._failed(ProviderError(
                f"Alpha Vantage error: {data['Error Message']}",
                status_code=400, provider=self.name, retryable=False))

        for marker in ("Note", "Information"):
            if marker in data:
                logger.warning(f"[AlphaVantage] API limit: {data[marker]}")
                raise self._failed(RateLimitedError(f"Alpha Vantage rate limit: {data[marker]}"))

        return data

    def search(self, query: str) -> SearchResult:
        data = self._make_request({
            "function": "SYMBOL_SEARCH",
            "keywords": query,
        })

        matches: List[SearchMatch] = []
        for item in data.get("bestMatches") or []:
            symbol = item.get("1. symbol") if isinstance(item, dict) else None
            if not is_valid_symbol(symbol):
                continue
            symbol = symbol.strip().upper()
            matches.append(SearchMatch(
                symbol=symbol,
                description=item.get("2. name") or symbol,
                type=item.get("3. type") or "Stock",
                exchange=item.get("4. region") or "Unknown",
            ))

        self._succeeded()
        return SearchResult.build(query, matches, source=self.name, limit=SEARCH_LIMIT)

    def quote(self, symbol: str) -> Quote:
        data = self._make_request({
            "function": "GLOBAL_QUOTE",
            "symbol": symbol,
        })

        quote = data.get("Global Quote")
        if not quote:
            raise self._failed(SymbolNotFoundError(symbol, provider=self.name))

        current_price = safe_float(quote.get("05. price"))
        if current_price is None:
            raise self._failed(MalformedResponseError(
                f"Alpha Vantage quote for {symbol} has no price", provider=self.name))

        self._succeeded()
        return Quote(
            symbol=symbol,
            current=current_price,
            high=safe_float(quote.get("03. high")),
            low=safe_float(quote.get("04. low")),
            open=safe_float(quote.get("02. open")),
            previous_close=safe_float(quote.get("08. previous close")),
            timestamp=now_ms(),
            source=self.name,
        )

    def profile(self, symbol: str) -> CompanyProfile:
        data = self._make_request({
            "function": "OVERVIEW",
            "symbol": symbol,
        })
        if not data.get("Symbol"):
            raise self._failed(SymbolNotFoundError(symbol, provider=self.name))

        self._succeeded()
        return CompanyProfile(
            symbol=symbol,
            name=safe_str(data.get("Name")),
            country=safe_str(data.get("Country")),
            currency=safe_str(data.get("Currency")),
            exchange=safe_str(data.get("Exchange")),
            market_capitalization=_millions(data.get("MarketCapitalization")),
            share_outstanding=_millions(data.get("SharesOutstanding")),
            website=safe_str(data.get("OfficialSite")),
            industry=safe_str(data.get("Industry")),
            source=self.name,
        )
