"""
Finnhub Provider Client

Primary provider for search, quotes and company profiles, and the only
news source.

Endpoints:
- /search?q=            symbol lookup
- /quote?symbol=        {c, h, l, o, pc, t}
- /stock/profile2?symbol=
- /news?category=       market headlines
- /company-news?symbol=&from=&to=

Free tier: 60 requests/minute.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import requests

from ..config import FINNHUB_BASE_URL
from ..errors import MalformedResponseError, ProviderError, RateLimitedError, SymbolNotFoundError
from ..interfaces import (
    CompanyProfile, DataType, NewsArticle, NewsResult, ProviderClient, Quote, SearchMatch,
    SearchResult, now_ms,
)
from ..validation import is_valid_symbol
from .base import BaseProviderClient, safe_float, safe_str

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 15


class FinnhubClient(BaseProviderClient, ProviderClient):
    """Finnhub REST client. Requires a Finnhub API key."""

    def __init__(
        self,
        api_key: str,
        base_url: str = FINNHUB_BASE_URL,
        timeout: float = 8.0,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(api_key, base_url, timeout=timeout, session=session)

    @property
    def name(self) -> str:
        return "finnhub"

    @property
    def supported_data_types(self) -> List[DataType]:
        return [DataType.QUOTE, DataType.SEARCH, DataType.PROFILE, DataType.NEWS]

    def _call(self, endpoint: str, **params: Any) -> Any:
        params['token'] = self._api_key
        data = self._get(f"{self._base_url}{endpoint}", params)

        if isinstance(data, dict) and data.get('error'):
            message = str(data['error'])
            if 'limit' in message.lower():
                raise self._failed(RateLimitedError(f"Finnhub error: {message}"))
            raise self._failed(ProviderError(f"Finnhub error: {message}", provider=self.name, retryable=False))
        return data

    def search(self, query: str) -> SearchResult:
        data = self._call('/search', q=query)

        items = data.get('result') if isinstance(data, dict) else None
        if not isinstance(items, list):
            self._succeeded()
            return SearchResult(query=query, source=self.name)

        matches: List[SearchMatch] = []
        for item in items:
            symbol = item.get('symbol') if isinstance(item, dict) else None
            if not is_valid_symbol(symbol):
                continue
            symbol = symbol.strip().upper()
            matches.append(SearchMatch(
                symbol=symbol,
                description=item.get('description') or item.get('displaySymbol') or symbol,
                type=item.get('type') or 'Stock',
                exchange=item.get('mic') or 'Unknown',
            ))

        self._succeeded()
        return SearchResult.build(query, matches, source=self.name, limit=SEARCH_LIMIT)

    def quote(self, symbol: str) -> Quote:
        data = self._call('/quote', symbol=symbol)
        if not isinstance(data, dict):
            raise self._failed(MalformedResponseError("Finnhub quote body is not an object", provider=self.name))

        current = data.get('c')
        if current is None or isinstance(current, bool) or not isinstance(current, (int, float)):
            raise self._failed(MalformedResponseError(f"Finnhub quote for {symbol} has no price", provider=self.name))
        if current == 0:
            # Finnhub answers unknown symbols with an all-zero quote
            raise self._failed(SymbolNotFoundError(symbol, provider=self.name))

        seconds = safe_float(data.get('t'))
        self._succeeded()
        return Quote(
            symbol=symbol,
            current=float(current),
            high=safe_float(data.get('h')),
            low=safe_float(data.get('l')),
            open=safe_float(data.get('o')),
            previous_close=safe_float(data.get('pc')),
            timestamp=int(seconds * 1000) if seconds else now_ms(),
            source=self.name,
        )

    def profile(self, symbol: str) -> CompanyProfile:
        data = self._call('/stock/profile2', symbol=symbol)
        if not isinstance(data, dict) or not data:
            raise self._failed(SymbolNotFoundError(symbol, provider=self.name))

        self._succeeded()
        return CompanyProfile(
            symbol=symbol,
            name=safe_str(data.get('name')),
            country=safe_str(data.get('country')),
            currency=safe_str(data.get('currency')),
            exchange=safe_str(data.get('exchange')),
            ipo=safe_str(data.get('ipo')),
            market_capitalization=safe_float(data.get('marketCapitalization'), 0.0),
            share_outstanding=safe_float(data.get('shareOutstanding'), 0.0),
            website=safe_str(data.get('weburl')),
            logo=safe_str(data.get('logo')),
            industry=safe_str(data.get('finnhubIndustry')),
            phone=safe_str(data.get('phone')),
            source=self.name,
        )

    def news(self, category: str, limit: int) -> NewsResult:
        data = self._call('/news', category=category)
        if not isinstance(data, list):
            raise self._failed(MalformedResponseError("Finnhub news body is not a list", provider=self.name))

        articles = [self._article(item, index) for index, item in enumerate(data[:limit]) if isinstance(item, dict)]
        self._succeeded()
        return NewsResult(subject=category, articles=tuple(articles), source=self.name)

    def company_news(self, symbol: str, start: date, end: date, limit: int) -> NewsResult:
        data = self._call('/company-news', symbol=symbol, **{'from': start.isoformat(), 'to': end.isoformat()})
        if not isinstance(data, list):
            raise self._failed(MalformedResponseError(
                f"Finnhub company news for {symbol} is not a list", provider=self.name))

        articles = [
            self._article(item, index, symbol=symbol)
            for index, item in enumerate(data[:limit]) if isinstance(item, dict)
        ]
        self._succeeded()
        return NewsResult(
            subject=symbol,
            articles=tuple(articles),
            date_range=f"{start.isoformat()} to {end.isoformat()}",
            source=self.name,
        )

    @staticmethod
    def _article(item: Dict[str, Any], index: int, symbol: Optional[str] = None) -> NewsArticle:
        headline = safe_str(item.get('headline'))
        summary = safe_str(item.get('summary'))
        if not summary:
            if headline:
                summary = headline[:150] + '...'
            else:
                summary = f"Latest news about {symbol}" if symbol else "Financial market update"

        published = safe_float(item.get('datetime'))
        article_id = item.get('id')
        return NewsArticle(
            id=str(article_id) if article_id else f"{symbol or 'news'}-{now_ms()}-{index}",
            headline=headline or (f"{symbol} Market Update" if symbol else "Financial News Update"),
            url=safe_str(item.get('url')) or '#',
            datetime=int(published) if published else now_ms() // 1000,
            source=safe_str(item.get('source')) or "Financial News",
            summary=summary,
            category="Company News" if symbol else (safe_str(item.get('category')) or "Markets"),
            image=item.get('image') or None,
            symbol=symbol,
        )
