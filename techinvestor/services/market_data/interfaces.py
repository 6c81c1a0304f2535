"""
Market Data Interfaces and Data Classes

Defines the abstract interface for provider clients and the canonical
records every provider response is translated into, so the rest of the
system never sees a provider-specific shape.
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class DataType(Enum):
    """Types of market data that can be requested."""
    QUOTE = "quote"        # Current price
    SEARCH = "search"      # Symbol / company search
    PROFILE = "profile"    # Company profile
    NEWS = "news"          # Market and company headlines


class ProviderStatus(Enum):
    """Provider health status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"       # Some requests failing
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Quote:
    """Canonical quote, identical regardless of which provider served it."""
    symbol: str
    current: float
    high: Optional[float] = None
    low: Optional[float] = None
    open: Optional[float] = None
    previous_close: Optional[float] = None
    timestamp: int = field(default_factory=now_ms)  # epoch ms
    source: str = ""

    @property
    def change(self) -> Optional[float]:
        if self.previous_close is None:
            return None
        return self.current - self.previous_close

    @property
    def change_percent(self) -> Optional[float]:
        if not self.previous_close:
            return None
        return self.change / self.previous_close * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current': self.current,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'previousClose': self.previous_close,
            'change': self.change,
            'changePercent': self.change_percent,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class SearchMatch:
    symbol: str
    description: str
    type: str = "Stock"
    exchange: str = "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'description': self.description,
            'type': self.type,
            'exchange': self.exchange,
        }


@dataclass(frozen=True)
class SearchResult:
    """Search matches in provider order, de-duplicated by symbol."""
    query: str
    matches: Tuple[SearchMatch, ...] = ()
    source: str = ""
    timestamp: int = field(default_factory=now_ms)

    @property
    def count(self) -> int:
        return len(self.matches)

    @classmethod
    def build(cls, query: str, matches: List[SearchMatch], source: str, limit: int) -> "SearchResult":
        seen = set()
        unique = []
        for match in matches:
            if match.symbol in seen:
                continue
            seen.add(match.symbol)
            unique.append(match)
            if len(unique) >= limit:
                break
        return cls(query=query, matches=tuple(unique), source=source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': self.query,
            'results': [m.to_dict() for m in self.matches],
            'count': self.count,
            'source': self.source,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class CompanyProfile:
    """Company profile. Market cap and shares outstanding are in millions."""
    symbol: str
    name: str = ""
    country: str = ""
    currency: str = ""
    exchange: str = ""
    ipo: str = ""
    market_capitalization: float = 0.0
    share_outstanding: float = 0.0
    website: str = ""
    logo: str = ""
    industry: str = ""
    phone: str = ""
    source: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'country': self.country,
            'currency': self.currency,
            'exchange': self.exchange,
            'ipo': self.ipo,
            'marketCapitalization': self.market_capitalization,
            'shareOutstanding': self.share_outstanding,
            'weburl': self.website,
            'logo': self.logo,
            'finnhubIndustry': self.industry,
            'phone': self.phone,
        }


@dataclass(frozen=True)
class NewsArticle:
    id: str
    headline: str
    url: str = "#"
    datetime: int = 0  # epoch seconds
    source: str = ""
    summary: str = ""
    category: str = ""
    image: Optional[str] = None
    symbol: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'headline': self.headline,
            'url': self.url,
            'datetime': self.datetime,
            'source': self.source,
            'summary': self.summary,
            'category': self.category,
            'image': self.image,
        }
        if self.symbol:
            data['symbol'] = self.symbol
        return data


@dataclass(frozen=True)
class NewsResult:
    """
    Headlines for a market category, or for one company over a date range.

    `subject` is the category ("general") or the symbol; `date_range` is
    only set for company news.
    """
    subject: str
    articles: Tuple[NewsArticle, ...] = ()
    date_range: Optional[str] = None
    source: str = ""
    timestamp: int = field(default_factory=now_ms)

    @property
    def count(self) -> int:
        return len(self.articles)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subject': self.subject,
            'news': [a.to_dict() for a in self.articles],
            'count': self.count,
            'dateRange': self.date_range,
            'source': self.source,
            'timestamp': self.timestamp,
        }


@dataclass
class BatchQuoteResult:
    """Partitioned batch outcome; one symbol failing never fails the batch."""
    results: Dict[str, Quote] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        errors = {}
        for symbol, error in self.errors.items():
            if hasattr(error, 'to_dict'):
                errors[symbol] = error.to_dict()
            else:
                errors[symbol] = {'code': 'UNKNOWN_ERROR', 'message': str(error)}
        return {
            'results': {symbol: q.to_dict() for symbol, q in self.results.items()},
            'errors': errors,
        }


# ─────────────────────────────────────────────────────────────
# Shared-cache serialization
# ─────────────────────────────────────────────────────────────

_RECORD_TYPES = {
    'Quote': Quote,
    'SearchResult': SearchResult,
    'CompanyProfile': CompanyProfile,
    'NewsResult': NewsResult,
}


def serialize_record(value: Any) -> str:
    """Encode a canonical record as tagged JSON for the shared cache."""
    kind = type(value).__name__
    if kind not in _RECORD_TYPES:
        raise TypeError(f"Cannot serialize {kind} for shared cache")
    return json.dumps({'type': kind, 'data': asdict(value)})


def deserialize_record(raw: Any) -> Any:
    if isinstance(raw, bytes):
        raw = raw.decode('utf-8')
    payload = json.loads(raw)
    kind = payload['type']
    data = payload['data']
    if kind == 'SearchResult':
        data['matches'] = tuple(SearchMatch(**m) for m in data.get('matches', []))
    elif kind == 'NewsResult':
        data['articles'] = tuple(NewsArticle(**a) for a in data.get('articles', []))
    return _RECORD_TYPES[kind](**data)


class ProviderClient(ABC):
    """
    Abstract base class for upstream market data providers.

    Each client performs exactly one HTTP call per method and translates the
    provider's response into a canonical record. Implementations:
    1. Raise typed MarketDataError subclasses on failure
    2. Never cache and never retry
    3. Track their own health status
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging/metrics and Quote.source."""
        pass

    @property
    def supported_data_types(self) -> List[DataType]:
        return [DataType.QUOTE, DataType.SEARCH, DataType.PROFILE]

    @abstractmethod
    def search(self, query: str) -> SearchResult:
        pass

    @abstractmethod
    def quote(self, symbol: str) -> Quote:
        """
        Get the current quote for a normalized symbol.

        Raises:
            SymbolNotFoundError: provider has no data for the symbol
        """
        pass

    @abstractmethod
    def profile(self, symbol: str) -> CompanyProfile:
        pass

    def news(self, category: str, limit: int) -> NewsResult:
        """
        Get market headlines for a category.

        Only called when DataType.NEWS is in supported_data_types.
        """
        raise NotImplementedError(f"{self.name} does not provide news")

    def company_news(self, symbol: str, start: date, end: date, limit: int) -> NewsResult:
        """Get headlines for one company published between start and end (inclusive)."""
        raise NotImplementedError(f"{self.name} does not provide company news")

    @abstractmethod
    def health_check(self) -> ProviderStatus:
        pass

    @property
    def consecutive_failures(self) -> int:
        return 0

    @property
    def last_failure_at(self) -> Optional[float]:
        """Epoch seconds of the most recent failed call, if any."""
        return None

    def get_status_info(self) -> Dict[str, Any]:
        return {
            'health': self.health_check().value,
            'consecutive_failures': self.consecutive_failures,
        }
