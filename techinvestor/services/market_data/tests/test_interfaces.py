"""
Tests for canonical records, validation and the error taxonomy.
"""

import pytest

from ..errors import (
    InvalidInputError, InvalidQueryError, InvalidSymbolError, ProviderAuthError, ProviderError,
    QuoteUnavailableError, RateLimitedError, ServiceUnavailableError, SymbolNotFoundError,
)
from ..interfaces import (
    BatchQuoteResult, CompanyProfile, NewsArticle, NewsResult, Quote, SearchMatch, SearchResult,
    deserialize_record, serialize_record,
)
from ..validation import is_valid_symbol, normalize_news_category, normalize_query, normalize_symbol


class TestQuote:
    """Tests for the Quote record."""

    def test_change_and_percent(self):
        """Test change is derived from previous close."""
        quote = Quote(symbol="AAPL", current=110.0, previous_close=100.0, timestamp=1)

        assert quote.change == 10.0
        assert quote.change_percent == 10.0

    def test_percent_undefined_without_previous_close(self):
        quote = Quote(symbol="AAPL", current=110.0, previous_close=0.0, timestamp=1)
        assert quote.change_percent is None

        quote = Quote(symbol="AAPL", current=110.0, timestamp=1)
        assert quote.change is None

    def test_api_shape(self):
        """Test to_dict uses the API's camelCase field names."""
        quote = Quote(symbol="AAPL", current=2.0, high=3.0, low=1.0, open=1.5,
                      previous_close=1.0, timestamp=123, source="finnhub")

        assert quote.to_dict() == {
            'current': 2.0, 'open': 1.5, 'high': 3.0, 'low': 1.0, 'previousClose': 1.0,
            'change': 1.0, 'changePercent': 100.0, 'timestamp': 123,
        }

    def test_records_are_immutable(self):
        """Test records are frozen."""
        quote = Quote(symbol="AAPL", current=1.0)
        with pytest.raises(AttributeError):
            quote.current = 2.0


class TestSearchResult:
    """Tests for SearchResult.build."""

    def test_build_deduplicates_and_limits(self):
        """Test duplicates are dropped in provider order up to the limit."""
        matches = [SearchMatch(symbol=s, description=s) for s in ["A", "B", "A", "C", "D"]]

        result = SearchResult.build("q", matches, source="finnhub", limit=3)

        assert [m.symbol for m in result.matches] == ["A", "B", "C"]
        assert result.to_dict()['count'] == 3


class TestSerialization:
    """Tests for tagged-JSON records in the shared cache."""

    def test_search_result_survives_shared_cache(self):
        """Test nested matches are rebuilt as SearchMatch tuples."""
        result = SearchResult(
            query="apple",
            matches=(SearchMatch(symbol="AAPL", description="Apple Inc"),),
            source="finnhub",
            timestamp=1,
        )

        restored = deserialize_record(serialize_record(result))

        assert restored == result
        assert isinstance(restored.matches, tuple)

    def test_unknown_type_is_rejected(self):
        """Test only canonical records can be serialized."""
        with pytest.raises(TypeError):
            serialize_record({"not": "a record"})

    def test_profile_serializes(self):
        profile = CompanyProfile(symbol="AAPL", name="Apple Inc", source="finnhub")
        assert deserialize_record(serialize_record(profile)) == profile

    def test_news_result_survives_shared_cache(self):
        """Test nested articles are rebuilt as NewsArticle tuples."""
        result = NewsResult(
            subject="AAPL",
            articles=(NewsArticle(id="1", headline="Apple unveils new chips", symbol="AAPL"),),
            date_range="2026-10-11 to 2026-10-18",
            source="finnhub",
            timestamp=1,
        )

        restored = deserialize_record(serialize_record(result))

        assert restored == result
        assert isinstance(restored.articles[0], NewsArticle)


class TestNewsResult:
    """Tests for the NewsResult record."""

    def test_to_dict(self):
        """Test the response shape carries count and date range."""
        result = NewsResult(
            subject="general",
            articles=(NewsArticle(id="1", headline="Stocks rally"), NewsArticle(id="2", headline="Oil slips")),
            source="finnhub",
            timestamp=1,
        )

        data = result.to_dict()

        assert data['count'] == 2
        assert data['dateRange'] is None
        assert [a['headline'] for a in data['news']] == ["Stocks rally", "Oil slips"]
        assert 'symbol' not in data['news'][0]


class TestBatchQuoteResult:
    """Tests for BatchQuoteResult."""

    def test_to_dict(self):
        batch = BatchQuoteResult(
            results={"AAPL": Quote(symbol="AAPL", current=1.0, timestamp=1)},
            errors={"ZZZZ": SymbolNotFoundError("ZZZZ"), "X": RuntimeError("boom")},
        )

        data = batch.to_dict()

        assert data['results']['AAPL']['current'] == 1.0
        assert data['errors']['ZZZZ']['code'] == "SYMBOL_NOT_FOUND"
        assert data['errors']['X']['code'] == "UNKNOWN_ERROR"


class TestValidation:
    """Tests for symbol and query normalization."""

    @pytest.mark.parametrize("symbol,expected", [
        ("aapl", "AAPL"), (" msft ", "MSFT"), ("A", "A"), ("ABCDEFGHIJ", "ABCDEFGHIJ"),
    ])
    def test_normalize_symbol(self, symbol, expected):
        """Test symbols are trimmed and upper-cased."""
        assert normalize_symbol(symbol) == expected

    @pytest.mark.parametrize("symbol", ["", "12345678901", "ab-c", "BRK.B", "ABCDEFGHIJK", None, 123])
    def test_invalid_symbols(self, symbol):
        """Test malformed symbols raise InvalidSymbolError."""
        assert is_valid_symbol(symbol) is False
        with pytest.raises(InvalidSymbolError):
            normalize_symbol(symbol)

    def test_normalize_query(self):
        assert normalize_query("  apple  ") == "apple"
        assert normalize_query("x" * 50) == "x" * 50

    @pytest.mark.parametrize("query", ["", "   ", "x" * 51, None])
    def test_invalid_queries(self, query):
        """Test blank, oversized and non-string queries are rejected."""
        with pytest.raises(InvalidQueryError):
            normalize_query(query)

    def test_news_category(self):
        """Test categories are lower-cased and checked against the known set."""
        assert normalize_news_category(" Crypto ") == "crypto"
        with pytest.raises(InvalidInputError):
            normalize_news_category("sports")


class TestErrorTaxonomy:
    """Tests for error codes, HTTP statuses and retryability."""

    @pytest.mark.parametrize("error,code,status,retryable", [
        (InvalidSymbolError("1"), "INVALID_SYMBOL", 400, False),
        (RateLimitedError("429"), "RATE_LIMITED", 429, True),
        (ProviderError("502", status_code=502), "PROVIDER_ERROR", 502, True),
        (ProviderError("404", status_code=404), "PROVIDER_ERROR", 502, False),
        (ProviderAuthError("401"), "API_KEY_ERROR", 502, False),
        (SymbolNotFoundError("ZZZZ"), "SYMBOL_NOT_FOUND", 404, False),
        (ServiceUnavailableError(), "SERVICE_UNAVAILABLE", 503, True),
        (QuoteUnavailableError("AAPL"), "QUOTE_UNAVAILABLE", 503, True),
    ])
    def test_codes(self, error, code, status, retryable):
        assert error.code == code
        assert error.http_status == status
        assert error.retryable is retryable
        assert error.to_dict()['code'] == code
