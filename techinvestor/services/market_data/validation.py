"""Symbol, search query and news category normalization."""

import re
from typing import Any

from .errors import InvalidInputError, InvalidQueryError, InvalidSymbolError

SYMBOL_PATTERN = re.compile(r"^[A-Z]{1,10}$")
MAX_QUERY_LENGTH = 50

# Categories accepted by Finnhub /news
NEWS_CATEGORIES = ("general", "forex", "crypto", "merger")


def is_valid_symbol(symbol: Any) -> bool:
    if not symbol or not isinstance(symbol, str):
        return False
    return bool(SYMBOL_PATTERN.match(symbol.strip().upper()))


def normalize_symbol(symbol: Any) -> str:
    """Trim and uppercase a symbol, raising InvalidSymbolError if malformed."""
    if not is_valid_symbol(symbol):
        raise InvalidSymbolError(symbol)
    return symbol.strip().upper()


def normalize_query(query: Any) -> str:
    if not isinstance(query, str):
        raise InvalidQueryError("Search query is required")

    cleaned = query.strip()
    if not cleaned:
        raise InvalidQueryError("Search query must be at least 1 character")
    if len(cleaned) > MAX_QUERY_LENGTH:
        raise InvalidQueryError(f"Search query too long (max {MAX_QUERY_LENGTH} characters)")
    return cleaned


def normalize_news_category(category: Any) -> str:
    cleaned = category.strip().lower() if isinstance(category, str) else ""
    if cleaned not in NEWS_CATEGORIES:
        raise InvalidInputError(
            f"Unknown news category: {category}. Use one of: {', '.join(NEWS_CATEGORIES)}")
    return cleaned
