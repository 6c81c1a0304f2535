"""
Market Data Errors

Typed error taxonomy shared by provider clients, the retry controller,
the market data service and the HTTP layer.

Each error carries:
- code: stable identifier for programmatic handling
- http_status: status the API layer responds with
- retryable: whether retrying later may succeed
"""

from typing import Any, Dict, List, Optional, Tuple


class MarketDataError(Exception):
    """Base class for all market data errors."""

    code = "UNKNOWN_ERROR"
    http_status = 500
    default_retryable = False

    def __init__(self, message: str = "", retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        self.retryable = self.default_retryable if retryable is None else retryable

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'retryable': self.retryable,
        }

    def __str__(self) -> str:
        return self.message


class ConfigurationError(MarketDataError):
    """Required configuration is missing or invalid."""
    code = "CONFIGURATION_ERROR"


# ─────────────────────────────────────────────────────────────
# Input errors (400, never retried)
# ─────────────────────────────────────────────────────────────

class InvalidInputError(MarketDataError):
    code = "INVALID_INPUT"
    http_status = 400


class InvalidSymbolError(InvalidInputError):
    code = "INVALID_SYMBOL"

    def __init__(self, symbol: Any):
        super().__init__(f"Invalid stock symbol: {symbol}. Use 1-10 letters only.")
        self.symbol = symbol


class InvalidQueryError(InvalidInputError):
    code = "INVALID_QUERY"


class TooManySymbolsError(InvalidInputError):
    code = "TOO_MANY_SYMBOLS"

    def __init__(self, count: int, limit: int):
        super().__init__(f"Maximum {limit} symbols allowed per batch, got {count}")
        self.count = count
        self.limit = limit


# ─────────────────────────────────────────────────────────────
# Transient / upstream errors
# ─────────────────────────────────────────────────────────────

class RateLimitedError(MarketDataError):
    """Local queue is full or the provider signalled a rate limit."""
    code = "RATE_LIMITED"
    http_status = 429
    default_retryable = True


class ProviderTimeoutError(MarketDataError):
    code = "TIMEOUT"
    http_status = 504
    default_retryable = True


class ProviderError(MarketDataError):
    """Upstream returned a non-2xx status or could not be reached."""

    code = "PROVIDER_ERROR"
    http_status = 502

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: str = "",
        retryable: Optional[bool] = None,
    ):
        if retryable is None:
            # No status means the connection itself failed
            retryable = status_code is None or status_code >= 500
        super().__init__(message, retryable=retryable)
        self.status_code = status_code
        self.provider = provider


class ProviderAuthError(ProviderError):
    """Bad or missing provider credentials (401/403)."""
    code = "API_KEY_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = 401, provider: str = ""):
        super().__init__(message, status_code=status_code, provider=provider, retryable=False)


class MalformedResponseError(ProviderError):
    """A 2xx body is missing the fields we need."""
    code = "MALFORMED_RESPONSE"

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message, status_code=None, provider=provider, retryable=False)


class SymbolNotFoundError(MalformedResponseError):
    """Symbol is well-formed but the provider has no data for it."""
    code = "SYMBOL_NOT_FOUND"
    http_status = 404

    def __init__(self, symbol: str, provider: str = ""):
        super().__init__(f"No data available for {symbol}", provider=provider)
        self.symbol = symbol


# ─────────────────────────────────────────────────────────────
# Exhaustion errors (503)
# ─────────────────────────────────────────────────────────────

class ServiceUnavailableError(MarketDataError):
    """Every provider failed, or the service is not running."""

    code = "SERVICE_UNAVAILABLE"
    http_status = 503
    default_retryable = True

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        errors: Optional[List[Tuple[str, MarketDataError]]] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message, retryable=retryable)
        self.errors = list(errors or [])

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data['providers'] = {name: err.code for name, err in self.errors}
        return data


class QuoteUnavailableError(ServiceUnavailableError):
    code = "QUOTE_UNAVAILABLE"

    def __init__(self, symbol: str, errors: Optional[List[Tuple[str, MarketDataError]]] = None):
        super().__init__(f"Unable to fetch quote for {symbol} from any source", errors=errors)
        self.symbol = symbol
