from flask import request, jsonify, current_app
from werkzeug.exceptions import HTTPException
from ..services.market_data import MarketDataError
import logging
import time
from datetime import datetime

logger = logging.getLogger(__name__)

# Friendly copy shown to end users, keyed by error code
USER_MESSAGES = {
    'INVALID_INPUT': 'Invalid request',
    'INVALID_SYMBOL': 'Invalid stock symbol format',
    'INVALID_QUERY': 'Invalid search query',
    'TOO_MANY_SYMBOLS': 'Too many symbols in one request',
    'RATE_LIMITED': 'Too many requests. Please try again in a minute.',
    'TIMEOUT': 'Request timeout. Please try again.',
    'PROVIDER_ERROR': 'Market data provider error',
    'API_KEY_ERROR': 'API configuration error. Please check server setup.',
    'MALFORMED_RESPONSE': 'Market data provider returned unexpected data',
    'SYMBOL_NOT_FOUND': 'Stock symbol not found',
    'SERVICE_UNAVAILABLE': 'Service temporarily unavailable',
    'QUOTE_UNAVAILABLE': 'Quote temporarily unavailable',
    'CONFIGURATION_ERROR': 'API configuration error. Please check server setup.',
}


def get_market_data():
    return current_app.extensions['market_data']


def get_rate_limiter(name):
    return current_app.extensions.get('rate_limits', {}).get(name)


def elapsed_ms(start_time: float) -> int:
    return int((time.time() - start_time) * 1000)


def with_headers(response, start_time: float, source: str = None, max_age: int = None):
    response.headers['X-Response-Time'] = f"{elapsed_ms(start_time)}ms"
    if source:
        response.headers['X-Data-Source'] = source
    if max_age is not None:
        response.headers['Cache-Control'] = f"public, max-age={max_age}"
    return response


def operation_name() -> str:
    endpoint = request.endpoint or ''
    return endpoint.rsplit('.', 1)[-1].replace('_', '-')


def client_rate_limit(name):
    """
    Build a before_request hook enforcing the named per-client limit.

    Over-limit clients get a 429 with a retryAfter hint and never reach the
    market data service.
    """
    def check_client_rate_limit():
        if request.method == 'OPTIONS':
            return None
        limiter = get_rate_limiter(name)
        if limiter is None:
            return None

        allowed, retry_after = limiter.hit(request.remote_addr)
        if allowed:
            return None

        response = jsonify({
            'success': False,
            'error': 'Rate limit exceeded',
            'message': 'Too many requests. Please wait a moment before trying again.',
            'code': 'RATE_LIMITED',
            'operation': operation_name(),
            'retryable': True,
            'retryAfter': retry_after,
            'timestamp': datetime.now().isoformat(),
        })
        response.headers['Retry-After'] = str(retry_after)
        return response, 429

    return check_client_rate_limit


def register_error_handlers(bp, log_tag):
    """Map MarketDataError subclasses to their HTTP status and JSON body."""

    @bp.errorhandler(MarketDataError)
    def handle_market_data_error(error):
        operation = operation_name()
        if error.http_status >= 500:
            logger.error(f"[{log_tag}] {operation} failed: {error.code} {error}")
        else:
            logger.info(f"[{log_tag}] {operation} rejected: {error.code} {error}")

        body = {
            'success': False,
            'error': USER_MESSAGES.get(error.code, 'Internal server error'),
            'message': error.message,
            'code': error.code,
            'operation': operation,
            'retryable': error.retryable,
            'timestamp': datetime.now().isoformat(),
        }
        providers = error.to_dict().get('providers')
        if providers:
            body['providers'] = providers
        return jsonify(body), error.http_status

    @bp.errorhandler(Exception)
    def handle_unexpected_error(error):
        if isinstance(error, HTTPException):
            return error
        logger.exception(f"[{log_tag}] Unexpected error in {operation_name()}: {error}")
        return jsonify({
            'success': False,
            'error': 'Internal server error',
            'message': str(error),
            'code': 'UNKNOWN_ERROR',
            'operation': operation_name(),
            'retryable': True,
            'timestamp': datetime.now().isoformat(),
        }), 500
