from flask import Blueprint, request, jsonify
from .common import (
    client_rate_limit, elapsed_ms, get_market_data, get_rate_limiter, register_error_handlers,
    with_headers,
)
import logging
import time
from datetime import datetime

stocks_bp = Blueprint('stocks', __name__, url_prefix='/api/stocks')
logger = logging.getLogger(__name__)

# 50 requests per minute per client by default (STOCKS_RATE_LIMIT)
stocks_bp.before_request(client_rate_limit('stocks'))
register_error_handlers(stocks_bp, 'StocksAPI')


@stocks_bp.route('/search/<path:query>', methods=['GET'])
def search(query):
    """Search stocks by symbol or company name"""
    start_time = time.time()
    result = get_market_data().search_stocks(query)
    logger.info(f"[StocksAPI] Search '{result.query}': {result.count} results from {result.source}")

    response = jsonify({
        'success': True,
        'results': [match.to_dict() for match in result.matches],
        'metadata': {
            'query': result.query,
            'count': result.count,
            'source': result.source,
            'timestamp': result.timestamp,
            'responseTime': elapsed_ms(start_time),
        }
    })
    return with_headers(response, start_time, source=result.source, max_age=600)


@stocks_bp.route('/quote/<symbol>', methods=['GET'])
def quote(symbol):
    start_time = time.time()
    result = get_market_data().get_quote(symbol)

    response = jsonify({
        'success': True,
        'symbol': result.symbol,
        'quote': result.to_dict(),
        'metadata': {
            'source': result.source,
            'timestamp': result.timestamp,
            'responseTime': elapsed_ms(start_time),
        }
    })
    return with_headers(response, start_time, source=result.source, max_age=30)


@stocks_bp.route('/profile/<symbol>', methods=['GET'])
def profile(symbol):
    """Company profile"""
    start_time = time.time()
    result = get_market_data().get_company_profile(symbol)

    response = jsonify({
        'success': True,
        'symbol': result.symbol,
        'profile': result.to_dict(),
        'metadata': {
            'source': result.source,
            'timestamp': datetime.now().isoformat(),
            'responseTime': elapsed_ms(start_time),
        }
    })
    return with_headers(response, start_time, source=result.source, max_age=3600)


@stocks_bp.route('/batch-quotes', methods=['POST'])
def batch_quotes():
    """Batch quotes for portfolios (max 10 symbols)"""
    data = request.get_json(silent=True) or {}
    symbols = data.get('symbols') if isinstance(data, dict) else None

    if not isinstance(symbols, list) or not symbols:
        return jsonify({
            'success': False,
            'error': 'Symbols array is required',
            'code': 'MISSING_SYMBOLS',
            'example': '["AAPL", "MSFT", "GOOGL"]',
        }), 400

    start_time = time.time()
    batch = get_market_data().get_batch_quotes(symbols)
    payload = batch.to_dict()

    sources = sorted({q.source for q in batch.results.values() if q.source})
    response = jsonify({
        'success': True,
        'results': payload['results'],
        'errors': payload['errors'],
        'metadata': {
            'requested': len(symbols),
            'successful': len(batch.results),
            'failed': len(batch.errors),
            'responseTime': elapsed_ms(start_time),
            'timestamp': datetime.now().isoformat(),
        }
    })
    return with_headers(response, start_time, source=','.join(sources))


@stocks_bp.route('/health', methods=['GET'])
def health():
    start_time = time.time()
    try:
        result = get_market_data().health_check()
    except Exception as e:
        logger.exception(f"[StocksAPI] Health check crashed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': datetime.now().isoformat(),
        }), 500

    status_code = 200 if result['status'] == 'healthy' else 503
    return with_headers(jsonify(result), start_time), status_code


@stocks_bp.route('/stats', methods=['GET'])
def stats():
    return jsonify({
        'success': True,
        'stats': {
            **get_market_data().get_stats(),
            'clientLimits': {
                name: get_rate_limiter(name).stats
                for name in ('stocks', 'news') if get_rate_limiter(name) is not None
            },
            'timestamp': datetime.now().isoformat(),
        }
    })


@stocks_bp.route('/cache', methods=['DELETE'])
def clear_cache():
    """Manual cache flush (admin)"""
    pattern = request.args.get('pattern') or None
    cleared = get_market_data().invalidate_cache(pattern)
    logger.info(f"[StocksAPI] Cache cleared: {cleared} entries (pattern: {pattern or '*'})")
    return jsonify({'success': True, 'cleared': cleared})
