from flask import Blueprint, request, jsonify
from .common import client_rate_limit, elapsed_ms, get_market_data, register_error_handlers, with_headers
import logging
import time
from datetime import datetime

news_bp = Blueprint('news', __name__, url_prefix='/api/news')
logger = logging.getLogger(__name__)

# 30 requests per 15 minutes per client by default (NEWS_RATE_LIMIT)
news_bp.before_request(client_rate_limit('news'))
register_error_handlers(news_bp, 'NewsAPI')

NEWS_MAX_AGE = 300


@news_bp.route('/financial', methods=['GET'])
def financial_news():
    """General financial headlines (?category=general|forex|crypto|merger)"""
    start_time = time.time()
    result = get_market_data().get_market_news(request.args.get('category', 'general'))
    logger.info(f"[NewsAPI] {result.subject} news: {result.count} articles from {result.source}")

    response = jsonify({
        'success': True,
        'news': [article.to_dict() for article in result.articles],
        'metadata': {
            'count': result.count,
            'category': result.subject,
            'source': result.source,
            'timestamp': datetime.now().isoformat(),
            'responseTime': elapsed_ms(start_time),
        }
    })
    return with_headers(response, start_time, source=result.source, max_age=NEWS_MAX_AGE)


@news_bp.route('/company/<symbol>', methods=['GET'])
def company_news(symbol):
    """Company headlines over the last week"""
    start_time = time.time()
    result = get_market_data().get_company_news(symbol)
    logger.info(f"[NewsAPI] {result.subject} company news: {result.count} articles ({result.date_range})")

    response = jsonify({
        'success': True,
        'news': [article.to_dict() for article in result.articles],
        'symbol': result.subject,
        'metadata': {
            'count': result.count,
            'source': result.source,
            'dateRange': result.date_range,
            'timestamp': datetime.now().isoformat(),
            'responseTime': elapsed_ms(start_time),
        }
    })
    return with_headers(response, start_time, source=result.source, max_age=NEWS_MAX_AGE)


@news_bp.route('/health', methods=['GET'])
def health():
    try:
        result = get_market_data().get_market_news(use_cache=False)
    except Exception as e:
        logger.warning(f"[NewsAPI] Health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'service': 'news',
            'error': str(e),
            'timestamp': datetime.now().isoformat(),
        }), 503

    return jsonify({
        'status': 'healthy',
        'service': 'news',
        'source': result.source,
        'timestamp': datetime.now().isoformat(),
    })
