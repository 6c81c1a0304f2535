import os
import logging

from dotenv import load_dotenv

# ../.env
DOTENV_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), '../.env')

load_dotenv(DOTENV_PATH)

logger = logging.getLogger(__name__)

# Keys forwarded to MarketDataConfig.from_env()
MARKET_DATA_KEYS = (
    'FINNHUB_API_KEY',
    'ALPHA_VANTAGE_API_KEY',
    'REDIS_URL',
    'MARKET_DATA_QUOTE_TTL',
    'MARKET_DATA_SEARCH_TTL',
    'MARKET_DATA_PROFILE_TTL',
    'MARKET_DATA_NEWS_TTL',
    'MARKET_DATA_HEALTH_INTERVAL',
)


class Config:
    # Basic Config
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')

    # Market data providers
    FINNHUB_API_KEY = os.getenv('FINNHUB_API_KEY')
    ALPHA_VANTAGE_API_KEY = os.getenv('ALPHA_VANTAGE_API_KEY')

    # Optional shared cache (Redis) for multi-instance deployments
    REDIS_URL = os.getenv('REDIS_URL')

    # Cache TTLs in seconds
    MARKET_DATA_QUOTE_TTL = os.getenv('MARKET_DATA_QUOTE_TTL', '30')
    MARKET_DATA_SEARCH_TTL = os.getenv('MARKET_DATA_SEARCH_TTL', '600')
    MARKET_DATA_PROFILE_TTL = os.getenv('MARKET_DATA_PROFILE_TTL', '3600')
    MARKET_DATA_NEWS_TTL = os.getenv('MARKET_DATA_NEWS_TTL', '300')

    # Background health check interval in seconds (0 disables it)
    MARKET_DATA_HEALTH_INTERVAL = os.getenv('MARKET_DATA_HEALTH_INTERVAL', '300')

    # Per-client inbound limits (requests per window; 0 disables)
    STOCKS_RATE_LIMIT = os.getenv('STOCKS_RATE_LIMIT', '50')
    STOCKS_RATE_WINDOW = os.getenv('STOCKS_RATE_WINDOW', '60')
    NEWS_RATE_LIMIT = os.getenv('NEWS_RATE_LIMIT', '30')
    NEWS_RATE_WINDOW = os.getenv('NEWS_RATE_WINDOW', '900')

    # Logging
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # CORS
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*')

    if not FINNHUB_API_KEY:
        logger.warning("FINNHUB_API_KEY is not set; the market data service will refuse to start")


def market_data_environ(config) -> dict:
    """Collect the market data settings from a Flask config mapping."""
    environ = {}
    for key in MARKET_DATA_KEYS:
        value = config.get(key)
        if value not in (None, ''):
            environ[key] = str(value)
    return environ
