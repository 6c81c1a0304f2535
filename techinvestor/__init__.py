from flask import Flask
from flask_cors import CORS
import os
import logging
import atexit
from .config import Config, market_data_environ
from .utils.rate_limit import ClientRateLimiter


def create_app(config_class=Config, market_data_service=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Configure Logging
    log_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    log_level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(log_formatter)
    handlers = [console_handler]

    # File handler - saves to <LOG_DIR>/backend.log
    log_dir = app.config.get('LOG_DIR')
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(log_dir, 'backend.log'))
        file_handler.setLevel(log_level)
        file_handler.setFormatter(log_formatter)
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        handlers=handlers
    )

    # CORS
    CORS(app, resources={r"/api/*": {"origins": app.config.get('CORS_ORIGINS', '*')}})

    # Market data service (fails fast without FINNHUB_API_KEY)
    if market_data_service is None:
        from .services.market_data import MarketDataConfig, MarketDataService
        market_data_config = MarketDataConfig.from_env(market_data_environ(app.config))
        market_data_service = MarketDataService(market_data_config)

    app.extensions['market_data'] = market_data_service
    market_data_service.start()
    atexit.register(market_data_service.shutdown)

    # Per-client inbound limits
    app.extensions['rate_limits'] = {
        'stocks': ClientRateLimiter(int(app.config.get('STOCKS_RATE_LIMIT', 50)),
                                    float(app.config.get('STOCKS_RATE_WINDOW', 60))),
        'news': ClientRateLimiter(int(app.config.get('NEWS_RATE_LIMIT', 30)),
                                  float(app.config.get('NEWS_RATE_WINDOW', 900))),
    }

    # Register Blueprints
    from .api.stocks import stocks_bp
    from .api.news import news_bp

    app.register_blueprint(stocks_bp)
    app.register_blueprint(news_bp)

    @app.route('/health')
    def health():
        return {'status': 'ok', 'market_data': market_data_service.is_running}

    return app
