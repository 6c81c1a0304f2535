"""
Integration tests for the news API endpoints.

Endpoints tested:
    GET    /api/news/financial
    GET    /api/news/company/<symbol>
    GET    /api/news/health
"""
from datetime import date, timedelta

import pytest

from techinvestor.services.market_data import ProviderError, RateLimitedError


def _server_error():
    return ProviderError("upstream 503", status_code=503)


class TestFinancialNews:
    """Tests for GET /api/news/financial."""

    def test_general_news(self, client, primary):
        """Test headlines are served from Finnhub with a five minute cache header."""
        resp = client.get('/api/news/financial')

        assert resp.status_code == 200
        data = resp.get_json()
        assert data['success'] is True
        assert [a['headline'] for a in data['news']] == [
            "Stocks rally into the close", "Fed holds rates steady", "Oil slips on supply data",
        ]
        assert data['metadata']['count'] == 3
        assert data['metadata']['category'] == 'general'
        assert data['metadata']['source'] == 'finnhub'
        assert resp.headers['Cache-Control'] == 'public, max-age=300'
        assert resp.headers['X-Data-Source'] == 'finnhub'
        assert primary.calls_for('news') == ['general']

    def test_second_request_is_cached(self, client, primary):
        client.get('/api/news/financial')
        client.get('/api/news/financial')

        assert primary.calls_for('news') == ['general']

    def test_unknown_category(self, client, primary):
        """Test an unknown category is a 400 before any provider call."""
        resp = client.get('/api/news/financial?category=sports')

        assert resp.status_code == 400
        data = resp.get_json()
        assert data['code'] == 'INVALID_INPUT'
        assert data['operation'] == 'financial-news'
        assert primary.calls_for('news') == []

    def test_rate_limited(self, client, primary):
        """Test a news provider rate limit surfaces as 429."""
        primary.fail_with('news', lambda: RateLimitedError("429"))

        resp = client.get('/api/news/financial')

        assert resp.status_code == 429
        assert resp.get_json()['code'] == 'RATE_LIMITED'

    def test_outage_is_503(self, client, primary):
        primary.fail_with('news', _server_error)

        resp = client.get('/api/news/financial')

        assert resp.status_code == 503
        assert resp.get_json()['providers'] == {'finnhub': 'PROVIDER_ERROR'}


class TestCompanyNews:
    """Tests for GET /api/news/company/<symbol>."""

    def test_company_news(self, client, primary):
        """Test company headlines cover the last seven days."""
        resp = client.get('/api/news/company/aapl')

        assert resp.status_code == 200
        data = resp.get_json()
        assert data['symbol'] == 'AAPL'
        assert data['metadata']['count'] == 2
        assert all(a['symbol'] == 'AAPL' for a in data['news'])
        today = date.today()
        assert data['metadata']['dateRange'] == f"{today - timedelta(days=7)} to {today}"
        assert resp.headers['Cache-Control'] == 'public, max-age=300'
        assert primary.calls_for('company_news') == ['AAPL']

    @pytest.mark.parametrize("symbol", ['12345678901', 'ab-c'])
    def test_invalid_symbol(self, client, primary, symbol):
        """Test malformed symbols are rejected before any provider call."""
        resp = client.get(f'/api/news/company/{symbol}')

        assert resp.status_code == 400
        assert resp.get_json()['code'] == 'INVALID_SYMBOL'
        assert primary.calls_for('company_news') == []

    def test_no_headlines(self, client):
        """Test a symbol without news is an empty list, not an error."""
        resp = client.get('/api/news/company/MSFT')

        assert resp.status_code == 200
        assert resp.get_json()['news'] == []


class TestNewsHealth:
    """Tests for GET /api/news/health."""

    def test_healthy(self, client, primary):
        """Test the health check always reaches the provider."""
        client.get('/api/news/financial')

        resp = client.get('/api/news/health')

        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'healthy'
        assert primary.calls_for('news') == ['general', 'general']

    def test_unhealthy(self, client, primary):
        primary.fail_with('news', _server_error)

        resp = client.get('/api/news/health')

        assert resp.status_code == 503
        data = resp.get_json()
        assert data['status'] == 'unhealthy'
        assert 'error' in data


class TestNewsRateLimit:
    """Tests for the per-client limit on /api/news."""

    @pytest.fixture
    def limited_client(self, test_config, market_data):
        from techinvestor import create_app

        class LimitedConfig(test_config):
            NEWS_RATE_LIMIT = '2'

        application = create_app(LimitedConfig, market_data_service=market_data)
        yield application.test_client()
        market_data.shutdown()

    def test_over_limit_client_gets_429(self, limited_client):
        """Test the third request inside the window is refused."""
        assert limited_client.get('/api/news/financial').status_code == 200
        assert limited_client.get('/api/news/financial').status_code == 200

        resp = limited_client.get('/api/news/financial')

        assert resp.status_code == 429
        assert resp.get_json()['operation'] == 'financial-news'
        assert 'Retry-After' in resp.headers
