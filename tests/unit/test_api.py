"""
Unit Tests - Report API
"""
from datetime import datetime, timezone

import httpx
import pytest

from stockpulse.data.generators import SyntheticShop
from stockpulse.main import create_app
from stockpulse.reporting.engine import EngineOptions, ReportEngine
from stockpulse.serving.cache import ReportCache


@pytest.fixture
def shop():
    return SyntheticShop.generate(seed=7, n_products=5, n_orders=80, days=100, now=datetime.now(timezone.utc))


@pytest.fixture
async def make_api(make_client):
    """HTTP client for an app wired to an engine over ``handler``"""
    clients = []

    def factory(handler, cache_enabled=True):
        cache = ReportCache() if cache_enabled else None
        engine = ReportEngine(make_client(handler), cache=cache, options=EngineOptions(timezone="UTC"))
        app = create_app(engine=engine)
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.aclose()


@pytest.fixture
def api(shop, make_api):
    return make_api(shop.handler)


class TestSalesReport:
    """Tests for /api/v1/reports/sales"""

    async def test_daily_report(self, api):
        response = await api.get("/api/v1/reports/sales", params={"period": "daily"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["period"] == "daily"
        assert body["cached"] is False
        assert body["totals"]["qty"] == sum(row["sold_qty"] for row in body["rows"])
        assert set(body["channels"]) == {"POS", "ONLINE"}
        assert sum(loc["orders"] for loc in body["locations"].values()) == body["totals"]["orders"]
        assert response.headers["X-Cache"] == "MISS"

    async def test_second_request_hits_cache(self, api):
        await api.get("/api/v1/reports/sales", params={"period": "daily", "today": "true"})

        response = await api.get("/api/v1/reports/sales", params={"period": "daily", "today": "true"})

        assert response.headers["X-Cache"] == "HIT"
        assert response.json()["cached"] is True

    async def test_debug_bypasses_cache(self, api):
        await api.get("/api/v1/reports/sales")

        response = await api.get("/api/v1/reports/sales", params={"debug": "true"})

        assert response.headers["X-Cache"] == "MISS"

    async def test_weekly_reports_dead_stock_skip(self, api):
        response = await api.get("/api/v1/reports/sales", params={"period": "weekly"})

        body = response.json()
        assert body["dead_stock"] == []
        assert body["dead_stock_skipped"] == "disabled for weekly reports"

    async def test_invalid_period(self, api):
        response = await api.get("/api/v1/reports/sales", params={"period": "hourly"})

        assert response.status_code == 422

    async def test_failed_collection_is_structured_error(self, make_api):
        api = make_api(lambda request: httpx.Response(404))

        response = await api.get("/api/v1/reports/sales")

        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert body["error_type"] == "CollectionError"
        assert "start" in body["context"]


class TestServiceEndpoints:
    """Tests for health, cache and middleware"""

    async def test_health(self, api):
        response = await api.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["shopify"]["shop"] == "test-shop.myshopify.com"
        assert body["checks"]["cache"] == {"size": 0, "max_entries": 15}

    async def test_liveness(self, api):
        response = await api.get("/api/v1/health/live")

        assert response.json() == {"status": "alive"}

    async def test_cache_stats_and_clear(self, api):
        await api.get("/api/v1/reports/sales")

        stats = (await api.get("/api/v1/cache/stats")).json()
        cleared = (await api.delete("/api/v1/cache")).json()

        assert stats["size"] == 1
        assert cleared == {"cleared": 1}
        assert (await api.get("/api/v1/cache/stats")).json()["size"] == 0

    async def test_cache_endpoints_without_cache(self, shop, make_api):
        api = make_api(shop.handler, cache_enabled=False)

        stats = await api.get("/api/v1/cache/stats")
        cleared = await api.delete("/api/v1/cache")

        assert stats.status_code == 503
        assert stats.json()["detail"] == "Report cache is disabled"
        assert cleared.status_code == 503

    async def test_request_headers(self, api):
        response = await api.get("/api/v1/health/live", headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Response-Time"].endswith("ms")

    async def test_info(self, api):
        response = await api.get("/api/v1/info")

        assert response.json()["name"] == "StockPulse API"

    async def test_metrics(self, api):
        await api.get("/api/v1/reports/sales")

        response = await api.get("/api/v1/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'stockpulse_reports_total{period="daily",source="computed"}' in response.text
        assert "stockpulse_shopify_calls_total" in response.text
