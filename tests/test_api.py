"""
HTTP surface: health, market data reads, the cron-protected update endpoint
and the financial model endpoint.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from agents.errors import PersistenceFailure, ProviderFailure
from api.main import app
from api.routes import get_services
from config.settings import settings
from services import Services
from services.financial_model import FinancialModelEnhancer
from services.market_data import MarketDataManager
from services.update_scheduler import MarketUpdateService

UPDATES = "/api/v1/market-data/updates"


@pytest.fixture
def services(fake_aggregator, session_factory, test_settings, clock):
    manager = MarketDataManager(fake_aggregator, session_factory=session_factory,
                                settings=test_settings, clock=clock)
    return Services(
        aggregator=fake_aggregator,
        manager=manager,
        scheduler=MarketUpdateService(manager, sleep=lambda s: None,
                                      executor=ThreadPoolExecutor(max_workers=1)),
        enhancer=FinancialModelEnhancer(),
    )


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def _cron(secret=None):
    return {"X-Cron-Secret": secret or settings.CRON_SECRET}


class TestSystem:
    def test_health(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"


class TestErrorMapping:
    def test_store_outage_is_503(self, client, services, monkeypatch):
        def locked():
            raise PersistenceFailure("update stats unavailable: database is locked")

        monkeypatch.setattr(services.scheduler, "get_update_stats", locked)
        resp = client.get("/api/v1/market-data/stats")
        assert resp.status_code == 503
        assert resp.json() == {
            "success": False,
            "error": "PersistenceFailure",
            "detail": "update stats unavailable: database is locked",
        }

    def test_provider_failure_is_502(self, client, fake_aggregator, monkeypatch):
        def down(*args, **kwargs):
            raise ProviderFailure("status source unreachable")

        monkeypatch.setattr(fake_aggregator, "get_market_data_status", down)
        resp = client.get("/api/v1/market-data/status")
        assert resp.status_code == 502
        assert resp.json()["error"] == "ProviderFailure"


class TestMarketDataRoutes:
    def test_market_data(self, client, fake_aggregator):
        resp = client.get("/api/v1/market-data", params={"industry": "coffee shop", "location": "Austin"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["industry"] == "coffee shop"
        assert body["data_quality"]["overall_reliability"] == "HIGH"
        assert fake_aggregator.calls == [("coffee shop", "Austin")]

    def test_radius_is_bounded(self, client):
        resp = client.get("/api/v1/market-data", params={"industry": "coffee shop", "radius": 10})
        assert resp.status_code == 422

    def test_insights(self, client):
        resp = client.get("/api/v1/market-data/insights", params={"industry": "coffee shop", "location": "Austin"})
        assert resp.status_code == 200
        assert resp.json()["insights"].startswith("ENHANCED MARKET INTELLIGENCE")

    def test_status(self, client):
        assert client.get("/api/v1/market-data/status").json()["status"] == "HEALTHY"

    def test_stats(self, client):
        client.get("/api/v1/market-data/insights", params={"industry": "bakery", "location": "Austin"})
        body = client.get("/api/v1/market-data/stats").json()
        assert body["success"] is True
        assert body["cache"] == {"industries_count": 1, "industries": ["bakery_Austin"]}
        assert body["stats"]["total_industries"] == 1


class TestUpdateAuth:
    def test_missing_credentials(self, client):
        resp = client.post(UPDATES, json={"action": "get_stats"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Unauthorized"

    def test_wrong_cron_secret(self, client):
        resp = client.post(UPDATES, json={"action": "get_stats"}, headers=_cron("nope"))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid cron secret"

    def test_wrong_bearer_token(self, client):
        resp = client.post(UPDATES, json={"action": "get_stats"}, headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid authorization"

    def test_bearer_token(self, client):
        headers = {"Authorization": f"Bearer {settings.CRON_SECRET}"}
        assert client.post(UPDATES, json={"action": "get_stats"}, headers=headers).status_code == 200


class TestUpdateActions:
    def test_get_stats(self, client):
        body = client.post(UPDATES, json={"action": "get_stats"}, headers=_cron()).json()
        assert body["success"] is True
        assert body["cached_industries"] == 0
        assert body["stats"]["total_industries"] == 0

    def test_update_industry_requires_industry(self, client):
        resp = client.post(UPDATES, json={"action": "update_industry"}, headers=_cron())
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Industry parameter required"

    def test_update_industry(self, client, services):
        body = client.post(
            UPDATES, json={"action": "update_industry", "industry": "bakery", "location": "Austin"},
            headers=_cron(),
        ).json()
        assert body == {"success": True, "message": "Updated market data for bakery"}
        assert services.manager.get_cached_industries() == ["bakery_Austin"]

    def test_forced_update_is_logged(self, client, services):
        client.post(
            UPDATES, json={"action": "update_industry", "industry": "bakery", "force": True},
            headers=_cron(),
        )
        assert services.scheduler.get_update_stats()["recent_updates"] == 1

    def test_update_all_with_nothing_due(self, client):
        body = client.post(UPDATES, json={"action": "update_all"}, headers=_cron()).json()
        assert body["success"] is True
        assert body["results"]["processed"] == 0

    def test_force_update_all(self, client, services, fake_aggregator):
        services.manager.get_market_data("bakery", "Austin")
        body = client.post(UPDATES, json={"action": "force_update_all"}, headers=_cron()).json()
        assert body["results"]["processed"] == 1
        assert len(fake_aggregator.calls) == 2

    def test_clear_cache(self, client, services):
        services.manager.get_market_data("bakery", "Austin")
        body = client.post(UPDATES, json={"action": "clear_cache"}, headers=_cron()).json()
        assert body["message"] == "Cache cleared successfully"
        assert services.manager.get_cached_industries() == []

    def test_invalid_action(self, client):
        resp = client.post(UPDATES, json={"action": "reindex"}, headers=_cron())
        assert resp.status_code == 400
        assert resp.json()["detail"].startswith("Invalid action")


class TestFinancialModelRoute:
    def test_enhance(self, client):
        resp = client.post("/api/v1/financial-model/enhance", json={"business_type": "coffee shop"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["benchmark"]["family"] == "FOOD"
        assert body["validation"]["consistency_score"] == 100
        assert len(body["model"]["revenue"]["monthly"]) == 12

    def test_enhance_with_market_data(self, client, fake_aggregator):
        resp = client.post("/api/v1/financial-model/enhance", json={
            "business_type": "coffee shop",
            "location": "Austin",
            "include_market_data": True,
            "projections": {"initial_investment": 5000},
        })
        body = resp.json()
        assert fake_aggregator.calls == [("coffee shop", "Austin")]
        assert body["validation"]["consistency_score"] == 75

    def test_rejects_bad_projections(self, client):
        resp = client.post("/api/v1/financial-model/enhance", json={
            "business_type": "coffee shop",
            "projections": {"customers": 0},
        })
        assert resp.status_code == 422
