"""
Tests for the HTTP surface.
"""

from datetime import date, timedelta
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.estimator import (
    AggregateRollup,
    AreaRange,
    ComparableTransaction,
    InMemoryTransactionStore,
    PropertyCategory,
    TransactionDirection,
    ValuationEngine,
)
from utils.config import Config
from web.app import create_app


REFERENCE_DATE = date(2024, 6, 1)

SUBJECT = {
    "category": "condo",
    "bedrooms": 2,
    "bathrooms": 2,
    "area_range": "800-899",
    "community_id": "C1",
}


def _txn(index: int, price: int) -> ComparableTransaction:
    return ComparableTransaction(
        transaction_id=f"TXN-{index:03d}",
        direction=TransactionDirection.SALE,
        category=PropertyCategory.CONDO,
        close_price=price,
        close_date=REFERENCE_DATE - timedelta(days=10 * index),
        bedrooms=2,
        bathrooms=2,
        exact_sqft=850,
        area_range=AreaRange(800, 899),
        building_id="B1",
        community_id="C1",
    )


@pytest.fixture
def client():
    store = InMemoryTransactionStore([_txn(i, 700000 + 2000 * i) for i in range(1, 9)])
    engine = ValuationEngine(store, reference_date=REFERENCE_DATE)
    app = create_app(engine=engine, rollup=AggregateRollup(store), config=Config())
    return TestClient(app)


class TestHealth:

    def test_root(self, client):
        assert client.get("/").json() == {"status": "ok"}

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestEstimateRoutes:

    def test_estimate(self, client):
        response = client.post("/api/estimate", json={"subject": SUBJECT, "direction": "sale"})

        assert response.status_code == 200
        data = response.json()
        assert data["tier"] == "community"
        assert data["confidence"] == "high"
        assert data["show_price"] is True
        assert data["price_range"]["low"] <= data["estimated_price"] <= data["price_range"]["high"]

    def test_comparables(self, client):
        response = client.post("/api/comparables", json={"subject": SUBJECT, "direction": "sale"})

        assert response.status_code == 200
        data = response.json()
        assert data["tier"] == "community"
        assert data["sample_count"] == 8

    def test_invalid_subject_is_422(self, client):
        response = client.post("/api/estimate", json={"subject": {"category": "condo"}, "direction": "sale"})

        assert response.status_code == 422
        assert "either exact_sqft or area_range is required" in response.json()["errors"]

    def test_store_failure_is_503(self):
        class DownStore:
            def query(self, query):
                raise ConnectionError("refused")

            def scan(self):
                raise ConnectionError("refused")

        app = create_app(engine=ValuationEngine(DownStore(), reference_date=REFERENCE_DATE), config=Config())
        response = TestClient(app).post("/api/estimate", json={"subject": SUBJECT, "direction": "sale"})

        assert response.status_code == 503


class TestPsfRoutes:

    def test_refresh_then_read(self, client):
        refresh = client.post("/api/psf/refresh", json={"levels": ["building"]})
        assert refresh.status_code == 200
        assert refresh.json()["summaries_written"] == 1

        response = client.get("/api/psf/building/B1")
        assert response.status_code == 200
        assert response.json()["sale"]["sample_count"] == 8

    def test_missing_summary_is_404(self, client):
        assert client.get("/api/psf/community/NOPE").status_code == 404

    def test_unknown_level_is_404(self, client):
        assert client.get("/api/psf/planet/earth").status_code == 404


class TestConfig:

    def test_engine_config_from_environment(self, monkeypatch):
        monkeypatch.setenv("COMPARABLE_CAP", "12")
        monkeypatch.setenv("SALE_LOOKBACK_MONTHS", "12")
        monkeypatch.setenv("SHOW_PRICE_FLOOR", "2")

        engine_config = Config.load().engine_config()

        assert engine_config.comparable_cap == 12
        assert engine_config.sale_lookback_months == 12
        assert engine_config.lease_lookback_months == 18
        assert engine_config.show_price_floor == 2

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("TRANSACTIONS_FILE", raising=False)
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        monkeypatch.delenv("INSIGHTS_TIMEOUT", raising=False)

        data = Config.load().to_dict()

        assert data["transactions_file"] is None
        assert data["log_level"] == "INFO"
        assert data["insights_timeout"] == 8.0
