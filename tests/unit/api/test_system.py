from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from countdown.api.dependencies import get_time_source
from countdown.core.clock import ManualTimeSource

NOW = datetime(2025, 12, 31, 14, 57, tzinfo=timezone.utc)


@pytest.fixture
def clock(dependency_overrides: dict) -> ManualTimeSource:
    source = ManualTimeSource(NOW)
    dependency_overrides[get_time_source] = lambda: source
    return source


class TestServerTime:
    def test_returns_reference_instant(self, test_client: TestClient, clock: ManualTimeSource) -> None:
        response = test_client.get("/api/v1/system/time")
        assert response.status_code == 200
        data = response.json()
        assert data["timezone"] == "UTC"
        assert datetime.fromisoformat(data["timestamp"]) == NOW

    def test_is_cacheable_for_a_few_seconds(self, test_client: TestClient, clock: ManualTimeSource) -> None:
        response = test_client.get("/api/v1/system/time")
        assert "max-age=5" in response.headers["Cache-Control"]

    def test_is_idempotent(self, test_client: TestClient, clock: ManualTimeSource) -> None:
        first = test_client.get("/api/v1/system/time").json()
        second = test_client.get("/api/v1/system/time").json()
        assert first == second
        assert clock.now() == NOW

    def test_real_clock(self, test_client: TestClient) -> None:
        response = test_client.get("/api/v1/system/time")
        assert response.status_code == 200
        assert datetime.fromisoformat(response.json()["timestamp"]).tzinfo is not None


class TestNewYear:
    def test_resolves_zone(self, test_client: TestClient, clock: ManualTimeSource) -> None:
        data = test_client.get("/api/v1/system/new-year", params={"timezone": "Asia/Tokyo"}).json()
        assert data["timezone"] == "Asia/Tokyo"
        assert data["fell_back"] is False
        assert datetime.fromisoformat(data["target"]) == datetime(2025, 12, 31, 15, 0, tzinfo=timezone.utc)
        assert data["seconds_remaining"] == 180.0

    def test_unknown_zone_falls_back(self, test_client: TestClient, clock: ManualTimeSource) -> None:
        data = test_client.get("/api/v1/system/new-year", params={"timezone": "Nowhere/Special"}).json()
        assert data["timezone"] == "Europe/Moscow"
        assert data["fell_back"] is True

    def test_no_zone_uses_default(self, test_client: TestClient, clock: ManualTimeSource) -> None:
        data = test_client.get("/api/v1/system/new-year").json()
        assert data["timezone"] == "Europe/Moscow"
