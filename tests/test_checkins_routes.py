"""Integration tests for POST /v1/checkins and the health probes."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.adapters.store.base import CAFES_TABLE, CHECKINS_TABLE
from app.adapters.store.in_memory import InMemoryStore
from app.core.app_factory import create_app
from app.core.config import settings
from app.core.dependencies import get_store
from tests.conftest import RecordingStore


@pytest.fixture
def checkin_store() -> RecordingStore:
    store = RecordingStore(InMemoryStore())
    store.inner.upsert(
        CAFES_TABLE,
        [{"place_id": "p1", "name": "Blue Bottle", "lat": 37.78, "lng": -122.41}],
        conflict_key="place_id",
    )
    return store


@pytest.fixture
def app(checkin_store: RecordingStore) -> FastAPI:
    application = create_app()
    application.dependency_overrides[get_store] = lambda: checkin_store
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def cafe_id(checkin_store: RecordingStore) -> str:
    return checkin_store.inner.get(CAFES_TABLE, "place_id", "p1")["id"]


class TestCreateCheckin:
    def test_records_checkin(self, client: TestClient, checkin_store: RecordingStore, cafe_id: str) -> None:
        response = client.post("/v1/checkins", json={"cafe_id": cafe_id})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["check_in"]["cafe_id"] == cafe_id
        assert body["check_in"]["id"]
        assert body["check_in"]["created_at"]
        assert checkin_store.inner.get(CHECKINS_TABLE, "id", body["check_in"]["id"]) is not None

    def test_unknown_cafe_returns_404(self, client: TestClient) -> None:
        response = client.post("/v1/checkins", json={"cafe_id": "does-not-exist"})

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "cafe_not_found"
        assert error["details"]["cafe_id"] == "does-not-exist"

    def test_blank_cafe_id_returns_400(self, client: TestClient, checkin_store: RecordingStore) -> None:
        response = client.post("/v1/checkins", json={"cafe_id": "   "})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_cafe_id"
        assert ("insert", CHECKINS_TABLE) not in checkin_store.calls

    def test_missing_body_field_is_rejected(self, client: TestClient) -> None:
        response = client.post("/v1/checkins", json={})
        assert response.status_code == 422

    def test_store_failure_returns_503(self, client: TestClient, checkin_store: RecordingStore, cafe_id: str) -> None:
        checkin_store.fail_on.add("insert")

        response = client.post("/v1/checkins", json={"cafe_id": cafe_id})

        assert response.status_code == 503

    def test_rate_limited_separately_from_cafes(
        self,
        client: TestClient,
        cafe_id: str,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "checkins_requests", 1)

        assert client.post("/v1/checkins", json={"cafe_id": cafe_id}).status_code == 200
        denied = client.post("/v1/checkins", json={"cafe_id": cafe_id})

        assert denied.status_code == 429
        assert denied.json()["error"]["details"]["route"] == "POST /v1/checkins"


class TestHealth:
    def test_liveness(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_store_readiness(self, client: TestClient) -> None:
        assert client.get("/health/store").status_code == 200

    def test_store_readiness_reports_503(self, client: TestClient, checkin_store: RecordingStore) -> None:
        checkin_store.fail_on.add("ping")

        response = client.get("/health/store")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "store_unavailable"
