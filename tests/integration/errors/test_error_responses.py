"""
Integration tests for how failures are rendered to the dashboard.

Covers out-of-range input, storage failures and unexpected errors. Every
error body must keep the generic message and the CORS headers the
browser needs to read it.
"""

from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from src.kpigate.models.tables import DOMAIN_TABLES, InvestorPassword

ALLOWED_ORIGIN = "https://dashboard.example.com"


def _drop_table(sync_engine: Engine, model: Any) -> None:
    model.__table__.drop(sync_engine)


class TestOutOfRangeInput:
    """Test numbers the store cannot hold come back as malformed input."""

    def test_huge_integer_on_create(self, test_client: TestClient, viewer_headers: Dict[str, str]) -> None:
        response = test_client.post(
            "/v1/data-write",
            json={
                "operation": "create",
                "table": "employee_count",
                "data": {"count": 10 ** 20, "date": "2024-01-01", "is_full_time": True},
            },
            headers={"Origin": ALLOWED_ORIGIN, **viewer_headers},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "malformed_input"
        assert response.json()["details"] == {"field": "count"}
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

    def test_huge_integer_in_filter(self, test_client: TestClient, viewer_headers: Dict[str, str]) -> None:
        response = test_client.post(
            "/v1/data-read",
            json={"operation": "list", "table": "quarter_goal", "filters": {"year": 10 ** 20}},
            headers=viewer_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "malformed_input"


class TestStorageFailureResponses:
    """Test a broken store surfaces as a generic 500 storage_failure."""

    def test_data_read_hides_cause(
        self,
        test_client: TestClient,
        viewer_headers: Dict[str, str],
        sync_engine: Engine,
    ) -> None:
        _drop_table(sync_engine, DOMAIN_TABLES["customer"])

        response = test_client.post(
            "/v1/data-read",
            json={"operation": "list", "table": "customer"},
            headers={"Origin": ALLOWED_ORIGIN, **viewer_headers},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "storage_failure"
        assert body["message"] == "Database operation failed"
        assert body["details"] == {"operation": "list", "table": "customer"}
        assert "no such table" not in response.text
        assert "sqlite" not in response.text.lower()
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

    def test_login_reports_unauthenticated(
        self,
        test_client: TestClient,
        passwords: Dict[str, str],
        sync_engine: Engine,
    ) -> None:
        """Test a credential store failure at login still says authenticated false."""

        _drop_table(sync_engine, InvestorPassword)

        response = test_client.post(
            "/v1/admin-auth",
            json={"password": passwords["management"]},
            headers={"Origin": ALLOWED_ORIGIN},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "storage_failure"
        assert body["message"] == "Database operation failed"
        assert body["authenticated"] is False
        assert "no such table" not in response.text
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN


class TestUnexpectedErrorResponses:
    """Test errors outside the exception hierarchy."""

    def test_data_read_keeps_cors_headers(
        self,
        test_client: TestClient,
        viewer_headers: Dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def explode(payload: Any) -> Any:
            raise RuntimeError("connection string user:secret@db")

        monkeypatch.setattr(test_client.app.state.request_router, "handle_read", explode)

        response = test_client.post(
            "/v1/data-read",
            json={"operation": "getKPIs"},
            headers={"Origin": ALLOWED_ORIGIN, **viewer_headers},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "internal_server_error", "message": "Internal server error"}
        assert "secret" not in response.text
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

    def test_login_reports_unauthenticated(
        self,
        test_client: TestClient,
        passwords: Dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def explode(password: str) -> Any:
            raise RuntimeError("verifier crashed")

        monkeypatch.setattr(test_client.app.state.auth_gate, "authenticate", explode)

        response = test_client.post(
            "/v1/admin-auth",
            json={"password": passwords["management"]},
            headers={"Origin": ALLOWED_ORIGIN},
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "internal_server_error"
        assert body["authenticated"] is False
        assert "verifier crashed" not in response.text
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

    def test_unexpected_error_is_counted(
        self,
        test_client: TestClient,
        viewer_headers: Dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def explode(payload: Any) -> Any:
            raise RuntimeError("boom")

        monkeypatch.setattr(test_client.app.state.request_router, "handle_read", explode)
        test_client.post("/v1/data-read", json={"operation": "getKPIs"}, headers=viewer_headers)

        scrape = test_client.get("/metrics").text
        assert any(
            line.startswith("http_requests_total") and 'status_code="500"' in line
            for line in scrape.splitlines()
        )
