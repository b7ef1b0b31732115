"""Tests for the HTTP API with the service layer mocked out."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from stockpipe.api.app import create_api_app
from stockpipe.api.dependencies import get_stock_service
from stockpipe.core.exceptions import ConflictError, JobError
from stockpipe.merge.merger import MergeOutcome
from stockpipe.schemas.stocks import CurrentQuote, Holiday


@pytest.fixture
def stock_service() -> MagicMock:
    service = MagicMock()
    service.update_security_info = AsyncMock(return_value=MergeOutcome.INSERTED)
    service.fetch_current_quotes = AsyncMock(
        return_value=[CurrentQuote(code="2330", price=Decimal("780"), change=Decimal("5"), change_range=Decimal("0.65"))]
    )
    service.fetch_holiday_schedule = AsyncMock(
        return_value=[Holiday(date=date(2024, 2, 8), reason="Lunar New Year")]
    )
    return service


@pytest.fixture
def api(stock_service: MagicMock):
    app = create_api_app()
    app.dependency_overrides[get_stock_service] = lambda: stock_service
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


class TestHealthEndpoint:
    """Tests for GET /health."""

    def test_healthy_when_database_answers(self, client: TestClient):
        with patch("stockpipe.api.routes.health.db_healthcheck", AsyncMock(return_value=True)):
            response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"] is True

    def test_unhealthy_without_database(self, client: TestClient):
        with patch("stockpipe.api.routes.health.db_healthcheck", AsyncMock(return_value=False)):
            response = client.get("/health")

        assert response.json()["status"] == "unhealthy"

    def test_live(self, client: TestClient):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_request_id_echoed(self, client: TestClient):
        response = client.get("/health/live", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"


class TestUpdateSecurityInfo:
    """Tests for PUT /stocks/{code}."""

    def test_update(self, api: TestClient, stock_service: MagicMock):
        response = api.put(
            "/stocks/2330",
            json={"name": "TSMC", "market_id": 2, "book_value_per_share": "115.86"},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "Security 2330 inserted"
        kwargs = stock_service.update_security_info.await_args.kwargs
        assert kwargs["code"] == "2330"
        assert kwargs["book_value_per_share"] == Decimal("115.86")
        assert kwargs["suspended"] is False

    def test_code_is_normalized(self, api: TestClient, stock_service: MagicMock):
        api.put("/stocks/00878b", json={"name": "ETF", "market_id": 2})
        assert stock_service.update_security_info.await_args.kwargs["code"] == "00878B"

    def test_invalid_code(self, api: TestClient):
        response = api.put("/stocks/23%2030", json={"name": "X", "market_id": 2})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_invalid_body(self, api: TestClient):
        response = api.put("/stocks/2330", json={"name": "", "market_id": -1})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT

    def test_conflict(self, api: TestClient, stock_service: MagicMock):
        stock_service.update_security_info.side_effect = ConflictError(message="securities ('2330',)")

        response = api.put("/stocks/2330", json={"name": "TSMC", "market_id": 2})

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"] == "CONFLICT"


class TestCurrentQuotes:
    """Tests for GET /stocks/quotes."""

    def test_quotes(self, api: TestClient, stock_service: MagicMock):
        response = api.get("/stocks/quotes", params={"codes": "2330, 2317,2330"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["items"][0]["code"] == "2330"
        stock_service.fetch_current_quotes.assert_awaited_once_with(["2330", "2317"])

    def test_invalid_code(self, api: TestClient):
        response = api.get("/stocks/quotes", params={"codes": "2330,bad code"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT
        assert response.json()["error"] == "VALIDATION_ERROR"


class TestHolidaySchedule:
    def test_holidays(self, api: TestClient, stock_service: MagicMock):
        response = api.get("/stocks/holidays/2024")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "year": 2024,
            "items": [{"date": "2024-02-08", "reason": "Lunar New Year"}],
        }
        stock_service.fetch_holiday_schedule.assert_awaited_once_with(2024)


class TestJobsEndpoints:
    """Tests for /jobs."""

    def test_list_jobs_without_scheduler(self, client: TestClient):
        response = client.get("/jobs")

        assert response.status_code == status.HTTP_200_OK
        names = [job["name"] for job in response.json()]
        assert names[0] == "emerging_nav_refresh"
        assert "closing_pipeline" in names

    def test_run_job(self, client: TestClient):
        with patch("stockpipe.api.routes.jobs.execute_job", AsyncMock(return_value="done")) as mock_execute:
            response = client.post("/jobs/closing_pipeline/run", json={"business_date": "2024-03-29", "force": True})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"message": "done"}
        mock_execute.assert_awaited_once_with("closing_pipeline", date(2024, 3, 29), force=True)

    def test_run_job_without_body(self, client: TestClient):
        with patch("stockpipe.api.routes.jobs.execute_job", AsyncMock(return_value="done")) as mock_execute:
            response = client.post("/jobs/closing_pipeline/run")

        assert response.status_code == status.HTTP_200_OK
        mock_execute.assert_awaited_once_with("closing_pipeline", None, force=False)

    def test_run_unknown_job(self, client: TestClient):
        error = JobError(message="Unknown job: nope", error_code="UNKNOWN_JOB", status_code=404)
        with patch("stockpipe.api.routes.jobs.execute_job", AsyncMock(side_effect=error)):
            response = client.post("/jobs/nope/run")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == "UNKNOWN_JOB"


class TestApplication:
    def test_api_mounted(self):
        from stockpipe.main import app

        assert "/api" in [route.path for route in app.routes]
