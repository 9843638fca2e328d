"""Tests for the HTTP endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from agenda.core.dates import CalendarDate
from agenda.core.exceptions import StorageError
from agenda.core.intelligence.session import FlowState
from agenda.core.scheduling import get_conversation_engine
from agenda.core.scheduling.availability import AvailabilityDay, AvailabilityLevel
from agenda.core.scheduling.engine import EngineResponse
from agenda.core.scheduling.rules import BusinessRuleValidation, Suggestion
from agenda.core.scheduling.wiring import get_availability_aggregator, get_business_rules_engine
from agenda.main import app

HEADERS = {"X-Tenant-ID": "org-1"}


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestChatEndpoint:
    """Test POST /chat."""

    @pytest.fixture
    def engine(self):
        mock = MagicMock()
        mock.handle_message = AsyncMock(return_value=EngineResponse(
            message="¿Qué tipo de servicio necesitas?",
            state=FlowState.COLLECT_SERVICE,
            flow_id="flow-1",
            next_state=FlowState.COLLECT_SERVICE,
        ))
        app.dependency_overrides[get_conversation_engine] = lambda: mock
        return mock

    def test_chat(self, client, engine):
        response = client.post(
            "/chat",
            json={"contact": "+573001112233", "message": "hola"},
            headers={**HEADERS, "X-Caller-Role": "patient"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "collect_service"
        assert body["flow_id"] == "flow-1"
        assert body["requires_human_handoff"] is False

        kwargs = engine.handle_message.call_args.kwargs
        assert kwargs["organization_id"] == "org-1"
        assert kwargs["contact"] == "+573001112233"

    def test_chat_requires_tenant(self, client, engine):
        response = client.post("/chat", json={"contact": "+573001112233", "message": "hola"})
        assert response.status_code == 422

    def test_chat_rejects_empty_message(self, client, engine):
        response = client.post("/chat", json={"contact": "+573001112233", "message": ""}, headers=HEADERS)
        assert response.status_code == 422

    def test_get_missing_flow(self, client, engine):
        engine.get_flow = AsyncMock(return_value=None)

        response = client.get("/chat/flow/+573001112233", headers=HEADERS)

        assert response.status_code == 404

    def test_reset_flow(self, client, engine):
        engine.reset = AsyncMock(return_value=True)

        response = client.delete("/chat/flow/+573001112233", headers=HEADERS)

        assert response.status_code == 204
        engine.reset.assert_awaited_once_with("org-1", "+573001112233")


class TestAvailabilityEndpoints:
    """Test the weekly view and navigation."""

    @pytest.fixture
    def aggregator(self):
        day = CalendarDate(2026, 10, 20)
        mock = MagicMock()
        mock.get_week = AsyncMock(return_value=[
            AvailabilityDay(date=day, day_name="Martes", slots_count=4, level=AvailabilityLevel.MEDIUM)
        ])
        app.dependency_overrides[get_availability_aggregator] = lambda: mock
        return mock

    def test_week(self, client, aggregator):
        response = client.get(
            "/availability/week",
            params={"week_start": "2026-10-18", "doctor_id": "doc-1"},
            headers={**HEADERS, "X-Caller-Role": "admin"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["week_start"] == "2026-10-18"
        assert body["days"][0]["availability_level"] == "medium"

        kwargs = aggregator.get_week.call_args.kwargs
        assert kwargs["week_start"] == CalendarDate(2026, 10, 18)
        assert kwargs["filters"].doctor_id == "doc-1"
        assert kwargs["caller_role"] == "admin"

    def test_malformed_week_start(self, client, aggregator):
        response = client.get("/availability/week", params={"week_start": "18/10/2026"}, headers=HEADERS)

        assert response.status_code == 400
        aggregator.get_week.assert_not_called()

    def test_fetch_failure_is_503(self, client, aggregator):
        aggregator.get_week.side_effect = StorageError("down")

        response = client.get("/availability/week", params={"week_start": "2026-10-18"}, headers=HEADERS)

        assert response.status_code == 503

    def test_navigate_previous_into_past_blocked(self, client):
        response = client.post(
            "/availability/week/navigate",
            json={"week_start": "2020-01-05", "direction": "previous"},
        )

        assert response.status_code == 200
        assert response.json()["moved"] is False
        assert response.json()["week_start"] == "2020-01-05"

    def test_navigate_next(self, client):
        response = client.post(
            "/availability/week/navigate",
            json={"week_start": "2099-01-04", "direction": "next"},
        )

        assert response.json() == {"week_start": "2099-01-11", "moved": True, "reason": None}


class TestValidateEndpoint:
    """Test POST /bookings/validate."""

    @pytest.fixture
    def rules(self):
        mock = MagicMock()
        app.dependency_overrides[get_business_rules_engine] = lambda: mock
        return mock

    def test_rejection_is_data(self, client, rules):
        rules.validate_booking = AsyncMock(return_value=BusinessRuleValidation(
            valid=False,
            errors=("Las citas deben agendarse con al menos 24 horas de anticipación",),
            suggestions=(Suggestion("La próxima fecha disponible...", CalendarDate(2026, 10, 20), "08:00"),),
        ))

        response = client.post(
            "/bookings/validate",
            json={"service": "Examen Visual Completo", "date": "2026-10-19", "time": "11:00"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is False
        assert body["suggestions"][0] == {
            "message": "La próxima fecha disponible...",
            "date": "2026-10-20",
            "time": "08:00",
        }

        request = rules.validate_booking.call_args.args[0]
        assert request.organization_id == "org-1"
        assert request.caller_role == "patient"


class TestHealth:
    def test_live(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"
