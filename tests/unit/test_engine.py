"""Tests for the per-contact conversation engine."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from agenda.core.intelligence.session import FlowState, FlowStore
from agenda.core.scheduling.booking import BookingOrchestrator
from agenda.core.scheduling.engine import ConversationEngine, EngineResponse
from agenda.core.scheduling.flow import ConversationFlowManager, FlowResponse
from agenda.core.scheduling.response import get_response_generator
from agenda.core.scheduling.rules import BusinessRulesEngine

TZ = "America/Bogota"
ORG = "org-1"
CONTACT = "+573001112233"


async def _no_redis():
    return None


@pytest.fixture
def flow_store():
    """Flow store running on its in-memory fallback."""
    return FlowStore(redis_factory=_no_redis, ttl_seconds=1800)


class TestConversationEngine:
    """Test flow lifecycle around the state machine."""

    @pytest.fixture
    def engine(self, store, flow_store):
        rules = BusinessRulesEngine(store, advance_booking_hours=24, max_advance_booking_days=90, tz=TZ)
        manager = ConversationFlowManager(
            BookingOrchestrator(store, rules=rules),
            max_retries=3,
            exit_keyword="#salir",
            tz=TZ,
        )
        return ConversationEngine(manager, store=flow_store, ttl_seconds=1800)

    @pytest.mark.asyncio
    async def test_first_message_creates_flow(self, engine, monday_10am):
        response = await engine.handle_message(ORG, CONTACT, "hola", now=monday_10am)

        assert response.state == FlowState.COLLECT_SERVICE
        assert response.should_continue

        flow = await engine.get_flow(ORG, CONTACT, monday_10am)
        assert flow is not None
        assert flow.flow_id == response.flow_id
        assert flow.state == FlowState.COLLECT_SERVICE

    @pytest.mark.asyncio
    async def test_flow_continues_across_messages(self, engine, monday_10am):
        first = await engine.handle_message(ORG, CONTACT, "hola", now=monday_10am)
        second = await engine.handle_message(
            ORG, CONTACT, "examen completo", now=monday_10am + timedelta(minutes=1)
        )

        assert second.flow_id == first.flow_id
        assert second.state == FlowState.COLLECT_DATE

    @pytest.mark.asyncio
    async def test_contacts_are_isolated(self, engine, monday_10am):
        await engine.handle_message(ORG, CONTACT, "hola", now=monday_10am)
        other = await engine.handle_message(ORG, "+573009998877", "asdf", now=monday_10am)

        assert other.state == FlowState.INTENT_DETECTION
        flow = await engine.get_flow(ORG, CONTACT, monday_10am)
        assert flow.state == FlowState.COLLECT_SERVICE

    @pytest.mark.asyncio
    async def test_organizations_are_isolated(self, engine, monday_10am):
        await engine.handle_message(ORG, CONTACT, "hola", now=monday_10am)
        assert await engine.get_flow("org-2", CONTACT, monday_10am) is None

    @pytest.mark.asyncio
    async def test_terminal_flow_removed(self, engine, monday_10am):
        await engine.handle_message(ORG, CONTACT, "hola", now=monday_10am)
        response = await engine.handle_message(ORG, CONTACT, "#salir", now=monday_10am)

        assert response.state == FlowState.CANCELLED
        assert not response.should_continue
        assert await engine.get_flow(ORG, CONTACT, monday_10am) is None

    @pytest.mark.asyncio
    async def test_expired_flow_starts_over(self, engine, monday_10am):
        """TTL runs from creation; a message after it gets a fresh flow."""
        first = await engine.handle_message(ORG, CONTACT, "hola", now=monday_10am)

        later = monday_10am + timedelta(minutes=31)
        second = await engine.handle_message(ORG, CONTACT, "examen completo", now=later)

        assert second.flow_id != first.flow_id
        assert second.state == FlowState.INTENT_DETECTION

    @pytest.mark.asyncio
    async def test_activity_does_not_extend_ttl(self, engine, monday_10am):
        first = await engine.handle_message(ORG, CONTACT, "hola", now=monday_10am)
        await engine.handle_message(
            ORG, CONTACT, "examen completo", now=monday_10am + timedelta(minutes=20)
        )

        third = await engine.handle_message(
            ORG, CONTACT, "mañana", now=monday_10am + timedelta(minutes=30)
        )

        assert third.flow_id != first.flow_id

    @pytest.mark.asyncio
    async def test_out_of_order_message_ignored(self, engine, monday_10am):
        newer = monday_10am + timedelta(seconds=10)
        await engine.handle_message(ORG, CONTACT, "hola", now=newer, received_at=newer)

        response = await engine.handle_message(
            ORG, CONTACT, "#salir", now=newer, received_at=monday_10am
        )

        assert response.ignored
        assert response.message == ""
        flow = await engine.get_flow(ORG, CONTACT, newer)
        assert flow.state == FlowState.COLLECT_SERVICE
        assert flow.message_count == 1

    @pytest.mark.asyncio
    async def test_naive_received_at_taken_as_local_time(self, engine, monday_10am):
        await engine.handle_message(ORG, CONTACT, "hola", now=monday_10am, received_at=monday_10am)

        local_wall_clock = monday_10am.replace(tzinfo=None)
        later = await engine.handle_message(
            ORG, CONTACT, "examen completo",
            now=monday_10am + timedelta(minutes=1),
            received_at=local_wall_clock + timedelta(minutes=1),
        )
        stale = await engine.handle_message(
            ORG, CONTACT, "#salir",
            now=monday_10am + timedelta(minutes=2),
            received_at=local_wall_clock,
        )

        assert later.state == FlowState.COLLECT_DATE
        assert later.message != get_response_generator().apology()
        assert stale.ignored
        flow = await engine.get_flow(ORG, CONTACT, monday_10am)
        assert flow.last_received_at == monday_10am + timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_locks_released_after_each_message(self, engine, monday_10am):
        for i in range(20):
            contact = f"+57300000{i:04d}"
            await engine.handle_message(ORG, contact, "hola", now=monday_10am)
            await engine.handle_message(ORG, contact, "#salir", now=monday_10am)
        await engine.reset(ORG, CONTACT)

        assert engine._locks == {}
        assert engine._lock_users == {}

    def test_explicit_zero_settings_kept(self, store, flow_store):
        manager = ConversationFlowManager(BookingOrchestrator(store), max_retries=0)
        engine = ConversationEngine(manager, store=flow_store, ttl_seconds=0)

        assert manager.max_retries == 0
        assert engine.ttl_seconds == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_apology(self, flow_store, monday_10am):
        manager = MagicMock()
        manager.process = AsyncMock(side_effect=RuntimeError("boom"))
        engine = ConversationEngine(manager, store=flow_store, ttl_seconds=1800)

        response = await engine.handle_message(ORG, CONTACT, "hola", now=monday_10am)

        assert response.message == get_response_generator().apology()
        assert response.should_continue
        assert "boom" not in response.message

    @pytest.mark.asyncio
    async def test_same_contact_serialized(self, flow_store, monday_10am):
        events = []

        async def slow_process(flow, message, now, caller_role="patient", received_at=None):
            events.append(f"start:{message}")
            await asyncio.sleep(0.01)
            events.append(f"end:{message}")
            return FlowResponse(message="ok")

        manager = MagicMock()
        manager.process = slow_process
        engine = ConversationEngine(manager, store=flow_store, ttl_seconds=1800)

        await asyncio.gather(
            engine.handle_message(ORG, CONTACT, "a", now=monday_10am),
            engine.handle_message(ORG, CONTACT, "b", now=monday_10am),
        )

        assert events == ["start:a", "end:a", "start:b", "end:b"]

    @pytest.mark.asyncio
    async def test_different_contacts_concurrent(self, flow_store, monday_10am):
        events = []

        async def slow_process(flow, message, now, caller_role="patient", received_at=None):
            events.append(f"start:{message}")
            await asyncio.sleep(0.01)
            events.append(f"end:{message}")
            return FlowResponse(message="ok")

        manager = MagicMock()
        manager.process = slow_process
        engine = ConversationEngine(manager, store=flow_store, ttl_seconds=1800)

        await asyncio.gather(
            engine.handle_message(ORG, "+571", "a", now=monday_10am),
            engine.handle_message(ORG, "+572", "b", now=monday_10am),
        )

        assert events[:2] == ["start:a", "start:b"]

    @pytest.mark.asyncio
    async def test_reset(self, engine, monday_10am):
        await engine.handle_message(ORG, CONTACT, "hola", now=monday_10am)

        assert await engine.reset(ORG, CONTACT)
        assert await engine.get_flow(ORG, CONTACT, monday_10am) is None
        assert not await engine.reset(ORG, CONTACT)


class TestEngineResponse:
    def test_to_dict_minimal(self):
        response = EngineResponse(message="hola", state=FlowState.GREETING)
        assert response.to_dict() == {
            "message": "hola",
            "state": "greeting",
            "should_continue": True,
            "requires_human_handoff": False,
        }

    def test_to_dict_booking(self):
        response = EngineResponse(
            message="listo",
            state=FlowState.COMPLETED,
            flow_id="f1",
            next_state=FlowState.COMPLETED,
            should_continue=False,
            appointment_id="a1",
            confirmation_code="APT-A1",
        )

        data = response.to_dict()
        assert data["next_state"] == "completed"
        assert data["confirmation_code"] == "APT-A1"
        assert "ignored" not in data
