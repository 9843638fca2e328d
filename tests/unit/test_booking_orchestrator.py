"""Tests for the booking orchestrator."""

from datetime import time
from unittest.mock import AsyncMock

import pytest

from agenda.core.dates import CalendarDate
from agenda.core.exceptions import PersistenceFailed, ValidationFailed
from agenda.core.intelligence.session import BookingDraft
from agenda.core.scheduling.booking import BookingOrchestrator, BookingResult, confirmation_code
from agenda.core.scheduling.rules import BusinessRulesEngine

TZ = "America/Bogota"
ORG = "org-1"
CONTACT = "+573001112233"
WEDNESDAY = CalendarDate(2026, 10, 21)


def _draft(**overrides) -> BookingDraft:
    values = {
        "service": "Examen Visual Completo",
        "date": "2026-10-21",
        "time": "10:00",
        "any_doctor": True,
    }
    values.update(overrides)
    return BookingDraft(**values)


class TestConfirmationCode:
    def test_format(self):
        assert confirmation_code("123e4567-e89b-12d3-a456-426614174000") == "APT-123E4567"

    def test_hyphens_removed_before_slicing(self):
        assert confirmation_code("ab-cd-ef-gh-ij") == "APT-ABCDEFGH"


class TestBookingOrchestrator:
    """Test validate, resolve and persist."""

    @pytest.fixture
    def notifier(self):
        mock = AsyncMock()
        mock.send_text = AsyncMock(return_value=True)
        return mock

    @pytest.fixture
    def orchestrator(self, store, notifier):
        rules = BusinessRulesEngine(store, advance_booking_hours=24, max_advance_booking_days=90, tz=TZ)
        return BookingOrchestrator(store, rules=rules, notifier=notifier)

    @pytest.mark.asyncio
    async def test_book_any_doctor(self, orchestrator, store, monday_10am):
        result = await orchestrator.book(_draft(), CONTACT, ORG, now=monday_10am)

        assert result.success
        assert result.doctor_id == "doc-elena"
        assert result.confirmation_code == confirmation_code(result.appointment_id)

        [appointment] = store.appointments
        assert appointment.id == result.appointment_id
        assert appointment.date == WEDNESDAY
        assert appointment.time == time(10, 0)
        assert appointment.service_id == "svc-1"
        assert store.patients[(ORG, CONTACT)].id == appointment.patient_id

    @pytest.mark.asyncio
    async def test_book_named_doctor(self, orchestrator, store, monday_10am):
        result = await orchestrator.book(
            _draft(doctor="Dr. Ana Rodríguez", any_doctor=False), CONTACT, ORG, now=monday_10am
        )

        assert result.doctor_id == "doc-ana"
        assert result.doctor_name == "Dr. Ana Rodríguez"

    @pytest.mark.asyncio
    async def test_any_doctor_skips_busy(self, orchestrator, store, monday_10am):
        store.book("doc-elena", WEDNESDAY, time(10, 0))

        result = await orchestrator.book(_draft(), CONTACT, ORG, now=monday_10am)

        assert result.doctor_id == "doc-ana"

    @pytest.mark.asyncio
    async def test_existing_patient_reused(self, orchestrator, store, monday_10am):
        await orchestrator.book(_draft(), CONTACT, ORG, now=monday_10am)
        await orchestrator.book(_draft(time="11:00"), CONTACT, ORG, now=monday_10am)

        assert len(store.patients) == 1
        assert len({a.patient_id for a in store.appointments}) == 1

    @pytest.mark.asyncio
    async def test_incomplete_draft(self, orchestrator, monday_10am):
        with pytest.raises(ValidationFailed) as exc_info:
            await orchestrator.book(_draft(time=None), CONTACT, ORG, now=monday_10am)

        assert exc_info.value.errors == ["Faltan datos para agendar la cita"]

    @pytest.mark.asyncio
    async def test_unknown_doctor(self, orchestrator, monday_10am):
        with pytest.raises(ValidationFailed) as exc_info:
            await orchestrator.book(
                _draft(doctor="Dr. House", any_doctor=False), CONTACT, ORG, now=monday_10am
            )

        assert exc_info.value.errors == ["El doctor solicitado no existe"]

    @pytest.mark.asyncio
    async def test_rules_rerun(self, orchestrator, store, monday_10am):
        """Rule errors are passed through verbatim and nothing is written."""
        with pytest.raises(ValidationFailed) as exc_info:
            await orchestrator.book(_draft(date="2026-10-19", time="11:00"), CONTACT, ORG, now=monday_10am)

        assert exc_info.value.errors == [
            "Las citas deben agendarse con al menos 24 horas de anticipación"
        ]
        assert exc_info.value.suggestions[0].time == "08:00"
        assert store.appointments == []

    @pytest.mark.asyncio
    async def test_slot_taken_since_earlier_validation(self, orchestrator, store, monday_10am):
        draft = _draft(doctor="Dr. Elena López", any_doctor=False)
        await orchestrator.book(draft, CONTACT, ORG, now=monday_10am)

        with pytest.raises(ValidationFailed) as exc_info:
            await orchestrator.book(draft, "+573009998877", ORG, now=monday_10am)

        assert "El doctor ya tiene una cita agendada en ese horario" in exc_info.value.errors
        assert len(store.appointments) == 1

    @pytest.mark.asyncio
    async def test_persistence_failure(self, orchestrator, store, notifier, monday_10am):
        store.fail_inserts = True

        with pytest.raises(PersistenceFailed):
            await orchestrator.book(_draft(), CONTACT, ORG, now=monday_10am)

        notifier.send_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_notification_sent(self, orchestrator, notifier, monday_10am):
        result = await orchestrator.book(_draft(), CONTACT, ORG, now=monday_10am)

        notifier.send_text.assert_awaited_once()
        contact, text = notifier.send_text.call_args.args
        assert contact == CONTACT
        assert result.confirmation_code in text
        assert "Examen Visual Completo" in text

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_booking(self, orchestrator, store, notifier, monday_10am):
        notifier.send_text.side_effect = RuntimeError("gateway down")

        result = await orchestrator.book(_draft(), CONTACT, ORG, now=monday_10am)

        assert result.success
        assert len(store.appointments) == 1

    @pytest.mark.asyncio
    async def test_undelivered_notification_keeps_booking(self, orchestrator, notifier, monday_10am):
        notifier.send_text.return_value = False

        result = await orchestrator.book(_draft(), CONTACT, ORG, now=monday_10am)

        assert result.success

    @pytest.mark.asyncio
    async def test_without_notifier(self, store, monday_10am):
        orchestrator = BookingOrchestrator(store, rules=BusinessRulesEngine(store, tz=TZ, advance_booking_hours=24))

        result = await orchestrator.book(_draft(), CONTACT, ORG, now=monday_10am)

        assert result.success

    def test_result_to_dict(self):
        result = BookingResult(success=True, appointment_id="a1", confirmation_code="APT-A1")
        assert result.to_dict() == {
            "success": True,
            "appointment_id": "a1",
            "confirmation_code": "APT-A1",
            "doctor_id": None,
            "doctor_name": None,
            "warnings": [],
        }
