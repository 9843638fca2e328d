"""Tests for the business rules engine."""

from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from agenda.core.dates import CalendarDate
from agenda.core.exceptions import InvalidDate
from agenda.core.scheduling.rules import (
    BookingRequest,
    BusinessRuleValidation,
    BusinessRulesEngine,
    PRIVILEGED_POLICY,
    STANDARD_POLICY,
    Suggestion,
    policy_for,
)
from agenda.core.scheduling.types import AppointmentStatus, BusinessHours

TZ = "America/Bogota"
ORG = "org-1"
MONDAY = CalendarDate(2026, 10, 19)
TUESDAY = CalendarDate(2026, 10, 20)
SATURDAY = CalendarDate(2026, 10, 24)
SUNDAY = CalendarDate(2026, 10, 25)

NOTICE_ERROR = "Las citas deben agendarse con al menos 24 horas de anticipación"


def _request(date, at, role="patient", doctor_id=None, service="Examen Visual Completo", **kwargs):
    return BookingRequest(
        organization_id=ORG,
        service=service,
        date=date,
        time=at,
        doctor_id=doctor_id,
        caller_role=role,
        **kwargs,
    )


class TestPolicy:
    """Test role policy resolution."""

    @pytest.mark.parametrize("role", ["admin", "staff", "doctor", "superadmin", "ADMIN"])
    def test_privileged(self, role):
        assert policy_for(role) == PRIVILEGED_POLICY

    @pytest.mark.parametrize("role", ["patient", "visitor", "", None])
    def test_standard(self, role):
        assert policy_for(role) == STANDARD_POLICY

    def test_standard_rules_override(self):
        assert policy_for("admin", use_standard_rules=True) == STANDARD_POLICY


class TestAdvanceNotice:
    """Test rule 1 and the documented scenarios."""

    @pytest.fixture
    def engine(self, store):
        return BusinessRulesEngine(
            store,
            advance_booking_hours=24,
            short_notice_warning_hours=2,
            max_advance_booking_days=90,
            tz=TZ,
        )

    @pytest.mark.asyncio
    async def test_patient_same_day_rejected(self, engine, monday_10am):
        """Patient at Monday 10:00 asking for Monday 11:00 gets Tuesday 08:00."""
        result = await engine.validate_booking(_request(MONDAY, "11:00"), now=monday_10am)

        assert not result.valid
        assert result.errors == (NOTICE_ERROR,)
        assert len(result.suggestions) == 1
        assert result.suggestions[0].date == TUESDAY
        assert result.suggestions[0].time == "08:00"
        assert "martes 20 de octubre de 2026 a las 08:00" in result.suggestions[0].message

    @pytest.mark.asyncio
    async def test_admin_same_day_accepted(self, engine, monday_10am):
        """Same request from an admin passes; it only warns about short notice."""
        result = await engine.validate_booking(_request(MONDAY, "11:00", role="admin"), now=monday_10am)

        assert result.valid
        assert result.errors == ()
        assert any("Cita muy próxima" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_admin_opting_into_standard_rules(self, engine, monday_10am):
        result = await engine.validate_booking(
            _request(MONDAY, "11:00", role="admin", use_standard_rules=True), now=monday_10am
        )

        assert not result.valid
        assert NOTICE_ERROR in result.errors

    @pytest.mark.asyncio
    async def test_admin_no_warning_with_enough_notice(self, engine, monday_10am):
        result = await engine.validate_booking(_request(MONDAY, "15:00", role="admin"), now=monday_10am)

        assert result.valid
        assert result.warnings == ()

    @pytest.mark.asyncio
    async def test_past_rejected_for_every_role(self, engine, monday_10am):
        for role in ("patient", "admin"):
            result = await engine.validate_booking(_request(MONDAY, "09:00", role=role), now=monday_10am)
            assert "No se pueden agendar citas en una fecha u hora pasada" in result.errors

    @pytest.mark.asyncio
    async def test_exactly_24_hours_accepted(self, engine, monday_10am):
        result = await engine.validate_booking(_request(TUESDAY, "10:00"), now=monday_10am)
        assert result.valid

    @pytest.mark.asyncio
    async def test_23_hours_rejected(self, engine, monday_10am):
        result = await engine.validate_booking(_request(TUESDAY, "09:00"), now=monday_10am)
        assert result.errors == (NOTICE_ERROR,)

    @pytest.mark.asyncio
    async def test_notice_is_monotonic(self, engine):
        """Moving 'now' earlier never turns an accepted booking into a rejected one."""
        base = datetime(2026, 10, 20, 10, 0, tzinfo=ZoneInfo(TZ))
        request = _request(TUESDAY, "10:00")

        outcomes = []
        for hours_before in range(0, 48, 4):
            result = await engine.validate_booking(request, now=base - timedelta(hours=hours_before))
            outcomes.append(result.valid)

        first_valid = outcomes.index(True)
        assert all(outcomes[first_valid:])

    @pytest.mark.asyncio
    async def test_booking_horizon(self, engine, monday_10am):
        far = CalendarDate(2027, 2, 1)
        result = await engine.validate_booking(_request(far, "10:00"), now=monday_10am)

        assert "No se pueden agendar citas con más de 90 días de anticipación" in result.errors

    @pytest.mark.asyncio
    async def test_booking_horizon_not_applied_to_admin(self, engine, monday_10am):
        far = CalendarDate(2027, 2, 1)
        result = await engine.validate_booking(_request(far, "10:00", role="admin"), now=monday_10am)

        assert not any("90 días" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_utc_now_is_localized(self, engine):
        """A UTC reference instant is read in the operating timezone."""
        now = datetime(2026, 10, 19, 15, 0, tzinfo=ZoneInfo("UTC"))  # 10:00 in Bogota
        result = await engine.validate_booking(_request(MONDAY, "11:00"), now=now)

        assert result.errors == (NOTICE_ERROR,)


class TestBusinessHours:
    """Test rule 2."""

    @pytest.fixture
    def engine(self, store):
        return BusinessRulesEngine(store, tz=TZ, advance_booking_hours=24, max_advance_booking_days=90)

    @pytest.mark.asyncio
    async def test_closed_day(self, engine, monday_10am):
        result = await engine.validate_booking(_request(SUNDAY, "10:00"), now=monday_10am)

        assert "No atendemos los domingo" in result.errors
        closed = [s for s in result.suggestions if s.message.startswith("Próximo día disponible")]
        assert closed[0].date == CalendarDate(2026, 10, 26)
        assert closed[0].time == "08:00"

    @pytest.mark.asyncio
    async def test_after_closing(self, engine, monday_10am):
        result = await engine.validate_booking(_request(TUESDAY, "19:00"), now=monday_10am)
        assert "Horario fuera de atención. Atendemos de 08:00 a 18:00" in result.errors

    @pytest.mark.asyncio
    async def test_end_is_exclusive(self, engine, monday_10am):
        result = await engine.validate_booking(_request(SATURDAY, "14:00"), now=monday_10am)
        assert "Horario fuera de atención. Atendemos de 08:00 a 14:00" in result.errors

    @pytest.mark.asyncio
    async def test_custom_hours(self, store, monday_10am):
        store.hours = BusinessHours.from_dict({
            "2": {"start": "09:00", "end": "12:00", "active": True},
        })
        engine = BusinessRulesEngine(store, tz=TZ, advance_booking_hours=24)

        result = await engine.validate_booking(_request(TUESDAY, "08:00"), now=monday_10am)

        assert "Horario fuera de atención. Atendemos de 09:00 a 12:00" in result.errors

    def test_next_business_day_none_when_always_closed(self):
        closed = BusinessHours.from_dict({})
        assert BusinessRulesEngine.next_business_day(MONDAY, closed) is None


class TestDoctorsAndConflicts:
    """Test rules 3 and 4."""

    @pytest.fixture
    def engine(self, store):
        return BusinessRulesEngine(store, tz=TZ, advance_booking_hours=24, max_advance_booking_days=90)

    @pytest.mark.asyncio
    async def test_requested_doctor_without_slot(self, engine, monday_10am):
        result = await engine.validate_booking(
            _request(TUESDAY, "10:30", doctor_id="doc-elena"), now=monday_10am
        )

        assert result.errors == ("El doctor no está disponible en ese horario",)
        assert [s.time for s in result.suggestions] == ["08:00", "09:00", "10:00"]
        assert all(s.date == TUESDAY for s in result.suggestions)

    @pytest.mark.asyncio
    async def test_no_doctor_free(self, store, monday_10am):
        store.slots = [s for s in store.slots if not (s.date == TUESDAY and s.start_time == time(10, 0))]
        engine = BusinessRulesEngine(store, tz=TZ, advance_booking_hours=24)

        result = await engine.validate_booking(_request(TUESDAY, "10:00"), now=monday_10am)

        assert result.errors == ("No hay doctores disponibles en ese horario",)
        assert len(result.suggestions) == 3
        assert "10:00" not in [s.time for s in result.suggestions]

    @pytest.mark.asyncio
    async def test_requested_doctor_busy(self, store, engine, monday_10am):
        store.book("doc-elena", TUESDAY, time(11, 0))

        result = await engine.validate_booking(
            _request(TUESDAY, "11:00", doctor_id="doc-elena"), now=monday_10am
        )

        assert result.errors == ("El doctor ya tiene una cita agendada en ese horario",)

    @pytest.mark.asyncio
    async def test_other_doctor_busy_is_fine(self, store, engine, monday_10am):
        store.book("doc-ana", TUESDAY, time(11, 0))

        result = await engine.validate_booking(
            _request(TUESDAY, "11:00", doctor_id="doc-elena"), now=monday_10am
        )

        assert result.valid

    @pytest.mark.asyncio
    async def test_unspecified_doctor_fails_only_when_all_busy(self, store, engine, monday_10am):
        store.book("doc-elena", TUESDAY, time(11, 0))
        partly = await engine.validate_booking(_request(TUESDAY, "11:00"), now=monday_10am)
        assert partly.valid

        store.book("doc-ana", TUESDAY, time(11, 0), status=AppointmentStatus.PENDING_PAYMENT)
        fully = await engine.validate_booking(_request(TUESDAY, "11:00"), now=monday_10am)
        assert fully.errors == ("Todos los doctores están ocupados en ese horario",)

    @pytest.mark.asyncio
    async def test_cancelled_appointment_does_not_conflict(self, store, engine, monday_10am):
        store.book("doc-elena", TUESDAY, time(11, 0), status=AppointmentStatus.CANCELLED)

        result = await engine.validate_booking(
            _request(TUESDAY, "11:00", doctor_id="doc-elena"), now=monday_10am
        )

        assert result.valid


class TestService:
    """Test rule 5."""

    @pytest.fixture
    def engine(self, store):
        return BusinessRulesEngine(store, tz=TZ, advance_booking_hours=24)

    @pytest.mark.asyncio
    async def test_unknown_service(self, engine, monday_10am):
        result = await engine.validate_booking(_request(TUESDAY, "11:00", service="Masaje"), now=monday_10am)

        assert result.errors == ("El servicio solicitado no está disponible",)
        assert result.suggestions[0].message.startswith("Servicios disponibles: Examen Visual Completo")

    @pytest.mark.asyncio
    async def test_inactive_service(self, store, engine, monday_10am):
        store.add_service("Ortoqueratología", active=False)

        result = await engine.validate_booking(
            _request(TUESDAY, "11:00", service="Ortoqueratología"), now=monday_10am
        )

        assert not result.valid
        assert "Ortoqueratología" not in result.suggestions[0].message

    @pytest.mark.asyncio
    async def test_service_name_case_insensitive(self, engine, monday_10am):
        result = await engine.validate_booking(
            _request(TUESDAY, "11:00", service="terapia visual"), now=monday_10am
        )
        assert result.valid


class TestValidation:
    """Test aggregation across rules."""

    @pytest.fixture
    def engine(self, store):
        return BusinessRulesEngine(store, tz=TZ, advance_booking_hours=24, max_advance_booking_days=90)

    @pytest.mark.asyncio
    async def test_every_violation_reported(self, engine, monday_10am):
        result = await engine.validate_booking(
            _request(MONDAY, "20:00", service="Masaje"), now=monday_10am
        )

        assert result.errors == (
            NOTICE_ERROR,
            "Horario fuera de atención. Atendemos de 08:00 a 18:00",
            "No hay doctores disponibles en ese horario",
            "El servicio solicitado no está disponible",
        )

    @pytest.mark.asyncio
    async def test_deterministic(self, engine, monday_10am):
        request = _request(MONDAY, "11:00")
        first = await engine.validate_booking(request, now=monday_10am)
        second = await engine.validate_booking(request, now=monday_10am)
        assert first == second

    @pytest.mark.asyncio
    async def test_malformed_date_raises(self, engine, monday_10am):
        with pytest.raises(InvalidDate):
            await engine.validate_booking(_request("20/10/2026", "11:00"), now=monday_10am)

    @pytest.mark.asyncio
    async def test_malformed_time_raises(self, engine, monday_10am):
        with pytest.raises(InvalidDate):
            await engine.validate_booking(_request("2026-10-20", "11am"), now=monday_10am)

    @pytest.mark.asyncio
    async def test_string_inputs_accepted(self, engine, monday_10am):
        result = await engine.validate_booking(_request("2026-10-20", "11:00"), now=monday_10am)
        assert result.valid

    def test_combine_and_to_dict(self):
        combined = BusinessRuleValidation.combine([
            BusinessRuleValidation(valid=True, warnings=("w",)),
            BusinessRuleValidation(
                valid=False,
                errors=("e",),
                suggestions=(Suggestion("s", TUESDAY, "08:00"),),
            ),
        ])

        assert not combined.valid
        assert combined.to_dict() == {
            "valid": False,
            "errors": ["e"],
            "warnings": ["w"],
            "suggestions": [{"message": "s", "date": "2026-10-20", "time": "08:00"}],
        }
