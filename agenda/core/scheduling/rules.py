"""
Business Rules Engine.

Validates a candidate booking against five rules and reports every
violation in one pass:

1. Advance notice (24h for standard callers, booking horizon)
2. Business hours of the organization
3. Doctor availability
4. Conflicts with existing appointments
5. Service availability

Rule violations are data, returned in ``BusinessRuleValidation``. Only
collaborator failures raise.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Optional, Union

from agenda.config import settings
from agenda.core.dates import (
    CalendarDate,
    add_days,
    combine,
    days_between,
    format_for_display,
    format_time,
    localize,
    now as local_now,
    parse,
    parse_time,
    today as local_today,
)
from .types import (
    BusinessHours,
    CONFLICT_STATUSES,
    SchedulingStore,
)

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3


# === Role policy ===

@dataclass(frozen=True)
class RolePolicy:
    """What a caller role is exempt from."""

    exempt_from_advance_notice: bool = False
    exempt_from_booking_horizon: bool = False
    same_day_booking: bool = False


STANDARD_POLICY = RolePolicy()
PRIVILEGED_POLICY = RolePolicy(
    exempt_from_advance_notice=True,
    exempt_from_booking_horizon=True,
    same_day_booking=True,
)

ROLE_POLICIES: dict[str, RolePolicy] = {
    "patient": STANDARD_POLICY,
    "doctor": PRIVILEGED_POLICY,
    "staff": PRIVILEGED_POLICY,
    "admin": PRIVILEGED_POLICY,
    "superadmin": PRIVILEGED_POLICY,
}


def policy_for(role: Optional[str], use_standard_rules: bool = False) -> RolePolicy:
    """Resolve the policy for a role; unknown roles get the standard one."""
    if use_standard_rules:
        return STANDARD_POLICY
    return ROLE_POLICIES.get((role or "").lower(), STANDARD_POLICY)


# === Results ===

@dataclass(frozen=True)
class Suggestion:
    """Actionable alternative attached to a rejection."""

    message: str
    date: Optional[CalendarDate] = None
    time: Optional[str] = None  # HH:MM

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "date": str(self.date) if self.date else None,
            "time": self.time,
        }


@dataclass(frozen=True)
class BusinessRuleValidation:
    """Immutable outcome of one validation pass."""

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    suggestions: tuple[Suggestion, ...] = ()

    @classmethod
    def combine(cls, results: list["BusinessRuleValidation"]) -> "BusinessRuleValidation":
        """Concatenate results in rule order."""
        errors = tuple(e for r in results for e in r.errors)
        return cls(
            valid=not errors,
            errors=errors,
            warnings=tuple(w for r in results for w in r.warnings),
            suggestions=tuple(s for r in results for s in r.suggestions),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "suggestions": [s.to_dict() for s in self.suggestions],
        }


def _result(
    errors: Optional[list[str]] = None,
    warnings: Optional[list[str]] = None,
    suggestions: Optional[list[Suggestion]] = None,
) -> BusinessRuleValidation:
    errors = errors or []
    return BusinessRuleValidation(
        valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings or []),
        suggestions=tuple(suggestions or []),
    )


@dataclass(frozen=True)
class BookingRequest:
    """A candidate booking to validate."""

    organization_id: str
    service: str
    date: Union[CalendarDate, str]
    time: Union[time, str]
    doctor_id: Optional[str] = None
    caller_role: str = "patient"
    use_standard_rules: bool = False

    @property
    def day(self) -> CalendarDate:
        """Requested day. Raises InvalidDate when malformed."""
        return self.date if isinstance(self.date, CalendarDate) else parse(self.date)

    @property
    def at(self) -> time:
        """Requested time. Raises InvalidDate when malformed."""
        return self.time if isinstance(self.time, time) else parse_time(self.time)


# === Engine ===

class BusinessRulesEngine:
    """
    Runs every booking rule and aggregates the outcome.

    ``now`` is always an explicit input so the same request validated at
    the same instant gives the same answer.
    """

    def __init__(
        self,
        store: SchedulingStore,
        advance_booking_hours: Optional[int] = None,
        short_notice_warning_hours: Optional[int] = None,
        max_advance_booking_days: Optional[int] = None,
        tz: Optional[str] = None,
    ):
        """Initialize engine.

        Args:
            store: Storage collaborator
            advance_booking_hours: Minimum notice for standard callers
            short_notice_warning_hours: Warning threshold for privileged callers
            max_advance_booking_days: Booking horizon for standard callers
            tz: Operating timezone
        """
        self.store = store
        self.advance_booking_hours = (
            advance_booking_hours if advance_booking_hours is not None
            else settings.advance_booking_hours
        )
        self.short_notice_warning_hours = (
            short_notice_warning_hours if short_notice_warning_hours is not None
            else settings.short_notice_warning_hours
        )
        self.max_advance_booking_days = (
            max_advance_booking_days if max_advance_booking_days is not None
            else settings.max_advance_booking_days
        )
        self.tz = tz

    async def validate_booking(
        self,
        request: BookingRequest,
        now: Optional[datetime] = None,
    ) -> BusinessRuleValidation:
        """
        Validate a booking against all rules.

        Args:
            request: Candidate booking
            now: Reference instant (defaults to the wall clock)

        Returns:
            BusinessRuleValidation with every violation

        Raises:
            InvalidDate: if the request's date or time is malformed
        """
        day, at = request.day, request.at
        moment = localize(now, self.tz) if now is not None else local_now(self.tz)
        policy = policy_for(request.caller_role, request.use_standard_rules)

        hours = await self.store.get_business_hours(request.organization_id)

        validation = BusinessRuleValidation.combine([
            self.check_advance_notice(day, at, moment, policy, hours),
            self.check_business_hours(day, at, hours),
            await self.check_doctor_availability(request, day, at),
            await self.check_conflicts(request, day, at),
            await self.check_service(request),
        ])

        if not validation.valid:
            logger.info(
                f"Booking rejected for org {request.organization_id} on {day} "
                f"{format_time(at)} ({request.caller_role}): {'; '.join(validation.errors)}"
            )
        return validation

    # === Rule 1: advance notice ===

    def check_advance_notice(
        self,
        day: CalendarDate,
        at: time,
        now: datetime,
        policy: RolePolicy,
        hours: BusinessHours,
    ) -> BusinessRuleValidation:
        errors: list[str] = []
        warnings: list[str] = []
        suggestions: list[Suggestion] = []

        appointment = combine(day, at, self.tz)
        hours_ahead = (appointment - now).total_seconds() / 3600
        today = local_today(self.tz, at=now)

        if hours_ahead < 0:
            errors.append("No se pueden agendar citas en una fecha u hora pasada")
            suggestions.append(self._next_opening(today, hours))
        elif not policy.exempt_from_advance_notice and hours_ahead < self.advance_booking_hours:
            errors.append(
                f"Las citas deben agendarse con al menos {self.advance_booking_hours} "
                f"horas de anticipación"
            )
            suggestions.append(self._next_opening(today, hours))
        elif policy.exempt_from_advance_notice and hours_ahead < self.short_notice_warning_hours:
            warnings.append("Cita muy próxima. Confirma que puedas llegar a tiempo.")

        if (
            not policy.exempt_from_booking_horizon
            and days_between(today, day) > self.max_advance_booking_days
        ):
            errors.append(
                f"No se pueden agendar citas con más de {self.max_advance_booking_days} "
                f"días de anticipación"
            )

        return _result(errors, warnings, suggestions)

    # === Rule 2: business hours ===

    def check_business_hours(
        self,
        day: CalendarDate,
        at: time,
        hours: BusinessHours,
    ) -> BusinessRuleValidation:
        schedule = hours.for_day(day)

        if not schedule.active:
            suggestions = []
            next_day = self.next_business_day(day, hours)
            if next_day is not None:
                opening = format_time(hours.for_day(next_day).start)
                suggestions.append(Suggestion(
                    message=f"Próximo día disponible: {format_for_display(next_day)} a las {opening}",
                    date=next_day,
                    time=opening,
                ))
            return _result(
                [f"No atendemos los {day.day_name.lower()}"],
                suggestions=suggestions,
            )

        if not schedule.contains(at):
            start, end = format_time(schedule.start), format_time(schedule.end)
            return _result(
                [f"Horario fuera de atención. Atendemos de {start} a {end}"],
                suggestions=[Suggestion(
                    message=f"Horarios disponibles: {start} - {end}",
                    date=day,
                    time=start,
                )],
            )

        return _result()

    # === Rule 3: doctor availability ===

    async def check_doctor_availability(
        self,
        request: BookingRequest,
        day: CalendarDate,
        at: time,
    ) -> BusinessRuleValidation:
        if request.doctor_id:
            slot = await self.store.find_doctor_slot(request.doctor_id, day, at)
            if slot is not None and slot.available:
                return _result()
            return _result(
                ["El doctor no está disponible en ese horario"],
                suggestions=await self._alternatives(
                    request.organization_id, day, at, request.doctor_id
                ),
            )

        doctors = await self.store.list_available_doctors(request.organization_id, day, at)
        if doctors:
            return _result()
        return _result(
            ["No hay doctores disponibles en ese horario"],
            suggestions=await self._alternatives(request.organization_id, day, at),
        )

    # === Rule 4: conflicts ===

    async def check_conflicts(
        self,
        request: BookingRequest,
        day: CalendarDate,
        at: time,
    ) -> BusinessRuleValidation:
        existing = await self.store.find_conflicting_appointments(
            request.organization_id, day, at, CONFLICT_STATUSES
        )
        if not existing:
            return _result()

        busy = {appointment.doctor_id for appointment in existing}

        if request.doctor_id:
            if request.doctor_id in busy:
                return _result(["El doctor ya tiene una cita agendada en ese horario"])
            return _result()

        doctors = await self.store.list_available_doctors(request.organization_id, day, at)
        if not [doctor for doctor in doctors if doctor.id not in busy]:
            return _result(["Todos los doctores están ocupados en ese horario"])
        return _result()

    # === Rule 5: service ===

    async def check_service(self, request: BookingRequest) -> BusinessRuleValidation:
        service = await self.store.find_active_service(request.organization_id, request.service)
        if service is not None:
            return _result()

        active = await self.store.list_active_services(request.organization_id)
        suggestions = []
        if active:
            names = ", ".join(s.name for s in active)
            suggestions.append(Suggestion(message=f"Servicios disponibles: {names}"))
        return _result(["El servicio solicitado no está disponible"], suggestions=suggestions)

    # === Helpers ===

    @staticmethod
    def next_business_day(after: CalendarDate, hours: BusinessHours) -> Optional[CalendarDate]:
        """First active weekday strictly after ``after``; None if every day is closed."""
        for offset in range(1, 8):
            candidate = add_days(after, offset)
            if hours.for_day(candidate).active:
                return candidate
        return None

    def _next_opening(self, today: CalendarDate, hours: BusinessHours) -> Suggestion:
        next_day = self.next_business_day(today, hours) or add_days(today, 1)
        opening = format_time(hours.for_day(next_day).start)
        return Suggestion(
            message=f"La próxima fecha disponible sería el {format_for_display(next_day)} a las {opening}",
            date=next_day,
            time=opening,
        )

    async def _alternatives(
        self,
        organization_id: str,
        day: CalendarDate,
        at: time,
        doctor_id: Optional[str] = None,
    ) -> list[Suggestion]:
        slots = await self.store.list_open_slots(organization_id, day, doctor_id)
        times: list[str] = []
        for slot in sorted(slots, key=lambda s: s.start_time):
            label = format_time(slot.start_time)
            if slot.available and slot.start_time != at and label not in times:
                times.append(label)
            if len(times) == MAX_ALTERNATIVES:
                break
        prefix = "Horario disponible para este doctor" if doctor_id else "Horario alternativo"
        return [Suggestion(message=f"{prefix}: {t}", date=day, time=t) for t in times]
