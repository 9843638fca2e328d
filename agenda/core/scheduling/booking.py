"""
Booking Orchestrator.

Turns a completed BookingDraft into an appointment record. The rules are
always re-run here: an earlier validation pass may be stale by the time
the patient confirms.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from agenda.core.dates import parse_time
from agenda.core.exceptions import PersistenceFailed, StorageError, ValidationFailed
from agenda.core.intelligence.session import BookingDraft
from .response import ResponseGenerator, get_response_generator
from .rules import BookingRequest, BusinessRuleValidation, BusinessRulesEngine
from .types import AppointmentCreate, CONFLICT_STATUSES, Notifier, SchedulingStore

logger = logging.getLogger(__name__)


def confirmation_code(appointment_id: str) -> str:
    """Short human-readable code derived from the appointment id."""
    return f"APT-{appointment_id.replace('-', '')[:8].upper()}"


@dataclass
class BookingResult:
    """Result of a successful booking."""

    success: bool
    appointment_id: Optional[str] = None
    confirmation_code: Optional[str] = None
    doctor_id: Optional[str] = None
    doctor_name: Optional[str] = None
    validation: Optional[BusinessRuleValidation] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "appointment_id": self.appointment_id,
            "confirmation_code": self.confirmation_code,
            "doctor_id": self.doctor_id,
            "doctor_name": self.doctor_name,
            "warnings": list(self.validation.warnings) if self.validation else [],
        }


class BookingOrchestrator:
    """Validates, resolves and persists one appointment."""

    def __init__(
        self,
        store: SchedulingStore,
        rules: Optional[BusinessRulesEngine] = None,
        notifier: Optional[Notifier] = None,
        responses: Optional[ResponseGenerator] = None,
    ):
        """Initialize orchestrator.

        Args:
            store: Storage collaborator
            rules: Rules engine (built on ``store`` if omitted)
            notifier: Outbound notification collaborator (optional)
            responses: Template source for the notification text
        """
        self.store = store
        self.rules = rules or BusinessRulesEngine(store)
        self.notifier = notifier
        self.responses = responses or get_response_generator()

    async def book(
        self,
        draft: BookingDraft,
        patient_contact: str,
        organization_id: str,
        caller_role: str = "patient",
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """
        Book the appointment described by ``draft``.

        Args:
            draft: Completed booking draft
            patient_contact: Patient contact identifier (phone)
            organization_id: Organization identifier
            caller_role: Resolved caller role
            now: Reference instant for the rules

        Returns:
            BookingResult with the new appointment id

        Raises:
            ValidationFailed: draft incomplete, doctor unknown, or a rule rejected it
            PersistenceFailed: the store could not write the appointment
            InvalidDate: draft date or time malformed
        """
        if not draft.is_complete:
            raise ValidationFailed(["Faltan datos para agendar la cita"])

        day = draft.calendar_date
        at = parse_time(draft.time)

        # Resolve the requested doctor
        doctor_id = None
        doctor_name = None
        if draft.doctor and not draft.any_doctor:
            doctor = await self.store.find_doctor_by_name(organization_id, draft.doctor)
            if doctor is None:
                raise ValidationFailed(["El doctor solicitado no existe"])
            doctor_id, doctor_name = doctor.id, doctor.name

        # 1. Re-run every rule
        request = BookingRequest(
            organization_id=organization_id,
            service=draft.service,
            date=day,
            time=at,
            doctor_id=doctor_id,
            caller_role=caller_role,
        )
        validation = await self.rules.validate_booking(request, now)
        if not validation.valid:
            raise ValidationFailed(
                list(validation.errors),
                warnings=list(validation.warnings),
                suggestions=list(validation.suggestions),
            )

        # 2. Patient
        patient = await self.store.find_or_create_patient(organization_id, patient_contact)

        # 3. Service
        service = await self.store.find_active_service(organization_id, draft.service)
        if service is None:
            raise ValidationFailed(["El servicio solicitado no está disponible"])

        # 4. Doctor, when any doctor was accepted
        if doctor_id is None:
            doctors = await self.store.list_available_doctors(organization_id, day, at)
            busy = {
                appointment.doctor_id
                for appointment in await self.store.find_conflicting_appointments(
                    organization_id, day, at, CONFLICT_STATUSES
                )
            }
            free = [doctor for doctor in doctors if doctor.id not in busy]
            if not free:
                raise ValidationFailed(["Todos los doctores están ocupados en ese horario"])
            doctor_id, doctor_name = free[0].id, free[0].name

        # 5. Persist
        try:
            appointment_id = await self.store.insert_appointment(AppointmentCreate(
                organization_id=organization_id,
                patient_id=patient.id,
                doctor_id=doctor_id,
                service_id=service.id,
                date=day,
                time=at,
                notes=draft.notes,
            ))
        except StorageError as e:
            logger.error(f"Failed to persist appointment for {patient_contact}: {e}")
            raise PersistenceFailed("No se pudo guardar la cita") from e

        code = confirmation_code(appointment_id)
        logger.info(
            f"Appointment {appointment_id} booked for org {organization_id} "
            f"on {day} {draft.time} with doctor {doctor_id}"
        )

        await self._notify(patient_contact, draft, code, doctor_name)

        return BookingResult(
            success=True,
            appointment_id=appointment_id,
            confirmation_code=code,
            doctor_id=doctor_id,
            doctor_name=doctor_name,
            validation=validation,
        )

    async def _notify(
        self,
        contact: str,
        draft: BookingDraft,
        code: str,
        doctor_name: Optional[str],
    ) -> None:
        """Send the booking notice; delivery problems never undo a booking."""
        if self.notifier is None:
            return
        text = self.responses.booking_notification(draft, code, doctor_name)
        try:
            delivered = await self.notifier.send_text(contact, text)
            if not delivered:
                logger.warning(f"Booking notification to {contact} was not delivered")
        except Exception as e:
            logger.error(f"Booking notification to {contact} failed: {e}", exc_info=True)
