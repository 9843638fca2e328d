"""
SQL scheduling store.

SQLAlchemy 2.0 async implementation of the ``SchedulingStore`` and
``AvailabilityFetcher`` collaborators. Each call opens its own session so
one store instance can be shared across requests.
"""

import logging
import uuid
from contextlib import AbstractAsyncContextManager
from datetime import time
from typing import Callable, Optional

from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agenda.core.dates import CalendarDate, format_time
from agenda.core.exceptions import StorageError
from agenda.core.scheduling.types import (
    AppointmentCreate,
    AppointmentRecord,
    AppointmentStatus,
    AvailabilityFilters,
    BusinessHours,
    CONFLICT_STATUSES,
    DEFAULT_BUSINESS_HOURS,
    DoctorRecord,
    PatientRecord,
    ScheduleSlot,
    ServiceRecord,
    TimeSlot,
)
from agenda.models.database import (
    Appointment,
    Doctor,
    DoctorSchedule,
    DoctorService,
    Organization,
    Patient,
    Service,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _uuid(value: str) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


# === Row mappers ===

def _service(row: Service) -> ServiceRecord:
    return ServiceRecord(
        id=str(row.id),
        organization_id=str(row.organization_id),
        name=row.name,
        active=row.active,
        duration_minutes=row.duration_minutes,
        price=float(row.price) if row.price is not None else None,
    )


def _doctor(row: Doctor) -> DoctorRecord:
    return DoctorRecord(
        id=str(row.id),
        organization_id=str(row.organization_id),
        name=row.name,
        specialty=row.specialty,
        active=row.active,
    )


def _slot(row: DoctorSchedule, doctor_name: Optional[str] = None) -> ScheduleSlot:
    return ScheduleSlot(
        doctor_id=str(row.doctor_id),
        date=CalendarDate.from_date(row.date),
        start_time=row.start_time,
        end_time=row.end_time,
        available=row.is_available,
        doctor_name=doctor_name,
    )


def _appointment(row: Appointment) -> AppointmentRecord:
    return AppointmentRecord(
        id=str(row.id),
        organization_id=str(row.organization_id),
        doctor_id=str(row.doctor_id),
        patient_id=str(row.patient_id),
        service_id=str(row.service_id),
        date=CalendarDate.from_date(row.date),
        time=row.time,
        status=row.status,
    )


def _slot_query(organization_id: uuid.UUID, day: CalendarDate, filters: AvailabilityFilters) -> Select:
    """Schedule blocks for one day narrowed by doctor, location and service."""
    query = (
        select(DoctorSchedule, Doctor.name)
        .join(Doctor, Doctor.id == DoctorSchedule.doctor_id)
        .where(
            Doctor.organization_id == organization_id,
            Doctor.active.is_(True),
            DoctorSchedule.date == day.to_date(),
        )
        .order_by(DoctorSchedule.start_time, Doctor.name)
    )
    if filters.doctor_id:
        query = query.where(DoctorSchedule.doctor_id == _uuid(filters.doctor_id))
    if filters.location_id:
        query = query.where(DoctorSchedule.location_id == filters.location_id)
    if filters.service_id:
        service_id = _uuid(filters.service_id)
        offered = select(Service.id).where(
            Service.id == service_id,
            Service.organization_id == organization_id,
            Service.active.is_(True),
        )
        linked = select(DoctorService.doctor_id).where(DoctorService.service_id == service_id)
        query = query.where(
            offered.exists(),
            or_(~linked.exists(), Doctor.id.in_(linked)),
        )
    return query


class SqlSchedulingStore:
    """Tenant-scoped scheduling queries over the ORM models."""

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        """Initialize store.

        Args:
            session_factory: Callable returning an async session context
                (``get_db_context`` by default)
        """
        if session_factory is None:
            from agenda.infra.database import get_db_context
            session_factory = get_db_context
        self._session = session_factory

    # === Organization ===

    async def get_business_hours(self, organization_id: str) -> BusinessHours:
        async with self._session() as db:
            hours = await db.scalar(
                select(Organization.business_hours).where(
                    Organization.id == _uuid(organization_id)
                )
            )
        if not hours:
            return DEFAULT_BUSINESS_HOURS
        return BusinessHours.from_dict(hours)

    # === Services ===

    async def find_active_service(self, organization_id: str, name: str) -> Optional[ServiceRecord]:
        async with self._session() as db:
            row = await db.scalar(
                select(Service).where(
                    Service.organization_id == _uuid(organization_id),
                    func.lower(Service.name) == name.lower(),
                    Service.active.is_(True),
                )
            )
        return _service(row) if row else None

    async def list_active_services(self, organization_id: str) -> list[ServiceRecord]:
        async with self._session() as db:
            rows = await db.scalars(
                select(Service)
                .where(
                    Service.organization_id == _uuid(organization_id),
                    Service.active.is_(True),
                )
                .order_by(Service.name)
            )
            return [_service(row) for row in rows]

    # === Doctors ===

    async def find_doctor_by_name(self, organization_id: str, name: str) -> Optional[DoctorRecord]:
        """Exact (case-insensitive) match first, then partial match."""
        org = _uuid(organization_id)
        async with self._session() as db:
            row = await db.scalar(
                select(Doctor).where(
                    Doctor.organization_id == org,
                    func.lower(Doctor.name) == name.lower(),
                    Doctor.active.is_(True),
                )
            )
            if row is None:
                row = await db.scalar(
                    select(Doctor)
                    .where(
                        Doctor.organization_id == org,
                        Doctor.name.ilike(f"%{name}%"),
                        Doctor.active.is_(True),
                    )
                    .order_by(Doctor.name)
                    .limit(1)
                )
        return _doctor(row) if row else None

    async def find_doctor_slot(
        self, doctor_id: str, day: CalendarDate, at: time
    ) -> Optional[ScheduleSlot]:
        async with self._session() as db:
            row = await db.scalar(
                select(DoctorSchedule).where(
                    DoctorSchedule.doctor_id == _uuid(doctor_id),
                    DoctorSchedule.date == day.to_date(),
                    DoctorSchedule.start_time == at,
                )
            )
        return _slot(row) if row else None

    async def list_open_slots(
        self, organization_id: str, day: CalendarDate, doctor_id: Optional[str] = None
    ) -> list[ScheduleSlot]:
        query = (
            select(DoctorSchedule, Doctor.name)
            .join(Doctor, Doctor.id == DoctorSchedule.doctor_id)
            .where(
                Doctor.organization_id == _uuid(organization_id),
                Doctor.active.is_(True),
                DoctorSchedule.date == day.to_date(),
                DoctorSchedule.is_available.is_(True),
            )
            .order_by(DoctorSchedule.start_time, Doctor.name)
        )
        if doctor_id:
            query = query.where(DoctorSchedule.doctor_id == _uuid(doctor_id))

        async with self._session() as db:
            result = await db.execute(query)
            return [_slot(row, name) for row, name in result.all()]

    async def list_available_doctors(
        self, organization_id: str, day: CalendarDate, at: time
    ) -> list[DoctorRecord]:
        async with self._session() as db:
            rows = await db.scalars(
                select(Doctor)
                .join(DoctorSchedule, DoctorSchedule.doctor_id == Doctor.id)
                .where(
                    Doctor.organization_id == _uuid(organization_id),
                    Doctor.active.is_(True),
                    DoctorSchedule.date == day.to_date(),
                    DoctorSchedule.start_time == at,
                    DoctorSchedule.is_available.is_(True),
                )
                .order_by(Doctor.name)
            )
            return [_doctor(row) for row in rows]

    # === Appointments ===

    async def find_conflicting_appointments(
        self,
        organization_id: str,
        day: CalendarDate,
        at: time,
        statuses: tuple[AppointmentStatus, ...] = CONFLICT_STATUSES,
    ) -> list[AppointmentRecord]:
        async with self._session() as db:
            rows = await db.scalars(
                select(Appointment).where(
                    Appointment.organization_id == _uuid(organization_id),
                    Appointment.date == day.to_date(),
                    Appointment.time == at,
                    Appointment.status.in_(statuses),
                )
            )
            return [_appointment(row) for row in rows]

    async def find_or_create_patient(self, organization_id: str, contact: str) -> PatientRecord:
        org = _uuid(organization_id)
        query = select(Patient).where(
            Patient.organization_id == org,
            Patient.contact == contact,
        )
        async with self._session() as db:
            patient = await db.scalar(query)
            if patient is None:
                try:
                    async with db.begin_nested():
                        patient = Patient(organization_id=org, contact=contact)
                        db.add(patient)
                    logger.info(f"Patient created for {contact} in org {organization_id}")
                except IntegrityError:
                    # Created concurrently by another conversation
                    patient = await db.scalar(query)

            return PatientRecord(
                id=str(patient.id),
                organization_id=str(patient.organization_id),
                contact=patient.contact,
                name=patient.name,
            )

    async def insert_appointment(self, appointment: AppointmentCreate) -> str:
        """Persist an appointment.

        Raises:
            StorageError: the slot was taken concurrently or the write failed
        """
        try:
            async with self._session() as db:
                row = Appointment(
                    organization_id=_uuid(appointment.organization_id),
                    doctor_id=_uuid(appointment.doctor_id),
                    patient_id=_uuid(appointment.patient_id),
                    service_id=_uuid(appointment.service_id),
                    date=appointment.date.to_date(),
                    time=appointment.time,
                    status=appointment.status,
                    notes=appointment.notes,
                )
                db.add(row)
                await db.flush()
                appointment_id = str(row.id)
        except IntegrityError as e:
            logger.warning(
                f"Slot {appointment.date} {format_time(appointment.time)} "
                f"already taken for doctor {appointment.doctor_id}"
            )
            raise StorageError("Appointment slot already taken") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to insert appointment: {e}", exc_info=True)
            raise StorageError("Appointment insert failed") from e

        return appointment_id

    # === Availability ===

    async def fetch_slots(
        self,
        organization_id: str,
        day: CalendarDate,
        filters: Optional[AvailabilityFilters] = None,
    ) -> list[TimeSlot]:
        """Slot descriptors for one day, with booked blocks marked unavailable."""
        filters = filters or AvailabilityFilters()
        org = _uuid(organization_id)

        async with self._session() as db:
            schedule = (await db.execute(_slot_query(org, day, filters))).all()
            booked = set(
                (await db.execute(
                    select(Appointment.doctor_id, Appointment.time).where(
                        Appointment.organization_id == org,
                        Appointment.date == day.to_date(),
                        Appointment.status.in_(CONFLICT_STATUSES),
                    )
                )).all()
            )
            price = None
            if filters.service_id:
                price = await db.scalar(
                    select(Service.price).where(
                        Service.id == _uuid(filters.service_id),
                        Service.organization_id == org,
                    )
                )

        return [
            TimeSlot(
                start_time=format_time(row.start_time),
                doctor_id=str(row.doctor_id),
                doctor_name=name,
                available=row.is_available and (row.doctor_id, row.start_time) not in booked,
                price=float(price) if price is not None else None,
            )
            for row, name in schedule
        ]


# Singleton
_store: Optional[SqlSchedulingStore] = None


def get_scheduling_store() -> SqlSchedulingStore:
    """Get singleton SqlSchedulingStore."""
    global _store
    if _store is None:
        _store = SqlSchedulingStore()
    return _store
