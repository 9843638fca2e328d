"""Shared fixtures: a fixed clock and an in-memory scheduling store."""

import uuid
from datetime import datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

import pytest

from agenda.core.dates import CalendarDate, add_days, format_time
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

TZ = "America/Bogota"
ORG = "org-1"

# Monday 2026-10-19
MONDAY = CalendarDate(2026, 10, 19)


class InMemorySchedulingStore:
    """SchedulingStore and AvailabilityFetcher backed by plain lists."""

    def __init__(self, hours: BusinessHours = DEFAULT_BUSINESS_HOURS):
        self.hours = hours
        self.services: list[ServiceRecord] = []
        self.doctors: list[DoctorRecord] = []
        self.slots: list[ScheduleSlot] = []
        self.appointments: list[AppointmentRecord] = []
        self.patients: dict[tuple[str, str], PatientRecord] = {}
        self.fail_inserts = False
        self.fetch_calls: list[CalendarDate] = []

    # === Setup helpers ===

    def add_service(self, name: str, active: bool = True, price: Optional[float] = None) -> ServiceRecord:
        service = ServiceRecord(
            id=f"svc-{len(self.services) + 1}",
            organization_id=ORG,
            name=name,
            active=active,
            price=price,
        )
        self.services.append(service)
        return service

    def add_doctor(self, doctor_id: str, name: str) -> DoctorRecord:
        doctor = DoctorRecord(id=doctor_id, organization_id=ORG, name=name)
        self.doctors.append(doctor)
        return doctor

    def open_day(self, doctor_id: str, day: CalendarDate, hours=range(8, 18), available: bool = True) -> None:
        for hour in hours:
            self.slots.append(ScheduleSlot(
                doctor_id=doctor_id,
                date=day,
                start_time=time(hour, 0),
                end_time=time(hour, 30),
                available=available,
                doctor_name=self._doctor(doctor_id).name,
            ))

    def book(self, doctor_id: str, day: CalendarDate, at: time,
             status: AppointmentStatus = AppointmentStatus.CONFIRMED) -> AppointmentRecord:
        record = AppointmentRecord(
            id=str(uuid.uuid4()),
            organization_id=ORG,
            doctor_id=doctor_id,
            patient_id="patient-x",
            service_id="svc-1",
            date=day,
            time=at,
            status=status,
        )
        self.appointments.append(record)
        return record

    def _doctor(self, doctor_id: str) -> DoctorRecord:
        return next(d for d in self.doctors if d.id == doctor_id)

    # === SchedulingStore ===

    async def get_business_hours(self, organization_id: str) -> BusinessHours:
        return self.hours

    async def find_active_service(self, organization_id: str, name: str) -> Optional[ServiceRecord]:
        return next(
            (s for s in self.services if s.active and s.name.lower() == name.lower()),
            None,
        )

    async def list_active_services(self, organization_id: str) -> list[ServiceRecord]:
        return [s for s in self.services if s.active]

    async def find_doctor_by_name(self, organization_id: str, name: str) -> Optional[DoctorRecord]:
        return next((d for d in self.doctors if d.name.lower() == name.lower()), None)

    async def find_doctor_slot(self, doctor_id: str, day: CalendarDate, at: time) -> Optional[ScheduleSlot]:
        return next(
            (s for s in self.slots
             if s.doctor_id == doctor_id and s.date == day and s.start_time == at),
            None,
        )

    async def list_open_slots(
        self, organization_id: str, day: CalendarDate, doctor_id: Optional[str] = None
    ) -> list[ScheduleSlot]:
        return [
            s for s in self.slots
            if s.date == day and s.available and (doctor_id is None or s.doctor_id == doctor_id)
        ]

    async def list_available_doctors(self, organization_id: str, day: CalendarDate, at: time) -> list[DoctorRecord]:
        ids = {s.doctor_id for s in self.slots if s.date == day and s.start_time == at and s.available}
        return [d for d in self.doctors if d.id in ids]

    async def find_conflicting_appointments(
        self, organization_id: str, day: CalendarDate, at: time,
        statuses: tuple[AppointmentStatus, ...] = CONFLICT_STATUSES,
    ) -> list[AppointmentRecord]:
        return [
            a for a in self.appointments
            if a.date == day and a.time == at and a.status in statuses
        ]

    async def find_or_create_patient(self, organization_id: str, contact: str) -> PatientRecord:
        key = (organization_id, contact)
        if key not in self.patients:
            self.patients[key] = PatientRecord(
                id=f"patient-{len(self.patients) + 1}",
                organization_id=organization_id,
                contact=contact,
            )
        return self.patients[key]

    async def insert_appointment(self, appointment: AppointmentCreate) -> str:
        if self.fail_inserts:
            raise StorageError("insert failed")
        record = AppointmentRecord(
            id=str(uuid.uuid4()),
            organization_id=appointment.organization_id,
            doctor_id=appointment.doctor_id,
            patient_id=appointment.patient_id,
            service_id=appointment.service_id,
            date=appointment.date,
            time=appointment.time,
            status=appointment.status,
        )
        self.appointments.append(record)
        return record.id

    # === AvailabilityFetcher ===

    async def fetch_slots(
        self, organization_id: str, day: CalendarDate,
        filters: Optional[AvailabilityFilters] = None,
    ) -> list[TimeSlot]:
        self.fetch_calls.append(day)
        booked = {(a.doctor_id, a.time) for a in self.appointments
                  if a.date == day and a.status in CONFLICT_STATUSES}
        return [
            TimeSlot(
                start_time=format_time(s.start_time),
                doctor_id=s.doctor_id,
                doctor_name=s.doctor_name or "",
                available=s.available and (s.doctor_id, s.start_time) not in booked,
            )
            for s in self.slots
            if s.date == day and (filters is None or not filters.doctor_id or s.doctor_id == filters.doctor_id)
        ]


# === Fixtures ===

@pytest.fixture
def tz() -> str:
    return TZ


@pytest.fixture
def org() -> str:
    return ORG


@pytest.fixture
def monday() -> CalendarDate:
    return MONDAY


@pytest.fixture
def monday_10am() -> datetime:
    """Monday 2026-10-19 10:00 local time."""
    return datetime(2026, 10, 19, 10, 0, tzinfo=ZoneInfo(TZ))


@pytest.fixture
def empty_store() -> InMemorySchedulingStore:
    return InMemorySchedulingStore()


@pytest.fixture
def store() -> InMemorySchedulingStore:
    """Clinic with the four catalog services and two doctors open Mon-Sat for two weeks."""
    s = InMemorySchedulingStore()
    for name in (
        "Examen Visual Completo",
        "Terapia Visual",
        "Adaptación de Lentes de Contacto",
        "Control Visual Rápido",
    ):
        s.add_service(name, price=80000.0)
    s.add_doctor("doc-elena", "Dr. Elena López")
    s.add_doctor("doc-ana", "Dr. Ana Rodríguez")

    for offset in range(14):
        day = add_days(MONDAY, offset)
        if day.weekday_index == 0:
            continue
        hours = range(8, 14) if day.weekday_index == 6 else range(8, 18)
        s.open_day("doc-elena", day, hours)
        s.open_day("doc-ana", day, hours)
    return s
