"""
Scheduling records and collaborator contracts.

The core never talks to a database or an HTTP service directly; it goes
through the protocols below. ``agenda.infra.repository`` and
``agenda.core.scheduling.calendar_client`` provide the production
implementations.
"""

from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from agenda.core.dates import CalendarDate, format_time, parse_time


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states owned by the surrounding application."""

    PENDING = "pending"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that hold a doctor's slot
CONFLICT_STATUSES: tuple[AppointmentStatus, ...] = (
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
    AppointmentStatus.PENDING_PAYMENT,
)


# === Business hours ===

@dataclass(frozen=True)
class DaySchedule:
    """Opening window for one weekday; ``end`` is exclusive."""

    start: time
    end: time
    active: bool = True

    def contains(self, at: time) -> bool:
        return self.active and self.start <= at < self.end

    def to_dict(self) -> dict:
        return {
            "start": format_time(self.start),
            "end": format_time(self.end),
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DaySchedule":
        return cls(
            start=parse_time(data.get("start", "08:00")),
            end=parse_time(data.get("end", "18:00")),
            active=bool(data.get("active", True)),
        )


@dataclass(frozen=True)
class BusinessHours:
    """Seven-entry weekly table indexed Sunday = 0 ... Saturday = 6."""

    days: tuple[DaySchedule, ...]

    def __post_init__(self) -> None:
        if len(self.days) != 7:
            raise ValueError("BusinessHours needs exactly 7 day schedules")

    def for_day(self, day: CalendarDate) -> DaySchedule:
        return self.days[day.weekday_index]

    def to_dict(self) -> dict:
        return {str(index): schedule.to_dict() for index, schedule in enumerate(self.days)}

    @classmethod
    def from_dict(cls, data: dict) -> "BusinessHours":
        """Build from ``{"0": {...}, ..., "6": {...}}``; missing days are closed."""
        closed = DaySchedule(time(0, 0), time(0, 0), active=False)
        return cls(days=tuple(
            DaySchedule.from_dict(data[str(index)]) if str(index) in data else closed
            for index in range(7)
        ))


DEFAULT_BUSINESS_HOURS = BusinessHours(days=(
    DaySchedule(time(8, 0), time(18, 0), active=False),  # Sunday
    DaySchedule(time(8, 0), time(18, 0)),
    DaySchedule(time(8, 0), time(18, 0)),
    DaySchedule(time(8, 0), time(18, 0)),
    DaySchedule(time(8, 0), time(18, 0)),
    DaySchedule(time(8, 0), time(18, 0)),
    DaySchedule(time(8, 0), time(14, 0)),  # Saturday
))


# === Records ===

@dataclass(frozen=True)
class ServiceRecord:
    id: str
    organization_id: str
    name: str
    active: bool = True
    duration_minutes: int = 30
    price: Optional[float] = None


@dataclass(frozen=True)
class DoctorRecord:
    id: str
    organization_id: str
    name: str
    specialty: Optional[str] = None
    active: bool = True


@dataclass(frozen=True)
class ScheduleSlot:
    """One bookable block in a doctor's schedule."""

    doctor_id: str
    date: CalendarDate
    start_time: time
    end_time: time
    available: bool = True
    doctor_name: Optional[str] = None


@dataclass(frozen=True)
class PatientRecord:
    id: str
    organization_id: str
    contact: str
    name: Optional[str] = None


@dataclass(frozen=True)
class AppointmentRecord:
    id: str
    organization_id: str
    doctor_id: str
    patient_id: str
    service_id: str
    date: CalendarDate
    time: time
    status: AppointmentStatus


@dataclass(frozen=True)
class AppointmentCreate:
    """Insert request handed to the storage collaborator."""

    organization_id: str
    patient_id: str
    doctor_id: str
    service_id: str
    date: CalendarDate
    time: time
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    notes: Optional[str] = None


@dataclass(frozen=True)
class AvailabilityFilters:
    service_id: Optional[str] = None
    doctor_id: Optional[str] = None
    location_id: Optional[str] = None

    def to_params(self) -> dict:
        """Non-empty filters as query parameters."""
        params = {
            "service_id": self.service_id,
            "doctor_id": self.doctor_id,
            "location_id": self.location_id,
        }
        return {key: value for key, value in params.items() if value}


@dataclass
class TimeSlot:
    """Slot descriptor returned by the availability collaborator."""

    start_time: str  # HH:MM
    doctor_id: str
    doctor_name: str = ""
    available: bool = True
    price: Optional[float] = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "TimeSlot":
        """Create from API response dict."""
        price = data.get("price")
        return cls(
            start_time=str(data.get("start_time", data.get("time", "")))[:5],
            doctor_id=str(data.get("doctor_id", "")),
            doctor_name=data.get("doctor_name", ""),
            available=bool(data.get("available", True)),
            price=float(price) if price is not None else None,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "start_time": self.start_time,
            "doctor_id": self.doctor_id,
            "doctor_name": self.doctor_name,
            "available": self.available,
            "price": self.price,
        }


# === Collaborators ===

@runtime_checkable
class SchedulingStore(Protocol):
    """Tenant-scoped storage of services, doctors, patients and appointments."""

    async def get_business_hours(self, organization_id: str) -> BusinessHours:
        ...

    async def find_active_service(self, organization_id: str, name: str) -> Optional[ServiceRecord]:
        ...

    async def list_active_services(self, organization_id: str) -> list[ServiceRecord]:
        ...

    async def find_doctor_by_name(self, organization_id: str, name: str) -> Optional[DoctorRecord]:
        ...

    async def find_doctor_slot(
        self, doctor_id: str, day: CalendarDate, at: time
    ) -> Optional[ScheduleSlot]:
        ...

    async def list_open_slots(
        self, organization_id: str, day: CalendarDate, doctor_id: Optional[str] = None
    ) -> list[ScheduleSlot]:
        ...

    async def list_available_doctors(
        self, organization_id: str, day: CalendarDate, at: time
    ) -> list[DoctorRecord]:
        ...

    async def find_conflicting_appointments(
        self,
        organization_id: str,
        day: CalendarDate,
        at: time,
        statuses: tuple[AppointmentStatus, ...] = CONFLICT_STATUSES,
    ) -> list[AppointmentRecord]:
        ...

    async def find_or_create_patient(self, organization_id: str, contact: str) -> PatientRecord:
        ...

    async def insert_appointment(self, appointment: AppointmentCreate) -> str:
        """Persist and return the new appointment id. Raises StorageError."""
        ...


@runtime_checkable
class AvailabilityFetcher(Protocol):
    """Per-day slot lookup."""

    async def fetch_slots(
        self,
        organization_id: str,
        day: CalendarDate,
        filters: Optional[AvailabilityFilters] = None,
    ) -> list[TimeSlot]:
        ...


@runtime_checkable
class Notifier(Protocol):
    """Outbound text delivery to a patient contact."""

    async def send_text(self, contact: str, text: str) -> bool:
        ...
