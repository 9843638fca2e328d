"""
Database Models

SQLAlchemy ORM models for the multi-tenant scheduling store.
Every table is scoped by ``organization_id`` for tenant isolation.
"""

import uuid
import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Time,
    Enum as SQLEnum, text
)
from sqlalchemy.dialects.postgresql import UUID, JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from agenda.core.scheduling.types import AppointmentStatus, CONFLICT_STATUSES


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


_CONFLICT_STATUS_SQL = ", ".join(f"'{status.value}'" for status in CONFLICT_STATUSES)


class Organization(Base, TimestampMixin):
    """
    Organization model (Tenant).

    ``business_hours`` holds the weekly table keyed "0" (Sunday) to "6"
    (Saturday), each entry ``{"start": "08:00", "end": "18:00", "active": true}``.
    """

    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    timezone: Mapped[str] = mapped_column(String(50), default="America/Bogota")
    business_hours: Mapped[dict] = mapped_column(JSON, default=dict)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    services: Mapped[List["Service"]] = relationship("Service", back_populates="organization")
    doctors: Mapped[List["Doctor"]] = relationship("Doctor", back_populates="organization")

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, slug='{self.slug}')>"


class Service(Base, TimestampMixin):
    """Bookable service offered by an organization."""

    __tablename__ = "services"
    __table_args__ = (
        Index("idx_service_org_name", "organization_id", "name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="services")

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}')>"


class Doctor(Base, TimestampMixin):
    """Doctor belonging to an organization."""

    __tablename__ = "doctors"
    __table_args__ = (
        Index("idx_doctor_org", "organization_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    specialty: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    organization: Mapped["Organization"] = relationship("Organization", back_populates="doctors")
    schedule_slots: Mapped[List["DoctorSchedule"]] = relationship(
        "DoctorSchedule",
        back_populates="doctor"
    )

    def __repr__(self) -> str:
        return f"<Doctor(id={self.id}, name='{self.name}', specialty='{self.specialty}')>"


class DoctorSchedule(Base, TimestampMixin):
    """One bookable block in a doctor's calendar."""

    __tablename__ = "doctor_schedules"
    __table_args__ = (
        Index("idx_schedule_doctor_date", "doctor_id", "date", "start_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    # Clinic site the block is held at; None when the organization has one site
    location_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    doctor: Mapped["Doctor"] = relationship("Doctor", back_populates="schedule_slots")


class DoctorService(Base):
    """
    Services a doctor offers.

    A service without any rows here is offered by every doctor of the
    organization.
    """

    __tablename__ = "doctor_services"

    doctor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        primary_key=True
    )
    service_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("services.id", ondelete="CASCADE"),
        primary_key=True
    )


class Patient(Base, TimestampMixin):
    """Patient identified by contact (phone) within an organization."""

    __tablename__ = "patients"
    __table_args__ = (
        Index("uq_patient_org_contact", "organization_id", "contact", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )
    contact: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, contact='{self.contact}')>"


class Appointment(Base, TimestampMixin):
    """
    Appointment model.

    The partial unique index keeps two slot-holding appointments off the
    same doctor/date/time even when two bookings race past the rules check.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointment_org_date", "organization_id", "date", "time"),
        Index("idx_appointment_patient", "patient_id"),
        Index(
            "uq_appointment_doctor_slot",
            "doctor_id", "date", "time",
            unique=True,
            postgresql_where=text(f"status IN ({_CONFLICT_STATUS_SQL})"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False
    )
    service_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("services.id", ondelete="RESTRICT"),
        nullable=False
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        SQLEnum(AppointmentStatus, name="appointment_status", values_callable=_enum_values),
        default=AppointmentStatus.CONFIRMED
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    booked_via: Mapped[str] = mapped_column(String(50), default="whatsapp")

    doctor: Mapped["Doctor"] = relationship("Doctor")
    patient: Mapped["Patient"] = relationship("Patient")
    service: Mapped["Service"] = relationship("Service")

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, doctor_id={self.doctor_id}, "
            f"date={self.date}, time={self.time}, status={self.status.value})>"
        )
