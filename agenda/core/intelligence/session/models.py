"""
Conversation flow models.

One ``ConversationFlow`` per (organization, contact). It owns its
``BookingDraft`` and is serialized to JSON for the flow store.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from agenda.core.dates import CalendarDate, parse
from .state import FlowState, can_transition

logger = logging.getLogger(__name__)

ANY_DOCTOR_LABEL = "Cualquier doctor disponible"


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class BookingDraft:
    """Booking details accumulated across turns."""

    service: Optional[str] = None
    date: Optional[str] = None  # YYYY-MM-DD
    time: Optional[str] = None  # HH:MM
    doctor: Optional[str] = None
    any_doctor: bool = False
    urgency: Optional[str] = None
    notes: Optional[str] = None

    @property
    def calendar_date(self) -> Optional[CalendarDate]:
        return parse(self.date) if self.date else None

    @property
    def doctor_label(self) -> str:
        """Doctor name for display; the any-doctor label when unresolved."""
        if self.doctor:
            return self.doctor
        return ANY_DOCTOR_LABEL

    @property
    def is_complete(self) -> bool:
        """Service, date, time and a doctor choice are all present."""
        return bool(
            self.service
            and self.date
            and self.time
            and (self.doctor or self.any_doctor)
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "service": self.service,
            "date": self.date,
            "time": self.time,
            "doctor": self.doctor,
            "any_doctor": self.any_doctor,
            "urgency": self.urgency,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BookingDraft":
        """Create from dictionary."""
        return cls(
            service=data.get("service"),
            date=data.get("date"),
            time=data.get("time"),
            doctor=data.get("doctor"),
            any_doctor=data.get("any_doctor", False),
            urgency=data.get("urgency"),
            notes=data.get("notes"),
        )


@dataclass
class ConversationFlow:
    """
    One active multi-turn booking dialogue.

    The TTL is fixed at creation: ``expires_at`` never moves, however
    active the conversation is.
    """

    organization_id: str
    contact: str
    flow_id: str = field(default_factory=lambda: str(uuid4()))
    state: FlowState = FlowState.GREETING
    draft: BookingDraft = field(default_factory=BookingDraft)

    # Unresolved replies per state; reset whenever the state changes
    retries: dict[str, int] = field(default_factory=dict)

    # Context
    last_message: str = ""
    message_count: int = 0
    last_received_at: Optional[datetime] = None

    # Outcome
    appointment_id: Optional[str] = None

    # Timestamps
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    expires_at: Optional[datetime] = None

    @classmethod
    def start(
        cls,
        organization_id: str,
        contact: str,
        now: datetime,
        ttl_seconds: int,
    ) -> "ConversationFlow":
        """Create a fresh flow in ``greeting``."""
        return cls(
            organization_id=organization_id,
            contact=contact,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the flow outlived its TTL."""
        if self.expires_at is None:
            return False
        return (now or _utcnow()) >= self.expires_at

    def retry_count(self, state: Optional[FlowState] = None) -> int:
        return self.retries.get((state or self.state).value, 0)

    def register_retry(self) -> int:
        """Count one unresolved reply in the current state."""
        key = self.state.value
        self.retries[key] = self.retries.get(key, 0) + 1
        return self.retries[key]

    def transition(self, to_state: FlowState) -> bool:
        """Move to a new state and reset its retry counter.

        Returns:
            False (state unchanged) when the move is not allowed
        """
        if to_state == self.state:
            return True
        if not can_transition(self.state, to_state):
            logger.warning(
                f"Invalid transition for flow {self.flow_id}: {self.state.value} -> {to_state.value}"
            )
            return False
        self.state = to_state
        self.retries.pop(to_state.value, None)
        return True

    def touch(self, message: str, now: datetime, received_at: Optional[datetime] = None) -> None:
        """Record an inbound message."""
        self.last_message = message
        self.message_count += 1
        self.updated_at = now
        if received_at is not None:
            self.last_received_at = received_at

    def to_json(self) -> str:
        """Convert to JSON string for Redis storage."""
        data = {
            "flow_id": self.flow_id,
            "organization_id": self.organization_id,
            "contact": self.contact,
            "state": self.state.value,
            "draft": self.draft.to_dict(),
            "retries": self.retries,
            "last_message": self.last_message,
            "message_count": self.message_count,
            "last_received_at": (
                self.last_received_at.isoformat() if self.last_received_at else None
            ),
            "appointment_id": self.appointment_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
        return json.dumps(data)

    @classmethod
    def from_json(cls, json_str: str) -> "ConversationFlow":
        """Create from JSON string."""
        data = json.loads(json_str)
        last_received = data.get("last_received_at")
        expires = data.get("expires_at")
        return cls(
            flow_id=data["flow_id"],
            organization_id=data["organization_id"],
            contact=data["contact"],
            state=FlowState(data["state"]),
            draft=BookingDraft.from_dict(data.get("draft", {})),
            retries=data.get("retries", {}),
            last_message=data.get("last_message", ""),
            message_count=data.get("message_count", 0),
            last_received_at=datetime.fromisoformat(last_received) if last_received else None,
            appointment_id=data.get("appointment_id"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            expires_at=datetime.fromisoformat(expires) if expires else None,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return json.loads(self.to_json())
