"""Entity types for appointment extraction."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from agenda.core.dates import CalendarDate


class UrgencyLevel(str, Enum):
    """How soon the patient wants to be seen."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Entity:
    """A single extracted value.

    ``value`` is the text that matched, ``normalized`` the canonical form
    (ISO date, ``HH:MM`` time, catalog name).
    """

    value: str
    normalized: str
    confidence: float

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "normalized": self.normalized,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class UrgencyEntity:
    """Urgency keyword bucketed into a level."""

    value: str
    level: UrgencyLevel
    confidence: float

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "level": self.level.value,
            "confidence": self.confidence,
        }


@dataclass
class ExtractedEntities:
    """Entities found in one message. Missing entities are None, never placeholders."""

    date: Optional[Entity] = None
    time: Optional[Entity] = None
    service: Optional[Entity] = None
    doctor: Optional[Entity] = None
    urgency: Optional[UrgencyEntity] = None

    def has_any(self) -> bool:
        """Check if any entity was extracted."""
        return any([self.date, self.time, self.service, self.doctor, self.urgency])

    @property
    def calendar_date(self) -> Optional[CalendarDate]:
        """Extracted date as a CalendarDate."""
        if self.date is None:
            return None
        year, month, day = (int(part) for part in self.date.normalized.split("-"))
        return CalendarDate(year, month, day)

    def to_dict(self) -> dict:
        """Convert to dict, excluding missing entities."""
        result = {}
        for name in ("date", "time", "service", "doctor", "urgency"):
            entity = getattr(self, name)
            if entity is not None:
                result[name] = entity.to_dict()
        return result


@dataclass(frozen=True)
class EntityValidation:
    """Outcome of the fast local entity check."""

    valid: bool
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors)}
