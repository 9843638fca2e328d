"""Calendar date value types."""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from agenda.core.exceptions import InvalidDate


# Sunday-first, matching the week convention of every weekly view
DAY_NAMES = ["Domingo", "Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado"]

MONTH_NAMES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]


@dataclass(frozen=True, order=True)
class CalendarDate:
    """
    A validated (year, month, day) triple.

    Immutable and timezone-free: it names a calendar day, not an instant.
    Ordering compares year, then month, then day. The canonical string
    form is ``YYYY-MM-DD``.
    """

    year: int
    month: int
    day: int

    def __post_init__(self) -> None:
        try:
            date(self.year, self.month, self.day)
        except (TypeError, ValueError) as e:
            raise InvalidDate(f"{self.year}-{self.month}-{self.day}", str(e)) from e

    @classmethod
    def from_date(cls, value: date) -> "CalendarDate":
        """Create from a ``datetime.date`` (a datetime's own date part is used as-is)."""
        return cls(value.year, value.month, value.day)

    def to_date(self) -> date:
        """Convert to ``datetime.date``."""
        return date(self.year, self.month, self.day)

    @property
    def weekday_index(self) -> int:
        """Day of week with Sunday = 0 ... Saturday = 6."""
        return (self.to_date().weekday() + 1) % 7

    @property
    def day_name(self) -> str:
        """Spanish day name."""
        return DAY_NAMES[self.weekday_index]

    def isoformat(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"

    def __str__(self) -> str:
        return self.isoformat()


@dataclass(frozen=True)
class DateValidationResult:
    """Outcome of ``validate_and_normalize``."""

    valid: bool
    original: str = ""
    normalized: Optional[CalendarDate] = None
    displacement_detected: bool = False
    resolved: Optional[CalendarDate] = None  # day a naive timezone conversion would give
    days_difference: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "valid": self.valid,
            "original": self.original,
            "normalized": str(self.normalized) if self.normalized else None,
            "displacement_detected": self.displacement_detected,
            "resolved": str(self.resolved) if self.resolved else None,
            "days_difference": self.days_difference,
            "error": self.error,
        }

