"""
Rule-based entity extraction.

Extracts: dates (relative words, weekday names, numeric and spelled-out
dates), times, services, doctors and urgency. Extraction is independent of
intent and always attempted.
"""

import logging
import re
from typing import Optional

from agenda.config import settings
from agenda.core.dates import CalendarDate, MONTH_NAMES, add_days, today as local_today
from agenda.core.exceptions import InvalidDate
from agenda.core.intelligence.text import normalize_for_entities, strip_accents
from .catalog import AliasCatalog, DOCTOR_ALIASES, SERVICE_ALIASES
from .types import Entity, EntityValidation, ExtractedEntities, UrgencyEntity, UrgencyLevel

logger = logging.getLogger(__name__)


DATE_CONFIDENCE = 0.8
TIME_CONFIDENCE = 0.7
SERVICE_CONFIDENCE = 0.8
DOCTOR_CONFIDENCE = 0.7
URGENCY_CONFIDENCE = 0.6

# Sunday = 0, same convention as CalendarDate.weekday_index
_WEEKDAYS = {
    "lunes": 1, "monday": 1,
    "martes": 2, "tuesday": 2,
    "miercoles": 3, "wednesday": 3,
    "jueves": 4, "thursday": 4,
    "viernes": 5, "friday": 5,
    "sabado": 6, "saturday": 6,
    "domingo": 0, "sunday": 0,
}

_MONTHS = {strip_accents(name): index + 1 for index, name in enumerate(MONTH_NAMES)}

_DAY_AFTER_TOMORROW_RE = re.compile(r"\bpasado manana\b")
# "manana" as a day, not "de la manana" / "por la manana"
_TOMORROW_RE = re.compile(r"(?<!la )\bmanana\b")
_TODAY_RE = re.compile(r"\bhoy\b")
_IN_DAYS_RE = re.compile(r"\ben (\d{1,3}) dias?\b")
_WEEKDAY_RE = re.compile(r"\b(" + "|".join(_WEEKDAYS) + r")\b")
_NUMERIC_DATE_RE = re.compile(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{4})\b")
_SPELLED_DATE_RE = re.compile(r"\b(\d{1,2}) de (" + "|".join(_MONTHS) + r")\b")

_CLOCK_RE = re.compile(r"\b(\d{1,2}):(\d{2})\s*(am|pm|hs|h)?\b")
_MERIDIEM_RE = re.compile(r"\b(\d{1,2})\s*(am|pm)\b")
_PERIOD_RE = re.compile(r"\b(\d{1,2})\s*de\s*la\s*(manana|tarde|noche)\b")

URGENCY_PATTERNS: dict[UrgencyLevel, list[str]] = {
    UrgencyLevel.HIGH: [r"\burgente\b", r"\bemergencia\b", r"\brapido\b", r"\bya\b"],
    UrgencyLevel.MEDIUM: [r"\bpronto\b", r"\besta semana\b", r"\bantes de\b"],
    UrgencyLevel.LOW: [r"\bcualquier\b", r"\bno hay apuro\b", r"\bcuando puedan\b"],
}

_NO_PREFERENCE_RE = re.compile(
    r"\b(cualquiera|cualquier doctor|cualquier doctora|no importa|sin preferencia|me da igual|el que sea)\b"
)


class EntityExtractor:
    """Pattern and catalog based entity extraction."""

    def __init__(
        self,
        services: Optional[dict[str, list[str]]] = None,
        doctors: Optional[dict[str, list[str]]] = None,
    ):
        """Initialize extractor.

        Args:
            services: Service alias table (canonical -> aliases)
            doctors: Doctor alias table (canonical -> aliases)
        """
        self._services = AliasCatalog(services or SERVICE_ALIASES)
        self._doctors = AliasCatalog(doctors or DOCTOR_ALIASES)
        self._urgency = [
            (level, re.compile(pattern))
            for level, patterns in URGENCY_PATTERNS.items()
            for pattern in patterns
        ]

    def extract(self, message: str, today: Optional[CalendarDate] = None) -> ExtractedEntities:
        """
        Extract entities from a patient message.

        Args:
            message: Raw message
            today: Reference day for relative dates (defaults to local today)

        Returns:
            ExtractedEntities with only the entities that matched
        """
        text = normalize_for_entities(message)
        if not text:
            return ExtractedEntities()

        reference = today or local_today()

        entities = ExtractedEntities(
            date=self.extract_date(text, reference),
            time=self.extract_time(text),
            service=self._lookup(self._services, text, SERVICE_CONFIDENCE),
            doctor=self._lookup(self._doctors, text, DOCTOR_CONFIDENCE),
            urgency=self.extract_urgency(text),
        )

        logger.debug(f"Extracted entities: {entities.to_dict()}")
        return entities

    def extract_date(self, text: str, today: CalendarDate) -> Optional[Entity]:
        """Resolve the first date expression in normalized text."""
        match = _DAY_AFTER_TOMORROW_RE.search(text)
        if match:
            return self._date_entity(match.group(0), add_days(today, 2))

        match = _TOMORROW_RE.search(text)
        if match:
            return self._date_entity(match.group(0), add_days(today, 1))

        match = _TODAY_RE.search(text)
        if match:
            return self._date_entity(match.group(0), today)

        match = _IN_DAYS_RE.search(text)
        if match:
            return self._date_entity(match.group(0), add_days(today, int(match.group(1))))

        match = _WEEKDAY_RE.search(text)
        if match:
            target = _WEEKDAYS[match.group(1)]
            ahead = (target - today.weekday_index + 7) % 7
            # Naming today's weekday means next week
            return self._date_entity(match.group(0), add_days(today, ahead or 7))

        match = _NUMERIC_DATE_RE.search(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            resolved = self._safe_date(year, month, day)
            return self._date_entity(match.group(0), resolved) if resolved else None

        match = _SPELLED_DATE_RE.search(text)
        if match:
            day, month = int(match.group(1)), _MONTHS[match.group(2)]
            resolved = self._safe_date(today.year, month, day)
            if resolved and resolved < today:
                resolved = self._safe_date(today.year + 1, month, day)
            return self._date_entity(match.group(0), resolved) if resolved else None

        return None

    def extract_time(self, text: str) -> Optional[Entity]:
        """Resolve the first time expression in normalized text to ``HH:MM``."""
        match = _CLOCK_RE.search(text)
        if match:
            hours, minutes = int(match.group(1)), int(match.group(2))
            hours = self._apply_meridiem(hours, match.group(3))
            return self._time_entity(match.group(0), hours, minutes)

        match = _MERIDIEM_RE.search(text)
        if match:
            hours = self._apply_meridiem(int(match.group(1)), match.group(2))
            return self._time_entity(match.group(0), hours, 0)

        match = _PERIOD_RE.search(text)
        if match:
            hours = int(match.group(1))
            if match.group(2) in ("tarde", "noche") and hours < 12:
                hours += 12
            return self._time_entity(match.group(0), hours, 0)

        return None

    def extract_urgency(self, text: str) -> Optional[UrgencyEntity]:
        for level, pattern in self._urgency:
            match = pattern.search(text)
            if match:
                return UrgencyEntity(
                    value=match.group(0),
                    level=level,
                    confidence=URGENCY_CONFIDENCE,
                )
        return None

    def is_no_preference(self, message: str) -> bool:
        """True when the patient explicitly accepts any doctor."""
        return bool(_NO_PREFERENCE_RE.search(normalize_for_entities(message)))

    @property
    def service_names(self) -> list[str]:
        return self._services.canonical_names

    @property
    def doctor_names(self) -> list[str]:
        return self._doctors.canonical_names

    @staticmethod
    def _lookup(catalog: AliasCatalog, text: str, confidence: float) -> Optional[Entity]:
        found = catalog.lookup(text)
        if found is None:
            return None
        alias, canonical = found
        return Entity(value=alias, normalized=canonical, confidence=confidence)

    @staticmethod
    def _apply_meridiem(hours: int, period: Optional[str]) -> int:
        if period == "pm" and hours != 12:
            return hours + 12
        if period == "am" and hours == 12:
            return 0
        return hours

    @staticmethod
    def _safe_date(year: int, month: int, day: int) -> Optional[CalendarDate]:
        try:
            return CalendarDate(year, month, day)
        except InvalidDate:
            logger.debug(f"Ignoring impossible date {year}-{month}-{day}")
            return None

    @staticmethod
    def _date_entity(matched: str, resolved: CalendarDate) -> Entity:
        return Entity(value=matched, normalized=resolved.isoformat(), confidence=DATE_CONFIDENCE)

    @staticmethod
    def _time_entity(matched: str, hours: int, minutes: int) -> Optional[Entity]:
        if hours > 23 or minutes > 59:
            return None
        return Entity(
            value=matched,
            normalized=f"{hours:02d}:{minutes:02d}",
            confidence=TIME_CONFIDENCE,
        )


def validate_entities(
    entities: ExtractedEntities,
    today: Optional[CalendarDate] = None,
    start_hour: Optional[int] = None,
    end_hour: Optional[int] = None,
) -> EntityValidation:
    """
    Fast local sanity check run before the business rules engine.

    Rejects past dates and times outside the coarse business window. This
    never touches storage.

    Args:
        entities: Extracted entities
        today: Reference day (defaults to local today)
        start_hour: First bookable hour (defaults to settings)
        end_hour: Hour at which the window closes (defaults to settings)

    Returns:
        EntityValidation
    """
    errors: list[str] = []
    start = settings.entity_business_start_hour if start_hour is None else start_hour
    end = settings.entity_business_end_hour if end_hour is None else end_hour

    day = entities.calendar_date
    if day is not None and day < (today or local_today()):
        errors.append("La fecha debe ser futura")

    if entities.time is not None:
        hours = int(entities.time.normalized.split(":")[0])
        if hours < start or hours >= end:
            errors.append(f"El horario debe estar entre {start}:00 y {end}:00")

    return EntityValidation(valid=not errors, errors=tuple(errors))


# Singleton
_extractor: Optional[EntityExtractor] = None


def get_entity_extractor() -> EntityExtractor:
    """Get singleton EntityExtractor."""
    global _extractor
    if _extractor is None:
        _extractor = EntityExtractor()
    return _extractor


def extract_entities(message: str, today: Optional[CalendarDate] = None) -> ExtractedEntities:
    """Convenience function to extract entities."""
    return get_entity_extractor().extract(message, today)
