"""
Date Integrity Module.

Displacement-safe date arithmetic and validation. Every date that crosses
a component boundary goes through here so that a timestamp rendered in one
timezone and read in another never shifts the intended calendar day.
"""

import logging
import re
from datetime import datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from agenda.config import settings
from agenda.core.exceptions import InvalidDate
from .types import CalendarDate, DateValidationResult, MONTH_NAMES

logger = logging.getLogger(__name__)


_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_TIMESTAMP_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[T ]"
    r"(?P<time>\d{2}:\d{2}(?::\d{2}(?:\.\d{1,6})?)?)"
    r"(?P<offset>Z|[+-]\d{2}:?\d{2})?$"
)
_TIME_RE = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")


def get_zone(tz: Optional[str] = None) -> ZoneInfo:
    """Resolve the operating timezone."""
    name = tz or settings.timezone
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def now(tz: Optional[str] = None) -> datetime:
    """Current timezone-aware instant in the operating timezone."""
    return datetime.now(get_zone(tz))


def localize(moment: datetime, tz: Optional[str] = None) -> datetime:
    """Express an instant in the operating timezone.

    Naive datetimes are taken to already be local wall-clock time.
    """
    zone = get_zone(tz)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=zone)
    return moment.astimezone(zone)


def today(tz: Optional[str] = None, at: Optional[datetime] = None) -> CalendarDate:
    """Current calendar day in the operating timezone.

    Args:
        tz: Timezone name (defaults to settings)
        at: Instant to evaluate instead of the wall clock

    Returns:
        CalendarDate for that local day
    """
    moment = localize(at, tz) if at is not None else now(tz)
    return CalendarDate(moment.year, moment.month, moment.day)


def parse(value: str) -> CalendarDate:
    """Parse an unambiguous ``YYYY-MM-DD`` string.

    Raises:
        InvalidDate: for any other shape or an impossible calendar day
    """
    if not isinstance(value, str):
        raise InvalidDate(value, "Date must be a string")

    match = _DATE_RE.match(value.strip())
    if not match:
        raise InvalidDate(value)

    year, month, day = (int(part) for part in match.groups())
    try:
        return CalendarDate(year, month, day)
    except InvalidDate as e:
        raise InvalidDate(value, e.reason) from e


def parse_time(value: str) -> time:
    """Parse ``HH:MM`` (optionally ``HH:MM:SS``) into a time.

    Raises:
        InvalidDate: when malformed or out of range
    """
    if not isinstance(value, str):
        raise InvalidDate(value, "Time must be a string")

    match = _TIME_RE.match(value.strip())
    if not match:
        raise InvalidDate(value, "Expected HH:MM")

    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        raise InvalidDate(value, "Time out of range")
    return time(hours, minutes, seconds)


def format_time(value: time) -> str:
    """Canonical ``HH:MM`` rendering."""
    return f"{value.hour:02d}:{value.minute:02d}"


def combine(day: CalendarDate, at: time, tz: Optional[str] = None) -> datetime:
    """Local wall-clock instant for a day and time in the operating timezone."""
    return datetime.combine(day.to_date(), at, tzinfo=get_zone(tz))


def add_days(day: CalendarDate, days: int) -> CalendarDate:
    """Return a new date ``days`` away; handles month and year rollover."""
    return CalendarDate.from_date(day.to_date() + timedelta(days=days))


def compare(a: CalendarDate, b: CalendarDate) -> int:
    """Three-way comparison: -1, 0 or 1."""
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def days_between(a: CalendarDate, b: CalendarDate) -> int:
    """Signed number of days from ``a`` to ``b``."""
    return (b.to_date() - a.to_date()).days


def start_of_week(day: CalendarDate) -> CalendarDate:
    """Sunday on or before ``day``."""
    return add_days(day, -day.weekday_index)


def week_dates(week_start: CalendarDate) -> list[CalendarDate]:
    """The seven consecutive dates starting at ``week_start``."""
    return [add_days(week_start, offset) for offset in range(7)]


def is_past(day: CalendarDate, reference: CalendarDate) -> bool:
    """True when ``day`` is strictly before ``reference``."""
    return day < reference


def is_today(day: CalendarDate, reference: CalendarDate) -> bool:
    return day == reference


def format_for_display(day: CalendarDate) -> str:
    """Human-readable Spanish rendering, e.g. ``viernes 7 de marzo de 2025``."""
    return (
        f"{day.day_name.lower()} {day.day} de {MONTH_NAMES[day.month - 1]} "
        f"de {day.year}"
    )


def validate_and_normalize(raw: str, tz: Optional[str] = None) -> DateValidationResult:
    """
    Validate a date string and guard against day displacement.

    Accepts a plain ``YYYY-MM-DD`` date, or an ISO timestamp whose date
    part is the intended calendar day. When the timestamp carries an offset
    that would land on a different local day once converted to the operating
    timezone (the classic ``2025-06-04T00:00:00Z`` read as June 3rd), the
    displacement is flagged and the written day is returned.

    Malformed input is always an error; it is never silently corrected.

    Args:
        raw: Input string
        tz: Operating timezone (defaults to settings)

    Returns:
        DateValidationResult
    """
    if not isinstance(raw, str) or not raw.strip():
        return DateValidationResult(
            valid=False,
            original=raw if isinstance(raw, str) else "",
            error="Date must be a non-empty string",
        )

    text = raw.strip()

    if _DATE_RE.match(text):
        try:
            normalized = parse(text)
        except InvalidDate as e:
            logger.debug(f"Rejected date {text!r}: {e.reason}")
            return DateValidationResult(valid=False, original=raw, error=str(e))
        return DateValidationResult(valid=True, original=raw, normalized=normalized)

    match = _TIMESTAMP_RE.match(text)
    if not match:
        logger.debug(f"Rejected date {text!r}: unrecognized format")
        return DateValidationResult(
            valid=False,
            original=raw,
            error=f"Invalid date format: {text}. Expected YYYY-MM-DD",
        )

    try:
        intended = parse(match.group("date"))
    except InvalidDate as e:
        return DateValidationResult(valid=False, original=raw, error=str(e))

    offset = match.group("offset")
    if not offset:
        return DateValidationResult(valid=True, original=raw, normalized=intended)

    try:
        instant = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        return DateValidationResult(valid=False, original=raw, error=str(e))

    resolved = today(tz, at=instant)
    difference = days_between(intended, resolved)

    if difference != 0:
        logger.warning(
            f"Date displacement detected: {text!r} resolves to {resolved} "
            f"in {tz or settings.timezone}, keeping {intended}"
        )

    return DateValidationResult(
        valid=True,
        original=raw,
        normalized=intended,
        displacement_detected=difference != 0,
        resolved=resolved,
        days_difference=difference,
    )
