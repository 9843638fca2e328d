"""Date integrity module."""

from .types import CalendarDate, DateValidationResult, DAY_NAMES, MONTH_NAMES
from .handler import (
    add_days,
    combine,
    compare,
    days_between,
    format_for_display,
    format_time,
    get_zone,
    is_past,
    is_today,
    localize,
    now,
    parse,
    parse_time,
    start_of_week,
    today,
    validate_and_normalize,
    week_dates,
)

__all__ = [
    # Types
    "CalendarDate",
    "DateValidationResult",
    "DAY_NAMES",
    "MONTH_NAMES",
    # Operations
    "add_days",
    "combine",
    "compare",
    "days_between",
    "format_for_display",
    "format_time",
    "get_zone",
    "is_past",
    "is_today",
    "localize",
    "now",
    "parse",
    "parse_time",
    "start_of_week",
    "today",
    "validate_and_normalize",
    "week_dates",
]
