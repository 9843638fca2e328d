"""
Weekly Availability Aggregator.

Computes seven ``AvailabilityDay`` entries for a week: slot counts from the
availability collaborator, role-aware blocking, and a four-level
classification. Results are computed fresh per request and never cached.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from agenda.core.dates import (
    CalendarDate,
    add_days,
    combine,
    localize,
    now as local_now,
    parse_time,
    today as local_today,
    week_dates,
)
from .rules import policy_for
from .types import AvailabilityFetcher, AvailabilityFilters, TimeSlot

logger = logging.getLogger(__name__)


class AvailabilityLevel(str, Enum):
    """Visual availability indicator."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


REASON_PAST = "Fecha pasada"
REASON_ADVANCE_NOTICE = "Requiere 24 horas de anticipación"
REASON_NO_SLOTS = "Sin horarios disponibles"


def classify(slots_count: int) -> AvailabilityLevel:
    """0 -> none, 1-2 -> low, 3-5 -> medium, 6+ -> high."""
    if slots_count <= 0:
        return AvailabilityLevel.NONE
    if slots_count <= 2:
        return AvailabilityLevel.LOW
    if slots_count <= 5:
        return AvailabilityLevel.MEDIUM
    return AvailabilityLevel.HIGH


@dataclass
class AvailabilityDay:
    """One day of the weekly view."""

    date: CalendarDate
    day_name: str
    slots_count: int
    level: AvailabilityLevel
    is_blocked: bool = False
    block_reason: Optional[str] = None
    is_today: bool = False
    is_tomorrow: bool = False
    is_weekend: bool = False
    slots: list[TimeSlot] = field(default_factory=list)

    def to_dict(self, include_slots: bool = False) -> dict:
        """Convert to dictionary."""
        data = {
            "date": str(self.date),
            "day_name": self.day_name,
            "slots_count": self.slots_count,
            "availability_level": self.level.value,
            "is_blocked": self.is_blocked,
            "block_reason": self.block_reason,
            "is_today": self.is_today,
            "is_tomorrow": self.is_tomorrow,
            "is_weekend": self.is_weekend,
        }
        if include_slots:
            data["slots"] = [slot.to_dict() for slot in self.slots]
        return data


class WeeklyAvailabilityAggregator:
    """Builds the weekly view from per-day slot lookups."""

    def __init__(self, fetcher: AvailabilityFetcher, tz: Optional[str] = None):
        """Initialize aggregator.

        Args:
            fetcher: Availability collaborator
            tz: Operating timezone
        """
        self.fetcher = fetcher
        self.tz = tz

    async def get_week(
        self,
        organization_id: str,
        week_start: CalendarDate,
        filters: Optional[AvailabilityFilters] = None,
        caller_role: str = "patient",
        use_standard_rules: bool = False,
        now: Optional[datetime] = None,
    ) -> list[AvailabilityDay]:
        """
        Aggregate availability for seven days starting at ``week_start``.

        Args:
            organization_id: Organization identifier
            week_start: First day of the window (index 0 of the result)
            filters: Service / doctor / location filters
            caller_role: Resolved caller role
            use_standard_rules: Force the 24h rule on privileged callers
            now: Reference instant (defaults to the wall clock)

        Returns:
            Seven AvailabilityDay entries in calendar order
        """
        moment = localize(now, self.tz) if now is not None else local_now(self.tz)
        today = local_today(self.tz, at=moment)
        policy = policy_for(caller_role, use_standard_rules)
        dates = week_dates(week_start)

        # Past days are never fetched
        to_fetch = [day for day in dates if day >= today]
        fetched = await asyncio.gather(*(
            self.fetcher.fetch_slots(organization_id, day, filters) for day in to_fetch
        ))
        slots_by_day = dict(zip(to_fetch, fetched))

        week = []
        for day in dates:
            slots = [slot for slot in slots_by_day.get(day, []) if slot.available]
            if day == today:
                # Slots that already started cannot be booked
                slots = [
                    slot for slot in slots
                    if combine(day, parse_time(slot.start_time), self.tz) > moment
                ]
            count = len(slots)

            if day < today:
                reason = REASON_PAST
            elif day == today and not policy.same_day_booking:
                reason = REASON_ADVANCE_NOTICE
            elif count == 0:
                reason = REASON_NO_SLOTS
            else:
                reason = None

            week.append(AvailabilityDay(
                date=day,
                day_name=day.day_name,
                slots_count=count,
                level=AvailabilityLevel.NONE if reason else classify(count),
                is_blocked=reason is not None,
                block_reason=reason,
                is_today=day == today,
                is_tomorrow=day == add_days(today, 1),
                is_weekend=day.weekday_index in (0, 6),
                slots=slots,
            ))

        logger.debug(
            f"Week {week_start} for org {organization_id} ({caller_role}): "
            f"{[d.level.value for d in week]}"
        )
        return week


# === Navigation ===

class NavigationDirection(str, Enum):
    PREVIOUS = "previous"
    NEXT = "next"


@dataclass(frozen=True)
class WeekNavigation:
    """Result of a navigation attempt; ``week_start`` is unchanged when blocked."""

    week_start: CalendarDate
    moved: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "week_start": str(self.week_start),
            "moved": self.moved,
            "reason": self.reason,
        }


def navigate_week(
    week_start: CalendarDate,
    direction: NavigationDirection,
    today: CalendarDate,
    min_date: Optional[CalendarDate] = None,
) -> WeekNavigation:
    """
    Move the weekly window by seven days.

    Blocked when the target week starts before ``min_date`` or ends
    before ``today``.
    """
    offset = -7 if direction == NavigationDirection.PREVIOUS else 7
    target = add_days(week_start, offset)

    if min_date is not None and target < min_date:
        return WeekNavigation(week_start, moved=False, reason="before_min_date")

    if add_days(target, 6) < today:
        return WeekNavigation(week_start, moved=False, reason="week_in_past")

    return WeekNavigation(target, moved=True)
