"""
Weekly Availability Endpoints.

Seven-day availability view and week navigation for the booking UI.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field

from agenda.config import settings
from agenda.core.dates import parse, start_of_week, today as local_today
from agenda.core.scheduling import (
    AvailabilityFilters,
    NavigationDirection,
    WeeklyAvailabilityAggregator,
    navigate_week,
)
from agenda.core.scheduling.wiring import get_availability_aggregator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])


class AvailabilityDayResponse(BaseModel):
    date: str
    day_name: str
    slots_count: int
    availability_level: str
    is_blocked: bool
    block_reason: Optional[str] = None
    is_today: bool
    is_tomorrow: bool
    is_weekend: bool
    slots: Optional[list[dict]] = None


class WeekResponse(BaseModel):
    week_start: str
    days: list[AvailabilityDayResponse]


class NavigateRequest(BaseModel):
    week_start: str = Field(..., description="Current week start (YYYY-MM-DD)", examples=["2026-10-19"])
    direction: NavigationDirection
    min_date: Optional[str] = Field(
        default=None,
        description="Earliest date the caller may view; defaults to today",
    )


class NavigateResponse(BaseModel):
    week_start: str
    moved: bool
    reason: Optional[str] = None


@router.get(
    "/week",
    response_model=WeekResponse,
    summary="Weekly availability",
    description="Slot counts, availability level and blocking for seven days.",
)
async def get_week(
    week_start: Optional[str] = Query(
        default=None,
        description="First day of the window (YYYY-MM-DD); defaults to the current week",
    ),
    service_id: Optional[str] = None,
    doctor_id: Optional[str] = None,
    location_id: Optional[str] = None,
    use_standard_rules: bool = False,
    include_slots: bool = False,
    x_tenant_id: str = Header(..., alias="X-Tenant-ID", description="Organization identifier"),
    x_caller_role: str = Header(default="patient", alias="X-Caller-Role"),
    aggregator: WeeklyAvailabilityAggregator = Depends(get_availability_aggregator),
) -> WeekResponse:
    start = parse(week_start) if week_start else start_of_week(local_today(settings.timezone))

    days = await aggregator.get_week(
        organization_id=x_tenant_id,
        week_start=start,
        filters=AvailabilityFilters(
            service_id=service_id,
            doctor_id=doctor_id,
            location_id=location_id,
        ),
        caller_role=x_caller_role,
        use_standard_rules=use_standard_rules,
    )

    return WeekResponse(
        week_start=str(start),
        days=[AvailabilityDayResponse(**day.to_dict(include_slots=include_slots)) for day in days],
    )


@router.post(
    "/week/navigate",
    response_model=NavigateResponse,
    summary="Move the weekly window",
    description="Previous/next week; blocked weeks leave week_start unchanged.",
)
async def navigate(request: NavigateRequest) -> NavigateResponse:
    today = local_today(settings.timezone)
    result = navigate_week(
        parse(request.week_start),
        request.direction,
        today=today,
        min_date=parse(request.min_date) if request.min_date else today,
    )
    if not result.moved:
        logger.debug(f"Week navigation blocked from {request.week_start}: {result.reason}")
    return NavigateResponse(**result.to_dict())
