"""
Booking Validation Endpoint.

Runs the business rules against a candidate booking without writing
anything. Rule violations come back as data with a 200 status.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field

from agenda.core.scheduling import BookingRequest, BusinessRulesEngine
from agenda.core.scheduling.wiring import get_business_rules_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


class ValidateRequest(BaseModel):
    service: str = Field(..., description="Service name", examples=["Examen Visual Completo"])
    date: str = Field(..., description="Appointment date (YYYY-MM-DD)", examples=["2026-10-20"])
    time: str = Field(..., description="Appointment time (HH:MM)", examples=["10:00"])
    doctor_id: Optional[str] = Field(default=None, description="Requested doctor, if any")
    use_standard_rules: bool = Field(
        default=False,
        description="Apply the 24h notice rule even to privileged callers",
    )


class SuggestionResponse(BaseModel):
    message: str
    date: Optional[str] = None
    time: Optional[str] = None


class ValidateResponse(BaseModel):
    valid: bool
    errors: list[str]
    warnings: list[str]
    suggestions: list[SuggestionResponse]


@router.post(
    "/validate",
    response_model=ValidateResponse,
    summary="Validate a candidate booking",
    responses={400: {"description": "Malformed date or time"}},
)
async def validate_booking(
    request: ValidateRequest,
    x_tenant_id: str = Header(..., alias="X-Tenant-ID", description="Organization identifier"),
    x_caller_role: str = Header(default="patient", alias="X-Caller-Role"),
    rules: BusinessRulesEngine = Depends(get_business_rules_engine),
) -> ValidateResponse:
    validation = await rules.validate_booking(BookingRequest(
        organization_id=x_tenant_id,
        service=request.service,
        date=request.date,
        time=request.time,
        doctor_id=request.doctor_id,
        caller_role=x_caller_role,
        use_standard_rules=request.use_standard_rules,
    ))
    return ValidateResponse(**validation.to_dict())
