"""
Scheduling Module

Business rules, weekly availability, booking orchestration and the
conversation flow manager for the booking bot.

Usage:
    from agenda.core.scheduling import get_conversation_engine

    engine = get_conversation_engine()
    response = await engine.handle_message(
        organization_id="9b3c...",
        contact="+573001112233",
        message="Hola, quiero una cita",
    )
    print(response.message)                 # Bot's reply
    print(response.requires_human_handoff)  # Escalated to staff?
"""

# Records and collaborator contracts
from agenda.core.scheduling.types import (
    AppointmentCreate,
    AppointmentRecord,
    AppointmentStatus,
    AvailabilityFetcher,
    AvailabilityFilters,
    BusinessHours,
    CONFLICT_STATUSES,
    DaySchedule,
    DEFAULT_BUSINESS_HOURS,
    DoctorRecord,
    Notifier,
    PatientRecord,
    ScheduleSlot,
    SchedulingStore,
    ServiceRecord,
    TimeSlot,
)

# Business Rules
from agenda.core.scheduling.rules import (
    BookingRequest,
    BusinessRuleValidation,
    BusinessRulesEngine,
    ROLE_POLICIES,
    RolePolicy,
    Suggestion,
    policy_for,
)

# Weekly Availability
from agenda.core.scheduling.availability import (
    AvailabilityDay,
    AvailabilityLevel,
    NavigationDirection,
    WeekNavigation,
    WeeklyAvailabilityAggregator,
    classify,
    navigate_week,
)

# Booking
from agenda.core.scheduling.booking import (
    BookingOrchestrator,
    BookingResult,
    confirmation_code,
)

# Responses
from agenda.core.scheduling.response import (
    ResponseGenerator,
    get_response_generator,
)

# Conversation Flow
from agenda.core.scheduling.flow import (
    ConversationFlowManager,
    FlowResponse,
)

# Engine (entry point)
from agenda.core.scheduling.engine import (
    ConversationEngine,
    EngineResponse,
    get_conversation_engine,
)

__all__ = [
    # Types
    "AppointmentCreate",
    "AppointmentRecord",
    "AppointmentStatus",
    "AvailabilityFetcher",
    "AvailabilityFilters",
    "BusinessHours",
    "CONFLICT_STATUSES",
    "DaySchedule",
    "DEFAULT_BUSINESS_HOURS",
    "DoctorRecord",
    "Notifier",
    "PatientRecord",
    "ScheduleSlot",
    "SchedulingStore",
    "ServiceRecord",
    "TimeSlot",
    # Rules
    "BookingRequest",
    "BusinessRuleValidation",
    "BusinessRulesEngine",
    "ROLE_POLICIES",
    "RolePolicy",
    "Suggestion",
    "policy_for",
    # Availability
    "AvailabilityDay",
    "AvailabilityLevel",
    "NavigationDirection",
    "WeekNavigation",
    "WeeklyAvailabilityAggregator",
    "classify",
    "navigate_week",
    # Booking
    "BookingOrchestrator",
    "BookingResult",
    "confirmation_code",
    # Responses
    "ResponseGenerator",
    "get_response_generator",
    # Flow
    "ConversationFlowManager",
    "FlowResponse",
    # Engine
    "ConversationEngine",
    "EngineResponse",
    "get_conversation_engine",
]
