"""Conversation flow state machine."""

from enum import Enum
from typing import Set


class FlowState(str, Enum):
    """States in the appointment booking conversation."""

    # Initial
    GREETING = "greeting"
    INTENT_DETECTION = "intent_detection"

    # Information gathering
    COLLECT_SERVICE = "collect_service"
    COLLECT_DATE = "collect_date"
    COLLECT_TIME = "collect_time"
    COLLECT_DOCTOR = "collect_doctor"

    # Confirmation
    CONFIRM_DETAILS = "confirm_details"
    BOOKING = "booking"

    # Terminal states
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ESCALATED = "escalated"


_EXITS = {FlowState.CANCELLED, FlowState.ESCALATED}

# Valid state transitions; cancel and escalate are reachable from every live state
VALID_TRANSITIONS: dict[FlowState, Set[FlowState]] = {
    FlowState.GREETING: {FlowState.INTENT_DETECTION, FlowState.COLLECT_SERVICE, *_EXITS},
    FlowState.INTENT_DETECTION: {FlowState.COLLECT_SERVICE, *_EXITS},
    FlowState.COLLECT_SERVICE: {FlowState.COLLECT_DATE, *_EXITS},
    FlowState.COLLECT_DATE: {FlowState.COLLECT_TIME, *_EXITS},
    FlowState.COLLECT_TIME: {FlowState.COLLECT_DOCTOR, *_EXITS},
    FlowState.COLLECT_DOCTOR: {FlowState.CONFIRM_DETAILS, *_EXITS},
    FlowState.CONFIRM_DETAILS: {FlowState.BOOKING, *_EXITS},
    FlowState.BOOKING: {FlowState.COMPLETED, *_EXITS},
    FlowState.COMPLETED: set(),
    FlowState.CANCELLED: set(),
    FlowState.ESCALATED: set(),
}


def can_transition(from_state: FlowState, to_state: FlowState) -> bool:
    """Check if a state transition is valid."""
    return to_state in VALID_TRANSITIONS.get(from_state, set())


def get_valid_transitions(state: FlowState) -> Set[FlowState]:
    """Get all valid transitions from a state."""
    return VALID_TRANSITIONS.get(state, set())


def is_terminal_state(state: FlowState) -> bool:
    """Check if state is terminal (no further transitions)."""
    return state in {
        FlowState.COMPLETED,
        FlowState.CANCELLED,
        FlowState.ESCALATED,
    }


def is_collecting_state(state: FlowState) -> bool:
    """Check if state is a data collection state."""
    return state in {
        FlowState.COLLECT_SERVICE,
        FlowState.COLLECT_DATE,
        FlowState.COLLECT_TIME,
        FlowState.COLLECT_DOCTOR,
    }
