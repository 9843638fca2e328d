"""Conversation flow session module."""

from .state import (
    FlowState,
    VALID_TRANSITIONS,
    can_transition,
    get_valid_transitions,
    is_collecting_state,
    is_terminal_state,
)
from .models import ANY_DOCTOR_LABEL, BookingDraft, ConversationFlow
from .manager import FlowStore, get_flow_store

__all__ = [
    # State
    "FlowState",
    "VALID_TRANSITIONS",
    "can_transition",
    "get_valid_transitions",
    "is_collecting_state",
    "is_terminal_state",
    # Models
    "ANY_DOCTOR_LABEL",
    "BookingDraft",
    "ConversationFlow",
    # Store
    "FlowStore",
    "get_flow_store",
]
