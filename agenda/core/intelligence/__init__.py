"""
Intelligence Layer Module

Provides intent classification, entity extraction and conversation flow
storage for the booking bot.

Usage:
    from agenda.core.intelligence import analyze, get_flow_store

    analysis = analyze("Necesito una cita el viernes a las 3pm")
    print(analysis.intent)               # Intent.BOOK_APPOINTMENT
    print(analysis.entities.time.normalized)  # "15:00"

    store = get_flow_store()
    flow = await store.get(organization_id, "+573001112233")
"""

# Intent Classification
from agenda.core.intelligence.intent import (
    Intent,
    IntentClassifier,
    IntentResult,
    classify_confirmation,
    classify_intent,
    get_intent_classifier,
    is_salutation,
)

# Entity Extraction
from agenda.core.intelligence.entities import (
    Entity,
    EntityExtractor,
    EntityValidation,
    ExtractedEntities,
    UrgencyEntity,
    UrgencyLevel,
    extract_entities,
    get_entity_extractor,
    validate_entities,
)

# Analysis
from agenda.core.intelligence.analyzer import (
    ConversationContext,
    MessageAnalysis,
    MessageAnalyzer,
    PatternAnalyzer,
    analyze,
    get_analyzer,
)

# Flow Sessions
from agenda.core.intelligence.session import (
    ANY_DOCTOR_LABEL,
    BookingDraft,
    ConversationFlow,
    FlowState,
    FlowStore,
    can_transition,
    get_flow_store,
    is_collecting_state,
    is_terminal_state,
)

__all__ = [
    # Intent
    "Intent",
    "IntentClassifier",
    "IntentResult",
    "classify_confirmation",
    "classify_intent",
    "get_intent_classifier",
    "is_salutation",
    # Entities
    "Entity",
    "EntityExtractor",
    "EntityValidation",
    "ExtractedEntities",
    "UrgencyEntity",
    "UrgencyLevel",
    "extract_entities",
    "get_entity_extractor",
    "validate_entities",
    # Analysis
    "ConversationContext",
    "MessageAnalysis",
    "MessageAnalyzer",
    "PatternAnalyzer",
    "analyze",
    "get_analyzer",
    # Sessions
    "ANY_DOCTOR_LABEL",
    "BookingDraft",
    "ConversationFlow",
    "FlowState",
    "FlowStore",
    "can_transition",
    "get_flow_store",
    "is_collecting_state",
    "is_terminal_state",
]
