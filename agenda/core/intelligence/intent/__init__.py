"""Intent classification module."""

from .types import Intent, IntentResult
from .classifier import (
    INTENT_PATTERNS,
    IntentClassifier,
    classify_confirmation,
    classify_intent,
    get_intent_classifier,
    is_salutation,
)

__all__ = [
    # Types
    "Intent",
    "IntentResult",
    # Classifier
    "INTENT_PATTERNS",
    "IntentClassifier",
    "get_intent_classifier",
    "classify_intent",
    "classify_confirmation",
    "is_salutation",
]
