"""Intent types for conversation classification."""

from dataclasses import dataclass
from enum import Enum


class Intent(str, Enum):
    """Patient intent categories."""

    BOOK_APPOINTMENT = "book_appointment"              # Book new appointment
    RESCHEDULE_APPOINTMENT = "reschedule_appointment"  # Change existing
    CANCEL_APPOINTMENT = "cancel_appointment"          # Cancel existing
    CHECK_AVAILABILITY = "check_availability"          # Open days / hours
    GET_INFO = "get_info"                              # Services, prices, location
    HUMAN_HANDOFF = "human_handoff"                    # Wants a person

    # Fallback
    UNKNOWN = "unknown"


@dataclass
class IntentResult:
    """Result of intent classification."""

    intent: Intent
    confidence: float  # 0.0 - 1.0
    matched_text: str = ""

    @property
    def is_high_confidence(self) -> bool:
        """Check if classification is high confidence."""
        return self.confidence >= 0.7

    @property
    def is_delegated(self) -> bool:
        """Intents this bot hands to staff instead of serving itself."""
        return self.intent in {
            Intent.RESCHEDULE_APPOINTMENT,
            Intent.CANCEL_APPOINTMENT,
            Intent.CHECK_AVAILABILITY,
            Intent.GET_INFO,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "intent": self.intent.value,
            "confidence": self.confidence,
            "matched_text": self.matched_text,
        }
