"""
Message analysis facade.

``analyze(message, context)`` is the single entry point the conversation
flow depends on. The pattern implementation below is the default; any
other classifier can stand in as long as it satisfies ``MessageAnalyzer``.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from agenda.core.dates import CalendarDate
from .entities import EntityExtractor, ExtractedEntities, get_entity_extractor
from .intent import Intent, IntentClassifier, get_intent_classifier

logger = logging.getLogger(__name__)


@dataclass
class ConversationContext:
    """What the analyzer may know about the ongoing conversation."""

    contact: str
    current_state: Optional[str] = None
    last_message: str = ""
    message_count: int = 0
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    extracted: dict = field(default_factory=dict)


@dataclass
class MessageAnalysis:
    """Intent plus entities for one message."""

    intent: Intent
    confidence: float
    entities: ExtractedEntities = field(default_factory=ExtractedEntities)

    @property
    def is_unknown(self) -> bool:
        return self.intent == Intent.UNKNOWN

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "intent": self.intent.value,
            "confidence": self.confidence,
            "entities": self.entities.to_dict(),
        }


@runtime_checkable
class MessageAnalyzer(Protocol):
    """Natural-language understanding capability consumed by the flow."""

    def analyze(
        self,
        message: str,
        context: Optional[ConversationContext] = None,
        today: Optional[CalendarDate] = None,
    ) -> MessageAnalysis:
        ...


class PatternAnalyzer:
    """Deterministic keyword analyzer: intent patterns plus entity catalog."""

    def __init__(
        self,
        classifier: Optional[IntentClassifier] = None,
        extractor: Optional[EntityExtractor] = None,
    ):
        self.classifier = classifier or get_intent_classifier()
        self.extractor = extractor or get_entity_extractor()

    def analyze(
        self,
        message: str,
        context: Optional[ConversationContext] = None,
        today: Optional[CalendarDate] = None,
    ) -> MessageAnalysis:
        """
        Analyze a message.

        Args:
            message: Raw patient message
            context: Conversation context (unused by the pattern rules)
            today: Reference day for relative dates

        Returns:
            MessageAnalysis
        """
        result = self.classifier.classify(message)
        entities = self.extractor.extract(message, today)

        if context is not None:
            logger.debug(
                f"Analyzed message {context.message_count + 1} from {context.contact}: "
                f"{result.intent.value} ({result.confidence:.2f})"
            )

        return MessageAnalysis(
            intent=result.intent,
            confidence=result.confidence,
            entities=entities,
        )


# Singleton
_analyzer: Optional[PatternAnalyzer] = None


def get_analyzer() -> PatternAnalyzer:
    """Get singleton PatternAnalyzer."""
    global _analyzer
    if _analyzer is None:
        _analyzer = PatternAnalyzer()
    return _analyzer


def analyze(
    message: str,
    context: Optional[ConversationContext] = None,
    today: Optional[CalendarDate] = None,
) -> MessageAnalysis:
    """Convenience function to analyze a message."""
    return get_analyzer().analyze(message, context, today)
