"""
Pattern-based intent classification.

Spanish-first keyword patterns over a normalized message. Deterministic:
the same message always yields the same intent and confidence.
"""

import logging
import re
from typing import Optional

from agenda.core.intelligence.text import normalize_message
from .types import Intent, IntentResult

logger = logging.getLogger(__name__)


# Declaration order matters: on equal confidence the earlier family wins.
INTENT_PATTERNS: dict[Intent, list[str]] = {
    Intent.BOOK_APPOINTMENT: [
        r"\b(agendar|reservar|pedir|solicitar|quiero|necesito)\b.*\b(cita|turno|consulta|hora)\b",
        r"\b(cita|turno|consulta)\b.*\b(nueva|nuevo)\b",
        r"\bhola\b.*\b(cita|turno|consulta)\b",
        r"\b(cuando|que dia|que hora)\b.*\b(puedo|podria|disponible)\b",
    ],
    Intent.RESCHEDULE_APPOINTMENT: [
        r"\b(cambiar|mover|reagendar|reprogramar)\b.*\b(cita|turno|consulta)\b",
        r"\b(cita|turno|consulta)\b.*\b(cambiar|mover|otro dia|otra hora)\b",
        r"\bno puedo\b.*\b(cita|turno|consulta)\b",
    ],
    Intent.CANCEL_APPOINTMENT: [
        r"\b(cancelar|anular|eliminar)\b.*\b(cita|turno|consulta)\b",
        r"\b(cita|turno|consulta)\b.*\b(cancelar|anular|no voy)\b",
        r"\bno voy a poder\b.*\b(cita|turno|consulta)\b",
    ],
    Intent.CHECK_AVAILABILITY: [
        r"\b(disponibilidad|horarios|cuando|que dias)\b",
        r"\b(esta libre|hay lugar|tienen hora)\b",
        r"\b(que horarios|que dias)\b.*\b(atienden|trabajan|disponible)\b",
    ],
    Intent.GET_INFO: [
        r"\b(informacion|info|que servicios|que doctores|precios|costos)\b",
        r"\b(donde|direccion|ubicacion|telefono|contacto)\b",
        r"\b(como llegar|horarios de atencion)\b",
    ],
    Intent.HUMAN_HANDOFF: [
        r"\b(humano|operador|recepcionista|hablar con (alguien|una persona|un agente))\b",
        r"\b(no entiendo|no me ayuda|reclamo|queja)\b",
        r"(^|\s)#?humano\b",
    ],
}

_AFFIRMATIVE_RE = re.compile(
    r"\b(si|confirmo|confirmado|correcto|ok|okay|esta bien|perfecto|dale|claro|de acuerdo)\b"
)
_NEGATIVE_RE = re.compile(r"\b(no|incorrecto|cambiar|modificar)\b")
# A leading "no" or a negated verb overrides affirmative words later in the reply
_NEGATED_RE = re.compile(r"^no\b|\bno (es|esta|estoy|me parece|confirmo|quiero)\b")
_SALUTATION_RE = re.compile(
    r"^(hola|buenas|buenos dias|buenas tardes|buenas noches|saludos|hey|buen dia)\b"
)

BASE_CONFIDENCE = 0.7
MAX_CONFIDENCE = 0.95


class IntentClassifier:
    """
    Keyword-pattern intent classifier.

    Every family is tried; the highest-confidence match wins and ties go to
    the family declared first.
    """

    def __init__(self, patterns: Optional[dict[Intent, list[str]]] = None):
        """Initialize classifier.

        Args:
            patterns: Optional override of the intent pattern table
        """
        source = patterns or INTENT_PATTERNS
        self._patterns: list[tuple[Intent, re.Pattern]] = [
            (intent, re.compile(pattern))
            for intent, family in source.items()
            for pattern in family
        ]

    def classify(self, message: str) -> IntentResult:
        """Classify a raw message.

        Args:
            message: Patient's message

        Returns:
            IntentResult; ``Intent.UNKNOWN`` with confidence 0.0 when nothing matches
        """
        normalized = normalize_message(message)
        if not normalized:
            return IntentResult(intent=Intent.UNKNOWN, confidence=0.0)

        best = IntentResult(intent=Intent.UNKNOWN, confidence=0.0)

        for intent, pattern in self._patterns:
            match = pattern.search(normalized)
            if not match:
                continue
            confidence = self.pattern_confidence(match.group(0))
            if confidence > best.confidence:
                best = IntentResult(
                    intent=intent,
                    confidence=confidence,
                    matched_text=match.group(0),
                )

        logger.debug(
            f"Classified intent: {best.intent.value} (confidence: {best.confidence:.2f})"
        )
        return best

    @staticmethod
    def pattern_confidence(matched: str) -> float:
        """Confidence from match length and keyword density."""
        confidence = BASE_CONFIDENCE
        if len(matched) > 10:
            confidence += 0.1
        if len(matched.split()) >= 3:
            confidence += 0.1
        return round(min(confidence, MAX_CONFIDENCE), 2)


def classify_confirmation(message: str) -> Optional[bool]:
    """Yes/no reading of a reply.

    Returns:
        True for affirmative, False for negative, None when ambiguous
    """
    normalized = normalize_message(message)
    if _NEGATED_RE.search(normalized):
        return False
    if _AFFIRMATIVE_RE.search(normalized):
        return True
    if _NEGATIVE_RE.search(normalized):
        return False
    return None


def is_salutation(message: str) -> bool:
    """True for messages that open with a greeting (``hola``, ``buenas tardes``)."""
    return bool(_SALUTATION_RE.search(normalize_message(message)))


# Singleton
_classifier: Optional[IntentClassifier] = None


def get_intent_classifier() -> IntentClassifier:
    """Get singleton IntentClassifier."""
    global _classifier
    if _classifier is None:
        _classifier = IntentClassifier()
    return _classifier


def classify_intent(message: str) -> IntentResult:
    """Convenience function to classify intent."""
    return get_intent_classifier().classify(message)
