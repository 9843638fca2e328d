"""
Response templates for the booking conversation.

All patient-facing text lives here, in Spanish. Templates are plain
string builders so replies are deterministic.
"""

import logging
from typing import Optional

from agenda.core.dates import format_for_display, parse
from agenda.core.intelligence.entities import DOCTOR_ALIASES, SERVICE_ALIASES
from agenda.core.intelligence.session import BookingDraft

logger = logging.getLogger(__name__)


DOCTOR_SPECIALTIES = {
    "Dr. Elena López": "Optometría Pediátrica",
    "Dr. Ana Rodríguez": "Optometría Clínica",
    "Dr. Pedro Sánchez": "Contactología",
}

INTENT_MENU = (
    "• Agendar una nueva cita\n"
    "• Reagendar una cita existente\n"
    "• Cancelar una cita\n"
    "• Consultar información"
)


def _display_date(value: Optional[str]) -> str:
    return format_for_display(parse(value)) if value else ""


class ResponseGenerator:
    """Template-based replies for each conversation step."""

    def __init__(
        self,
        services: Optional[list[str]] = None,
        doctors: Optional[list[str]] = None,
    ):
        """Initialize generator.

        Args:
            services: Service names offered in menus
            doctors: Doctor names offered in menus
        """
        self.services = services or list(SERVICE_ALIASES)
        self.doctors = doctors or list(DOCTOR_ALIASES)

    def _bullets(self, items: list[str]) -> str:
        return "\n".join(f"• {item}" for item in items)

    # === Greeting / intent ===

    def service_menu(self) -> str:
        return (
            "¡Perfecto! Te ayudo a agendar tu cita. ¿Qué tipo de servicio necesitas?\n\n"
            f"{self._bullets(self.services)}"
        )

    def intent_menu(self) -> str:
        return f"Entiendo que necesitas ayuda. ¿Te gustaría:\n\n{INTENT_MENU}\n\n¿Qué necesitas?"

    def unclear_intent(self) -> str:
        return f"No estoy seguro de entender. ¿Podrías decirme si quieres:\n\n{INTENT_MENU}"

    # === Collection ===

    def service_retry(self) -> str:
        return f"Por favor, elige uno de estos servicios:\n\n{self._bullets(self.services)}\n\n¿Cuál necesitas?"

    def ask_date(self, service: str) -> str:
        return (
            f"Perfecto, {service}. ¿Qué día te gustaría la cita? Puedes decirme:\n\n"
            "• Un día específico (ej: \"mañana\", \"viernes\")\n"
            "• Una fecha (ej: \"15 de febrero\")\n\n"
            "Recuerda que necesitamos al menos 24 horas de anticipación."
        )

    def date_retry(self) -> str:
        return (
            "Por favor, dime qué día prefieres. Puedes decir:\n\n"
            "• \"Mañana\"\n• \"El viernes\"\n• \"15 de febrero\"\n\n"
            "Recuerda que necesitamos 24 horas de anticipación."
        )

    def date_rejected(self, errors: list[str]) -> str:
        return f"{'. '.join(errors)}. ¿Podrías elegir otra fecha?"

    def ask_time(self, date: str) -> str:
        return (
            f"Excelente, el {_display_date(date)}. ¿A qué hora prefieres? Nuestro horario es "
            "de 8:00 a 18:00 de lunes a viernes, y sábados de 8:00 a 14:00."
        )

    def time_retry(self) -> str:
        return (
            "Por favor, dime a qué hora prefieres. Por ejemplo:\n\n"
            "• \"10:00 am\"\n• \"2:30 pm\"\n• \"10 de la mañana\"\n\n"
            "Nuestro horario es de 8:00 a 18:00."
        )

    def time_rejected(self, errors: list[str]) -> str:
        return f"{'. '.join(errors)}. ¿Podrías elegir otro horario?"

    def ask_doctor(self, time: str) -> str:
        options = [
            f"{name} ({DOCTOR_SPECIALTIES[name]})" if name in DOCTOR_SPECIALTIES else name
            for name in self.doctors
        ]
        return (
            f"Perfecto, a las {time}. ¿Tienes preferencia por algún doctor en particular?\n\n"
            f"{self._bullets(options)}\n\n"
            "O puedes decir \"cualquiera\" si no tienes preferencia."
        )

    def doctor_retry(self) -> str:
        return f"Por favor, elige un doctor o di \"cualquiera\":\n\n{self._bullets(self.doctors + ['Cualquiera'])}"

    # === Confirmation ===

    def confirm_details(self, draft: BookingDraft) -> str:
        return (
            "📋 Confirma los detalles de tu cita:\n\n"
            f"• Servicio: {draft.service}\n"
            f"• Fecha: {_display_date(draft.date)}\n"
            f"• Hora: {draft.time}\n"
            f"• Doctor: {draft.doctor_label}\n\n"
            "¿Está todo correcto? Responde \"Sí\" para confirmar o \"No\" si quieres hacer cambios."
        )

    def confirm_retry(self) -> str:
        return "Por favor, responde \"Sí\" para confirmar o \"No\" si quieres hacer cambios."

    def booking_confirmed(self, draft: BookingDraft, confirmation_code: str, doctor_name: Optional[str] = None) -> str:
        return (
            "🎉 ¡Cita agendada exitosamente!\n\n"
            "Detalles de tu cita:\n"
            f"• Servicio: {draft.service}\n"
            f"• Fecha: {_display_date(draft.date)}\n"
            f"• Hora: {draft.time}\n"
            f"• Doctor: {doctor_name or draft.doctor_label}\n\n"
            f"Número de confirmación: {confirmation_code}\n\n"
            "Recibirás un recordatorio 24 horas antes. ¡Nos vemos pronto!"
        )

    def booking_rejected(self, errors: list[str], suggestions: Optional[list[str]] = None) -> str:
        base = f"No pude agendar tu cita: {'. '.join(errors)}."
        if suggestions:
            base += f"\n\nAlgunas opciones:\n{self._bullets(suggestions)}"
        return base + "\n\nTe conecto con nuestro personal para completar el proceso."

    def booking_failed(self) -> str:
        return "Hubo un problema al agendar tu cita. Te conecto con nuestro personal para completar el proceso."

    def booking_notification(self, draft: BookingDraft, confirmation_code: str, doctor_name: Optional[str] = None) -> str:
        """Text sent through the outbound channel after a booking."""
        return (
            f"Tu cita de {draft.service} quedó agendada para el {_display_date(draft.date)} "
            f"a las {draft.time} con {doctor_name or draft.doctor_label}. "
            f"Confirmación: {confirmation_code}"
        )

    # === Exits ===

    def handoff(self, reason: Optional[str] = None) -> str:
        """Escalation reply.

        Args:
            reason: Which step could not be completed (service, date, time, details)
        """
        if reason == "delegated":
            return (
                "Para este tipo de consulta, te voy a conectar con nuestro personal "
                "que te podrá ayudar mejor. Un momento por favor..."
            )
        if reason == "changes":
            return "Entiendo que quieres hacer cambios. Te conecto con nuestro personal para ajustar los detalles."
        if reason:
            return f"Te ayudo mejor con nuestro personal para coordinar {reason}. Te estoy conectando."
        return "Te estoy conectando con nuestro personal. En un momento alguien te atenderá para ayudarte con tu consulta."

    def cancelled(self) -> str:
        return (
            "Entendido. Si necesitas agendar una cita más tarde, solo escríbeme \"Hola\" "
            "y te ayudo. ¡Que tengas un buen día!"
        )

    def apology(self) -> str:
        return "Disculpa, hubo un error procesando tu mensaje. ¿Podrías intentar de nuevo?"


# Singleton
_generator: Optional[ResponseGenerator] = None


def get_response_generator() -> ResponseGenerator:
    """Get singleton ResponseGenerator."""
    global _generator
    if _generator is None:
        _generator = ResponseGenerator()
    return _generator
