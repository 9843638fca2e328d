"""
Conversation Flow Manager.

State machine for booking conversations:

    greeting -> intent_detection -> collect_service -> collect_date
      -> collect_time -> collect_doctor -> confirm_details -> booking
      -> completed | cancelled | escalated

Every inbound message is analyzed first. The exit keyword cancels and a
handoff request escalates from any state; otherwise the current state's
handler decides. Each collecting state escalates after ``max_retries``
consecutive unresolved replies, except the doctor step which falls back
to any available doctor.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from agenda.config import settings
from agenda.core.dates import today as local_today
from agenda.core.exceptions import InvalidDate, PersistenceFailed, ValidationFailed
from agenda.core.intelligence import (
    ConversationContext,
    ConversationFlow,
    ExtractedEntities,
    FlowState,
    Intent,
    MessageAnalysis,
    MessageAnalyzer,
    classify_confirmation,
    get_analyzer,
    get_entity_extractor,
    is_salutation,
    is_terminal_state,
    validate_entities,
)
from agenda.core.intelligence.entities import EntityExtractor
from .booking import BookingOrchestrator
from .response import ResponseGenerator, get_response_generator

logger = logging.getLogger(__name__)


DELEGATED_INTENTS = {
    Intent.RESCHEDULE_APPOINTMENT,
    Intent.CANCEL_APPOINTMENT,
    Intent.CHECK_AVAILABILITY,
    Intent.GET_INFO,
}


@dataclass
class FlowResponse:
    """Reply for one inbound message."""

    message: str
    next_state: Optional[FlowState] = None  # None when the state did not change
    should_continue: bool = True
    requires_human_handoff: bool = False
    appointment_id: Optional[str] = None
    confirmation_code: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "message": self.message,
            "next_state": self.next_state.value if self.next_state else None,
            "should_continue": self.should_continue,
            "requires_human_handoff": self.requires_human_handoff,
            "appointment_id": self.appointment_id,
            "confirmation_code": self.confirmation_code,
        }


class ConversationFlowManager:
    """
    Drives one flow through the booking dialogue.

    Stateless itself: all conversation state lives on the ConversationFlow
    passed in, which is mutated in place.
    """

    def __init__(
        self,
        orchestrator: BookingOrchestrator,
        analyzer: Optional[MessageAnalyzer] = None,
        responses: Optional[ResponseGenerator] = None,
        extractor: Optional[EntityExtractor] = None,
        max_retries: Optional[int] = None,
        exit_keyword: Optional[str] = None,
        tz: Optional[str] = None,
    ):
        """Initialize flow manager.

        Args:
            orchestrator: Booking orchestrator used by the booking step
            analyzer: Intent/entity analyzer (pattern analyzer by default)
            responses: Reply templates
            extractor: Used for the "any doctor" check
            max_retries: Unresolved replies allowed per state
            exit_keyword: Literal keyword that cancels from any state
            tz: Operating timezone
        """
        self.orchestrator = orchestrator
        self.analyzer = analyzer or get_analyzer()
        self.responses = responses or get_response_generator()
        self.extractor = extractor or get_entity_extractor()
        self.max_retries = max_retries if max_retries is not None else settings.flow_max_retries
        self.exit_keyword = (exit_keyword or settings.flow_exit_keyword).lower()
        self.tz = tz

    async def process(
        self,
        flow: ConversationFlow,
        message: str,
        now: datetime,
        caller_role: str = "patient",
        received_at: Optional[datetime] = None,
    ) -> FlowResponse:
        """
        Advance ``flow`` with one inbound message.

        Args:
            flow: Active flow (mutated in place)
            message: Inbound text
            now: Reference instant
            caller_role: Resolved caller role
            received_at: When the transport received the message

        Returns:
            FlowResponse
        """
        today = local_today(self.tz, at=now)
        context = ConversationContext(
            contact=flow.contact,
            current_state=flow.state.value,
            last_message=flow.last_message,
            message_count=flow.message_count,
            started_at=flow.created_at,
            updated_at=flow.updated_at,
            extracted=flow.draft.to_dict(),
        )
        analysis = self.analyzer.analyze(message, context, today)

        flow.touch(message, now, received_at)
        previous = flow.state

        if is_terminal_state(flow.state):
            logger.warning(f"Flow {flow.flow_id} received a message in {flow.state.value}")
            return FlowResponse(message=self.responses.apology(), should_continue=False)

        if self.exit_keyword in message.lower():
            response = self._cancel()
        elif analysis.intent == Intent.HUMAN_HANDOFF:
            response = self._escalate()
        else:
            response = await self._dispatch(flow, analysis, message, today)

        if response.next_state is not None:
            flow.transition(response.next_state)

        # Confirmation and booking happen in the same turn
        if flow.state == FlowState.BOOKING:
            response = await self._handle_booking(flow, now, caller_role)
            flow.transition(response.next_state)

        if flow.state != previous:
            logger.info(
                f"Flow {flow.flow_id} ({flow.contact}): {previous.value} -> {flow.state.value}"
            )
            if flow.state == FlowState.ESCALATED:
                logger.info(f"Flow {flow.flow_id} escalated to staff")
        return response

    async def _dispatch(
        self,
        flow: ConversationFlow,
        analysis: MessageAnalysis,
        message: str,
        today,
    ) -> FlowResponse:
        state = flow.state

        if state == FlowState.GREETING:
            return self._handle_greeting(analysis, message)
        if state == FlowState.INTENT_DETECTION:
            return self._handle_intent_detection(flow, analysis)
        if state == FlowState.COLLECT_SERVICE:
            return self._handle_service(flow, analysis)
        if state == FlowState.COLLECT_DATE:
            return self._handle_date(flow, analysis, today)
        if state == FlowState.COLLECT_TIME:
            return self._handle_time(flow, analysis, today)
        if state == FlowState.COLLECT_DOCTOR:
            return self._handle_doctor(flow, analysis, message)
        if state == FlowState.CONFIRM_DETAILS:
            return self._handle_confirmation(flow, message)

        # BOOKING left over from an interrupted turn: process() runs it
        return FlowResponse(message="", next_state=None)

    # === Greeting / intent ===

    def _handle_greeting(self, analysis: MessageAnalysis, message: str) -> FlowResponse:
        if analysis.intent == Intent.BOOK_APPOINTMENT:
            return FlowResponse(self.responses.service_menu(), FlowState.COLLECT_SERVICE)
        if analysis.intent in DELEGATED_INTENTS:
            return self._escalate("delegated")
        if is_salutation(message):
            return FlowResponse(self.responses.service_menu(), FlowState.COLLECT_SERVICE)
        return FlowResponse(self.responses.intent_menu(), FlowState.INTENT_DETECTION)

    def _handle_intent_detection(
        self, flow: ConversationFlow, analysis: MessageAnalysis
    ) -> FlowResponse:
        if analysis.intent == Intent.BOOK_APPOINTMENT:
            return FlowResponse(self.responses.service_menu(), FlowState.COLLECT_SERVICE)
        if analysis.intent in DELEGATED_INTENTS:
            return self._escalate("delegated")
        return self._retry(flow, self.responses.unclear_intent())

    # === Collection ===

    def _handle_service(self, flow: ConversationFlow, analysis: MessageAnalysis) -> FlowResponse:
        service = analysis.entities.service
        if service is not None:
            flow.draft.service = service.normalized
            if analysis.entities.urgency is not None:
                flow.draft.urgency = analysis.entities.urgency.level.value
            return FlowResponse(self.responses.ask_date(service.normalized), FlowState.COLLECT_DATE)
        return self._retry(flow, self.responses.service_retry(), reason="el servicio adecuado")

    def _handle_date(self, flow: ConversationFlow, analysis: MessageAnalysis, today) -> FlowResponse:
        date = analysis.entities.date
        if date is None:
            return self._retry(flow, self.responses.date_retry(), reason="la fecha")

        check = validate_entities(ExtractedEntities(date=date), today)
        if not check.valid:
            return self._retry(flow, self.responses.date_rejected(list(check.errors)), reason="la fecha")

        flow.draft.date = date.normalized
        return FlowResponse(self.responses.ask_time(date.normalized), FlowState.COLLECT_TIME)

    def _handle_time(self, flow: ConversationFlow, analysis: MessageAnalysis, today) -> FlowResponse:
        time = analysis.entities.time
        if time is None:
            return self._retry(flow, self.responses.time_retry(), reason="el horario")

        check = validate_entities(ExtractedEntities(time=time), today)
        if not check.valid:
            return self._retry(flow, self.responses.time_rejected(list(check.errors)), reason="el horario")

        flow.draft.time = time.normalized
        return FlowResponse(self.responses.ask_doctor(time.normalized), FlowState.COLLECT_DOCTOR)

    def _handle_doctor(
        self, flow: ConversationFlow, analysis: MessageAnalysis, message: str
    ) -> FlowResponse:
        doctor = analysis.entities.doctor
        if doctor is not None:
            flow.draft.doctor = doctor.normalized
            flow.draft.any_doctor = False
        elif self.extractor.is_no_preference(message):
            flow.draft.doctor = None
            flow.draft.any_doctor = True
        elif flow.register_retry() >= self.max_retries:
            # Doctor preference is optional
            logger.debug(f"Flow {flow.flow_id}: defaulting to any doctor")
            flow.draft.doctor = None
            flow.draft.any_doctor = True
        else:
            return FlowResponse(self.responses.doctor_retry())

        return FlowResponse(self.responses.confirm_details(flow.draft), FlowState.CONFIRM_DETAILS)

    # === Confirmation / booking ===

    def _handle_confirmation(self, flow: ConversationFlow, message: str) -> FlowResponse:
        answer = classify_confirmation(message)
        if answer is True:
            return FlowResponse(message="", next_state=FlowState.BOOKING)
        if answer is False:
            return self._escalate("changes")
        return self._retry(flow, self.responses.confirm_retry(), reason="los detalles")

    async def _handle_booking(
        self,
        flow: ConversationFlow,
        now: datetime,
        caller_role: str,
    ) -> FlowResponse:
        try:
            result = await self.orchestrator.book(
                flow.draft,
                patient_contact=flow.contact,
                organization_id=flow.organization_id,
                caller_role=caller_role,
                now=now,
            )
        except ValidationFailed as e:
            logger.info(f"Flow {flow.flow_id}: booking rejected: {e}")
            return self._escalate_with(
                self.responses.booking_rejected(e.errors, [str(s) for s in e.suggestions])
            )
        except (PersistenceFailed, InvalidDate) as e:
            logger.error(f"Flow {flow.flow_id}: booking failed: {e}")
            return self._escalate_with(self.responses.booking_failed())

        flow.appointment_id = result.appointment_id
        return FlowResponse(
            message=self.responses.booking_confirmed(
                flow.draft, result.confirmation_code, result.doctor_name
            ),
            next_state=FlowState.COMPLETED,
            should_continue=False,
            appointment_id=result.appointment_id,
            confirmation_code=result.confirmation_code,
        )

    # === Helpers ===

    def _retry(
        self,
        flow: ConversationFlow,
        prompt: str,
        reason: Optional[str] = None,
    ) -> FlowResponse:
        """Count an unresolved reply; escalate once the ceiling is reached."""
        attempts = flow.register_retry()
        if attempts >= self.max_retries:
            logger.info(
                f"Flow {flow.flow_id}: retry ceiling reached in {flow.state.value}"
            )
            return self._escalate(reason)
        return FlowResponse(prompt)

    def _escalate(self, reason: Optional[str] = None) -> FlowResponse:
        return self._escalate_with(self.responses.handoff(reason))

    @staticmethod
    def _escalate_with(message: str) -> FlowResponse:
        return FlowResponse(
            message=message,
            next_state=FlowState.ESCALATED,
            should_continue=False,
            requires_human_handoff=True,
        )

    def _cancel(self) -> FlowResponse:
        return FlowResponse(
            message=self.responses.cancelled(),
            next_state=FlowState.CANCELLED,
            should_continue=False,
        )
