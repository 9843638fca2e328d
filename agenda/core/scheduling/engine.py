"""
Conversation Engine - inbound message entry point.

Loads or creates the contact's flow, serializes processing per contact,
runs the flow manager and persists the result. Any unexpected failure is
turned into a generic apology; internal detail never reaches the patient.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from agenda.config import settings
from agenda.core.dates import localize
from agenda.core.exceptions import FlowExpired
from agenda.core.intelligence import (
    ConversationFlow,
    FlowState,
    FlowStore,
    get_flow_store,
    is_terminal_state,
)
from .flow import ConversationFlowManager, FlowResponse
from .response import get_response_generator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class EngineResponse:
    """Reply contract for the inbound messaging collaborator."""

    message: str
    state: FlowState
    flow_id: Optional[str] = None
    next_state: Optional[FlowState] = None
    should_continue: bool = True
    requires_human_handoff: bool = False
    appointment_id: Optional[str] = None
    confirmation_code: Optional[str] = None
    ignored: bool = False  # out-of-order message, flow untouched

    @classmethod
    def from_flow(cls, flow: ConversationFlow, response: FlowResponse) -> "EngineResponse":
        return cls(
            message=response.message,
            state=flow.state,
            flow_id=flow.flow_id,
            next_state=response.next_state,
            should_continue=response.should_continue,
            requires_human_handoff=response.requires_human_handoff,
            appointment_id=response.appointment_id,
            confirmation_code=response.confirmation_code,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "message": self.message,
            "state": self.state.value,
            "should_continue": self.should_continue,
            "requires_human_handoff": self.requires_human_handoff,
        }
        if self.flow_id:
            result["flow_id"] = self.flow_id
        if self.next_state:
            result["next_state"] = self.next_state.value
        if self.appointment_id:
            result["appointment_id"] = self.appointment_id
        if self.confirmation_code:
            result["confirmation_code"] = self.confirmation_code
        if self.ignored:
            result["ignored"] = True
        return result


class ConversationEngine:
    """
    Per-contact serialized message processing.

    Messages from one contact are handled strictly one at a time, in the
    order they acquire the contact's lock (asyncio locks wake waiters in
    FIFO order). Different contacts run concurrently.
    """

    def __init__(
        self,
        flow_manager: ConversationFlowManager,
        store: Optional[FlowStore] = None,
        ttl_seconds: Optional[int] = None,
        tz: Optional[str] = None,
    ):
        """Initialize engine.

        Args:
            flow_manager: State machine driver
            store: Flow storage (singleton by default)
            ttl_seconds: Flow lifetime from creation
            tz: Timezone assumed for naive timestamps
        """
        self.flow_manager = flow_manager
        self.store = store or get_flow_store()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.flow_ttl_seconds
        self.tz = tz
        # Only contacts with a message in flight hold an entry
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _contact_lock(self, organization_id: str, contact: str):
        key = f"{organization_id}:{contact}"
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    async def handle_message(
        self,
        organization_id: str,
        contact: str,
        message: str,
        caller_role: str = "patient",
        now: Optional[datetime] = None,
        received_at: Optional[datetime] = None,
    ) -> EngineResponse:
        """Process one inbound message.

        Args:
            organization_id: Organization identifier
            contact: Stable patient contact identifier (phone)
            message: Inbound text
            caller_role: Resolved caller role
            now: Reference instant (defaults to the wall clock)
            received_at: Transport receive time, used to drop stale messages

        Returns:
            EngineResponse with reply text and handoff flag
        """
        if received_at is not None:
            received_at = localize(received_at, self.tz)

        async with self._contact_lock(organization_id, contact):
            moment = localize(now, self.tz) if now is not None else _utcnow()
            state = FlowState.GREETING

            try:
                flow = await self._load_or_start(organization_id, contact, moment)
                state = flow.state

                if (
                    received_at is not None
                    and flow.last_received_at is not None
                    and received_at < flow.last_received_at
                ):
                    logger.warning(
                        f"Dropping out-of-order message from {contact} "
                        f"({received_at.isoformat()} < {flow.last_received_at.isoformat()})"
                    )
                    return EngineResponse(
                        message="",
                        state=flow.state,
                        flow_id=flow.flow_id,
                        ignored=True,
                    )

                response = await self.flow_manager.process(
                    flow,
                    message,
                    now=moment,
                    caller_role=caller_role,
                    received_at=received_at,
                )
                state = flow.state

                if is_terminal_state(flow.state):
                    await self.store.delete(organization_id, contact)
                else:
                    await self.store.save(flow, moment)

                return EngineResponse.from_flow(flow, response)

            except Exception as e:
                logger.error(f"Error processing message from {contact}: {e}", exc_info=True)
                return EngineResponse(
                    message=get_response_generator().apology(),
                    state=state,
                    should_continue=True,
                )

    async def _load_or_start(
        self,
        organization_id: str,
        contact: str,
        now: datetime,
    ) -> ConversationFlow:
        try:
            return await self.store.require(organization_id, contact, now)
        except FlowExpired:
            flow = ConversationFlow.start(organization_id, contact, now, self.ttl_seconds)
            logger.info(f"Flow {flow.flow_id} created for {contact} in org {organization_id}")
            return flow

    async def get_flow(
        self,
        organization_id: str,
        contact: str,
        now: Optional[datetime] = None,
    ) -> Optional[ConversationFlow]:
        """Active flow for a contact, if any."""
        return await self.store.get(organization_id, contact, now)

    async def reset(self, organization_id: str, contact: str) -> bool:
        """Discard a contact's flow."""
        async with self._contact_lock(organization_id, contact):
            return await self.store.delete(organization_id, contact)


# Singleton
_engine: Optional[ConversationEngine] = None


def get_conversation_engine() -> ConversationEngine:
    """Get singleton ConversationEngine wired to the default collaborators."""
    global _engine
    if _engine is None:
        from .wiring import get_booking_orchestrator

        _engine = ConversationEngine(
            flow_manager=ConversationFlowManager(orchestrator=get_booking_orchestrator()),
        )
    return _engine
