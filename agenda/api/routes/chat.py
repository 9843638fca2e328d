"""
Chat API Endpoint.

Inbound messaging entry point: one message from one patient contact in,
one reply plus the human-handoff flag out.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Header, status
from pydantic import BaseModel, Field

from agenda.core.scheduling import ConversationEngine, get_conversation_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])


class ChatRequest(BaseModel):
    """Inbound chat message."""

    contact: str = Field(
        ...,
        min_length=3,
        max_length=50,
        description="Stable patient contact identifier (phone)",
        examples=["+573001112233"],
    )
    message: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Patient's message",
        examples=["Hola, necesito una cita para examen visual completo"],
    )
    received_at: Optional[datetime] = Field(
        default=None,
        description="When the messaging channel received the message; older messages are dropped",
    )


class ChatResponse(BaseModel):
    """Bot reply."""

    message: str = Field(..., description="Reply text for the patient")
    state: str = Field(..., description="Conversation state after this message")
    flow_id: Optional[str] = Field(default=None, description="Conversation flow identifier")
    should_continue: bool = Field(..., description="False once the conversation ended")
    requires_human_handoff: bool = Field(..., description="Staff must take over the conversation")
    appointment_id: Optional[str] = Field(default=None, description="Created appointment, if any")
    confirmation_code: Optional[str] = Field(default=None, description="Patient-facing confirmation code")
    ignored: bool = Field(default=False, description="Message was out of order and not processed")


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


@router.post(
    "",
    response_model=ChatResponse,
    status_code=status.HTTP_200_OK,
    summary="Send a chat message",
    description="Advance the contact's booking conversation with one inbound message.",
    responses={
        200: {"description": "Successful response"},
        400: {"model": ErrorResponse, "description": "Invalid request"},
    },
)
async def chat(
    request: ChatRequest,
    x_tenant_id: str = Header(
        ...,
        alias="X-Tenant-ID",
        description="Organization identifier",
    ),
    x_caller_role: str = Header(
        default="patient",
        alias="X-Caller-Role",
        description="Resolved caller role (patient, doctor, staff, admin, superadmin)",
    ),
    engine: ConversationEngine = Depends(get_conversation_engine),
) -> ChatResponse:
    """
    Process a chat message.

    Failures inside the conversation never surface as HTTP errors: the
    engine answers with a generic apology and keeps the flow alive.
    """
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )

    response = await engine.handle_message(
        organization_id=x_tenant_id,
        contact=request.contact,
        message=request.message,
        caller_role=x_caller_role,
        received_at=request.received_at,
    )

    return ChatResponse(
        message=response.message,
        state=response.state.value,
        flow_id=response.flow_id,
        should_continue=response.should_continue,
        requires_human_handoff=response.requires_human_handoff,
        appointment_id=response.appointment_id,
        confirmation_code=response.confirmation_code,
        ignored=response.ignored,
    )


@router.get(
    "/flow/{contact}",
    response_model=dict,
    summary="Get conversation flow",
    responses={404: {"model": ErrorResponse, "description": "No active flow"}},
)
async def get_flow(
    contact: str,
    x_tenant_id: str = Header(..., alias="X-Tenant-ID"),
    engine: ConversationEngine = Depends(get_conversation_engine),
) -> dict:
    """Current flow of a contact, if it has not expired."""
    flow = await engine.get_flow(x_tenant_id, contact)
    if flow is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Flow not found",
        )
    return flow.to_dict()


@router.delete(
    "/flow/{contact}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reset a conversation",
)
async def reset_flow(
    contact: str,
    x_tenant_id: str = Header(..., alias="X-Tenant-ID"),
    engine: ConversationEngine = Depends(get_conversation_engine),
) -> None:
    """Discard the contact's flow; the next message starts over."""
    await engine.reset(x_tenant_id, contact)
