"""Conversation inbox and human handoff endpoints."""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Query, status

from bizreply.core.http import ResponseEnvelope

from .. import schemas
from ..dependencies import BusinessServiceDep, HandoffServiceDep, StoreDep

router = APIRouter(tags=["conversations"])

ConversationStatus = Literal["escalated", "ai", "human", "paused"]


@router.get(
    "/businesses/{business_id}/conversations",
    response_model=ResponseEnvelope[list[schemas.ConversationResponse]],
)
def list_conversations(
    business_id: UUID,
    businesses: BusinessServiceDep,
    store: StoreDep,
    status_filter: ConversationStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
) -> ResponseEnvelope[list[schemas.ConversationResponse]]:
    businesses.get(business_id)
    conversations = store.list_conversations(business_id, status=status_filter, limit=limit)
    return ResponseEnvelope(
        data=[schemas.ConversationResponse.model_validate(item) for item in conversations]
    )


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=ResponseEnvelope[schemas.ConversationHistoryResponse],
)
def get_conversation_history(
    conversation_id: UUID, store: StoreDep
) -> ResponseEnvelope[schemas.ConversationHistoryResponse]:
    """Return the persisted message history for a conversation."""

    conversation = store.get_conversation(conversation_id)
    payload = schemas.ConversationHistoryResponse(
        conversation=schemas.ConversationResponse.model_validate(conversation),
        messages=[
            schemas.convert_message_log(item) for item in store.messages_for(conversation_id)
        ],
    )
    return ResponseEnvelope(data=payload)


@router.post(
    "/conversations/{conversation_id}/takeover",
    response_model=ResponseEnvelope[schemas.TakeoverResponse],
)
async def take_over_conversation(
    conversation_id: UUID,
    request: schemas.TakeoverRequest,
    handoff: HandoffServiceDep,
) -> ResponseEnvelope[schemas.TakeoverResponse]:
    result = await handoff.takeover(conversation_id, request.agent)
    return ResponseEnvelope(
        data=schemas.TakeoverResponse(
            conversation=schemas.ConversationResponse.model_validate(result.conversation),
            notice_sent=result.notice_sent,
        )
    )


@router.post(
    "/conversations/{conversation_id}/release",
    response_model=ResponseEnvelope[schemas.ConversationResponse],
)
def release_conversation(
    conversation_id: UUID, handoff: HandoffServiceDep
) -> ResponseEnvelope[schemas.ConversationResponse]:
    conversation = handoff.release(conversation_id)
    return ResponseEnvelope(data=schemas.ConversationResponse.model_validate(conversation))


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=ResponseEnvelope[schemas.MessageResponse],
    status_code=status.HTTP_201_CREATED,
)
async def send_agent_message(
    conversation_id: UUID,
    request: schemas.AgentMessageRequest,
    handoff: HandoffServiceDep,
) -> ResponseEnvelope[schemas.MessageResponse]:
    """Send a message typed by a human agent to the customer."""

    message = await handoff.send_agent_message(conversation_id, request.text)
    return ResponseEnvelope(data=schemas.convert_message_log(message))


@router.post(
    "/conversations/{conversation_id}/pause",
    response_model=ResponseEnvelope[schemas.ConversationResponse],
)
def pause_conversation(
    conversation_id: UUID, handoff: HandoffServiceDep
) -> ResponseEnvelope[schemas.ConversationResponse]:
    """Stop automatic replies without assigning an agent."""

    conversation = handoff.pause(conversation_id)
    return ResponseEnvelope(data=schemas.ConversationResponse.model_validate(conversation))
