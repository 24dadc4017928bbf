"""Response and request models for conversation endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bizreply.core.db.models import MessageLog
from bizreply.core.domain import MessageDirection


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_id: UUID
    customer_address: str
    customer_name: str | None = None
    channel: str
    mode: str
    escalation_requested: bool
    escalation_reason: str | None = None
    escalation_count: int
    assigned_to: str | None = None
    assigned_at: datetime | None = None
    last_message_at: datetime | None = None
    created_at: datetime


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID | None = None
    direction: str
    sender_address: str | None = None
    recipient_address: str | None = None
    content: str
    channel: str
    message_type: str
    sent_by: str
    external_id: str | None = None
    sent_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConversationHistoryResponse(BaseModel):
    conversation: ConversationResponse
    messages: list[MessageResponse]


class TakeoverRequest(BaseModel):
    agent: str = Field(min_length=1, max_length=255)


class TakeoverResponse(BaseModel):
    conversation: ConversationResponse
    notice_sent: bool


class AgentMessageRequest(BaseModel):
    text: str = Field(min_length=1, max_length=4096)


def convert_message_log(message: MessageLog) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        conversation_id=message.conversation_id,
        direction=MessageDirection(message.direction).value,
        sender_address=message.sender_address,
        recipient_address=message.recipient_address,
        content=message.content,
        channel=message.channel,
        message_type=message.message_type,
        sent_by=message.sent_by,
        external_id=message.external_id,
        sent_at=message.sent_at,
        metadata=message.metadata_json or {},
    )
