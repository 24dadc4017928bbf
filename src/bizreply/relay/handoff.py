"""Human takeover, release and agent replies for a conversation."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from bizreply.channels.base import ChannelAdapter
from bizreply.core.db.models import Business, Conversation, MessageLog
from bizreply.core.domain import ChannelType, ConversationMode, MessageDirection, SenderRole
from bizreply.core.errors import DeliveryFailed, NotFoundError, ValidationError

from .resolver import access_token_for, channel_identity
from .store import ConversationStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HandoffResult:
    conversation: Conversation
    notice_sent: bool


class HandoffService:
    """Moves conversations between AI and human agents and relays agent replies."""

    def __init__(
        self,
        store: ConversationStore,
        adapters: Mapping[ChannelType, ChannelAdapter],
        *,
        handoff_message: str,
        handback_message: str | None = None,
    ) -> None:
        self._store = store
        self._adapters = adapters
        self._handoff_message = handoff_message
        self._handback_message = handback_message

    def release(self, conversation_id: UUID) -> Conversation:
        conversation = self._store.get_conversation(conversation_id)
        self._store.set_mode(conversation, ConversationMode.AI)
        logger.info("conversation released to ai", extra={"conversation_id": str(conversation_id)})
        return conversation

    async def release_idle(self, idle_since: datetime) -> list[HandoffResult]:
        """Return idle human-mode conversations to the AI and tell each customer."""

        results: list[HandoffResult] = []
        for conversation in self._store.idle_human_conversations(idle_since):
            self._store.set_mode(conversation, ConversationMode.AI)
            logger.info(
                "idle conversation released to ai",
                extra={"conversation_id": str(conversation.id)},
            )
            results.append(await self._notify(conversation, self._handback_message))
        return results

    def pause(self, conversation_id: UUID) -> Conversation:
        conversation = self._store.get_conversation(conversation_id)
        return self._store.set_mode(conversation, ConversationMode.PAUSED)

    async def takeover(self, conversation_id: UUID, agent: str) -> HandoffResult:
        """Assign a human agent and tell the customer, best effort."""

        conversation = self._store.get_conversation(conversation_id)
        self._store.set_mode(conversation, ConversationMode.HUMAN, assigned_to=agent)
        logger.info(
            "conversation taken over",
            extra={"conversation_id": str(conversation_id), "agent": agent},
        )
        return await self._notify(conversation, self._handoff_message)

    async def send_agent_message(self, conversation_id: UUID, text: str) -> MessageLog:
        """Send ``text`` from a human agent; raises ``DeliveryFailed`` on vendor errors."""

        if not text.strip():
            raise ValidationError("message text must not be empty")
        conversation = self._store.get_conversation(conversation_id)
        return await self._deliver(conversation, text.strip(), SenderRole.HUMAN)

    async def _notify(self, conversation: Conversation, text: str | None) -> HandoffResult:
        if not text:
            return HandoffResult(conversation=conversation, notice_sent=False)
        try:
            await self._deliver(conversation, text, SenderRole.SYSTEM)
        except DeliveryFailed as exc:
            logger.warning(
                "mode change notice not delivered",
                extra={"conversation_id": str(conversation.id), "reason": exc.reason},
            )
            return HandoffResult(conversation=conversation, notice_sent=False)
        return HandoffResult(conversation=conversation, notice_sent=True)

    async def _deliver(
        self, conversation: Conversation, text: str, sent_by: SenderRole
    ) -> MessageLog:
        business = self._store.session.get(Business, conversation.business_id)
        if business is None:
            raise NotFoundError("business not found")
        channel = ChannelType(conversation.channel)
        routing_key = channel_identity(business, channel)
        if not routing_key:
            raise DeliveryFailed(
                f"business has no {channel.value} identity configured", channel=channel.value
            )
        adapter = self._adapters.get(channel)
        if adapter is None:
            raise DeliveryFailed("no adapter configured for channel", channel=channel.value)
        delivery = await adapter.send_text(
            routing_key,
            conversation.customer_address,
            text,
            access_token=access_token_for(business, channel),
        )
        return self._store.append(
            conversation,
            MessageDirection.OUTGOING,
            text,
            sender_address=routing_key,
            recipient_address=conversation.customer_address,
            sent_by=sent_by,
            external_id=delivery.external_id,
        )
