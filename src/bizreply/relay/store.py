"""Persistence of conversations, their message log and usage bookkeeping."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import desc, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from bizreply.core.db.models import Business, Conversation, MessageLog, UsageRecord
from bizreply.core.domain import ChannelType, ConversationMode, MessageDirection, SenderRole
from bizreply.core.errors import NotFoundError, StoreWriteFailed

logger = logging.getLogger(__name__)


class ConversationStore:
    """Append-only message log keyed by business and customer address.

    Every write commits on its own so that a later failure in the relay
    pipeline never rolls back a message that was already recorded. Database
    errors surface as ``StoreWriteFailed``.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def find_or_create_conversation(
        self,
        business_id: UUID,
        customer_address: str,
        channel: ChannelType,
        *,
        customer_name: str | None = None,
    ) -> Conversation:
        conversation = self._find(business_id, customer_address, channel)
        if conversation is not None:
            if customer_name and conversation.customer_name != customer_name:
                conversation.customer_name = customer_name
                self._commit("conversation.update", conversation)
            return conversation

        conversation = Conversation(
            business_id=business_id,
            customer_address=customer_address,
            channel=channel.value,
            customer_name=customer_name,
            mode=ConversationMode.AI.value,
        )
        self._session.add(conversation)
        try:
            self._session.commit()
        except IntegrityError:
            # A concurrent delivery created the same conversation first.
            self._session.rollback()
            existing = self._find(business_id, customer_address, channel)
            if existing is None:
                raise StoreWriteFailed(
                    "failed to create conversation",
                    details={"business_id": str(business_id), "customer": customer_address},
                )
            return existing
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreWriteFailed(
                "failed to create conversation",
                details={"business_id": str(business_id), "customer": customer_address},
            ) from exc
        self._session.refresh(conversation)
        logger.info(
            "conversation created",
            extra={
                "conversation_id": str(conversation.id),
                "business_id": str(business_id),
                "channel": channel.value,
            },
        )
        return conversation

    def append(
        self,
        conversation: Conversation,
        direction: MessageDirection,
        text: str,
        *,
        sender_address: str | None = None,
        recipient_address: str | None = None,
        message_type: str = "text",
        sent_by: SenderRole = SenderRole.CUSTOMER,
        external_id: str | None = None,
        sent_at: datetime | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> MessageLog:
        timestamp = sent_at or datetime.now(tz=UTC)
        message = MessageLog(
            conversation_id=conversation.id,
            business_id=conversation.business_id,
            direction=direction.value,
            sender_address=sender_address,
            recipient_address=recipient_address,
            content=text,
            channel=conversation.channel,
            message_type=message_type,
            sent_by=sent_by.value,
            external_id=external_id,
            sent_at=timestamp,
            metadata_json=dict(metadata) if metadata else None,
        )
        conversation.last_message_at = timestamp
        self._session.add(message)
        self._session.add(conversation)
        self._commit("message.append", message)
        return message

    def recent_history(
        self,
        business_id: UUID,
        customer_address: str,
        limit: int,
        *,
        exclude_ids: Iterable[UUID] = (),
    ) -> list[MessageLog]:
        """Return at most ``limit`` latest messages for the pair, oldest first."""

        if limit <= 0:
            return []
        statement = (
            select(MessageLog)
            .join(Conversation, col(Conversation.id) == col(MessageLog.conversation_id))
            .where(
                Conversation.business_id == business_id,
                Conversation.customer_address == customer_address,
            )
            .order_by(desc(MessageLog.sent_at), desc(MessageLog.created_at))
        )
        excluded = list(exclude_ids)
        if excluded:
            statement = statement.where(col(MessageLog.id).not_in(excluded))
        rows = list(self._session.exec(statement.limit(limit)).all())
        rows.reverse()
        return rows

    def messages_for(self, conversation_id: UUID) -> list[MessageLog]:
        statement = (
            select(MessageLog)
            .where(MessageLog.conversation_id == conversation_id)
            .order_by(MessageLog.sent_at, MessageLog.created_at)
        )
        return list(self._session.exec(statement).all())

    def get_conversation(self, conversation_id: UUID) -> Conversation:
        conversation = self._session.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFoundError(
                "conversation not found", details={"conversation_id": str(conversation_id)}
            )
        return conversation

    def list_conversations(
        self,
        business_id: UUID,
        *,
        status: str | None = None,
        limit: int = 50,
    ) -> list[Conversation]:
        statement = select(Conversation).where(Conversation.business_id == business_id)
        if status == "escalated":
            statement = statement.where(
                col(Conversation.escalation_requested).is_(True),
                col(Conversation.mode) != ConversationMode.HUMAN.value,
            )
        elif status is not None:
            statement = statement.where(Conversation.mode == status)
        statement = statement.order_by(desc(Conversation.last_message_at)).limit(limit)
        return list(self._session.exec(statement).all())

    def flag_escalation(self, conversation: Conversation, reason: str) -> Conversation:
        conversation.escalation_requested = True
        conversation.escalation_reason = reason
        conversation.escalation_requested_at = datetime.now(tz=UTC)
        conversation.escalation_count = (conversation.escalation_count or 0) + 1
        self._session.add(conversation)
        self._commit("conversation.escalate", conversation)
        return conversation

    def set_mode(
        self,
        conversation: Conversation,
        mode: ConversationMode,
        *,
        assigned_to: str | None = None,
    ) -> Conversation:
        conversation.mode = mode.value
        if mode is ConversationMode.HUMAN:
            conversation.assigned_to = assigned_to
            conversation.assigned_at = datetime.now(tz=UTC)
            conversation.escalation_requested = False
        elif mode is ConversationMode.AI:
            conversation.assigned_to = None
            conversation.assigned_at = None
        self._session.add(conversation)
        self._commit("conversation.mode", conversation)
        return conversation

    def idle_human_conversations(self, idle_since: datetime) -> list[Conversation]:
        """Human-mode conversations with no message since ``idle_since``."""

        statement = (
            select(Conversation)
            .where(
                col(Conversation.mode) == ConversationMode.HUMAN.value,
                col(Conversation.last_message_at) < idle_since,
            )
            .order_by(col(Conversation.last_message_at))
        )
        return list(self._session.exec(statement).all())

    def increment_message_count(self, business_id: UUID) -> None:
        statement = (
            update(Business)
            .where(col(Business.id) == business_id)
            .values(message_count=func.coalesce(Business.message_count, 0) + 1)
            .execution_options(synchronize_session=False)
        )
        try:
            self._session.exec(statement)  # type: ignore[call-overload]
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreWriteFailed(
                "failed to increment message count", details={"business_id": str(business_id)}
            ) from exc

    def record_usage(self, record: UsageRecord) -> UsageRecord:
        self._session.add(record)
        self._commit("usage.record", record)
        return record

    def _find(
        self, business_id: UUID, customer_address: str, channel: ChannelType
    ) -> Conversation | None:
        statement = select(Conversation).where(
            Conversation.business_id == business_id,
            Conversation.customer_address == customer_address,
            Conversation.channel == channel.value,
        )
        return self._session.exec(statement).first()

    def _commit(self, operation: str, instance: Any) -> None:
        try:
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error(
                "store write failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise StoreWriteFailed(
                f"{operation} failed", details={"operation": operation}
            ) from exc
        self._session.refresh(instance)
