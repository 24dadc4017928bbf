"""Relay pipeline turning one inbound event into at most one reply.

Per event: resolve the business, record the inbound message, decide whether
the AI owns the conversation, generate a reply, send it on the channel the
event came from and record the outbound message. Each event is handled in
its own database session and every failure ends in a ``RelayOutcome``; no
exception escapes ``handle_event``.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from bizreply.catalog.search import ProductMatch, ProductRecommender
from bizreply.channels.base import ChannelAdapter
from bizreply.core.config import RelaySettings
from bizreply.core.db.models import Business, Conversation, MessageLog, UsageRecord
from bizreply.core.db.session import SessionFactory
from bizreply.core.domain import (
    ChannelType,
    ConversationMode,
    DeliveryResult,
    MessageDirection,
    NormalizedEvent,
    SenderRole,
)
from bizreply.core.errors import DeliveryFailed, RoutingNotFound, StoreWriteFailed
from bizreply.core.logging import get_logger

from .generator import GeneratedReply, ReplyGenerator, ReplyRequest
from .resolver import BusinessResolver, access_token_for, channel_identity
from .rules import match_escalation_keyword
from .store import ConversationStore

logger = get_logger(__name__)


class RelayOutcome(str, Enum):
    """Terminal state of one relay pass."""

    ROUTING_NOT_FOUND = "routing_not_found"
    OWN_ECHO = "own_echo"
    COMMENTS_DISABLED = "comments_disabled"
    AI_DISABLED = "ai_disabled"
    HUMAN_MODE = "human_mode"
    PAUSED = "paused"
    REPLIED = "replied"
    FALLBACK_REPLIED = "fallback_replied"
    DELIVERY_FAILED = "delivery_failed"
    ERROR = "error"


RELAY_OUTCOMES = Counter(
    "bizreply_relay_events_total",
    "Inbound events processed by the relay, by channel and outcome.",
    ["channel", "outcome"],
)


class RelayOrchestrator:
    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        adapters: Mapping[ChannelType, ChannelAdapter],
        generator: ReplyGenerator,
        settings: RelaySettings,
        recommender: ProductRecommender | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._adapters = dict(adapters)
        self._generator = generator
        self._settings = settings
        self._recommender = recommender

    def adapter_for(self, channel: ChannelType) -> ChannelAdapter:
        return self._adapters[channel]

    async def handle_payload(self, channel: ChannelType, payload: Any) -> list[RelayOutcome]:
        """Parse a raw webhook body and relay every event it contains, in order."""

        try:
            events = self.adapter_for(channel).parse_inbound(payload)
        except Exception:
            logger.exception("relay.payload.parse_error", channel=channel.value)
            return []
        if not events:
            logger.debug("relay.payload.empty", channel=channel.value)
            return []
        return [await self.handle_event(event) for event in events]

    async def handle_event(self, event: NormalizedEvent) -> RelayOutcome:
        log = logger.bind(trace_id=uuid4().hex, **event.log_context())
        try:
            with self._session_factory() as session:
                outcome = await self._relay(session, event, log)
        except Exception:
            log.exception("relay.event.error")
            outcome = RelayOutcome.ERROR
        RELAY_OUTCOMES.labels(event.channel.value, outcome.value).inc()
        return outcome

    async def _relay(self, session: Session, event: NormalizedEvent, log: Any) -> RelayOutcome:
        adapter = self.adapter_for(event.channel)
        try:
            business = BusinessResolver(session).resolve(event.channel, event.routing_key)
        except RoutingNotFound:
            log.warning("relay.event.routing_not_found")
            return RelayOutcome.ROUTING_NOT_FOUND

        log = log.bind(business_id=str(business.id))
        if event.sender_address == channel_identity(business, event.channel):
            log.info("relay.event.own_echo")
            return RelayOutcome.OWN_ECHO
        if event.is_comment and not business.auto_reply_comments:
            log.info("relay.event.comments_disabled")
            return RelayOutcome.COMMENTS_DISABLED

        store = ConversationStore(session)
        conversation, inbound, is_new = self._record_inbound(store, business, event, log)

        if conversation is not None:
            self._check_escalation(store, business, conversation, event, log)

        if not business.is_active or not business.ai_enabled:
            log.info("relay.event.ai_disabled")
            return RelayOutcome.AI_DISABLED
        if conversation is not None and conversation.mode != ConversationMode.AI.value:
            log.info("relay.event.not_ai_mode", mode=conversation.mode)
            if conversation.mode == ConversationMode.PAUSED.value:
                return RelayOutcome.PAUSED
            return RelayOutcome.HUMAN_MODE

        access_token = access_token_for(business, event.channel)
        if not event.is_comment:
            await self._show_typing(adapter, event, access_token, log)

        history = self._history(store, business, event, inbound, log)
        products: list[ProductMatch] = []
        if self._recommender is not None:
            products = await self._recommender.recommend(session, business.id, event.text)

        reply = await self._generate(
            ReplyRequest(
                business=business,
                message=event.text,
                history=history,
                products=products,
                is_new_conversation=is_new,
                customer_name=event.sender_name,
                now=datetime.now(tz=UTC),
            ),
            log,
        )
        self._record_usage(store, business, conversation, event, reply, log)

        try:
            delivery = await adapter.send_reply(event, reply.text, access_token=access_token)
        except DeliveryFailed as exc:
            log.error(
                "relay.delivery.failed",
                vendor_status=exc.vendor_status,
                reason=exc.reason,
                fallback=reply.fallback,
            )
            return RelayOutcome.DELIVERY_FAILED

        self._record_outbound(store, business, conversation, event, reply, delivery, log)
        if reply.fallback:
            log.warning("relay.event.fallback_replied", error=reply.error)
            return RelayOutcome.FALLBACK_REPLIED
        log.info("relay.event.replied", products_referenced=reply.products_referenced)
        return RelayOutcome.REPLIED

    def _record_inbound(
        self,
        store: ConversationStore,
        business: Business,
        event: NormalizedEvent,
        log: Any,
    ) -> tuple[Conversation | None, MessageLog | None, bool]:
        conversation: Conversation | None = None
        try:
            conversation = store.find_or_create_conversation(
                business.id,
                event.sender_address,
                event.channel,
                customer_name=event.sender_name,
            )
            is_new = conversation.last_message_at is None
            inbound = store.append(
                conversation,
                MessageDirection.INCOMING,
                event.text,
                sender_address=event.sender_address,
                recipient_address=event.routing_key,
                message_type=event.kind.value if event.is_comment else "text",
                sent_by=SenderRole.CUSTOMER,
                external_id=event.external_id,
                sent_at=event.timestamp,
                metadata={"parent_id": event.parent_id} if event.parent_id else None,
            )
        except StoreWriteFailed as exc:
            log.error("relay.store.inbound_failed", error=exc.message)
            return conversation, None, False
        return conversation, inbound, is_new

    def _check_escalation(
        self,
        store: ConversationStore,
        business: Business,
        conversation: Conversation,
        event: NormalizedEvent,
        log: Any,
    ) -> None:
        keyword = match_escalation_keyword(event.text, business.escalation_keywords)
        if keyword is None:
            return
        log.warning("relay.escalation.requested", keyword=keyword)
        try:
            store.flag_escalation(conversation, f"keyword:{keyword}")
        except StoreWriteFailed as exc:
            log.error("relay.store.escalation_failed", error=exc.message)

    async def _show_typing(
        self,
        adapter: ChannelAdapter,
        event: NormalizedEvent,
        access_token: str | None,
        log: Any,
    ) -> None:
        try:
            await adapter.send_typing(event.sender_address, access_token=access_token)
        except DeliveryFailed as exc:
            log.debug("relay.typing.failed", reason=exc.reason)

    def _history(
        self,
        store: ConversationStore,
        business: Business,
        event: NormalizedEvent,
        inbound: MessageLog | None,
        log: Any,
    ) -> list[MessageLog]:
        try:
            return store.recent_history(
                business.id,
                event.sender_address,
                self._settings.history_limit,
                exclude_ids=[inbound.id] if inbound is not None else (),
            )
        except SQLAlchemyError as exc:
            store.session.rollback()
            log.error("relay.store.history_failed", error=str(exc))
            return []

    async def _generate(self, request: ReplyRequest, log: Any) -> GeneratedReply:
        try:
            return await self._generator.generate(request)
        except Exception as exc:
            log.exception("reply.generation.failed")
            return GeneratedReply(
                text=self._settings.fallback_message,
                fallback=True,
                error=str(exc) or exc.__class__.__name__,
            )

    def _record_usage(
        self,
        store: ConversationStore,
        business: Business,
        conversation: Conversation | None,
        event: NormalizedEvent,
        reply: GeneratedReply,
        log: Any,
    ) -> None:
        if reply.fallback or not reply.model:
            return
        record = UsageRecord(
            business_id=business.id,
            conversation_id=conversation.id if conversation is not None else None,
            model=reply.model,
            tokens_input=reply.prompt_tokens,
            tokens_output=reply.completion_tokens,
            cost_input=reply.cost_input,
            cost_output=reply.cost_output,
            customer_address=event.sender_address,
            metadata_json={
                "channel": event.channel.value,
                "products_referenced": reply.products_referenced,
                "product_ids": reply.referenced_product_ids,
            },
        )
        try:
            store.record_usage(record)
        except StoreWriteFailed as exc:
            log.error("relay.store.usage_failed", error=exc.message)

    def _record_outbound(
        self,
        store: ConversationStore,
        business: Business,
        conversation: Conversation | None,
        event: NormalizedEvent,
        reply: GeneratedReply,
        delivery: DeliveryResult,
        log: Any,
    ) -> None:
        try:
            if conversation is not None:
                store.append(
                    conversation,
                    MessageDirection.OUTGOING,
                    reply.text,
                    sender_address=event.routing_key,
                    recipient_address=event.sender_address,
                    message_type=event.kind.value if event.is_comment else "text",
                    sent_by=SenderRole.AI,
                    external_id=delivery.external_id,
                    sent_at=max(datetime.now(tz=UTC), event.timestamp),
                    metadata={
                        "in_reply_to": event.external_id,
                        **reply.usage_metadata,
                    },
                )
            store.increment_message_count(business.id)
        except StoreWriteFailed as exc:
            log.error("relay.store.outbound_failed", error=exc.message)
