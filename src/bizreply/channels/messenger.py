"""Facebook Messenger channel adapter (page messages and feed comments)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from bizreply.core.domain import ChannelType, DeliveryResult, EventKind, NormalizedEvent

from .base import as_dict, as_list, as_text, parse_messaging_event, parse_timestamp
from .graph import GraphAPIClient

logger = logging.getLogger(__name__)

WEBHOOK_OBJECT = "page"


@dataclass(slots=True)
class MessengerAdapter:
    """Handles ``object=page`` webhooks; the routing key is the page id."""

    graph: GraphAPIClient
    default_access_token: str | None = None
    channel: ChannelType = field(default=ChannelType.MESSENGER, init=False)

    def parse_inbound(self, payload: Any) -> list[NormalizedEvent]:
        body = as_dict(payload)
        if body.get("object") != WEBHOOK_OBJECT:
            return []

        events: list[NormalizedEvent] = []
        for entry in as_list(body.get("entry")):
            entry = as_dict(entry)
            page_id = as_text(entry.get("id"))
            if page_id is None:
                continue
            for item in as_list(entry.get("messaging")):
                event = parse_messaging_event(self.channel, page_id, item)
                if event is not None:
                    events.append(event)
            for change in as_list(entry.get("changes")):
                event = _feed_comment_event(page_id, as_dict(change))
                if event is not None:
                    events.append(event)
        return events

    async def send_text(
        self,
        routing_key: str,
        recipient: str,
        text: str,
        *,
        access_token: str | None = None,
    ) -> DeliveryResult:
        body = await self.graph.post(
            "/me/messages",
            {
                "recipient": {"id": recipient},
                "message": {"text": text},
                "messaging_type": "RESPONSE",
            },
            access_token=access_token or self.default_access_token,
            channel=self.channel.value,
        )
        external_id = as_text(body.get("message_id"))
        logger.info(
            "messenger message sent",
            extra={"page_id": routing_key, "recipient": recipient, "message_id": external_id},
        )
        return DeliveryResult(
            channel=self.channel, recipient=recipient, external_id=external_id, raw=body
        )

    async def send_reply(
        self,
        event: NormalizedEvent,
        text: str,
        *,
        access_token: str | None = None,
    ) -> DeliveryResult:
        if not event.is_comment:
            return await self.send_text(
                event.routing_key, event.sender_address, text, access_token=access_token
            )

        body = await self.graph.post(
            f"/{event.external_id}/comments",
            {"message": personalize_comment_reply(text, event.sender_name)},
            access_token=access_token or self.default_access_token,
            channel=self.channel.value,
        )
        reply_id = as_text(body.get("id"))
        logger.info(
            "messenger comment reply sent",
            extra={"comment_id": event.external_id, "reply_id": reply_id},
        )
        return DeliveryResult(
            channel=self.channel,
            recipient=event.sender_address,
            external_id=reply_id,
            raw=body,
        )

    async def send_typing(self, recipient: str, *, access_token: str | None = None) -> None:
        await self.graph.post(
            "/me/messages",
            {"recipient": {"id": recipient}, "sender_action": "typing_on"},
            access_token=access_token or self.default_access_token,
            channel=self.channel.value,
        )


def personalize_comment_reply(text: str, sender_name: str | None) -> str:
    """Address the commenter by first name: ``"Dana, thanks for asking..."``."""

    first_name = sender_name.split()[0] if sender_name and sender_name.strip() else None
    if not first_name or not text:
        return text
    first_word = text.split(" ", 1)[0]
    if first_word.isupper() or text.startswith(("I ", "I'")):
        return f"{first_name}, {text}"
    return f"{first_name}, {text[0].lower()}{text[1:]}"


def _feed_comment_event(page_id: str, change: Mapping[str, Any]) -> NormalizedEvent | None:
    if change.get("field") != "feed":
        return None
    value = as_dict(change.get("value"))
    if value.get("item") != "comment" or value.get("verb") != "add":
        return None

    author = as_dict(value.get("from"))
    sender = as_text(author.get("id"))
    text = as_text(value.get("message"))
    comment_id = as_text(value.get("comment_id"))
    if sender is None or text is None or comment_id is None or sender == page_id:
        return None

    return NormalizedEvent(
        channel=ChannelType.MESSENGER,
        kind=EventKind.COMMENT,
        routing_key=page_id,
        sender_address=sender,
        text=text,
        timestamp=parse_timestamp(value.get("created_time")),
        external_id=comment_id,
        sender_name=as_text(author.get("name")),
        parent_id=as_text(value.get("post_id")),
    )
