"""Instagram messaging and comment channel adapter."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from bizreply.core.domain import ChannelType, DeliveryResult, EventKind, NormalizedEvent

from .base import as_dict, as_list, as_text, parse_messaging_event, parse_timestamp
from .graph import GraphAPIClient

logger = logging.getLogger(__name__)

WEBHOOK_OBJECT = "instagram"


@dataclass(slots=True)
class InstagramAdapter:
    """Handles ``object=instagram`` webhooks keyed by the business account id."""

    graph: GraphAPIClient
    default_access_token: str | None = None
    channel: ChannelType = field(default=ChannelType.INSTAGRAM, init=False)

    def parse_inbound(self, payload: Any) -> list[NormalizedEvent]:
        body = as_dict(payload)
        if body.get("object") != WEBHOOK_OBJECT:
            return []

        events: list[NormalizedEvent] = []
        for entry in as_list(body.get("entry")):
            entry = as_dict(entry)
            account_id = as_text(entry.get("id"))
            if account_id is None:
                continue
            for item in as_list(entry.get("messaging")):
                event = parse_messaging_event(self.channel, account_id, item)
                if event is not None:
                    events.append(event)
            for change in as_list(entry.get("changes")):
                event = _comment_event(account_id, as_dict(change))
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
            f"/{routing_key}/messages",
            {"recipient": {"id": recipient}, "message": {"text": text}},
            access_token=access_token or self.default_access_token,
            channel=self.channel.value,
        )
        external_id = as_text(body.get("message_id"))
        logger.info(
            "instagram message sent",
            extra={"account_id": routing_key, "recipient": recipient, "message_id": external_id},
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

        message = f"@{event.sender_name} {text}" if event.sender_name else text
        body = await self.graph.post(
            f"/{event.external_id}/replies",
            {"message": message},
            access_token=access_token or self.default_access_token,
            channel=self.channel.value,
        )
        reply_id = as_text(body.get("id"))
        logger.info(
            "instagram comment reply sent",
            extra={"comment_id": event.external_id, "reply_id": reply_id},
        )
        return DeliveryResult(
            channel=self.channel,
            recipient=event.sender_address,
            external_id=reply_id,
            raw=body,
        )

    async def send_typing(self, recipient: str, *, access_token: str | None = None) -> None:
        return None


def _comment_event(account_id: str, change: Mapping[str, Any]) -> NormalizedEvent | None:
    if change.get("field") != "comments":
        return None
    value = as_dict(change.get("value"))
    author = as_dict(value.get("from"))
    sender = as_text(author.get("id"))
    text = as_text(value.get("text"))
    comment_id = as_text(value.get("id"))
    if sender is None or text is None or comment_id is None or sender == account_id:
        return None

    return NormalizedEvent(
        channel=ChannelType.INSTAGRAM,
        kind=EventKind.COMMENT,
        routing_key=account_id,
        sender_address=sender,
        text=text,
        timestamp=parse_timestamp(value.get("timestamp")),
        external_id=comment_id,
        sender_name=as_text(author.get("username")),
        parent_id=as_text(as_dict(value.get("media")).get("id")),
    )
