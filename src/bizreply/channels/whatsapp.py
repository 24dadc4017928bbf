"""WhatsApp Cloud API channel adapter."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from bizreply.core.domain import ChannelType, DeliveryResult, EventKind, NormalizedEvent

from .base import as_dict, as_list, as_text, parse_timestamp
from .graph import GraphAPIClient

logger = logging.getLogger(__name__)

WEBHOOK_OBJECT = "whatsapp_business_account"


@dataclass(slots=True)
class WhatsAppAdapter:
    """Parses ``whatsapp_business_account`` webhooks and sends text messages.

    The routing key is the business phone-number id found in
    ``value.metadata.phone_number_id``; delivery status callbacks and non-text
    messages (media, reactions, locations) are ignored.
    """

    graph: GraphAPIClient
    default_access_token: str | None = None
    channel: ChannelType = field(default=ChannelType.WHATSAPP, init=False)

    def parse_inbound(self, payload: Any) -> list[NormalizedEvent]:
        body = as_dict(payload)
        if body.get("object") not in (None, WEBHOOK_OBJECT):
            return []

        events: list[NormalizedEvent] = []
        for entry in as_list(body.get("entry")):
            for change in as_list(as_dict(entry).get("changes")):
                value = as_dict(as_dict(change).get("value"))
                routing_key = as_text(as_dict(value.get("metadata")).get("phone_number_id"))
                if routing_key is None:
                    continue
                names = _contact_names(value)
                for message in as_list(value.get("messages")):
                    event = _message_event(routing_key, as_dict(message), names)
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
        to = recipient.removeprefix("whatsapp:")
        body = await self.graph.post(
            f"/{routing_key}/messages",
            {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": to,
                "type": "text",
                "text": {"preview_url": False, "body": text},
            },
            access_token=access_token or self.default_access_token,
            channel=self.channel.value,
        )
        messages = as_list(body.get("messages"))
        external_id = as_text(as_dict(messages[0]).get("id")) if messages else None
        logger.info(
            "whatsapp message sent",
            extra={"recipient": to, "message_id": external_id},
        )
        return DeliveryResult(
            channel=self.channel, recipient=to, external_id=external_id, raw=body
        )

    async def send_reply(
        self,
        event: NormalizedEvent,
        text: str,
        *,
        access_token: str | None = None,
    ) -> DeliveryResult:
        return await self.send_text(
            event.routing_key, event.sender_address, text, access_token=access_token
        )

    async def send_typing(self, recipient: str, *, access_token: str | None = None) -> None:
        return None


def _contact_names(value: Mapping[str, Any]) -> dict[str, str]:
    names: dict[str, str] = {}
    for contact in as_list(value.get("contacts")):
        contact = as_dict(contact)
        wa_id = as_text(contact.get("wa_id"))
        name = as_text(as_dict(contact.get("profile")).get("name"))
        if wa_id and name:
            names[wa_id] = name
    return names


def _message_event(
    routing_key: str,
    message: Mapping[str, Any],
    names: Mapping[str, str],
) -> NormalizedEvent | None:
    if message.get("type") != "text":
        return None
    text = as_text(as_dict(message.get("text")).get("body"))
    sender = as_text(message.get("from"))
    if text is None or sender is None:
        return None
    return NormalizedEvent(
        channel=ChannelType.WHATSAPP,
        kind=EventKind.MESSAGE,
        routing_key=routing_key,
        sender_address=sender,
        text=text,
        timestamp=parse_timestamp(message.get("timestamp")),
        external_id=as_text(message.get("id")),
        sender_name=names.get(sender),
    )
