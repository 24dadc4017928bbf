"""Domain data structures shared across the relay."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ChannelType(str, Enum):
    """Supported messaging channels."""

    WHATSAPP = "whatsapp"
    MESSENGER = "messenger"
    INSTAGRAM = "instagram"


class EventKind(str, Enum):
    """Shape of a normalized inbound item."""

    MESSAGE = "message"
    COMMENT = "comment"


class MessageDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class ConversationMode(str, Enum):
    """Actor currently owning replies for a conversation."""

    AI = "ai"
    HUMAN = "human"
    PAUSED = "paused"


class SenderRole(str, Enum):
    CUSTOMER = "customer"
    AI = "ai"
    HUMAN = "human"
    SYSTEM = "system"


@dataclass(slots=True, frozen=True)
class NormalizedEvent:
    """Channel-agnostic representation of one inbound message or comment.

    ``routing_key`` identifies the business side of the exchange (WhatsApp
    phone-number id, Facebook page id, Instagram account id) and
    ``sender_address`` the customer. For comments ``external_id`` holds the
    comment id replies are attached to and ``parent_id`` the post or media id.
    """

    channel: ChannelType
    kind: EventKind
    routing_key: str
    sender_address: str
    text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    external_id: str | None = None
    sender_name: str | None = None
    parent_id: str | None = None

    @property
    def is_comment(self) -> bool:
        return self.kind is EventKind.COMMENT

    def log_context(self) -> dict[str, Any]:
        return {
            "channel": self.channel.value,
            "kind": self.kind.value,
            "routing_key": self.routing_key,
            "sender": self.sender_address,
            "external_id": self.external_id,
        }


@dataclass(slots=True, frozen=True)
class DeliveryResult:
    """Successful vendor send acknowledgement."""

    channel: ChannelType
    recipient: str
    external_id: str | None = None
    raw: Mapping[str, Any] | None = None
