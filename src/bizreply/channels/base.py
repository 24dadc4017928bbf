"""Channel adapter contract and helpers for walking vendor webhook JSON."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any, Protocol

from bizreply.core.domain import ChannelType, DeliveryResult, EventKind, NormalizedEvent


class ChannelAdapter(Protocol):
    """Translates one vendor's webhooks into events and replies into send calls."""

    channel: ChannelType

    def parse_inbound(self, payload: Any) -> list[NormalizedEvent]:
        """Return zero or more events; never raises on malformed payloads."""
        ...

    async def send_text(
        self,
        routing_key: str,
        recipient: str,
        text: str,
        *,
        access_token: str | None = None,
    ) -> DeliveryResult:
        """Send a plain direct message; raises ``DeliveryFailed``."""
        ...

    async def send_reply(
        self,
        event: NormalizedEvent,
        text: str,
        *,
        access_token: str | None = None,
    ) -> DeliveryResult:
        """Answer ``event`` on the surface it arrived on; raises ``DeliveryFailed``."""
        ...

    async def send_typing(self, recipient: str, *, access_token: str | None = None) -> None:
        """Show a typing indicator where the channel supports one."""
        ...


def as_dict(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def as_list(value: Any) -> Sequence[Any]:
    return value if isinstance(value, list) else []


def as_text(value: Any) -> str | None:
    """Return a stripped non-empty string, or ``None``."""

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_timestamp(value: Any) -> datetime:
    """Parse epoch seconds, epoch milliseconds or ISO-8601; default to now."""

    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            value = int(stripped)
        else:
            try:
                parsed = datetime.fromisoformat(stripped.replace("Z", "+00:00"))
            except ValueError:
                return datetime.now(tz=UTC)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        seconds = value / 1000 if value > 10**11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return datetime.now(tz=UTC)
    return datetime.now(tz=UTC)


def parse_messaging_event(
    channel: ChannelType,
    routing_key: str,
    item: Any,
) -> NormalizedEvent | None:
    """Normalize one ``entry.messaging[]`` item of a Messenger/Instagram webhook.

    Echoes of the page's own sends, delivery and read receipts, postbacks,
    reactions and attachment-only messages yield ``None``.
    """

    data = as_dict(item)
    message = as_dict(data.get("message"))
    if not message or message.get("is_echo"):
        return None

    text = as_text(message.get("text"))
    sender = as_text(as_dict(data.get("sender")).get("id"))
    if text is None or sender is None or sender == routing_key:
        return None

    return NormalizedEvent(
        channel=channel,
        kind=EventKind.MESSAGE,
        routing_key=routing_key,
        sender_address=sender,
        text=text,
        timestamp=parse_timestamp(data.get("timestamp")),
        external_id=as_text(message.get("mid")),
    )
