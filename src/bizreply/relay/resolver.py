"""Maps channel routing keys to the owning business."""

from __future__ import annotations

import logging

from sqlmodel import Session, select

from bizreply.core.db.models import Business
from bizreply.core.domain import ChannelType
from bizreply.core.errors import RoutingNotFound

logger = logging.getLogger(__name__)

ROUTING_COLUMNS = {
    ChannelType.WHATSAPP: "phone_number_id",
    ChannelType.MESSENGER: "facebook_page_id",
    ChannelType.INSTAGRAM: "instagram_account_id",
}


def channel_identity(business: Business, channel: ChannelType) -> str | None:
    """Return the business's own id on ``channel`` (its routing key)."""

    return getattr(business, ROUTING_COLUMNS[channel])


def access_token_for(business: Business, channel: ChannelType) -> str | None:
    """Per-business send token; ``None`` falls back to the adapter default."""

    if channel is ChannelType.WHATSAPP:
        return None
    return business.page_access_token


class BusinessResolver:
    """Looks up businesses by the routing key of exactly one channel column."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def resolve(self, channel: ChannelType, routing_key: str) -> Business:
        column = getattr(Business, ROUTING_COLUMNS[channel])
        business = self._session.exec(select(Business).where(column == routing_key)).first()
        if business is None:
            raise RoutingNotFound(channel.value, routing_key)
        return business
