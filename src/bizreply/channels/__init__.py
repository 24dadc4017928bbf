"""Channel adapters for the Meta messaging platforms."""

from .base import ChannelAdapter
from .graph import GraphAPIClient
from .instagram import InstagramAdapter
from .messenger import MessengerAdapter
from .whatsapp import WhatsAppAdapter

__all__ = [
    "ChannelAdapter",
    "GraphAPIClient",
    "InstagramAdapter",
    "MessengerAdapter",
    "WhatsAppAdapter",
]
