"""Core building blocks shared by the relay services."""

from . import config, domain, errors, logging
from .config import AppSettings
from .domain import (
    ChannelType,
    ConversationMode,
    DeliveryResult,
    EventKind,
    MessageDirection,
    NormalizedEvent,
    SenderRole,
)
from .logging import configure_logging, get_logger

__all__ = [
    "config",
    "domain",
    "errors",
    "logging",
    "configure_logging",
    "get_logger",
    "AppSettings",
    "ChannelType",
    "ConversationMode",
    "DeliveryResult",
    "EventKind",
    "MessageDirection",
    "NormalizedEvent",
    "SenderRole",
]
