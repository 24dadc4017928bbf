"""Database models and helpers for the relay."""

from . import models, session
from .models import (
    Business,
    Conversation,
    Integration,
    MessageLog,
    Product,
    UsageRecord,
    metadata,
)
from .session import (
    SessionFactory,
    create_engine_from_settings,
    init_db,
    session_factory_for,
    session_scope,
)

__all__ = [
    "models",
    "session",
    "Business",
    "Conversation",
    "MessageLog",
    "Product",
    "Integration",
    "UsageRecord",
    "metadata",
    "SessionFactory",
    "create_engine_from_settings",
    "init_db",
    "session_factory_for",
    "session_scope",
]
