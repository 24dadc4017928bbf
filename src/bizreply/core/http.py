"""Shared HTTP response models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from .middleware import get_correlation_id

T = TypeVar("T")


class ResponseEnvelope(BaseModel, Generic[T]):
    """Wraps API payloads with the request correlation id."""

    data: T
    request_id: str | None = Field(default_factory=get_correlation_id)


class HealthResponse(BaseModel):
    status: str = "ok"
    checked_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
