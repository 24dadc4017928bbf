"""SQLModel declarative models for businesses, conversations and the catalog."""

from datetime import UTC, datetime
from typing import Any, List, Optional
from uuid import UUID, uuid4

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlmodel import Field, Relationship, SQLModel

from bizreply.core.domain import ConversationMode, MessageDirection

EMBEDDING_DIMENSIONS = 1536


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def created_at_field() -> Any:
    return Field(
        default_factory=_utcnow,
        sa_column=Column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
        ),
    )


def updated_at_field() -> Any:
    return Field(
        default_factory=_utcnow,
        sa_column=Column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        ),
    )


def optional_timestamp_field() -> Any:
    return Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )


def text_field() -> Any:
    return Field(default=None, sa_column=Column(Text, nullable=True))


class UUIDPrimaryKey(SQLModel, table=False):
    """Mixin providing a UUID primary key."""

    id: UUID = Field(default_factory=uuid4, primary_key=True, nullable=False)


class Business(UUIDPrimaryKey, table=True):
    """A business whose customers are answered by the relay.

    The three routing keys map inbound webhook events to the business; at most
    one business may own each of them.
    """

    __tablename__ = "businesses"

    created_at: datetime = created_at_field()
    updated_at: datetime = updated_at_field()

    owner_id: str | None = Field(
        default=None, sa_column=Column(String(length=120), nullable=True, index=True)
    )
    business_name: str = Field(sa_column=Column(String(length=200), nullable=False))
    description: str | None = text_field()
    location: str | None = Field(
        default=None, sa_column=Column(String(length=255), nullable=True)
    )

    phone_number_id: str | None = Field(
        default=None,
        sa_column=Column(String(length=64), nullable=True, unique=True, index=True),
    )
    facebook_page_id: str | None = Field(
        default=None,
        sa_column=Column(String(length=64), nullable=True, unique=True, index=True),
    )
    instagram_account_id: str | None = Field(
        default=None,
        sa_column=Column(String(length=64), nullable=True, unique=True, index=True),
    )
    page_access_token: str | None = text_field()

    is_active: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False, default=True)
    )
    ai_enabled: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False, default=True)
    )
    auto_reply_comments: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False, default=False)
    )
    ai_greeting_message: str | None = text_field()
    ai_tone: str | None = Field(
        default="professional and friendly",
        sa_column=Column(String(length=120), nullable=True),
    )
    ai_instructions: str | None = text_field()
    ai_faqs: str | None = text_field()
    ai_special_offers: str | None = text_field()
    ai_do_not_mention: str | None = text_field()
    forbidden_responses: list[str] | None = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    custom_rules: list[str] | None = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    ai_language: str = Field(
        default="en", sa_column=Column(String(length=16), nullable=False, default="en")
    )
    ai_max_response_length: int = Field(
        default=500, sa_column=Column(Integer, nullable=False, default=500)
    )

    return_policy: str | None = text_field()
    refund_policy: str | None = text_field()
    shipping_policy: str | None = text_field()
    privacy_policy: str | None = text_field()
    terms_of_service: str | None = text_field()

    store_hours: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    escalation_keywords: list[str] | None = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    message_count: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, default=0)
    )

    conversations: List["Conversation"] = Relationship(
        back_populates="business", sa_relationship_kwargs={"cascade": "all,delete"}
    )
    products: List["Product"] = Relationship(
        back_populates="business", sa_relationship_kwargs={"cascade": "all,delete"}
    )
    integrations: List["Integration"] = Relationship(
        back_populates="business", sa_relationship_kwargs={"cascade": "all,delete"}
    )
    usage_records: List["UsageRecord"] = Relationship(
        back_populates="business", sa_relationship_kwargs={"cascade": "all,delete"}
    )


class Conversation(UUIDPrimaryKey, table=True):
    """One customer address talking to one business over one channel."""

    __tablename__ = "conversations"

    created_at: datetime = created_at_field()
    updated_at: datetime = updated_at_field()

    business_id: UUID = Field(foreign_key="businesses.id", nullable=False, index=True)
    customer_address: str = Field(sa_column=Column(String(length=120), nullable=False))
    customer_name: str | None = Field(
        default=None, sa_column=Column(String(length=200), nullable=True)
    )
    channel: str = Field(sa_column=Column(String(length=32), nullable=False))
    mode: str = Field(
        default=ConversationMode.AI.value,
        sa_column=Column(String(length=16), nullable=False, default=ConversationMode.AI.value),
    )
    escalation_requested: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False, default=False)
    )
    escalation_reason: str | None = text_field()
    escalation_requested_at: datetime | None = optional_timestamp_field()
    escalation_count: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, default=0)
    )
    assigned_to: str | None = Field(
        default=None, sa_column=Column(String(length=120), nullable=True)
    )
    assigned_at: datetime | None = optional_timestamp_field()
    last_message_at: datetime | None = optional_timestamp_field()

    business: Business | None = Relationship(back_populates="conversations")
    messages: List["MessageLog"] = Relationship(
        back_populates="conversation",
        sa_relationship_kwargs={"cascade": "all,delete"},
    )

    __table_args__ = (
        UniqueConstraint(
            "business_id", "customer_address", "channel", name="uq_conversation_customer"
        ),
    )


class MessageLog(UUIDPrimaryKey, table=True):
    """Append-only record of a message exchanged in a conversation."""

    __tablename__ = "messages"

    created_at: datetime = created_at_field()

    conversation_id: UUID = Field(
        foreign_key="conversations.id", nullable=False, index=True
    )
    business_id: UUID = Field(foreign_key="businesses.id", nullable=False, index=True)
    direction: MessageDirection = Field(
        sa_column=Column(String(length=16), nullable=False)
    )
    sender_address: str | None = Field(
        default=None, sa_column=Column(String(length=120), nullable=True)
    )
    recipient_address: str | None = Field(
        default=None, sa_column=Column(String(length=120), nullable=True)
    )
    content: str = Field(sa_column=Column(Text, nullable=False))
    channel: str = Field(sa_column=Column(String(length=32), nullable=False))
    message_type: str = Field(
        default="text",
        sa_column=Column(String(length=32), nullable=False, default="text"),
    )
    sent_by: str = Field(
        default="customer",
        sa_column=Column(String(length=32), nullable=False, default="customer"),
    )
    external_id: str | None = Field(
        default=None, sa_column=Column(String(length=255), nullable=True)
    )
    sent_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    metadata_json: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column("metadata", JSON, nullable=True),
    )

    conversation: Conversation | None = Relationship(back_populates="messages")


class Product(UUIDPrimaryKey, table=True):
    """Catalog item used to ground replies; optionally embedded for search."""

    __tablename__ = "products"

    created_at: datetime = created_at_field()
    updated_at: datetime = updated_at_field()

    business_id: UUID = Field(foreign_key="businesses.id", nullable=False, index=True)
    external_id: str | None = Field(
        default=None, sa_column=Column(String(length=255), nullable=True)
    )
    name: str = Field(sa_column=Column(String(length=255), nullable=False))
    description: str | None = text_field()
    price: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    sale_price: float | None = Field(default=None, sa_column=Column(Float, nullable=True))
    category: str | None = Field(
        default=None, sa_column=Column(String(length=120), nullable=True)
    )
    image_url: str | None = text_field()
    product_url: str | None = text_field()
    sku: str | None = Field(default=None, sa_column=Column(String(length=120), nullable=True))
    stock_quantity: int | None = Field(
        default=None, sa_column=Column(Integer, nullable=True)
    )
    source_platform: str | None = Field(
        default=None, sa_column=Column(String(length=64), nullable=True)
    )
    is_active: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False, default=True)
    )

    embedding: list[float] | None = Field(
        default=None, sa_column=Column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    )
    embedding_model: str | None = Field(
        default=None, sa_column=Column(String(length=120), nullable=True)
    )
    embedding_checksum: str | None = Field(
        default=None, sa_column=Column(String(length=64), nullable=True)
    )
    last_embedded_at: datetime | None = optional_timestamp_field()

    business: Business | None = Relationship(back_populates="products")

    __table_args__ = (
        UniqueConstraint("business_id", "external_id", name="uq_product_external"),
    )


class Integration(UUIDPrimaryKey, table=True):
    """External catalog platform connected to a business."""

    __tablename__ = "integrations"

    created_at: datetime = created_at_field()
    updated_at: datetime = updated_at_field()

    business_id: UUID = Field(foreign_key="businesses.id", nullable=False, index=True)
    platform: str = Field(sa_column=Column(String(length=64), nullable=False))
    credentials: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    is_active: bool = Field(
        default=True, sa_column=Column(Boolean, nullable=False, default=True)
    )
    last_sync_at: datetime | None = optional_timestamp_field()
    products_count: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, default=0)
    )

    business: Business | None = Relationship(back_populates="integrations")

    __table_args__ = (
        UniqueConstraint("business_id", "platform", name="uq_integration_platform"),
    )


class UsageRecord(UUIDPrimaryKey, table=True):
    """Token usage and cost of one AI provider call."""

    __tablename__ = "api_usage"

    created_at: datetime = created_at_field()

    business_id: UUID = Field(foreign_key="businesses.id", nullable=False, index=True)
    conversation_id: Optional[UUID] = Field(
        default=None, foreign_key="conversations.id", nullable=True
    )
    request_type: str = Field(
        default="chat",
        sa_column=Column(String(length=32), nullable=False, default="chat"),
    )
    model: str = Field(sa_column=Column(String(length=64), nullable=False))
    tokens_input: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    tokens_output: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, default=0)
    )
    cost_input: float = Field(default=0.0, sa_column=Column(Float, nullable=False, default=0.0))
    cost_output: float = Field(
        default=0.0, sa_column=Column(Float, nullable=False, default=0.0)
    )
    customer_address: str | None = Field(
        default=None, sa_column=Column(String(length=120), nullable=True)
    )
    metadata_json: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column("metadata", JSON, nullable=True),
    )

    business: Business | None = Relationship(back_populates="usage_records")


metadata = SQLModel.metadata
