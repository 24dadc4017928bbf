"""Create relay, catalog and usage tables with the pgvector extension."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

UUID = postgresql.UUID(as_uuid=True)


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        )
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
                onupdate=sa.func.now(),
            )
        )
    return columns


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.create_table(
        "businesses",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("owner_id", sa.String(length=120), nullable=True),
        sa.Column("business_name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("phone_number_id", sa.String(length=64), nullable=True),
        sa.Column("facebook_page_id", sa.String(length=64), nullable=True),
        sa.Column("instagram_account_id", sa.String(length=64), nullable=True),
        sa.Column("page_access_token", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("ai_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "auto_reply_comments", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("ai_greeting_message", sa.Text(), nullable=True),
        sa.Column("ai_tone", sa.String(length=120), nullable=True),
        sa.Column("ai_instructions", sa.Text(), nullable=True),
        sa.Column("ai_faqs", sa.Text(), nullable=True),
        sa.Column("ai_special_offers", sa.Text(), nullable=True),
        sa.Column("ai_do_not_mention", sa.Text(), nullable=True),
        sa.Column("forbidden_responses", sa.JSON(), nullable=True),
        sa.Column("custom_rules", sa.JSON(), nullable=True),
        sa.Column("ai_language", sa.String(length=16), nullable=False, server_default="en"),
        sa.Column(
            "ai_max_response_length", sa.Integer(), nullable=False, server_default="500"
        ),
        sa.Column("return_policy", sa.Text(), nullable=True),
        sa.Column("refund_policy", sa.Text(), nullable=True),
        sa.Column("shipping_policy", sa.Text(), nullable=True),
        sa.Column("privacy_policy", sa.Text(), nullable=True),
        sa.Column("terms_of_service", sa.Text(), nullable=True),
        sa.Column("store_hours", sa.JSON(), nullable=True),
        sa.Column("escalation_keywords", sa.JSON(), nullable=True),
        sa.Column("message_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_businesses_owner_id", "businesses", ["owner_id"])
    for column in ("phone_number_id", "facebook_page_id", "instagram_account_id"):
        op.create_index(f"ix_businesses_{column}", "businesses", [column], unique=True)

    op.create_table(
        "conversations",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("business_id", UUID, nullable=False),
        sa.Column("customer_address", sa.String(length=120), nullable=False),
        sa.Column("customer_name", sa.String(length=200), nullable=True),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("mode", sa.String(length=16), nullable=False, server_default="ai"),
        sa.Column(
            "escalation_requested", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("escalation_reason", sa.Text(), nullable=True),
        sa.Column("escalation_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalation_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("assigned_to", sa.String(length=120), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "business_id", "customer_address", "channel", name="uq_conversation_customer"
        ),
    )
    op.create_index("ix_conversations_business_id", "conversations", ["business_id"])

    op.create_table(
        "messages",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        *_timestamps(updated=False),
        sa.Column("conversation_id", UUID, nullable=False),
        sa.Column("business_id", UUID, nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("sender_address", sa.String(length=120), nullable=True),
        sa.Column("recipient_address", sa.String(length=120), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("message_type", sa.String(length=32), nullable=False, server_default="text"),
        sa.Column("sent_by", sa.String(length=32), nullable=False, server_default="customer"),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])
    op.create_index("ix_messages_business_id", "messages", ["business_id"])
    op.create_index("ix_messages_sent_at", "messages", ["sent_at"])

    op.create_table(
        "products",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("business_id", UUID, nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("sale_price", sa.Float(), nullable=True),
        sa.Column("category", sa.String(length=120), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("product_url", sa.Text(), nullable=True),
        sa.Column("sku", sa.String(length=120), nullable=True),
        sa.Column("stock_quantity", sa.Integer(), nullable=True),
        sa.Column("source_platform", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("embedding", Vector(1536), nullable=True),
        sa.Column("embedding_model", sa.String(length=120), nullable=True),
        sa.Column("embedding_checksum", sa.String(length=64), nullable=True),
        sa.Column("last_embedded_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("business_id", "external_id", name="uq_product_external"),
    )
    op.create_index("ix_products_business_id", "products", ["business_id"])
    op.execute(
        "CREATE INDEX ix_products_embedding ON products "
        "USING hnsw (embedding vector_cosine_ops)"
    )

    op.create_table(
        "integrations",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("business_id", UUID, nullable=False),
        sa.Column("platform", sa.String(length=64), nullable=False),
        sa.Column("credentials", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("products_count", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("business_id", "platform", name="uq_integration_platform"),
    )
    op.create_index("ix_integrations_business_id", "integrations", ["business_id"])

    op.create_table(
        "api_usage",
        sa.Column("id", UUID, primary_key=True, nullable=False),
        *_timestamps(updated=False),
        sa.Column("business_id", UUID, nullable=False),
        sa.Column("conversation_id", UUID, nullable=True),
        sa.Column("request_type", sa.String(length=32), nullable=False, server_default="chat"),
        sa.Column("model", sa.String(length=64), nullable=False),
        sa.Column("tokens_input", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tokens_output", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost_input", sa.Float(), nullable=False, server_default="0"),
        sa.Column("cost_output", sa.Float(), nullable=False, server_default="0"),
        sa.Column("customer_address", sa.String(length=120), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_api_usage_business_id", "api_usage", ["business_id"])


def downgrade() -> None:
    op.drop_table("api_usage")
    op.drop_table("integrations")
    op.drop_table("products")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("businesses")
