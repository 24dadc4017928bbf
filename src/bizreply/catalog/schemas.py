"""Request and response models for catalog endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProductFields(BaseModel):
    external_id: str | None = Field(default=None, max_length=255)
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    sale_price: float | None = Field(default=None, ge=0)
    category: str | None = Field(default=None, max_length=120)
    image_url: str | None = None
    product_url: str | None = None
    sku: str | None = Field(default=None, max_length=120)
    stock_quantity: int | None = Field(default=None, ge=0)
    source_platform: str | None = Field(default=None, max_length=64)
    is_active: bool | None = None


class ProductCreateRequest(ProductFields):
    name: str = Field(min_length=1, max_length=255)


class ProductUpdateRequest(ProductFields):
    name: str | None = Field(default=None, min_length=1, max_length=255)


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_id: UUID
    created_at: datetime
    updated_at: datetime
    name: str
    external_id: str | None = None
    description: str | None = None
    price: float | None = None
    sale_price: float | None = None
    category: str | None = None
    image_url: str | None = None
    product_url: str | None = None
    sku: str | None = None
    stock_quantity: int | None = None
    source_platform: str | None = None
    is_active: bool
    embedding_model: str | None = None
    last_embedded_at: datetime | None = None
    has_embedding: bool = False


class ProductSearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)
    limit: int = Field(default=5, ge=1, le=50)
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class ProductMatchResponse(BaseModel):
    product_id: UUID
    name: str
    similarity: float
    price: float | None = None
    sale_price: float | None = None
    category: str | None = None
    description: str | None = None
    image_url: str | None = None


class SyncResponse(BaseModel):
    embedded: int
    failed: int
    invalidated: int = 0
