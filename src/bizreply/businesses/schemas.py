"""Pydantic schemas for business, policy and integration endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

CLOCK_PATTERN = r"^([01]?\d|2[0-3]):[0-5]\d$"


class DayHours(BaseModel):
    open: str | None = Field(default=None, pattern=CLOCK_PATTERN)
    close: str | None = Field(default=None, pattern=CLOCK_PATTERN)
    closed: bool = False


class StoreHours(BaseModel):
    monday: DayHours | None = None
    tuesday: DayHours | None = None
    wednesday: DayHours | None = None
    thursday: DayHours | None = None
    friday: DayHours | None = None
    saturday: DayHours | None = None
    sunday: DayHours | None = None
    timezone: str = "UTC"
    holidays: list[date] = Field(default_factory=list)


class BusinessPolicies(BaseModel):
    return_policy: str | None = None
    refund_policy: str | None = None
    shipping_policy: str | None = None
    privacy_policy: str | None = None
    terms_of_service: str | None = None


class PoliciesResponse(BusinessPolicies):
    business_id: UUID


class BusinessProfile(BaseModel):
    """Fields shared by create and update requests."""

    owner_id: str | None = None
    description: str | None = None
    location: str | None = None
    phone_number_id: str | None = None
    facebook_page_id: str | None = None
    instagram_account_id: str | None = None
    is_active: bool | None = None
    ai_enabled: bool | None = None
    auto_reply_comments: bool | None = None
    ai_greeting_message: str | None = None
    ai_tone: str | None = None
    ai_instructions: str | None = None
    ai_faqs: str | None = None
    ai_special_offers: str | None = None
    ai_do_not_mention: str | None = None
    forbidden_responses: list[str] | None = None
    custom_rules: list[str] | None = None
    ai_language: str | None = Field(default=None, min_length=2, max_length=16)
    ai_max_response_length: int | None = Field(default=None, ge=50, le=4000)
    store_hours: StoreHours | None = None
    escalation_keywords: list[str] | None = None


class BusinessCreateRequest(BusinessProfile, BusinessPolicies):
    business_name: str = Field(min_length=1, max_length=200)
    page_access_token: str | None = None


class BusinessUpdateRequest(BusinessProfile, BusinessPolicies):
    business_name: str | None = Field(default=None, min_length=1, max_length=200)
    page_access_token: str | None = None


class BusinessResponse(BusinessPolicies):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    updated_at: datetime
    business_name: str
    owner_id: str | None = None
    description: str | None = None
    location: str | None = None
    phone_number_id: str | None = None
    facebook_page_id: str | None = None
    instagram_account_id: str | None = None
    is_active: bool
    ai_enabled: bool
    auto_reply_comments: bool
    ai_greeting_message: str | None = None
    ai_tone: str | None = None
    ai_instructions: str | None = None
    ai_faqs: str | None = None
    ai_special_offers: str | None = None
    ai_do_not_mention: str | None = None
    forbidden_responses: list[str] | None = None
    custom_rules: list[str] | None = None
    ai_language: str
    ai_max_response_length: int
    store_hours: dict[str, Any] | None = None
    escalation_keywords: list[str] | None = None
    message_count: int
    has_page_access_token: bool = False


class IntegrationUpsertRequest(BaseModel):
    credentials: dict[str, Any] | None = None
    is_active: bool = True


class IntegrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    business_id: UUID
    platform: str
    is_active: bool
    last_sync_at: datetime | None = None
    products_count: int
    has_credentials: bool = False


class CatalogImportResponse(BaseModel):
    integration: IntegrationResponse
    fetched: int
    created: int
    updated: int
    invalidated: int
    embedding_sync_scheduled: bool = False
