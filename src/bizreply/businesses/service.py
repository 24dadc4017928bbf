"""Business, policy and integration management."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from bizreply.core.db.models import Business, Integration
from bizreply.core.errors import ConflictError, NotFoundError

from . import schemas

logger = logging.getLogger(__name__)

POLICY_FIELDS = tuple(schemas.BusinessPolicies.model_fields)


def _profile_values(request: schemas.BusinessProfile) -> dict[str, Any]:
    values = request.model_dump(exclude_unset=True)
    if "store_hours" in values and request.store_hours is not None:
        values["store_hours"] = request.store_hours.model_dump(mode="json", exclude_none=True)
    return values


def to_business_response(business: Business) -> schemas.BusinessResponse:
    response = schemas.BusinessResponse.model_validate(business)
    response.has_page_access_token = bool(business.page_access_token)
    return response


class BusinessService:
    """CRUD over businesses; deleting a business cascades to its records."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, request: schemas.BusinessCreateRequest) -> Business:
        values = {
            key: value for key, value in _profile_values(request).items() if value is not None
        }
        business = Business(**values)
        self._session.add(business)
        self._flush_unique(business)
        logger.info(
            "business created",
            extra={"business_id": str(business.id), "name": business.business_name},
        )
        return business

    def get(self, business_id: UUID) -> Business:
        business = self._session.get(Business, business_id)
        if business is None:
            raise NotFoundError("business not found", details={"business_id": str(business_id)})
        return business

    def list(
        self, *, owner_id: str | None = None, limit: int = 50, offset: int = 0
    ) -> list[Business]:
        statement = select(Business)
        if owner_id is not None:
            statement = statement.where(Business.owner_id == owner_id)
        statement = statement.order_by(col(Business.created_at).desc()).offset(offset).limit(limit)
        return list(self._session.exec(statement).all())

    def update(self, business_id: UUID, request: schemas.BusinessUpdateRequest) -> Business:
        business = self.get(business_id)
        for key, value in _profile_values(request).items():
            if key == "business_name" and value is None:
                continue
            setattr(business, key, value)
        business.updated_at = datetime.now(tz=UTC)
        self._session.add(business)
        self._flush_unique(business)
        return business

    def delete(self, business_id: UUID) -> None:
        business = self.get(business_id)
        self._session.delete(business)
        self._session.flush()
        logger.info("business deleted", extra={"business_id": str(business_id)})

    def get_policies(self, business_id: UUID) -> schemas.PoliciesResponse:
        business = self.get(business_id)
        return schemas.PoliciesResponse(
            business_id=business.id,
            **{field: getattr(business, field) for field in POLICY_FIELDS},
        )

    def update_policies(
        self, business_id: UUID, request: schemas.BusinessPolicies
    ) -> schemas.PoliciesResponse:
        business = self.get(business_id)
        for key, value in request.model_dump(exclude_unset=True).items():
            setattr(business, key, value)
        business.updated_at = datetime.now(tz=UTC)
        self._session.add(business)
        self._session.flush()
        return self.get_policies(business_id)

    def _flush_unique(self, business: Business) -> None:
        try:
            self._session.flush()
        except IntegrityError as exc:
            self._session.rollback()
            raise ConflictError(
                "a channel identity is already assigned to another business",
                details={
                    "phone_number_id": business.phone_number_id,
                    "facebook_page_id": business.facebook_page_id,
                    "instagram_account_id": business.instagram_account_id,
                },
            ) from exc
        self._session.refresh(business)


class IntegrationService:
    """One integration row per (business, platform)."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def list(self, business_id: UUID) -> list[Integration]:
        statement = select(Integration).where(Integration.business_id == business_id)
        return list(self._session.exec(statement).all())

    def get(self, business_id: UUID, platform: str) -> Integration:
        integration = self._find(business_id, platform)
        if integration is None:
            raise NotFoundError(
                "integration not found",
                details={"business_id": str(business_id), "platform": platform},
            )
        return integration

    def upsert(
        self, business_id: UUID, platform: str, request: schemas.IntegrationUpsertRequest
    ) -> Integration:
        integration = self._find(business_id, platform)
        if integration is None:
            integration = Integration(business_id=business_id, platform=platform)
        if request.credentials is not None:
            integration.credentials = request.credentials
        integration.is_active = request.is_active
        integration.updated_at = datetime.now(tz=UTC)
        self._session.add(integration)
        try:
            self._session.flush()
        except IntegrityError as exc:
            self._session.rollback()
            raise ConflictError(
                "integration already exists", details={"platform": platform}
            ) from exc
        self._session.refresh(integration)
        return integration

    def _find(self, business_id: UUID, platform: str) -> Integration | None:
        statement = select(Integration).where(
            Integration.business_id == business_id,
            Integration.platform == platform,
        )
        return self._session.exec(statement).first()


def to_integration_response(integration: Integration) -> schemas.IntegrationResponse:
    response = schemas.IntegrationResponse.model_validate(integration)
    response.has_credentials = bool(integration.credentials)
    return response
