"""Business profile and policy endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from bizreply.businesses import schemas
from bizreply.businesses.service import to_business_response
from bizreply.core.http import ResponseEnvelope

from ..dependencies import BusinessServiceDep

router = APIRouter(prefix="/businesses", tags=["businesses"])


@router.post(
    "",
    response_model=ResponseEnvelope[schemas.BusinessResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_business(
    request: schemas.BusinessCreateRequest, service: BusinessServiceDep
) -> ResponseEnvelope[schemas.BusinessResponse]:
    business = service.create(request)
    return ResponseEnvelope(data=to_business_response(business))


@router.get("", response_model=ResponseEnvelope[list[schemas.BusinessResponse]])
def list_businesses(
    service: BusinessServiceDep,
    owner_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> ResponseEnvelope[list[schemas.BusinessResponse]]:
    businesses = service.list(owner_id=owner_id, limit=limit, offset=offset)
    return ResponseEnvelope(data=[to_business_response(item) for item in businesses])


@router.get("/{business_id}", response_model=ResponseEnvelope[schemas.BusinessResponse])
def get_business(
    business_id: UUID, service: BusinessServiceDep
) -> ResponseEnvelope[schemas.BusinessResponse]:
    return ResponseEnvelope(data=to_business_response(service.get(business_id)))


@router.put("/{business_id}", response_model=ResponseEnvelope[schemas.BusinessResponse])
def update_business(
    business_id: UUID,
    request: schemas.BusinessUpdateRequest,
    service: BusinessServiceDep,
) -> ResponseEnvelope[schemas.BusinessResponse]:
    business = service.update(business_id, request)
    return ResponseEnvelope(data=to_business_response(business))


@router.delete("/{business_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_business(business_id: UUID, service: BusinessServiceDep) -> Response:
    service.delete(business_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{business_id}/policies", response_model=ResponseEnvelope[schemas.PoliciesResponse]
)
def get_policies(
    business_id: UUID, service: BusinessServiceDep
) -> ResponseEnvelope[schemas.PoliciesResponse]:
    return ResponseEnvelope(data=service.get_policies(business_id))


@router.put(
    "/{business_id}/policies", response_model=ResponseEnvelope[schemas.PoliciesResponse]
)
def update_policies(
    business_id: UUID,
    request: schemas.BusinessPolicies,
    service: BusinessServiceDep,
) -> ResponseEnvelope[schemas.PoliciesResponse]:
    return ResponseEnvelope(data=service.update_policies(business_id, request))
