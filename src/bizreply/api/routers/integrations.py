"""Per-platform integration settings of a business, and catalog import."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Path

from bizreply.businesses import schemas
from bizreply.businesses.service import to_integration_response
from bizreply.core.http import ResponseEnvelope

from ..dependencies import (
    BusinessServiceDep,
    CatalogImporterDep,
    IntegrationServiceDep,
    ProductSyncServiceDep,
)

router = APIRouter(prefix="/businesses/{business_id}/integrations", tags=["integrations"])

PlatformPath = Path(min_length=1, max_length=64, pattern=r"^[a-z0-9_-]+$")


@router.get("", response_model=ResponseEnvelope[list[schemas.IntegrationResponse]])
def list_integrations(
    business_id: UUID,
    businesses: BusinessServiceDep,
    service: IntegrationServiceDep,
) -> ResponseEnvelope[list[schemas.IntegrationResponse]]:
    businesses.get(business_id)
    return ResponseEnvelope(
        data=[to_integration_response(item) for item in service.list(business_id)]
    )


@router.get("/{platform}", response_model=ResponseEnvelope[schemas.IntegrationResponse])
def get_integration(
    business_id: UUID,
    service: IntegrationServiceDep,
    platform: str = PlatformPath,
) -> ResponseEnvelope[schemas.IntegrationResponse]:
    return ResponseEnvelope(data=to_integration_response(service.get(business_id, platform)))


@router.put("/{platform}", response_model=ResponseEnvelope[schemas.IntegrationResponse])
def upsert_integration(
    business_id: UUID,
    request: schemas.IntegrationUpsertRequest,
    businesses: BusinessServiceDep,
    service: IntegrationServiceDep,
    platform: str = PlatformPath,
) -> ResponseEnvelope[schemas.IntegrationResponse]:
    businesses.get(business_id)
    integration = service.upsert(business_id, platform, request)
    return ResponseEnvelope(data=to_integration_response(integration))


@router.post(
    "/{platform}/sync", response_model=ResponseEnvelope[schemas.CatalogImportResponse]
)
async def import_catalog(
    business_id: UUID,
    background_tasks: BackgroundTasks,
    businesses: BusinessServiceDep,
    importer: CatalogImporterDep,
    sync_service: ProductSyncServiceDep,
    platform: str = PlatformPath,
) -> ResponseEnvelope[schemas.CatalogImportResponse]:
    """Pull products from the store; new or changed ones are embedded afterwards."""

    businesses.get(business_id)
    integration, report = await importer.import_products(business_id, platform)
    scheduled = sync_service is not None and report.imported > 0
    if scheduled:
        background_tasks.add_task(sync_service.sync_pending, business_id)
    return ResponseEnvelope(
        data=schemas.CatalogImportResponse(
            integration=to_integration_response(integration),
            fetched=report.fetched,
            created=report.created,
            updated=report.updated,
            invalidated=report.invalidated,
            embedding_sync_scheduled=scheduled,
        )
    )
