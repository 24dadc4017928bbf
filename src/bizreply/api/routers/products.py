"""Catalog management and semantic product search."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from bizreply.catalog import EmbeddingUnavailable, schemas
from bizreply.catalog.products import to_product_response
from bizreply.core.errors import ServiceUnavailable
from bizreply.core.http import ResponseEnvelope

from ..dependencies import (
    BusinessServiceDep,
    EmbeddingServiceDep,
    ProductServiceDep,
    ProductSyncServiceDep,
    RecommenderDep,
    SessionDep,
    SettingsDep,
)

router = APIRouter(tags=["products"])


@router.get(
    "/businesses/{business_id}/products",
    response_model=ResponseEnvelope[list[schemas.ProductResponse]],
)
def list_products(
    business_id: UUID,
    service: ProductServiceDep,
    include_inactive: bool = False,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> ResponseEnvelope[list[schemas.ProductResponse]]:
    products = service.list(
        business_id, include_inactive=include_inactive, limit=limit, offset=offset
    )
    return ResponseEnvelope(data=[to_product_response(item) for item in products])


@router.post(
    "/businesses/{business_id}/products",
    response_model=ResponseEnvelope[schemas.ProductResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_product(
    business_id: UUID,
    request: schemas.ProductCreateRequest,
    service: ProductServiceDep,
) -> ResponseEnvelope[schemas.ProductResponse]:
    return ResponseEnvelope(data=to_product_response(service.create(business_id, request)))


@router.get("/products/{product_id}", response_model=ResponseEnvelope[schemas.ProductResponse])
def get_product(
    product_id: UUID, service: ProductServiceDep
) -> ResponseEnvelope[schemas.ProductResponse]:
    return ResponseEnvelope(data=to_product_response(service.get(product_id)))


@router.put("/products/{product_id}", response_model=ResponseEnvelope[schemas.ProductResponse])
def update_product(
    product_id: UUID,
    request: schemas.ProductUpdateRequest,
    service: ProductServiceDep,
) -> ResponseEnvelope[schemas.ProductResponse]:
    """Update a product; changing embedded text clears its embedding."""

    return ResponseEnvelope(data=to_product_response(service.update(product_id, request)))


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(product_id: UUID, service: ProductServiceDep) -> Response:
    service.delete(product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/businesses/{business_id}/products/search",
    response_model=ResponseEnvelope[list[schemas.ProductMatchResponse]],
)
async def search_products(
    business_id: UUID,
    request: schemas.ProductSearchRequest,
    session: SessionDep,
    businesses: BusinessServiceDep,
    embeddings: EmbeddingServiceDep,
    recommender: RecommenderDep,
    settings: SettingsDep,
) -> ResponseEnvelope[list[schemas.ProductMatchResponse]]:
    """Rank active products by similarity; the default threshold is stricter than replies use."""

    businesses.get(business_id)
    if embeddings is None:
        raise ServiceUnavailable("product search requires an embedding backend")
    try:
        matches = await recommender.search(
            session,
            business_id,
            request.query,
            limit=request.limit,
            threshold=(
                settings.relay.search_threshold
                if request.threshold is None
                else request.threshold
            ),
        )
    except EmbeddingUnavailable as exc:
        raise ServiceUnavailable(
            "embedding backend unavailable", details={"error": str(exc)}
        ) from exc
    return ResponseEnvelope(
        data=[
            schemas.ProductMatchResponse(
                product_id=match.product_id,
                name=match.name,
                similarity=match.similarity,
                price=match.price,
                sale_price=match.sale_price,
                category=match.category,
                description=match.description,
                image_url=match.image_url,
            )
            for match in matches
        ]
    )


@router.post(
    "/businesses/{business_id}/products/sync",
    response_model=ResponseEnvelope[schemas.SyncResponse],
)
async def sync_product_embeddings(
    business_id: UUID,
    businesses: BusinessServiceDep,
    sync_service: ProductSyncServiceDep,
) -> ResponseEnvelope[schemas.SyncResponse]:
    """Embed this business's products that have no current embedding."""

    businesses.get(business_id)
    if sync_service is None:
        raise ServiceUnavailable("product sync requires an embedding backend")
    invalidated = sync_service.invalidate_stale(business_id)
    report = await sync_service.sync_pending(business_id)
    return ResponseEnvelope(
        data=schemas.SyncResponse(
            embedded=report.embedded, failed=report.failed, invalidated=invalidated
        )
    )
