"""Product CRUD that keeps stored embeddings consistent with product text."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from bizreply.core.db.models import Business, Product
from bizreply.core.errors import ConflictError, NotFoundError

from . import schemas
from .sync import apply_product_changes

logger = logging.getLogger(__name__)


def to_product_response(product: Product) -> schemas.ProductResponse:
    response = schemas.ProductResponse.model_validate(product)
    response.has_embedding = product.embedding is not None
    return response


class ProductService:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list(
        self,
        business_id: UUID,
        *,
        include_inactive: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Product]:
        self._require_business(business_id)
        statement = select(Product).where(Product.business_id == business_id)
        if not include_inactive:
            statement = statement.where(col(Product.is_active).is_(True))
        statement = statement.order_by(col(Product.name)).offset(offset).limit(limit)
        return list(self._session.exec(statement).all())

    def get(self, product_id: UUID) -> Product:
        product = self._session.get(Product, product_id)
        if product is None:
            raise NotFoundError("product not found", details={"product_id": str(product_id)})
        return product

    def create(self, business_id: UUID, request: schemas.ProductCreateRequest) -> Product:
        self._require_business(business_id)
        values = {key: value for key, value in request.model_dump().items() if value is not None}
        product = Product(business_id=business_id, **values)
        self._session.add(product)
        self._flush(product)
        logger.info(
            "product created",
            extra={"business_id": str(business_id), "product_id": str(product.id)},
        )
        return product

    def update(self, product_id: UUID, request: schemas.ProductUpdateRequest) -> Product:
        product = self.get(product_id)
        changes = request.model_dump(exclude_unset=True)
        if changes.get("name", "") is None:
            changes.pop("name")
        apply_product_changes(product, changes)
        product.updated_at = datetime.now(tz=UTC)
        self._session.add(product)
        self._flush(product)
        return product

    def delete(self, product_id: UUID) -> None:
        product = self.get(product_id)
        self._session.delete(product)
        self._session.flush()

    def _require_business(self, business_id: UUID) -> None:
        if self._session.get(Business, business_id) is None:
            raise NotFoundError("business not found", details={"business_id": str(business_id)})

    def _flush(self, product: Product) -> None:
        try:
            self._session.flush()
        except IntegrityError as exc:
            self._session.rollback()
            raise ConflictError(
                "a product with this external id already exists",
                details={"external_id": product.external_id},
            ) from exc
        self._session.refresh(product)
