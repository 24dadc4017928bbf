"""Semantic product search over stored catalog embeddings."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

import numpy as np
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from bizreply.core.db.models import Product

from .embeddings import EmbeddingService

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProductMatch:
    """A catalog product scored against a query by cosine similarity."""

    product_id: UUID
    name: str
    similarity: float
    price: float | None = None
    sale_price: float | None = None
    category: str | None = None
    description: str | None = None
    image_url: str | None = None

    @classmethod
    def from_product(cls, product: Product, similarity: float) -> ProductMatch:
        return cls(
            product_id=product.id,
            name=product.name,
            similarity=round(float(similarity), 6),
            price=product.price,
            sale_price=product.sale_price,
            category=product.category,
            description=product.description,
            image_url=product.image_url,
        )


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    left = np.asarray(a, dtype=float)
    right = np.asarray(b, dtype=float)
    if left.size == 0 or left.shape != right.shape:
        return 0.0
    norm = float(np.linalg.norm(left) * np.linalg.norm(right))
    if not norm:
        return 0.0
    return float(np.dot(left, right) / norm)


class ProductIndex:
    """Common interface for product similarity backends."""

    def search(
        self,
        business_id: UUID,
        query: Sequence[float],
        *,
        limit: int,
        threshold: float,
    ) -> list[ProductMatch]:
        raise NotImplementedError


class PgVectorProductIndex(ProductIndex):
    """Delegates nearest-neighbour ranking to pgvector's ``<=>`` operator."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def search(
        self,
        business_id: UUID,
        query: Sequence[float],
        *,
        limit: int,
        threshold: float,
    ) -> list[ProductMatch]:
        distance = col(Product.embedding).cosine_distance(list(query))
        statement = (
            select(Product, distance.label("distance"))
            .where(
                Product.business_id == business_id,
                col(Product.is_active).is_(True),
                col(Product.embedding).is_not(None),
                distance <= 1 - threshold,
            )
            .order_by(distance)
            .limit(limit)
        )
        return [
            ProductMatch.from_product(product, 1 - float(dist))
            for product, dist in self._session.exec(statement).all()
        ]


class InMemoryProductIndex(ProductIndex):
    """Ranks embedded products in Python for databases without pgvector."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def search(
        self,
        business_id: UUID,
        query: Sequence[float],
        *,
        limit: int,
        threshold: float,
    ) -> list[ProductMatch]:
        statement = select(Product).where(
            Product.business_id == business_id,
            col(Product.is_active).is_(True),
            col(Product.embedding).is_not(None),
        )
        scored = [
            (product, cosine_similarity(query, product.embedding))
            for product in self._session.exec(statement).all()
            if product.embedding is not None
        ]
        scored = [item for item in scored if item[1] >= threshold]
        scored.sort(key=lambda item: item[1], reverse=True)
        return [ProductMatch.from_product(product, score) for product, score in scored[:limit]]


def product_index_for(session: Session) -> ProductIndex:
    bind = session.get_bind()
    if bind.dialect.name == "postgresql":
        return PgVectorProductIndex(session)
    return InMemoryProductIndex(session)


class ProductRecommender:
    """Embeds customer text and looks up the closest catalog products."""

    def __init__(
        self,
        embedding_service: EmbeddingService | None,
        *,
        limit: int = 5,
        threshold: float = 0.35,
    ) -> None:
        self._embedding_service = embedding_service
        self._limit = limit
        self._threshold = threshold

    async def search(
        self,
        session: Session,
        business_id: UUID,
        query: str,
        *,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[ProductMatch]:
        """Rank products for ``query``; embedding errors propagate."""

        if not query.strip() or self._embedding_service is None:
            return []
        vector = await self._embedding_service.embed_one(query)
        return product_index_for(session).search(
            business_id,
            vector,
            limit=self._limit if limit is None else limit,
            threshold=self._threshold if threshold is None else threshold,
        )

    async def recommend(
        self, session: Session, business_id: UUID, text: str
    ) -> list[ProductMatch]:
        """Best-effort variant used while replying; failures yield no products."""

        if self._embedding_service is None:
            logger.debug("product recommendations disabled; no embedding service")
            return []
        try:
            return await self.search(session, business_id, text)
        except SQLAlchemyError:
            session.rollback()
            logger.exception(
                "product recommendation query failed", extra={"business_id": str(business_id)}
            )
            return []
        except Exception:
            logger.exception(
                "product recommendation lookup failed", extra={"business_id": str(business_id)}
            )
            return []
