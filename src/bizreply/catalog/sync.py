"""Product embedding lifecycle: text building, invalidation and batch sync.

An embedding is valid only for the product text it was computed from. Edits
to any embedded field clear the vector through ``apply_product_changes``; the
sync job then recomputes vectors for active products that have none.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from prometheus_client import Counter
from sqlmodel import col, select

from bizreply.core.db.models import Product
from bizreply.core.db.session import SessionFactory, session_scope

from .embeddings import EmbeddingService

logger = logging.getLogger(__name__)

EMBEDDED_FIELDS = ("name", "description", "category", "price", "sale_price")
MAX_EMBEDDING_TEXT = 1000

PRODUCTS_EMBEDDED = Counter(
    "bizreply_products_embedded_total",
    "Product embeddings computed by the sync job.",
    ["result"],
)

_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")
_SYMBOL_RE = re.compile(r"[^\w\s.,!?$%:/-]")


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    text = _TAG_RE.sub(" ", str(value))
    text = _SYMBOL_RE.sub("", text)
    text = _SPACE_RE.sub(" ", text).strip()
    return text[:MAX_EMBEDDING_TEXT]


def build_embedding_text(product: Product) -> str:
    """Compose the text embedded for a product; the name is repeated for weight."""

    name = normalize_text(product.name)
    parts = [f"Product: {name}", name]
    if product.category:
        parts.append(f"Category: {normalize_text(product.category)}")
    price = product.sale_price if product.sale_price is not None else product.price
    if price is not None:
        parts.append(f"Price: ${price:.2f}")
    if product.description:
        parts.append(f"Description: {normalize_text(product.description)}")
    return normalize_text(". ".join(parts))


def embedding_checksum(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def is_embedding_current(product: Product) -> bool:
    if product.embedding is None or product.embedding_checksum is None:
        return False
    return product.embedding_checksum == embedding_checksum(build_embedding_text(product))


def clear_embedding(product: Product) -> None:
    product.embedding = None
    product.embedding_checksum = None
    product.embedding_model = None
    product.last_embedded_at = None


def apply_product_changes(product: Product, changes: Mapping[str, Any]) -> bool:
    """Apply ``changes`` to ``product``; returns True when the embedding was cleared."""

    embedded_changed = False
    for key, value in changes.items():
        if not hasattr(product, key):
            continue
        if key in EMBEDDED_FIELDS and getattr(product, key) != value:
            embedded_changed = True
        setattr(product, key, value)

    if embedded_changed and product.embedding is not None:
        clear_embedding(product)
        logger.info("product embedding invalidated", extra={"product_id": str(product.id)})
        return True
    return False


@dataclass(slots=True)
class SyncReport:
    embedded: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.embedded + self.failed


class ProductSyncService:
    """Computes embeddings for active products that lack a current one."""

    def __init__(
        self,
        session_factory: SessionFactory,
        embedding_service: EmbeddingService,
        *,
        batch_size: int = 10,
        limit: int = 100,
    ) -> None:
        self._session_factory = session_factory
        self._embedding_service = embedding_service
        self._batch_size = batch_size
        self._limit = limit

    async def sync_pending(self, business_id: UUID | None = None) -> SyncReport:
        report = SyncReport()
        with session_scope(self._session_factory) as session:
            statement = select(Product).where(
                col(Product.is_active).is_(True),
                col(Product.embedding).is_(None),
            )
            if business_id is not None:
                statement = statement.where(Product.business_id == business_id)
            pending = list(session.exec(statement.limit(self._limit)).all())

            for start in range(0, len(pending), self._batch_size):
                batch = pending[start : start + self._batch_size]
                texts = [build_embedding_text(product) for product in batch]
                try:
                    vectors = await self._embedding_service.embed(texts)
                except Exception:
                    logger.exception(
                        "product embedding batch failed", extra={"batch_size": len(batch)}
                    )
                    report.failed += len(batch)
                    PRODUCTS_EMBEDDED.labels("failed").inc(len(batch))
                    continue

                embedded_at = datetime.now(tz=UTC)
                for product, text, vector in zip(batch, texts, vectors, strict=True):
                    product.embedding = vector
                    product.embedding_checksum = embedding_checksum(text)
                    product.embedding_model = self._embedding_service.model_name
                    product.last_embedded_at = embedded_at
                    session.add(product)
                session.commit()
                report.embedded += len(batch)
                PRODUCTS_EMBEDDED.labels("ok").inc(len(batch))

        logger.info(
            "product embedding sync finished",
            extra={"embedded": report.embedded, "failed": report.failed},
        )
        return report

    def invalidate_stale(self, business_id: UUID | None = None) -> int:
        """Clear embeddings whose source text changed outside ``apply_product_changes``."""

        cleared = 0
        with session_scope(self._session_factory) as session:
            statement = select(Product).where(col(Product.embedding).is_not(None))
            if business_id is not None:
                statement = statement.where(Product.business_id == business_id)
            for product in session.exec(statement).all():
                if not is_embedding_current(product):
                    clear_embedding(product)
                    session.add(product)
                    cleared += 1
        if cleared:
            logger.info("stale product embeddings cleared", extra={"count": cleared})
        return cleared
