from __future__ import annotations

import pytest
from sqlmodel import select

from bizreply.catalog import ProductSyncService, apply_product_changes, build_embedding_text
from bizreply.catalog.sync import embedding_checksum, is_embedding_current, normalize_text
from bizreply.core.db import Product

pytestmark = pytest.mark.unit


def _product(business_id, **overrides) -> Product:
    values = {
        "business_id": business_id,
        "name": "Linen Shirt",
        "description": "Breathable <b>linen</b> shirt",
        "category": "Shirts",
        "price": 59.0,
    }
    values.update(overrides)
    return Product(**values)


def test_normalize_text_strips_markup_and_whitespace() -> None:
    assert normalize_text("  <p>Soft   wool</p>\n scarf ★ ") == "Soft wool scarf"
    assert normalize_text(None) == ""
    assert len(normalize_text("x" * 5000)) == 1000


def test_embedding_text_prefers_sale_price() -> None:
    product = _product(None, sale_price=45.5)

    text = build_embedding_text(product)

    assert text.startswith("Product: Linen Shirt. Linen Shirt. Category: Shirts")
    assert "Price: $45.50" in text
    assert "Description: Breathable linen shirt" in text


def test_changing_embedded_field_clears_vector() -> None:
    product = _product(None, embedding=[1.0, 0.0], embedding_checksum="abc", embedding_model="m")

    cleared = apply_product_changes(product, {"price": 49.0})

    assert cleared is True
    assert product.price == 49.0
    assert product.embedding is None
    assert product.embedding_checksum is None
    assert product.embedding_model is None


def test_non_embedded_or_unchanged_fields_keep_vector() -> None:
    product = _product(None, embedding=[1.0, 0.0], embedding_checksum="abc")

    assert apply_product_changes(product, {"stock_quantity": 3, "price": 59.0}) is False
    assert apply_product_changes(product, {"unknown_field": "ignored"}) is False
    assert product.embedding == [1.0, 0.0]
    assert product.stock_quantity == 3


@pytest.mark.asyncio
async def test_sync_pending_embeds_active_products(
    session_factory, session, make_business, embeddings
) -> None:
    business = make_business()
    session.add(_product(business.id))
    session.add(_product(business.id, name="Ceramic Mug", description=None, category="Home"))
    session.add(_product(business.id, name="Wool Scarf", is_active=False))
    session.commit()

    service = ProductSyncService(session_factory, embeddings, batch_size=1)
    report = await service.sync_pending(business.id)

    assert (report.embedded, report.failed, report.attempted) == (2, 0, 2)
    assert len(embeddings.calls) == 2

    session.expire_all()
    products = {p.name: p for p in session.exec(select(Product)).all()}
    shirt = products["Linen Shirt"]
    assert shirt.embedding is not None
    assert len(shirt.embedding) == 1536
    assert shirt.embedding_model == "keyword-test"
    assert shirt.embedding_checksum == embedding_checksum(build_embedding_text(shirt))
    assert is_embedding_current(shirt)
    assert products["Wool Scarf"].embedding is None

    # Already-embedded products are not recomputed.
    again = await service.sync_pending(business.id)
    assert again.attempted == 0


@pytest.mark.asyncio
async def test_sync_pending_counts_failed_batches(
    session_factory, session, make_business, embeddings
) -> None:
    business = make_business()
    session.add(_product(business.id))
    session.commit()
    embeddings.error = RuntimeError("rate limited")

    report = await ProductSyncService(session_factory, embeddings).sync_pending()

    assert (report.embedded, report.failed) == (0, 1)
    session.expire_all()
    assert session.exec(select(Product)).one().embedding is None


@pytest.mark.asyncio
async def test_invalidate_stale_clears_vectors_edited_out_of_band(
    session_factory, session, make_business, embeddings
) -> None:
    business = make_business()
    session.add(_product(business.id))
    session.commit()
    service = ProductSyncService(session_factory, embeddings)
    await service.sync_pending()

    assert service.invalidate_stale() == 0

    session.expire_all()
    product = session.exec(select(Product)).one()
    product.description = "Now in a heavier weave"
    session.add(product)
    session.commit()

    assert service.invalidate_stale(business.id) == 1
    session.expire_all()
    assert session.exec(select(Product)).one().embedding is None
