from __future__ import annotations

import httpx
import pytest

from bizreply.catalog.importer import WooCommerceClient, map_woocommerce_product
from bizreply.core.config import CatalogSettings
from bizreply.core.errors import CatalogImportFailed

pytestmark = pytest.mark.unit

CREDENTIALS = {
    "store_url": "https://shop.example.com",
    "consumer_key": "ck",
    "consumer_secret": "cs",
}


def test_map_woocommerce_product_defaults() -> None:
    values = map_woocommerce_product(
        {
            "id": 501,
            "name": "  ",
            "short_description": "Hand thrown",
            "price": "",
            "sale_price": "not-a-number",
            "status": "draft",
            "stock_quantity": None,
        }
    )

    assert values["external_id"] == "501"
    assert values["name"] == "Product 501"
    assert values["description"] == "Hand thrown"
    assert values["price"] is None
    assert values["sale_price"] is None
    assert values["category"] == "Uncategorized"
    assert values["image_url"] is None
    assert values["is_active"] is False
    assert values["stock_quantity"] is None


@pytest.mark.asyncio
async def test_fetch_products_stops_at_page_limit() -> None:
    pages: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        pages.append(request.url.params["page"])
        return httpx.Response(200, json=[{"id": len(pages)}])

    client = WooCommerceClient(
        CatalogSettings(page_size=1, max_pages=3), transport=httpx.MockTransport(handler)
    )
    try:
        items = await client.fetch_products(CREDENTIALS)
    finally:
        await client.close()

    assert pages == ["1", "2", "3"]
    assert [item["id"] for item in items] == [1, 2, 3]


@pytest.mark.asyncio
async def test_fetch_products_rejects_unexpected_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": "rest_no_route"})

    client = WooCommerceClient(CatalogSettings(), transport=httpx.MockTransport(handler))
    try:
        with pytest.raises(CatalogImportFailed) as excinfo:
            await client.fetch_products(CREDENTIALS)
    finally:
        await client.close()

    assert excinfo.value.platform == "woocommerce"
    assert excinfo.value.vendor_status is None
