"""Product import from connected store platforms.

Only WooCommerce is supported. Products are pulled from the store's REST API
and upserted by ``(business_id, external_id)``; edits to embedded fields go
through ``apply_product_changes`` so stale vectors are cleared and picked up
by the next embedding sync.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import httpx
from prometheus_client import Counter
from sqlmodel import Session, col, select

from bizreply.core.config import CatalogSettings
from bizreply.core.db.models import Integration, Product
from bizreply.core.errors import CatalogImportFailed, NotFoundError, ValidationError

from .sync import apply_product_changes

logger = logging.getLogger(__name__)

WOOCOMMERCE = "woocommerce"
REQUIRED_CREDENTIALS = ("store_url", "consumer_key", "consumer_secret")

PRODUCTS_IMPORTED = Counter(
    "bizreply_products_imported_total",
    "Products pulled from external catalog platforms.",
    ["platform", "result"],
)


@dataclass(slots=True)
class ImportReport:
    fetched: int = 0
    created: int = 0
    updated: int = 0
    invalidated: int = 0

    @property
    def imported(self) -> int:
        return self.created + self.updated


class WooCommerceClient:
    """Reads published products through the WooCommerce REST API (``wc/v3``)."""

    def __init__(
        self,
        settings: CatalogSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(timeout=settings.timeout_seconds, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def fetch_products(self, credentials: Mapping[str, Any]) -> list[dict[str, Any]]:
        url = f"{str(credentials['store_url']).rstrip('/')}/wp-json/wc/v3/products"
        auth = (str(credentials["consumer_key"]), str(credentials["consumer_secret"]))
        products: list[dict[str, Any]] = []

        for page in range(1, self._settings.max_pages + 1):
            try:
                response = await self._client.get(
                    url,
                    params={
                        "per_page": self._settings.page_size,
                        "page": page,
                        "status": "publish",
                    },
                    auth=auth,
                )
                response.raise_for_status()
                body = response.json()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "woocommerce rejected product request",
                    extra={"status": exc.response.status_code, "page": page},
                )
                raise CatalogImportFailed(
                    f"store returned HTTP {exc.response.status_code}",
                    platform=WOOCOMMERCE,
                    vendor_status=exc.response.status_code,
                ) from exc
            except httpx.HTTPError as exc:
                logger.warning("woocommerce request failed", extra={"error": str(exc)})
                raise CatalogImportFailed(
                    str(exc) or exc.__class__.__name__, platform=WOOCOMMERCE
                ) from exc
            except ValueError as exc:
                raise CatalogImportFailed(
                    "store returned a non-JSON product list", platform=WOOCOMMERCE
                ) from exc

            if not isinstance(body, list):
                raise CatalogImportFailed(
                    "store returned an unexpected product list", platform=WOOCOMMERCE
                )
            products.extend(item for item in body if isinstance(item, dict))

            total_pages = _int_or_none(response.headers.get("X-WP-TotalPages"))
            if len(body) < self._settings.page_size or (
                total_pages is not None and page >= total_pages
            ):
                break
        return products


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _price(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


def _first(items: Any, key: str) -> str | None:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        value = items[0].get(key)
        return str(value) if value else None
    return None


def map_woocommerce_product(item: Mapping[str, Any]) -> dict[str, Any]:
    """Translate one WooCommerce product into ``Product`` field values."""

    return {
        "external_id": str(item["id"]),
        "name": str(item.get("name") or "").strip() or f"Product {item['id']}",
        "description": item.get("description") or item.get("short_description") or None,
        "price": _price(item.get("price")),
        "sale_price": _price(item.get("sale_price")),
        "category": _first(item.get("categories"), "name") or "Uncategorized",
        "image_url": _first(item.get("images"), "src"),
        "product_url": item.get("permalink") or None,
        "sku": item.get("sku") or None,
        "stock_quantity": _int_or_none(item.get("stock_quantity")),
        "is_active": item.get("status", "publish") == "publish",
        "source_platform": WOOCOMMERCE,
    }


class CatalogImporter:
    """Upserts a business's products from one of its active integrations."""

    def __init__(self, session: Session, client: WooCommerceClient) -> None:
        self._session = session
        self._client = client

    async def import_products(
        self, business_id: UUID, platform: str
    ) -> tuple[Integration, ImportReport]:
        integration = self._active_integration(business_id, platform)
        if platform != WOOCOMMERCE:
            raise ValidationError(
                "product import is not supported for this platform",
                details={"platform": platform},
            )
        credentials = integration.credentials or {}
        missing = [key for key in REQUIRED_CREDENTIALS if not credentials.get(key)]
        if missing:
            raise ValidationError(
                "integration credentials are incomplete", details={"missing": missing}
            )

        try:
            items = await self._client.fetch_products(credentials)
        except CatalogImportFailed:
            PRODUCTS_IMPORTED.labels(platform, "failed").inc()
            raise

        report = ImportReport(fetched=len(items))
        existing = self._existing_products(business_id)
        now = datetime.now(tz=UTC)
        for item in items:
            if item.get("id") in (None, ""):
                continue
            values = map_woocommerce_product(item)
            product = existing.get(values["external_id"])
            if product is None:
                product = Product(business_id=business_id, **values)
                existing[product.external_id] = product
                report.created += 1
            else:
                if apply_product_changes(product, values):
                    report.invalidated += 1
                product.updated_at = now
                report.updated += 1
            self._session.add(product)

        integration.last_sync_at = now
        integration.products_count = report.imported
        integration.updated_at = now
        self._session.add(integration)
        self._session.commit()
        self._session.refresh(integration)

        PRODUCTS_IMPORTED.labels(platform, "ok").inc(report.imported)
        logger.info(
            "catalog import finished",
            extra={
                "business_id": str(business_id),
                "platform": platform,
                "created": report.created,
                "updated": report.updated,
                "invalidated": report.invalidated,
            },
        )
        return integration, report

    def _active_integration(self, business_id: UUID, platform: str) -> Integration:
        statement = select(Integration).where(
            Integration.business_id == business_id,
            Integration.platform == platform,
            col(Integration.is_active).is_(True),
        )
        integration = self._session.exec(statement).first()
        if integration is None:
            raise NotFoundError(
                "integration not found or not active",
                details={"business_id": str(business_id), "platform": platform},
            )
        return integration

    def _existing_products(self, business_id: UUID) -> dict[str, Product]:
        statement = select(Product).where(
            Product.business_id == business_id, col(Product.external_id).is_not(None)
        )
        return {product.external_id: product for product in self._session.exec(statement).all()}
