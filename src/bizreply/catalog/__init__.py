"""Product catalog: CRUD, embeddings, similarity search and embedding sync."""

from .embeddings import EmbeddingService, EmbeddingUnavailable
from .importer import CatalogImporter, ImportReport, WooCommerceClient
from .products import ProductService
from .search import ProductIndex, ProductMatch, ProductRecommender, product_index_for
from .sync import ProductSyncService, SyncReport, apply_product_changes, build_embedding_text

__all__ = [
    "CatalogImporter",
    "EmbeddingService",
    "EmbeddingUnavailable",
    "ImportReport",
    "ProductIndex",
    "ProductMatch",
    "ProductRecommender",
    "ProductService",
    "ProductSyncService",
    "SyncReport",
    "WooCommerceClient",
    "apply_product_changes",
    "build_embedding_text",
    "product_index_for",
]
