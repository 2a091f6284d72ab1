"""External catalog API integration."""

from catalog_sync.infrastructure.catalog.client import CatalogApiClient

__all__ = ["CatalogApiClient"]
