"""Stock reconciliation pass run after the product phase."""

from typing import Any

import structlog

from catalog_sync.config import Settings
from catalog_sync.infrastructure.catalog import CatalogApiClient
from catalog_sync.infrastructure.database.repositories import ProductRepository, ProfileConfig
from catalog_sync.services.lookup_cache import ProductLookupCache

logger = structlog.get_logger()


def _stock_entry(raw: dict[str, Any]) -> tuple[str, int] | None:
    entry = {str(k).lower(): v for k, v in raw.items()}
    reference = entry.get("reference") or entry.get("sku")
    quantity = entry.get("stock", entry.get("quantity"))
    if not reference or quantity is None:
        return None
    try:
        return str(reference), max(0, int(quantity))
    except (TypeError, ValueError):
        return None


class StockSynchronizer:
    def __init__(self, api: CatalogApiClient, products: ProductRepository, settings: Settings):
        self.api = api
        self.products = products
        self.page_size = settings.sync_stock_page_size
        self.max_pages = settings.sync_max_pages

    async def reconcile(
        self, cache: ProductLookupCache, profile: ProfileConfig | None = None
    ) -> dict[str, int]:
        """Write catalog stock levels onto matching local products.

        Pages through the stock feed until an empty or short page. References
        with no local product are counted as ``missing``.
        """
        updated = missing = 0

        for page in range(self.max_pages):
            entries = await self.api.fetch_stock_page(page, self.page_size)
            for raw in entries:
                parsed = _stock_entry(raw) if isinstance(raw, dict) else None
                if parsed is None:
                    continue
                reference, quantity = parsed
                product_id = cache.find_by_reference(reference) or cache.find_by_sku(reference)
                if product_id is None:
                    missing += 1
                    continue
                if await self.products.set_stock(product_id, quantity):
                    updated += 1
                else:
                    missing += 1

            if len(entries) < self.page_size:
                break

        logger.info(
            "Stock reconciled",
            profile=profile.name if profile else None,
            updated=updated,
            missing=missing,
        )
        return {"updated": updated, "missing": missing}
