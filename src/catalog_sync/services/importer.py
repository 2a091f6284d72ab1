"""Idempotent upsert of catalog records into the local product store."""

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError

from catalog_sync.config import Settings
from catalog_sync.infrastructure.catalog import CatalogApiClient
from catalog_sync.infrastructure.database.repositories import ProductRepository, ProfileConfig
from catalog_sync.services.lookup_cache import ProductLookupCache
from catalog_sync.services.pricing import PricingConverter
from catalog_sync.services.transformer import PARENT_SUFFIX, NormalizedProduct, ProductTransformer

logger = structlog.get_logger()

# Data problems that fail one record; anything else fails the tick
RECORD_ERRORS = (ValueError, TypeError, LookupError, IntegrityError)


@dataclass
class BatchResult:
    created: int = 0
    updated: int = 0
    failed: int = 0

    def add(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)


class ProductImporter:
    """Transforms raw records and writes them, reusing the tick's lookup cache.

    Running the same records twice converges: the second run finds every
    SKU in the cache and only updates.
    """

    def __init__(self, api: CatalogApiClient, products: ProductRepository, settings: Settings):
        self.api = api
        self.products = products
        self.settings = settings

    def transformer_for(self, profile: ProfileConfig) -> ProductTransformer:
        pricing = PricingConverter(
            exchange_rate=profile.exchange_rate,
            markup_percent=profile.markup_percent,
            source_currency=self.settings.source_currency,
            target_currency=self.settings.target_currency,
        )
        return ProductTransformer(pricing, profile.target_language)

    async def sync_categories(self) -> int:
        """Mirror the catalog category tree locally. Returns categories saved."""
        text = ProductTransformer(PricingConverter(), self.settings.target_language).text
        saved = 0
        for raw in await self.api.fetch_category_tree():
            category = {str(k).lower(): v for k, v in raw.items()}
            reference = category.get("reference") or category.get("id")
            if reference in (None, ""):
                continue
            parent = category.get("parentreference") or category.get("parent") or None
            await self.products.save_category(
                str(reference),
                text(category.get("name")) or str(reference),
                str(parent) if parent is not None else None,
            )
            saved += 1
        logger.info("Categories synchronized", count=saved)
        return saved

    async def transform_batch(
        self,
        raw_records: list[dict[str, Any]],
        profile: ProfileConfig,
        cache: ProductLookupCache,
    ) -> BatchResult:
        transformer = self.transformer_for(profile)
        result = BatchResult()

        for raw in raw_records:
            try:
                products = transformer.transform(raw)
            except RECORD_ERRORS as e:
                logger.warning("Skipping malformed catalog record", error=str(e))
                result.failed += 1
                continue

            for product in products:
                try:
                    result.add(await self._upsert(product, cache))
                except RECORD_ERRORS as e:
                    logger.warning("Failed to import product", sku=product.sku, error=str(e))
                    result.failed += 1

        return result

    async def _upsert(self, product: NormalizedProduct, cache: ProductLookupCache) -> str:
        existing_id = cache.find_by_sku(product.sku)

        superseded_sku = ""
        if existing_id is None and not product.is_variant and not product.synthetic_sku:
            legacy_sku = f"{product.reference_base}{PARENT_SUFFIX}"
            legacy_id = cache.find_by_sku(legacy_sku) if legacy_sku != product.sku else None
            if legacy_id is not None:
                existing_id, superseded_sku = legacy_id, legacy_sku

        if existing_id is not None:
            await self.products.update(existing_id, product)
            cache.record(existing_id, product.sku, product.reference, product.reference_base)
            if superseded_sku:
                cache.remove_sku(superseded_sku)
                logger.debug("Legacy container key replaced", old_sku=superseded_sku, sku=product.sku)
            return "updated"

        parent_id = self._detect_parent(product, cache)
        new_id = await self.products.create(product, parent_id)
        cache.record(new_id, product.sku, product.reference, product.reference_base)
        return "created"

    @staticmethod
    def _detect_parent(product: NormalizedProduct, cache: ProductLookupCache) -> int | None:
        if product.is_variant:
            parent_id = cache.find_by_sku(product.parent_sku)
            if parent_id is not None:
                return parent_id
        if product.product_type == "variable":
            return None

        base = product.reference_base
        if not base or base == product.sku:
            return None
        return cache.find_by_reference_base(base) or cache.find_by_sku(f"{base}{PARENT_SUFFIX}")
