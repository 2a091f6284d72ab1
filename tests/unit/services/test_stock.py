"""Unit tests for stock reconciliation."""

import pytest

from catalog_sync.infrastructure.database.models import CatalogProduct
from catalog_sync.infrastructure.database.repositories import ProductRepository
from catalog_sync.services.lookup_cache import ProductLookupCache
from catalog_sync.services.stock import StockSynchronizer, _stock_entry
from catalog_sync.services.transformer import NormalizedProduct


def test_stock_entry_parsing() -> None:
    assert _stock_entry({"Reference": "A-1", "Stock": "5"}) == ("A-1", 5)
    assert _stock_entry({"sku": "A-1", "quantity": -3}) == ("A-1", 0)
    assert _stock_entry({"Reference": "A-1"}) is None
    assert _stock_entry({"Stock": 2}) is None
    assert _stock_entry({"Reference": "A-1", "Stock": "lots"}) is None


class TestStockSynchronizer:
    @pytest.mark.asyncio
    async def test_reconcile_updates_known_products(self, session_factory, fake_api, test_settings) -> None:
        products = ProductRepository(session_factory)
        product_id = await products.create(NormalizedProduct(sku="A-1", reference="A-1", reference_base="A-1"))
        fake_api.stock = [
            {"Reference": "A-1", "Stock": 0},
            {"Reference": "UNKNOWN", "Stock": 4},
            {"Broken": True},
        ]

        cache = ProductLookupCache(products)
        await cache.warm()
        result = await StockSynchronizer(fake_api, products, test_settings).reconcile(cache)

        assert result == {"updated": 1, "missing": 1}
        async with session_factory() as session:
            product = await session.get(CatalogProduct, product_id)
        assert product.stock_quantity == 0
        assert product.stock_status == "outofstock"

    @pytest.mark.asyncio
    async def test_reconcile_pages_until_short_page(self, session_factory, fake_api, test_settings) -> None:
        test_settings.sync_stock_page_size = 2
        products = ProductRepository(session_factory)
        for sku in ("A-1", "A-2", "A-3"):
            await products.create(NormalizedProduct(sku=sku, reference=sku, reference_base=sku))
        fake_api.stock = [{"Reference": sku, "Stock": 1} for sku in ("A-1", "A-2", "A-3")]

        cache = ProductLookupCache(products)
        await cache.warm()
        result = await StockSynchronizer(fake_api, products, test_settings).reconcile(cache)

        assert result == {"updated": 3, "missing": 0}
