"""Unit tests for the product importer against the local store."""

import pytest
from sqlalchemy import func, select

from catalog_sync.infrastructure.database.models import CatalogCategory, CatalogProduct
from catalog_sync.infrastructure.database.repositories import ProductRepository, ProfileConfig
from catalog_sync.services.importer import BatchResult, ProductImporter
from catalog_sync.services.lookup_cache import ProductLookupCache

DEFAULT_PROFILE = ProfileConfig(id=None, name="Default")


@pytest.fixture
def products(session_factory) -> ProductRepository:
    return ProductRepository(session_factory)


@pytest.fixture
def importer(fake_api, products, test_settings) -> ProductImporter:
    return ProductImporter(fake_api, products, test_settings)


async def import_records(importer: ProductImporter, products: ProductRepository, records) -> BatchResult:
    cache = ProductLookupCache(products)
    await cache.warm()
    return await importer.transform_batch(records, DEFAULT_PROFILE, cache)


async def product_rows(session_factory) -> dict[str, CatalogProduct]:
    async with session_factory() as session:
        rows = (await session.scalars(select(CatalogProduct))).all()
        return {row.sku: row for row in rows}


def helmet_variants() -> list[dict]:
    return [
        {"Reference": "HELMET-RED", "Name": "Helmet", "Net": 20, "Attributes": {"color": "Red"}},
        {"Reference": "HELMET-BLUE", "Name": "Helmet", "Net": 21, "Attributes": {"color": "Blue"}},
    ]


class TestTransformBatch:
    @pytest.mark.asyncio
    async def test_second_run_only_updates(self, importer, products, session_factory, make_record) -> None:
        records = [make_record(1), make_record(2)]

        first = await import_records(importer, products, records)
        second = await import_records(importer, products, records)

        assert first == BatchResult(created=2, updated=0, failed=0)
        assert second == BatchResult(created=0, updated=2, failed=0)
        assert set(await product_rows(session_factory)) == {"SKU-0001", "SKU-0002"}

    @pytest.mark.asyncio
    async def test_malformed_record_counts_as_failed(self, importer, products, make_record) -> None:
        result = await import_records(importer, products, [make_record(1), {"Name": "no reference"}])

        assert result.created == 1
        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_variants_link_to_container(self, importer, products, session_factory) -> None:
        record = {"Reference": "HELMET", "Name": "Helmet", "RRP": 50, "Variants": helmet_variants()}

        result = await import_records(importer, products, [record])

        assert result.created == 3
        rows = await product_rows(session_factory)
        assert rows["HELMET"].product_type == "variable"
        assert rows["HELMET"].parent_id is None
        assert rows["HELMET-RED"].parent_id == rows["HELMET"].id
        assert rows["HELMET-BLUE"].parent_id == rows["HELMET"].id

    @pytest.mark.asyncio
    async def test_standalone_variant_found_by_grouping_key(self, importer, products, session_factory) -> None:
        await import_records(
            importer, products, [{"Reference": "HELMET", "Name": "Helmet", "Variants": helmet_variants()}]
        )

        result = await import_records(importer, products, [{"Reference": "HELMET-XL", "Name": "Helmet XL"}])

        assert result.created == 1
        rows = await product_rows(session_factory)
        assert rows["HELMET-XL"].parent_id == rows["HELMET"].id

    @pytest.mark.asyncio
    async def test_real_container_replaces_synthetic_key(self, importer, products, session_factory) -> None:
        first = await import_records(importer, products, [{"Variants": helmet_variants()}])
        assert first.created == 3
        assert "HELMET-parent" in await product_rows(session_factory)

        second = await import_records(
            importer, products, [{"Reference": "HELMET", "Name": "Helmet", "Variants": helmet_variants()}]
        )

        assert second == BatchResult(created=0, updated=3, failed=0)
        rows = await product_rows(session_factory)
        assert set(rows) == {"HELMET", "HELMET-RED", "HELMET-BLUE"}
        assert rows["HELMET-RED"].parent_id == rows["HELMET"].id

    @pytest.mark.asyncio
    async def test_stock_level_sets_stock_status(self, importer, products, session_factory, make_record) -> None:
        await import_records(importer, products, [make_record(1, Stock=0), make_record(2, Stock=3)])

        rows = await product_rows(session_factory)
        assert rows["SKU-0001"].stock_status == "outofstock"
        assert rows["SKU-0002"].stock_status == "instock"

    @pytest.mark.asyncio
    async def test_profile_pricing_applies(self, importer, products, session_factory, make_record) -> None:
        profile = ProfileConfig(id=1, name="Markup", exchange_rate=2.0, markup_percent=50)
        cache = ProductLookupCache(products)
        await cache.warm()

        await importer.transform_batch([make_record(0, RRP=10)], profile, cache)

        rows = await product_rows(session_factory)
        assert rows["SKU-0000"].regular_price == 30.0


class TestSyncCategories:
    @pytest.mark.asyncio
    async def test_categories_are_upserted(self, importer, fake_api, session_factory) -> None:
        fake_api.categories = [
            {"Reference": "C1", "Name": {"en": "Scooters"}},
            {"Reference": "C2", "Name": "Helmets", "ParentReference": "C1"},
            {"Name": "No reference"},
        ]

        assert await importer.sync_categories() == 2
        assert await importer.sync_categories() == 2

        async with session_factory() as session:
            count = await session.scalar(select(func.count(CatalogCategory.id)))
            child = await session.scalar(select(CatalogCategory).where(CatalogCategory.reference == "C2"))
        assert count == 2
        assert child.name == "Helmets"
        assert child.parent_reference == "C1"
