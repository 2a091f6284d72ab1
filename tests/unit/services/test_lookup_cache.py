"""Unit tests for the per-tick product lookup cache."""

import pytest

from catalog_sync.services.lookup_cache import ProductLookupCache


class StaticIndexReader:
    def __init__(self, skus=(), references=(), bases=()):
        self.skus = list(skus)
        self.references = list(references)
        self.bases = list(bases)
        self.reads = 0

    async def sku_index(self):
        self.reads += 1
        return self.skus

    async def reference_index(self):
        self.reads += 1
        return self.references

    async def reference_base_index(self):
        self.reads += 1
        return self.bases


class TestProductLookupCache:
    @pytest.mark.asyncio
    async def test_warm_uses_three_bulk_reads(self) -> None:
        reader = StaticIndexReader(
            skus=[("A-1", 1), ("B-1", 2)],
            references=[("A-1", 1)],
            bases=[("A", 1)],
        )
        cache = ProductLookupCache(reader)
        await cache.warm()

        assert reader.reads == 3
        assert cache.loaded is True
        assert cache.find_by_sku("B-1") == 2
        assert cache.find_by_reference("A-1") == 1
        assert cache.find_by_reference_base("A") == 1
        assert cache.get_stats() == {"sku_count": 2, "reference_count": 1, "base_count": 1}

    @pytest.mark.asyncio
    async def test_first_match_wins_for_reference_base(self) -> None:
        reader = StaticIndexReader(bases=[("MP-010", 5), ("MP-010", 9)])
        cache = ProductLookupCache(reader)
        await cache.warm()

        assert cache.find_by_reference_base("MP-010") == 5

    @pytest.mark.asyncio
    async def test_empty_keys_are_ignored(self) -> None:
        reader = StaticIndexReader(skus=[("", 1), (None, 2)])
        cache = ProductLookupCache(reader)
        await cache.warm()

        assert cache.get_stats()["sku_count"] == 0
        assert cache.find_by_sku("") is None
        assert cache.find_by_reference("") is None
        assert cache.find_by_reference_base("") is None

    def test_record_reflects_writes(self) -> None:
        cache = ProductLookupCache(StaticIndexReader())
        cache.record(10, sku="X-1", reference="X-1", base="X")
        cache.record(11, sku="X-2", reference="X-2", base="X")

        assert cache.find_by_sku("X-2") == 11
        assert cache.find_by_reference("X-1") == 10
        # Existing grouping key is not overwritten
        assert cache.find_by_reference_base("X") == 10

    def test_remove_sku(self) -> None:
        cache = ProductLookupCache(StaticIndexReader())
        cache.record(3, sku="MP-parent")
        cache.remove_sku("MP-parent")
        cache.remove_sku("never-there")

        assert cache.find_by_sku("MP-parent") is None
