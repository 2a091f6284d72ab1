"""In-memory lookup cache for product existence checks during a tick.

Bulk-loads SKU, reference and reference-base mappings into dicts when
warmed, replacing thousands of per-record existence queries with three
bulk reads. Nothing here is persisted; a new cache is built per tick.
"""

from collections.abc import Iterable
from typing import Protocol

import structlog

logger = structlog.get_logger()


class ProductIndexReader(Protocol):
    """Bulk reads of (key, product_id) pairs from the local product store."""

    async def sku_index(self) -> Iterable[tuple[str, int]]: ...

    async def reference_index(self) -> Iterable[tuple[str, int]]: ...

    async def reference_base_index(self) -> Iterable[tuple[str, int]]: ...


class ProductLookupCache:
    """O(1) lookups of existing local products by SKU, reference or grouping key."""

    def __init__(self, reader: ProductIndexReader):
        self.reader = reader
        self._sku_map: dict[str, int] = {}
        self._reference_map: dict[str, int] = {}
        # First match wins for the grouping key
        self._reference_base_map: dict[str, int] = {}
        self.loaded = False

    async def warm(self) -> None:
        """Populate all three maps with exactly three bulk reads."""
        self._sku_map = {sku: product_id for sku, product_id in await self.reader.sku_index() if sku}
        self._reference_map = {
            ref: product_id for ref, product_id in await self.reader.reference_index() if ref
        }

        self._reference_base_map = {}
        for base, product_id in await self.reader.reference_base_index():
            if base and base not in self._reference_base_map:
                self._reference_base_map[base] = product_id

        self.loaded = True
        logger.debug("Lookup cache warmed", **self.get_stats())

    def find_by_sku(self, sku: str) -> int | None:
        if not sku:
            return None
        return self._sku_map.get(sku)

    def find_by_reference(self, reference: str) -> int | None:
        if not reference:
            return None
        return self._reference_map.get(reference)

    def find_by_reference_base(self, base: str) -> int | None:
        if not base:
            return None
        return self._reference_base_map.get(base)

    def record(self, product_id: int, sku: str = "", reference: str = "", base: str = "") -> None:
        """Reflect a write so later sub-batches see it without re-warming."""
        if sku:
            self._sku_map[sku] = product_id
        if reference:
            self._reference_map[reference] = product_id
        if base and base not in self._reference_base_map:
            self._reference_base_map[base] = product_id

    def remove_sku(self, sku: str) -> None:
        self._sku_map.pop(sku, None)

    def get_stats(self) -> dict[str, int]:
        return {
            "sku_count": len(self._sku_map),
            "reference_count": len(self._reference_map),
            "base_count": len(self._reference_base_map),
        }
