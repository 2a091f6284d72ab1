"""Sync engine services."""

from catalog_sync.services.batch_processor import SyncBatchProcessor
from catalog_sync.services.importer import BatchResult, ProductImporter
from catalog_sync.services.launcher import SyncLauncher
from catalog_sync.services.lookup_cache import ProductLookupCache
from catalog_sync.services.runtime import SyncRuntime, build_runtime
from catalog_sync.services.stock import StockSynchronizer
from catalog_sync.services.sync_history import SyncHistoryLedger

__all__ = [
    "BatchResult",
    "ProductImporter",
    "ProductLookupCache",
    "StockSynchronizer",
    "SyncBatchProcessor",
    "SyncHistoryLedger",
    "SyncLauncher",
    "SyncRuntime",
    "build_runtime",
]
