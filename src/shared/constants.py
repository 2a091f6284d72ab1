"""Shared constants across the application."""

# Key-value store key prefixes, suffixed with the profile id (or the
# session id for the cooperative flags)
LEASE_KEY_PREFIX = "catalog_sync:lease"
STATUS_KEY_PREFIX = "catalog_sync:status"
STOP_FLAG_PREFIX = "catalog_sync:stop"
PAUSE_FLAG_PREFIX = "catalog_sync:pause"
LAST_SYNC_KEY_PREFIX = "catalog_sync:last_sync"

DEFAULT_SCOPE = "default"

# Celery task names
PROCESS_TICK_TASK = "sync_worker.tasks.sync_products.process_tick"
PROCESS_STOCK_PHASE_TASK = "sync_worker.tasks.sync_products.process_stock_phase"
START_SCHEDULED_SYNC_TASK = "sync_worker.tasks.sync_products.start_scheduled_sync"
CLEANUP_HISTORY_TASK = "sync_worker.tasks.sync_products.cleanup_sync_history"

# Session id prefix
SESSION_ID_PREFIX = "sync_"

# Default limits
DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 100

# Stock status literals written to the product store
STOCK_IN_STOCK = "instock"
STOCK_OUT_OF_STOCK = "outofstock"
