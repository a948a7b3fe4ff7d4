"""
Log Cache Module
================

Server-side reconciliation of ClipUpdated logs across a historical tier,
a short-TTL recent tier and live chain RPC.

Components:
    - KeyValueStore, MemoryKeyValueStore, FileKeyValueStore: tier storage
    - LogCache: per-request reconciliation
    - populate_historical: offline backfill of the historical tier
"""

from clipgrid.logcache.kv import (
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    create_store,
)
from clipgrid.logcache.cache import (
    CacheSnapshot,
    CacheSource,
    LogCache,
    ReconcileResult,
    block_chunks,
    latest_per_user,
    merge_logs,
    sort_logs,
)
from clipgrid.logcache.backfill import populate_historical


__all__ = [
    "FileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "create_store",
    "CacheSnapshot",
    "CacheSource",
    "LogCache",
    "ReconcileResult",
    "block_chunks",
    "latest_per_user",
    "merge_logs",
    "sort_logs",
    "populate_historical",
]
