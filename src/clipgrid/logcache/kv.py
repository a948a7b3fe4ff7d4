"""
Key-Value Stores
================

Backends for the two log cache tiers.

Both backends store JSON-compatible dicts and support an optional TTL.
Expired entries read as missing.

Backends:
    - MemoryKeyValueStore: process-local dict (default, tests, single worker)
    - FileKeyValueStore: one JSON file per key under a directory, shared
      by the server and the offline backfill script
"""

import json
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol, Tuple

from clipgrid.config import CacheConfig


logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Minimal JSON key-value interface with optional expiry."""

    def get(self, key: str) -> Optional[dict]:
        ...

    def put(self, key: str, value: dict, ttl_seconds: Optional[int] = None) -> None:
        ...


class MemoryKeyValueStore:
    """
    In-process key-value store.

    Values are stored serialized so callers never share mutable state
    with the store.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def get(self, key: str) -> Optional[dict]:
        entry = self._data.get(key)
        if entry is None:
            return None
        encoded, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return json.loads(encoded)

    def put(self, key: str, value: dict, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (json.dumps(value), expires_at)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore:
    """
    Directory-backed key-value store.

    Each key is a file `<root>/<sanitized key>.json` holding
    {"expires_at": <unix time or null>, "value": {...}}. Writes go through
    a temporary file and os.replace, so readers never see partial files.
    """

    def __init__(self, root: str, clock: Callable[[], float] = time.time) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._clock = clock

    def _path(self, key: str) -> Path:
        return self.root / (re.sub(r"[^A-Za-z0-9_.-]", "_", key) + ".json")

    def get(self, key: str) -> Optional[dict]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r") as f:
            envelope = json.load(f)
        expires_at = envelope.get("expires_at")
        if expires_at is not None and self._clock() >= expires_at:
            logger.debug(f"Key {key} expired")
            return None
        return envelope.get("value")

    def put(self, key: str, value: dict, ttl_seconds: Optional[int] = None) -> None:
        envelope = {
            "expires_at": self._clock() + ttl_seconds if ttl_seconds else None,
            "value": value,
        }
        fd, tmp_path = tempfile.mkstemp(dir=self.root, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(envelope, f)
            os.replace(tmp_path, self._path(key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def create_store(config: CacheConfig) -> KeyValueStore:
    """Build the configured key-value backend."""
    if config.backend == "memory":
        logger.info("Using MemoryKeyValueStore")
        return MemoryKeyValueStore()
    elif config.backend == "file":
        logger.info(f"Using FileKeyValueStore at {config.path}")
        return FileKeyValueStore(config.path)
    else:
        raise ValueError(f"Unknown cache backend: {config.backend}")
