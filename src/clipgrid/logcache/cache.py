"""
Log Cache
=========

Three-tier reconciliation of ClipUpdated logs.

Tiers:
    historical  long-lived snapshot written by the offline backfill, no TTL
    recent      short-TTL snapshot of the last successful merge
    chain RPC   authoritative source for anything newer than both tiers

Algorithm (per request):
    1. Load historical as the base (height H)
    2. Load recent; if its height R >= H it becomes the base
    3. Query the chain head C
    4. Base height >= C: return the base, sorted, no fetch
    5. Otherwise page (base height, C] in chunks of at most
       block_range_limit blocks; a failed chunk is logged and skipped
    6. Merge base + fetched, stable sort (timestamp, block, log index; all
       descending), keep the first copy of each (tx hash, log index)
    7. Caller persists the merge as the new recent tier (deferred write)
    8. Return the merge and the height it covers

With no tier at all the fetch starts initial_lookback_blocks below C.
A tier whose height is above C (rollback) is clamped to C and loses the
entries above C.

Design Rules:
    - Tiers are never written before the merge has completed
    - Concurrent requests may race on the recent tier; last writer wins
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer

from clipgrid.chain.models import LogEntry
from clipgrid.chain.store import ChainRpc
from clipgrid.errors import RpcChunkFailure, RpcError
from clipgrid.logcache.kv import KeyValueStore


logger = logging.getLogger(__name__)


BLOCK_RANGE_LIMIT = 1000
INITIAL_LOOKBACK_BLOCKS = 10000
RECENT_CACHE_TTL_SECONDS = 120


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Models
# =============================================================================

class CacheSource(str, Enum):
    """Where a reconciliation result came from."""

    HIT_HISTORICAL = "hit_historical"
    HIT_RECENT = "hit_recent"
    RPC_DELTA_UPDATE = "rpc_delta_update"
    RPC_INITIAL_FETCH = "rpc_initial_fetch"


class CacheSnapshot(BaseModel):
    """
    Persisted cache tier.

    Stored as {"logs": [...], "coveredThroughBlock": "<int>",
    "timestamp": "<ISO-8601>"}.
    """

    model_config = ConfigDict(populate_by_name=True)

    logs: List[LogEntry] = Field(default_factory=list)
    covered_through_block: int = Field(..., ge=0, alias="coveredThroughBlock")
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_serializer("covered_through_block")
    def _height_as_string(self, value: int) -> str:
        return str(value)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


@dataclass
class ReconcileResult:
    """
    Outcome of one reconciliation.

    Attributes:
        logs: Deduplicated entries, newest first
        covered_through_block: Highest block the logs account for
        source: Tier or fetch mode that produced the result
        fetched: Whether any RPC log query was issued
        failed_chunks: Block ranges skipped after a query failure
        cache_timestamp: When the result was assembled
    """

    logs: List[LogEntry]
    covered_through_block: int
    source: CacheSource
    fetched: bool = False
    failed_chunks: List[Tuple[int, int]] = field(default_factory=list)
    cache_timestamp: datetime = field(default_factory=_utcnow)

    @property
    def cache_status(self) -> str:
        """Value for the X-Cache-Status response header."""
        if self.source is CacheSource.RPC_DELTA_UPDATE:
            return "MISS_DELTA"
        if self.source is CacheSource.RPC_INITIAL_FETCH:
            return "MISS_INITIAL"
        return self.source.value.upper() + "_UPTODATE"

    def to_response(self) -> dict:
        return {
            "logs": [log.to_json() for log in self.logs],
            "cachedUpToBlock": str(self.covered_through_block),
            "totalLogs": len(self.logs),
            "source": self.source.value,
            "cacheTimestamp": self.cache_timestamp.isoformat(),
        }

    def to_snapshot(self) -> CacheSnapshot:
        return CacheSnapshot(
            logs=self.logs,
            covered_through_block=self.covered_through_block,
            timestamp=self.cache_timestamp,
        )


# =============================================================================
# Merge Helpers
# =============================================================================

def sort_logs(logs: Iterable[LogEntry]) -> List[LogEntry]:
    """Stable sort: timestamp, block number, log index, all descending."""
    return sorted(logs, key=lambda log: log.sort_key, reverse=True)


def merge_logs(*groups: Iterable[LogEntry]) -> List[LogEntry]:
    """Concatenate, sort newest first and drop repeated (tx hash, log index)."""
    combined: List[LogEntry] = []
    for group in groups:
        combined.extend(group)

    seen = set()
    unique = []
    for log in sort_logs(combined):
        if log.identity not in seen:
            seen.add(log.identity)
            unique.append(log)
    return unique


def latest_per_user(logs: Iterable[LogEntry]) -> List[LogEntry]:
    """Newest entry of each user, ordered newest first."""
    latest: Dict[str, LogEntry] = {}
    for log in sort_logs(logs):
        latest.setdefault(log.user.lower(), log)
    return list(latest.values())


def block_chunks(from_block: int, to_block: int, limit: int) -> Iterator[Tuple[int, int]]:
    """Inclusive [start, end] ranges of at most `limit` blocks."""
    if limit < 1:
        raise ValueError("limit must be >= 1")
    start = from_block
    while start <= to_block:
        end = min(start + limit - 1, to_block)
        yield start, end
        start = end + 1


# =============================================================================
# Log Cache
# =============================================================================

class LogCache:
    """
    Reconciles the cache tiers with the chain.

    Example:
        cache = LogCache(store, rpc)
        result = cache.reconcile()
        cache.persist_recent(result)   # deferred in the HTTP handler
    """

    def __init__(
        self,
        store: KeyValueStore,
        rpc: ChainRpc,
        historical_key: str = "clipgrid:historical_logs_v1",
        recent_key: str = "clipgrid:recent_logs_v2",
        block_range_limit: int = BLOCK_RANGE_LIMIT,
        initial_lookback_blocks: int = INITIAL_LOOKBACK_BLOCKS,
        recent_ttl_seconds: int = RECENT_CACHE_TTL_SECONDS,
    ) -> None:
        if block_range_limit < 1:
            raise ValueError("block_range_limit must be >= 1")
        if initial_lookback_blocks < 1:
            raise ValueError("initial_lookback_blocks must be >= 1")

        self.store = store
        self.rpc = rpc
        self.historical_key = historical_key
        self.recent_key = recent_key
        self.block_range_limit = block_range_limit
        self.initial_lookback_blocks = initial_lookback_blocks
        self.recent_ttl_seconds = recent_ttl_seconds

    def _load(self, key: str, tier: str) -> Optional[CacheSnapshot]:
        try:
            data = self.store.get(key)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading {tier} cache ({key}): {e}")
            return None

        if data is None:
            logger.info(f"{tier.capitalize()} cache miss")
            return None
        try:
            snapshot = CacheSnapshot.model_validate(data)
        except ValidationError as e:
            logger.error(f"Invalid {tier} cache structure: {e.error_count()} errors")
            return None

        logger.info(
            f"{tier.capitalize()} cache hit: {len(snapshot.logs)} logs "
            f"up to block {snapshot.covered_through_block}"
        )
        return snapshot

    @staticmethod
    def _clamp(snapshot: CacheSnapshot, head: int, tier: str) -> Tuple[List[LogEntry], int]:
        if snapshot.covered_through_block <= head:
            return snapshot.logs, snapshot.covered_through_block
        logger.warning(
            f"{tier.capitalize()} cache covers block {snapshot.covered_through_block} "
            f"beyond chain head {head}; clamping"
        )
        return [log for log in snapshot.logs if log.block_number <= head], head

    def _fetch_range(self, from_block: int, to_block: int) -> Tuple[List[LogEntry], List[Tuple[int, int]]]:
        fetched: List[LogEntry] = []
        failed: List[Tuple[int, int]] = []
        for start, end in block_chunks(from_block, to_block, self.block_range_limit):
            try:
                chunk = self.rpc.get_logs(start, end)
            except RpcError as e:
                failure = RpcChunkFailure(start, end, e)
                logger.error(str(failure))
                failed.append((start, end))
                continue
            if chunk:
                logger.info(f"Found {len(chunk)} logs in chunk {start}-{end}")
                fetched.extend(chunk)
        return fetched, failed

    def reconcile(self) -> ReconcileResult:
        """
        Produce the merged, deduplicated log set.

        Does not write any tier; call persist_recent() with the result
        when `result.fetched` is true.

        Raises:
            RpcError: If the chain head cannot be queried
        """
        historical = self._load(self.historical_key, "historical")
        recent = self._load(self.recent_key, "recent")

        head = self.rpc.block_number()
        logger.info(f"Chain head: {head}")

        base_logs: List[LogEntry] = []
        covered: Optional[int] = None
        source: Optional[CacheSource] = None

        if historical is not None:
            base_logs, covered = self._clamp(historical, head, "historical")
            source = CacheSource.HIT_HISTORICAL
        if recent is not None and (covered is None or recent.covered_through_block >= covered):
            base_logs, covered = self._clamp(recent, head, "recent")
            source = CacheSource.HIT_RECENT

        if covered is not None and covered >= head:
            logger.info(f"Cache ({source.value}) is up to date with block {head}")
            return ReconcileResult(
                logs=merge_logs(base_logs),
                covered_through_block=covered,
                source=source,
            )

        if covered is None:
            from_block = max(0, head - (self.initial_lookback_blocks - 1))
            source = CacheSource.RPC_INITIAL_FETCH
            logger.info(f"Initial fetch: blocks {from_block}-{head}")
        else:
            from_block = covered + 1
            source = CacheSource.RPC_DELTA_UPDATE
            logger.info(f"Delta fetch: blocks {from_block}-{head} on {len(base_logs)} base logs")

        fetched, failed = self._fetch_range(from_block, head)
        if failed:
            logger.warning(f"{len(failed)} chunk(s) skipped; result is partial")

        merged = merge_logs(base_logs, fetched)
        logger.info(f"Merged {len(base_logs)} base + {len(fetched)} new into {len(merged)} unique logs")

        return ReconcileResult(
            logs=merged,
            covered_through_block=head,
            source=source,
            fetched=True,
            failed_chunks=failed,
        )

    def persist_recent(self, result: ReconcileResult) -> None:
        """Write `result` as the recent tier. Failures are logged, not raised."""
        try:
            self.store.put(
                self.recent_key,
                result.to_snapshot().to_json(),
                ttl_seconds=self.recent_ttl_seconds,
            )
            logger.info(
                f"Recent cache updated to block {result.covered_through_block} "
                f"(ttl={self.recent_ttl_seconds}s)"
            )
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error writing recent cache: {e}")

    def refresh(self) -> ReconcileResult:
        """Reconcile and persist synchronously."""
        result = self.reconcile()
        if result.fetched:
            self.persist_recent(result)
        return result
