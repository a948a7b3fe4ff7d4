"""
Log Cache Tests
===============

Tests for tier reconciliation, merge helpers, key-value backends and the
historical backfill.
"""

import pytest

from clipgrid.config import CacheConfig
from clipgrid.errors import RpcError
from clipgrid.logcache.backfill import populate_historical
from clipgrid.logcache.cache import (
    CacheSnapshot,
    CacheSource,
    LogCache,
    block_chunks,
    latest_per_user,
    merge_logs,
    sort_logs,
)
from clipgrid.logcache.kv import FileKeyValueStore, MemoryKeyValueStore, create_store

from conftest import FakeClock, ScriptedRpc, make_log


HISTORICAL_KEY = "test:historical"
RECENT_KEY = "test:recent"


def put_tier(store, key, logs, covered, ttl=None):
    store.put(key, CacheSnapshot(logs=logs, covered_through_block=covered).to_json(), ttl)


def make_cache(store, rpc, **kwargs):
    return LogCache(
        store=store,
        rpc=rpc,
        historical_key=HISTORICAL_KEY,
        recent_key=RECENT_KEY,
        **kwargs,
    )


class TestMergeHelpers:
    """Tests for sorting, deduplication and chunking."""

    def test_sort_order(self):
        a = make_log(block=10, timestamp=100, log_index=0)
        b = make_log(block=11, timestamp=100, log_index=0, tx_hash="0xb")
        c = make_log(block=11, timestamp=100, log_index=3, tx_hash="0xc")
        d = make_log(block=5, timestamp=200)

        assert sort_logs([a, b, c, d]) == [d, c, b, a]

    def test_merge_deduplicates_on_identity(self):
        first = make_log(block=10, fid=1)
        duplicate = make_log(block=10, fid=1)
        other_index = make_log(block=10, log_index=1)

        merged = merge_logs([first], [duplicate, other_index])

        assert len(merged) == 2
        assert {log.identity for log in merged} == {first.identity, other_index.identity}

    def test_latest_per_user(self):
        old = make_log(block=1, user="0xA")
        new = make_log(block=3, user="0xa", tx_hash="0x3")
        other = make_log(block=2, user="0xb")

        assert latest_per_user([old, other, new]) == [new, other]

    def test_block_chunks(self):
        assert list(block_chunks(0, 2500, 1000)) == [(0, 999), (1000, 1999), (2000, 2500)]
        assert list(block_chunks(5, 5, 1000)) == [(5, 5)]
        assert list(block_chunks(6, 5, 1000)) == []

    def test_block_chunks_invalid_limit(self):
        with pytest.raises(ValueError):
            list(block_chunks(0, 10, 0))


class TestReconcile:
    """Tests for LogCache.reconcile and persist_recent."""

    def test_initial_fetch_uses_lookback(self, kv_store):
        rpc = ScriptedRpc(head=25000, logs=[make_log(block=20000), make_log(block=100)])
        result = make_cache(kv_store, rpc).reconcile()

        assert result.source is CacheSource.RPC_INITIAL_FETCH
        assert result.cache_status == "MISS_INITIAL"
        assert rpc.calls[0] == (15001, 16000)
        assert rpc.calls[-1] == (24001, 25000)
        assert len(rpc.calls) == 10
        assert [log.block_number for log in result.logs] == [20000]
        assert result.covered_through_block == 25000

    def test_initial_fetch_near_genesis(self, kv_store):
        rpc = ScriptedRpc(head=500)
        make_cache(kv_store, rpc).reconcile()
        assert rpc.calls == [(0, 500)]

    def test_chunks_respect_limit(self, kv_store):
        put_tier(kv_store, HISTORICAL_KEY, [], covered=1000)
        rpc = ScriptedRpc(head=3700)
        make_cache(kv_store, rpc, block_range_limit=1000).reconcile()

        assert rpc.calls == [(1001, 2000), (2001, 3000), (3001, 3700)]
        assert all(end - start + 1 <= 1000 for start, end in rpc.calls)

    def test_delta_from_historical(self, kv_store):
        old = make_log(block=900)
        put_tier(kv_store, HISTORICAL_KEY, [old], covered=1000)
        new = make_log(block=1500)
        rpc = ScriptedRpc(head=2500, logs=[old, new])

        result = make_cache(kv_store, rpc).reconcile()

        assert result.source is CacheSource.RPC_DELTA_UPDATE
        assert result.cache_status == "MISS_DELTA"
        assert result.fetched
        assert result.logs == [new, old]

    def test_reconcile_does_not_write(self, kv_store):
        rpc = ScriptedRpc(head=100)
        make_cache(kv_store, rpc).reconcile()
        assert kv_store.get(RECENT_KEY) is None

    def test_up_to_date_tier_skips_fetch(self, kv_store):
        put_tier(kv_store, HISTORICAL_KEY, [make_log(block=10)], covered=2000)
        rpc = ScriptedRpc(head=2000)

        result = make_cache(kv_store, rpc).reconcile()

        assert rpc.calls == []
        assert not result.fetched
        assert result.source is CacheSource.HIT_HISTORICAL
        assert result.cache_status == "HIT_HISTORICAL_UPTODATE"

    def test_recent_wins_when_at_least_as_high(self, kv_store):
        put_tier(kv_store, HISTORICAL_KEY, [make_log(block=10)], covered=1500)
        put_tier(kv_store, RECENT_KEY, [make_log(block=1800)], covered=2000)
        rpc = ScriptedRpc(head=2000)

        result = make_cache(kv_store, rpc).reconcile()

        assert result.source is CacheSource.HIT_RECENT
        assert [log.block_number for log in result.logs] == [1800]

    def test_historical_wins_when_higher(self, kv_store):
        put_tier(kv_store, HISTORICAL_KEY, [make_log(block=10)], covered=2000)
        put_tier(kv_store, RECENT_KEY, [make_log(block=1800)], covered=1500)
        rpc = ScriptedRpc(head=2000)

        result = make_cache(kv_store, rpc).reconcile()

        assert result.source is CacheSource.HIT_HISTORICAL

    def test_idempotent_without_new_blocks(self, kv_store):
        rpc = ScriptedRpc(head=5000, logs=[make_log(block=4000), make_log(block=4500)])
        cache = make_cache(kv_store, rpc)

        first = cache.refresh()
        calls_after_first = len(rpc.calls)
        second = cache.reconcile()

        assert second.logs == first.logs
        assert second.covered_through_block == first.covered_through_block
        assert second.source is CacheSource.HIT_RECENT
        assert len(rpc.calls) == calls_after_first

    def test_duplicates_within_a_tier_collapse(self, kv_store):
        entry = make_log(block=50)
        put_tier(kv_store, HISTORICAL_KEY, [entry, entry], covered=100)
        result = make_cache(kv_store, ScriptedRpc(head=100)).reconcile()
        assert result.logs == [entry]

    def test_failed_chunk_is_skipped(self, kv_store):
        put_tier(kv_store, HISTORICAL_KEY, [], covered=0)
        lost = make_log(block=500)
        kept = make_log(block=1500)
        rpc = ScriptedRpc(head=2000, logs=[lost, kept], failing_ranges={(1, 1000)})

        result = make_cache(kv_store, rpc).reconcile()

        assert result.logs == [kept]
        assert result.failed_chunks == [(1, 1000)]
        assert result.covered_through_block == 2000

    def test_head_failure_raises(self, kv_store):
        rpc = ScriptedRpc(head=0)
        rpc.head_error = RpcError("connection refused")

        with pytest.raises(RpcError):
            make_cache(kv_store, rpc).reconcile()

    def test_rollback_is_clamped(self, kv_store):
        below = make_log(block=1500)
        above = make_log(block=2500)
        put_tier(kv_store, RECENT_KEY, [above, below], covered=3000)
        rpc = ScriptedRpc(head=2000)

        result = make_cache(kv_store, rpc).reconcile()

        assert result.covered_through_block == 2000
        assert result.logs == [below]
        assert rpc.calls == []

    def test_corrupt_tier_is_ignored(self, kv_store):
        kv_store.put(HISTORICAL_KEY, {"unexpected": True})
        rpc = ScriptedRpc(head=100)

        result = make_cache(kv_store, rpc).reconcile()

        assert result.source is CacheSource.RPC_INITIAL_FETCH

    def test_recent_tier_expires(self, clock, kv_store):
        put_tier(kv_store, HISTORICAL_KEY, [], covered=1000)
        rpc = ScriptedRpc(head=1500)
        cache = make_cache(kv_store, rpc, recent_ttl_seconds=120)
        cache.refresh()

        clock.advance(119)
        assert cache.reconcile().source is CacheSource.HIT_RECENT
        clock.advance(2)
        assert cache.reconcile().source is CacheSource.RPC_DELTA_UPDATE

    def test_persisted_snapshot_format(self, kv_store):
        rpc = ScriptedRpc(head=300, logs=[make_log(block=200)])
        cache = make_cache(kv_store, rpc)
        cache.persist_recent(cache.reconcile())

        stored = kv_store.get(RECENT_KEY)
        assert stored["coveredThroughBlock"] == "300"
        assert stored["logs"][0]["blockNumber"] == "200"
        assert "timestamp" in stored

    def test_persist_failure_is_logged(self, kv_store):
        class BrokenStore(MemoryKeyValueStore):
            def put(self, key, value, ttl_seconds=None):
                raise OSError("disk full")

        cache = make_cache(BrokenStore(), ScriptedRpc(head=10))
        cache.persist_recent(cache.reconcile())

    def test_response_shape(self, kv_store):
        rpc = ScriptedRpc(head=300, logs=[make_log(block=200)])
        body = make_cache(kv_store, rpc).reconcile().to_response()

        assert body["cachedUpToBlock"] == "300"
        assert body["totalLogs"] == 1
        assert body["source"] == "rpc_initial_fetch"
        assert body["logs"][0]["transactionHash"] == make_log(block=200).transaction_hash
        assert "cacheTimestamp" in body


class TestKeyValueStores:
    """Tests for the memory and file backends."""

    def test_memory_ttl(self, clock):
        store = MemoryKeyValueStore(clock=clock)
        store.put("k", {"v": 1}, ttl_seconds=10)

        assert store.get("k") == {"v": 1}
        clock.advance(10)
        assert store.get("k") is None

    def test_memory_values_are_copies(self):
        store = MemoryKeyValueStore()
        value = {"v": [1]}
        store.put("k", value)
        value["v"].append(2)

        assert store.get("k") == {"v": [1]}

    def test_file_round_trip(self, tmp_path):
        store = FileKeyValueStore(str(tmp_path))
        store.put("clipgrid:recent", {"v": 1})

        assert store.get("clipgrid:recent") == {"v": 1}
        assert store.get("missing") is None
        assert [p.name for p in tmp_path.iterdir()] == ["clipgrid_recent.json"]

    def test_file_ttl(self, tmp_path):
        clock = FakeClock()
        store = FileKeyValueStore(str(tmp_path), clock=clock)
        store.put("k", {"v": 1}, ttl_seconds=120)

        clock.advance(60)
        assert store.get("k") == {"v": 1}
        clock.advance(60)
        assert store.get("k") is None

    def test_create_store(self, tmp_path):
        assert isinstance(create_store(CacheConfig(backend="memory")), MemoryKeyValueStore)
        assert isinstance(
            create_store(CacheConfig(backend="file", path=str(tmp_path / "kv"))),
            FileKeyValueStore,
        )
        with pytest.raises(ValueError):
            create_store(CacheConfig(backend="redis"))


class TestBackfill:
    """Tests for populate_historical."""

    def test_backfill_writes_snapshot(self, kv_store):
        logs = [make_log(block=1500), make_log(block=3500)]
        rpc = ScriptedRpc(head=5000, logs=logs, failing_ranges={(2000, 2999)})
        sleeps = []

        snapshot = populate_historical(
            rpc, kv_store, HISTORICAL_KEY,
            start_block=1000, block_range_limit=1000, sleep=sleeps.append,
        )

        assert rpc.calls == [(1000, 1999), (2000, 2999), (3000, 3999), (4000, 4999), (5000, 5000)]
        assert sleeps == [5.0, 0.2]
        assert snapshot.covered_through_block == 5000
        assert [log.block_number for log in snapshot.logs] == [3500, 1500]

        stored = CacheSnapshot.model_validate(kv_store.get(HISTORICAL_KEY))
        assert stored.logs == snapshot.logs

    def test_backfill_has_no_ttl(self, clock, kv_store):
        rpc = ScriptedRpc(head=200, logs=[make_log(block=150)])
        populate_historical(rpc, kv_store, HISTORICAL_KEY, start_block=100, sleep=lambda s: None)

        clock.advance(10 ** 9)
        assert kv_store.get(HISTORICAL_KEY) is not None

    def test_start_at_head(self, kv_store):
        rpc = ScriptedRpc(head=100)
        assert populate_historical(rpc, kv_store, HISTORICAL_KEY, start_block=100) is None
        assert rpc.calls == []

    def test_no_logs_writes_nothing(self, kv_store):
        rpc = ScriptedRpc(head=3000)
        result = populate_historical(
            rpc, kv_store, HISTORICAL_KEY, start_block=0, sleep=lambda s: None,
        )

        assert result is None
        assert kv_store.get(HISTORICAL_KEY) is None

    def test_feeds_reconcile(self, kv_store):
        rpc = ScriptedRpc(head=2000, logs=[make_log(block=1200)])
        populate_historical(rpc, kv_store, HISTORICAL_KEY, start_block=1000, sleep=lambda s: None)

        result = make_cache(kv_store, rpc).reconcile()

        assert result.source is CacheSource.HIT_HISTORICAL
        assert len(result.logs) == 1
