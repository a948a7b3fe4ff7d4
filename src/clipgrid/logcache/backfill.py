"""
Historical Backfill
===================

Offline population of the historical cache tier.

Scans ClipUpdated logs from a fixed start block to the current head in
block-range-limited chunks, pausing between batches to stay under the
provider's rate limits, then writes one historical snapshot without TTL.

A failed chunk is logged, followed by a longer pause, and skipped.
"""

import logging
import time
from typing import Callable, List, Optional

from clipgrid.chain.models import LogEntry
from clipgrid.chain.store import ChainRpc
from clipgrid.errors import RpcError
from clipgrid.logcache.cache import BLOCK_RANGE_LIMIT, CacheSnapshot, block_chunks, merge_logs
from clipgrid.logcache.kv import KeyValueStore


logger = logging.getLogger(__name__)


def populate_historical(
    rpc: ChainRpc,
    store: KeyValueStore,
    key: str,
    start_block: int,
    block_range_limit: int = BLOCK_RANGE_LIMIT,
    calls_per_batch: int = 5,
    batch_delay_ms: int = 200,
    chunk_error_delay_ms: int = 5000,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[CacheSnapshot]:
    """
    Fetch all logs since `start_block` and store them as the historical tier.

    Args:
        rpc: Chain RPC used for head and log queries
        store: Key-value store holding the cache tiers
        key: Historical tier key
        start_block: First block to scan
        block_range_limit: Blocks per getLogs call
        calls_per_batch: getLogs calls between pauses
        batch_delay_ms: Pause length between batches
        chunk_error_delay_ms: Pause after a failed chunk
        sleep: Sleep function (injectable for tests)

    Returns:
        The stored snapshot, or None when nothing was written
    """
    head = rpc.block_number()
    logger.info(f"Backfill: blocks {start_block}-{head}")

    if start_block >= head:
        logger.info("Start block is at or after the chain head; nothing to backfill")
        return None

    collected: List[LogEntry] = []
    calls = 0
    for chunk_start, chunk_end in block_chunks(start_block, head, block_range_limit):
        calls += 1
        try:
            chunk = rpc.get_logs(chunk_start, chunk_end)
        except RpcError as e:
            logger.error(f"Error fetching logs for chunk {chunk_start}-{chunk_end}: {e}")
            sleep(chunk_error_delay_ms / 1000)
            continue

        if chunk:
            logger.info(f"Found {len(chunk)} logs in chunk {chunk_start}-{chunk_end}")
            collected.extend(chunk)

        if calls % calls_per_batch == 0 and batch_delay_ms > 0:
            sleep(batch_delay_ms / 1000)

    logger.info(f"Total historical logs fetched: {len(collected)}")
    if not collected:
        logger.info("No historical logs found in the specified range")
        return None

    snapshot = CacheSnapshot(logs=merge_logs(collected), covered_through_block=head)
    store.put(key, snapshot.to_json())
    logger.info(f"Historical cache stored under {key} up to block {head}")
    return snapshot
