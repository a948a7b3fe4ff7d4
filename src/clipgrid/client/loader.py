"""
Grid Loader
===========

Gathers ClipUpdated logs for the mosaic and builds its animator.

Phases:
    1. GET /recent from the log-cache service. A failure is logged and
       loading continues with the direct query alone.
    2. Query the chain directly for the newest blocks (last 200 blocks in
       100-block chunks by default) to pick up writes the service has not
       cached yet. A failed chunk is logged and skipped.
    3. Merge both sets, dropping repeated (transaction hash, log index),
       then rank users and place clips with build_grid.

Example:
    animator = load_grid(
        create_feed(settings.client),
        create_direct_rpc(settings.client, settings.rpc),
        store,
        config=settings.grid,
        client_config=settings.client,
    )
"""

import logging
from typing import List, Optional

import numpy as np

from clipgrid.chain.models import LogEntry
from clipgrid.chain.rpc import JsonRpcClient
from clipgrid.chain.store import ChainRpc, ClipStore
from clipgrid.client.feed import LogFeedClient
from clipgrid.client.grid import GridAnimator, build_grid
from clipgrid.config import ClientConfig, GridConfig, RpcConfig
from clipgrid.errors import RpcChunkFailure, RpcError
from clipgrid.logcache.cache import block_chunks, merge_logs


logger = logging.getLogger(__name__)


DIRECT_LOOKBACK_BLOCKS = 200
DIRECT_BLOCK_RANGE_LIMIT = 100


# =============================================================================
# Log Sources
# =============================================================================

def fetch_api_logs(feed: LogFeedClient) -> List[LogEntry]:
    """Logs from the log-cache service, or an empty list if it fails."""
    try:
        page = feed.fetch()
    except RpcError as e:
        logger.error(f"Grid: error fetching logs from {feed.endpoint}: {e}")
        return []
    return page.logs


def fetch_direct_logs(
    rpc: ChainRpc,
    lookback_blocks: int = DIRECT_LOOKBACK_BLOCKS,
    block_range_limit: int = DIRECT_BLOCK_RANGE_LIMIT,
) -> List[LogEntry]:
    """Logs of the newest `lookback_blocks` blocks, read straight from the chain."""
    try:
        head = rpc.block_number()
    except RpcError as e:
        logger.error(f"Grid: direct block number query failed: {e}")
        return []

    start = max(0, head - (lookback_blocks - 1))
    logs: List[LogEntry] = []
    for from_block, to_block in block_chunks(start, head, block_range_limit):
        try:
            chunk = rpc.get_logs(from_block, to_block)
        except RpcError as e:
            logger.error(str(RpcChunkFailure(from_block, to_block, e)))
            continue
        if chunk:
            logger.info(f"Grid: found {len(chunk)} direct logs in chunk {from_block}-{to_block}")
            logs.extend(chunk)
    return logs


def load_grid_logs(
    feed: Optional[LogFeedClient],
    rpc: Optional[ChainRpc],
    lookback_blocks: int = DIRECT_LOOKBACK_BLOCKS,
    block_range_limit: int = DIRECT_BLOCK_RANGE_LIMIT,
) -> List[LogEntry]:
    """
    Merged logs from the service and the direct chain query, newest first.

    Either source may be None to skip it.
    """
    api_logs = fetch_api_logs(feed) if feed is not None else []
    direct_logs = (
        fetch_direct_logs(rpc, lookback_blocks, block_range_limit)
        if rpc is not None else []
    )

    merged = merge_logs(api_logs, direct_logs)
    logger.info(
        f"Grid: {len(api_logs)} API logs + {len(direct_logs)} direct logs "
        f"-> {len(merged)} unique"
    )
    if not merged:
        logger.info("Grid: no ClipUpdated logs found from any source. Displaying noise only.")
    return merged


# =============================================================================
# Grid Assembly
# =============================================================================

def load_grid(
    feed: Optional[LogFeedClient],
    rpc: Optional[ChainRpc],
    store: ClipStore,
    config: Optional[GridConfig] = None,
    client_config: Optional[ClientConfig] = None,
    rng: Optional[np.random.Generator] = None,
) -> GridAnimator:
    """Load logs from both sources and lay them out on a configured grid."""
    config = config or GridConfig()
    client_config = client_config or ClientConfig()

    logs = load_grid_logs(
        feed,
        rpc,
        lookback_blocks=client_config.direct_lookback_blocks,
        block_range_limit=client_config.direct_block_range_limit,
    )
    slots = build_grid(
        logs,
        config.total_cells,
        store,
        rng=rng,
        clip_fps=config.clip_fps,
        noise_fps=config.noise_fps,
    )
    return GridAnimator(slots)


def create_feed(config: ClientConfig) -> LogFeedClient:
    """Log feed client for the configured service."""
    return LogFeedClient(config.api_base_url, timeout=config.request_timeout_seconds)


def create_direct_rpc(client_config: ClientConfig, rpc_config: RpcConfig) -> Optional[JsonRpcClient]:
    """Direct RPC client for the newest logs, or None if no public RPC is set."""
    if not client_config.rpc_url:
        logger.warning("Grid: public RPC URL not configured, skipping direct log query")
        return None
    return JsonRpcClient(
        url=client_config.rpc_url,
        contract_address=rpc_config.contract_address,
        event_topic=rpc_config.event_topic,
        timeout=client_config.request_timeout_seconds,
    )
