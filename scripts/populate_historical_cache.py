#!/usr/bin/env python3
"""
Historical Cache Backfill
=========================

Standalone script that fills the historical log-cache tier.

This script:
    1. Reads the chain head from the configured RPC endpoint
    2. Scans ClipUpdated logs from the start block in 1000-block chunks
    3. Pauses between batches to respect provider rate limits
    4. Writes one historical snapshot (no TTL) when logs were found

Prerequisites:
    - CLIPGRID_RPC_URL (or ALCHEMY_MONAD_RPC_URL) must be set
    - Install the package: pip install -e .

Usage:
    python scripts/populate_historical_cache.py
    python scripts/populate_historical_cache.py --start-block 15600000 --cache-backend file
"""

import argparse
import logging
import os
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from clipgrid.chain import JsonRpcClient
from clipgrid.config import settings
from clipgrid.errors import RpcError
from clipgrid.logcache import create_store, populate_historical


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def run_backfill(args: argparse.Namespace) -> int:
    """
    Run the backfill.

    Returns:
        Number of logs written to the historical tier
    """
    cache_config = settings.cache.model_copy(update={
        "backend": args.cache_backend,
        "path": args.cache_path,
    })

    logger.info("=" * 60)
    logger.info("Historical Cache Backfill")
    logger.info("=" * 60)
    logger.info(f"RPC URL: {args.rpc_url}")
    logger.info(f"Contract: {args.contract}")
    logger.info(f"Start block: {args.start_block}")
    logger.info(f"Block range limit: {args.block_range_limit}")
    logger.info(f"Cache: {cache_config.backend} ({cache_config.path})")
    logger.info("=" * 60)

    rpc = JsonRpcClient(
        url=args.rpc_url,
        contract_address=args.contract,
        event_topic=settings.rpc.event_topic,
        timeout=settings.rpc.timeout_seconds,
    )
    store = create_store(cache_config)

    started = time.time()
    snapshot = populate_historical(
        rpc,
        store,
        key=cache_config.historical_key,
        start_block=args.start_block,
        block_range_limit=args.block_range_limit,
        calls_per_batch=settings.backfill.calls_per_batch,
        batch_delay_ms=settings.backfill.batch_delay_ms,
        chunk_error_delay_ms=settings.backfill.chunk_error_delay_ms,
    )
    elapsed = time.time() - started

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {elapsed:.1f} seconds")
    if snapshot is None:
        logger.info("Historical tier not written")
        return 0
    logger.info(f"Logs stored: {len(snapshot.logs)}")
    logger.info(f"Covered through block: {snapshot.covered_through_block}")
    return len(snapshot.logs)


def main():
    parser = argparse.ArgumentParser(
        description="Populate the historical ClipUpdated log cache"
    )
    parser.add_argument(
        "--rpc-url",
        type=str,
        default=settings.rpc.url,
        help="JSON-RPC endpoint URL",
    )
    parser.add_argument(
        "--contract",
        type=str,
        default=settings.rpc.contract_address,
        help="Clip contract address",
    )
    parser.add_argument(
        "--start-block",
        type=int,
        default=settings.backfill.start_block,
        help=f"First block to scan (default: {settings.backfill.start_block})",
    )
    parser.add_argument(
        "--block-range-limit",
        type=int,
        default=settings.rpc.block_range_limit,
        help=f"Blocks per getLogs call (default: {settings.rpc.block_range_limit})",
    )
    parser.add_argument(
        "--cache-backend",
        choices=["memory", "file"],
        default=settings.cache.backend,
        help=f"Key-value backend to write (default: {settings.cache.backend})",
    )
    parser.add_argument(
        "--cache-path",
        type=str,
        default=settings.cache.path,
        help="Directory for the file backend",
    )

    args = parser.parse_args()

    if not args.rpc_url:
        logger.error("RPC URL not configured (set CLIPGRID_RPC_URL or pass --rpc-url)")
        sys.exit(2)

    try:
        run_backfill(args)
    except RpcError as e:
        logger.error(f"Backfill failed: {e}")
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
