"""
ClipGrid Log Cache Service
==========================

FastAPI entry point for the log-cache proxy.

Endpoints:
    GET  /recent  - Merged ClipUpdated logs (historical + recent + chain)
    GET  /health  - Liveness probe
    OPTIONS *     - 204 on every path

Response Contract (/recent):
    {
        "logs": [LogEntry, ...],
        "cachedUpToBlock": "15600000",
        "totalLogs": 42,
        "source": "rpc_delta_update",
        "cacheTimestamp": "2026-01-01T00:00:00+00:00"
    }
    plus an X-Cache-Status header.

The recent tier is written by a background task after the response is
produced. CORS is open to all origins; unknown paths return 404; a missing
RPC URL returns 500.
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from clipgrid import __version__
from clipgrid.chain.rpc import JsonRpcClient
from clipgrid.config import settings
from clipgrid.errors import RpcError
from clipgrid.logcache import KeyValueStore, LogCache, create_store


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_kv_store: Optional[KeyValueStore] = None
_log_cache: Optional[LogCache] = None
_startup_time: float = 0.0
_request_count: int = 0
_error_count: int = 0


# =============================================================================
# Dependencies
# =============================================================================

def get_kv_store() -> KeyValueStore:
    global _kv_store
    if _kv_store is None:
        _kv_store = create_store(settings.cache)
    return _kv_store


def get_log_cache() -> Optional[LogCache]:
    """LogCache bound to the configured RPC, or None when no RPC URL is set."""
    global _log_cache
    if not settings.rpc.url:
        return None
    if _log_cache is None:
        rpc = JsonRpcClient(
            url=settings.rpc.url,
            contract_address=settings.rpc.contract_address,
            event_topic=settings.rpc.event_topic,
            timeout=settings.rpc.timeout_seconds,
        )
        _log_cache = LogCache(
            store=get_kv_store(),
            rpc=rpc,
            historical_key=settings.cache.historical_key,
            recent_key=settings.cache.recent_key,
            block_range_limit=settings.rpc.block_range_limit,
            initial_lookback_blocks=settings.rpc.initial_lookback_blocks,
            recent_ttl_seconds=settings.cache.recent_ttl_seconds,
        )
    return _log_cache


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    global _startup_time

    _startup_time = time.time()
    logger.info(f"Starting clipgrid log cache {__version__}")
    logger.info(f"Cache backend: {settings.cache.backend}")
    if not settings.rpc.url:
        logger.error("RPC URL not configured; /recent will return 500")

    yield

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="ClipGrid Log Cache",
    description="Caching proxy for ClipUpdated event logs",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "HEAD", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
    expose_headers=["X-Cache-Status"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    if request.method == "OPTIONS":
        # Preflights never get here; CORSMiddleware answers them first.
        return Response(status_code=204)
    if exc.status_code == 404:
        logger.info(f"Path {request.url.path} not found")
        return JSONResponse(
            {"error": "Not Found. Try /recent endpoint."},
            status_code=404,
        )
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/recent")
async def recent(
    background_tasks: BackgroundTasks,
    cache: Optional[LogCache] = Depends(get_log_cache),
) -> JSONResponse:
    """Merged, deduplicated ClipUpdated logs, newest first."""
    global _request_count, _error_count
    _request_count += 1

    if cache is None:
        logger.error("RPC URL not found in environment")
        return JSONResponse({"error": "RPC URL not configured"}, status_code=500)

    try:
        result = await asyncio.to_thread(cache.reconcile)
    except RpcError as e:
        _error_count += 1
        logger.error(f"Reconciliation failed: {e}")
        return JSONResponse({"error": f"Worker error: {e}"}, status_code=500)
    except Exception as e:
        _error_count += 1
        logger.exception(f"Unexpected reconciliation error: {e}")
        return JSONResponse({"error": f"Worker error: {e}"}, status_code=500)

    if result.fetched:
        background_tasks.add_task(cache.persist_recent, result)

    return JSONResponse(
        result.to_response(),
        headers={"X-Cache-Status": result.cache_status},
    )


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe. Always 200 while the process is running."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "rpc_configured": bool(settings.rpc.url),
        "requests": _request_count,
        "errors": _error_count,
    })


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "clipgrid.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
