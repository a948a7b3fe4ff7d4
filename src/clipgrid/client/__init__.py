"""
Client Module
=============

Capture-side and grid-side components.

Components:
    - ActivityScheduler: one-at-a-time cooperative activity loop
    - CameraSource: OpenCV webcam producing square RGB samples
    - ClipRecorder: preview / record / playback / save session
    - GridAnimator, build_grid: mosaic of remote clips and noise cells
    - LogFeedClient: HTTP client for the log-cache service
    - load_grid: API + direct RPC log loading feeding build_grid
"""

from clipgrid.client.scheduler import Activity, ActivityScheduler, ActivityToken
from clipgrid.client.camera import CameraSource, create_camera, to_sample
from clipgrid.client.recorder import ClipRecorder, create_recorder
from clipgrid.client.grid import (
    GRID_FPS,
    NOISE_FPS,
    ClipSlot,
    GridAnimator,
    NoiseGenerator,
    NoiseSlot,
    build_grid,
    render_slot,
)
from clipgrid.client.feed import LogFeedClient, RecentLogs
from clipgrid.client.loader import (
    create_direct_rpc,
    create_feed,
    fetch_api_logs,
    fetch_direct_logs,
    load_grid,
    load_grid_logs,
)


__all__ = [
    "Activity",
    "ActivityScheduler",
    "ActivityToken",
    "CameraSource",
    "create_camera",
    "to_sample",
    "ClipRecorder",
    "create_recorder",
    "GRID_FPS",
    "NOISE_FPS",
    "ClipSlot",
    "GridAnimator",
    "NoiseGenerator",
    "NoiseSlot",
    "build_grid",
    "render_slot",
    "LogFeedClient",
    "RecentLogs",
    "create_direct_rpc",
    "create_feed",
    "fetch_api_logs",
    "fetch_direct_logs",
    "load_grid",
    "load_grid_logs",
]
