"""
ClipGrid
========

Short grayscale webcam clips stored on chain and shown as a live mosaic.

Components:
    - codec: baseline + delta frame codec and playback reconstruction
    - chain: clip contract and JSON-RPC log collaborators
    - logcache: historical / recent / RPC log reconciliation
    - client: capture recorder, cooperative scheduler and grid animator
    - main: FastAPI log-cache service

Example:
    from clipgrid.codec import ClipCodec, RemoteClipAdapter, to_remote_form

    # The log-cache service is started via uvicorn
    # See main.py for entry point
"""

__version__ = "0.1.0"
__author__ = "ClipGrid Project"

__all__ = [
    "__version__",
]
