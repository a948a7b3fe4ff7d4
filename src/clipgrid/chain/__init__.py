"""
Chain Module
============

Collaborators on the chain side: the clip contract (opaque key-value
store) and the JSON-RPC log source.

Components:
    - LogEntry: ClipUpdated event model
    - ClipStore / ChainRpc: protocols for the contract and RPC surfaces
    - InMemoryChain: local implementation of both protocols
    - JsonRpcClient: HTTP JSON-RPC implementation of ChainRpc
    - save_clip: export + write with RemoteWriteRejected mapping
"""

from clipgrid.chain.models import LogEntry
from clipgrid.chain.store import ChainRpc, ClipStore, InMemoryChain, save_clip
from clipgrid.chain.rpc import (
    CLIP_UPDATED_SIGNATURE,
    CLIP_UPDATED_TOPIC,
    JsonRpcClient,
    decode_clip_updated,
    event_topic,
)


__all__ = [
    "LogEntry",
    "ChainRpc",
    "ClipStore",
    "InMemoryChain",
    "save_clip",
    "CLIP_UPDATED_SIGNATURE",
    "CLIP_UPDATED_TOPIC",
    "JsonRpcClient",
    "decode_clip_updated",
    "event_topic",
]
