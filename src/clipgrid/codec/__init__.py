"""
Codec Module
============

Intra-frame / inter-frame differential codec for short grayscale clips.

Components:
    - pixels: grayscale, brightness and per-pixel delta extraction
    - serializer: 3-byte (index, value) record packing
    - frames: CompressedFrame and the in-memory FrameStore
    - clip: ClipCodec capture + sequential / random-access reconstruction
    - remote: RemoteClip form and the lazy RemoteClipAdapter

Example:
    from clipgrid.codec import ClipCodec, to_remote_form

    codec = ClipCodec(target_frame_count=10)
    codec.begin_capture()
    for raster in samples:
        codec.capture_frame(raster)
    remote = to_remote_form(codec.frozen_frames(), fid=1234)
"""

from clipgrid.codec.pixels import (
    DIFF_THRESHOLD,
    FRAME_SIZE,
    TOTAL_PIXELS,
    adjust_brightness,
    diff,
    to_grayscale,
)
from clipgrid.codec.serializer import apply_changes, deserialize, serialize
from clipgrid.codec.frames import CompressedFrame, FrameKind, FrameStore, compress, decompress
from clipgrid.codec.clip import (
    CaptureState,
    ClipCodec,
    FrameRender,
    FrameSource,
    PlaybackContext,
    SequentialPlayer,
    decode_at,
    decode_sequential,
    error_raster,
    render_at,
    render_sequential,
)
from clipgrid.codec.remote import RemoteClip, RemoteClipAdapter, to_remote_form


__all__ = [
    "DIFF_THRESHOLD",
    "FRAME_SIZE",
    "TOTAL_PIXELS",
    "adjust_brightness",
    "diff",
    "to_grayscale",
    "apply_changes",
    "deserialize",
    "serialize",
    "CompressedFrame",
    "FrameKind",
    "FrameStore",
    "compress",
    "decompress",
    "CaptureState",
    "ClipCodec",
    "FrameRender",
    "FrameSource",
    "PlaybackContext",
    "SequentialPlayer",
    "decode_at",
    "decode_sequential",
    "error_raster",
    "render_at",
    "render_sequential",
    "RemoteClip",
    "RemoteClipAdapter",
    "to_remote_form",
]
