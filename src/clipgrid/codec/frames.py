"""
Frame Store
===========

In-memory ordered sequence of captured frames.

A clip is one BASELINE frame (full raster) followed by DELTA frames
(sparse change records relative to the previous captured frame). Every
frame keeps two payloads:
    - compressed: per-frame zlib stream, used for local playback
    - raw: serialized bytes before compression, used to build the
      concatenated delta blob for remote storage

Design Rules:
    - Frames are immutable once stored
    - Lookups by frame object use identity, not equality
"""

import zlib
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional

import numpy as np

from clipgrid.codec.pixels import TOTAL_PIXELS, Change
from clipgrid.codec.serializer import deserialize
from clipgrid.errors import (
    DecompressionError,
    FrameNotFoundError,
    InvalidBaselineError,
    MissingBaselineError,
    PrecedingBaselineMissingError,
)


def compress(data: bytes) -> bytes:
    """DEFLATE with a zlib wrapper (pako.deflate compatible)."""
    return zlib.compress(bytes(data))


def decompress(data: bytes) -> bytes:
    """
    Inflate a zlib stream.

    Raises:
        DecompressionError: If the payload is corrupt or truncated
    """
    try:
        return zlib.decompress(bytes(data))
    except zlib.error as e:
        raise DecompressionError(f"Failed to inflate {len(data)}-byte payload: {e}")


class FrameKind(str, Enum):
    """Captured frame variants."""

    BASELINE = "baseline"
    DELTA = "delta"


@dataclass(frozen=True, eq=False)
class CompressedFrame:
    """
    One stored frame of a clip.

    Attributes:
        kind: BASELINE or DELTA
        compressed: Per-frame zlib payload
        raw: Serialized payload before compression
    """

    kind: FrameKind
    compressed: bytes
    raw: bytes

    @classmethod
    def baseline(cls, pixels: np.ndarray) -> "CompressedFrame":
        raw = np.ascontiguousarray(pixels, dtype=np.uint8).reshape(-1).tobytes()
        return cls(kind=FrameKind.BASELINE, compressed=compress(raw), raw=raw)

    @classmethod
    def delta(cls, serialized: bytes) -> "CompressedFrame":
        return cls(kind=FrameKind.DELTA, compressed=compress(serialized), raw=bytes(serialized))

    @property
    def raw_length(self) -> int:
        return len(self.raw)

    @property
    def is_baseline(self) -> bool:
        return self.kind is FrameKind.BASELINE

    def pixels(self) -> np.ndarray:
        """Decode a baseline frame into a flat uint8 raster."""
        return np.frombuffer(decompress(self.compressed), dtype=np.uint8).copy()

    def changes(self) -> List[Change]:
        """Decode a delta frame into change records."""
        return deserialize(decompress(self.compressed))

    def __repr__(self) -> str:
        return (
            f"CompressedFrame(kind={self.kind.value}, "
            f"compressed={len(self.compressed)}B, raw={len(self.raw)}B)"
        )


class FrameStore:
    """
    Ordered in-memory frame sequence for one capture session.

    Implements the FrameSource interface so a session can be played back
    without going through the remote form.

    Example:
        store = FrameStore()
        store.append(CompressedFrame.baseline(pixels))
        store.append(CompressedFrame.delta(serialize(changes)))
    """

    def __init__(self, frames: Optional[List[CompressedFrame]] = None) -> None:
        self._frames: List[CompressedFrame] = list(frames or [])

    def append(self, frame: CompressedFrame) -> None:
        self._frames.append(frame)

    def clear(self) -> None:
        self._frames.clear()

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[CompressedFrame]:
        return iter(self._frames)

    def __getitem__(self, index: int) -> CompressedFrame:
        return self._frames[index]

    def index_of(self, frame: CompressedFrame) -> int:
        """Position of `frame` by identity."""
        for i, stored in enumerate(self._frames):
            if stored is frame:
                return i
        raise FrameNotFoundError(f"{frame!r} is not part of this sequence")

    @property
    def frames(self) -> List[CompressedFrame]:
        return list(self._frames)

    @property
    def baseline(self) -> Optional[CompressedFrame]:
        return next((f for f in self._frames if f.is_baseline), None)

    @property
    def deltas(self) -> List[CompressedFrame]:
        return [f for f in self._frames if not f.is_baseline]

    @property
    def raw_size(self) -> int:
        """Uncompressed size: full baseline raster plus raw delta records."""
        return sum(f.raw_length for f in self._frames)

    @property
    def compressed_size(self) -> int:
        return sum(len(f.compressed) for f in self._frames)

    # -------------------------------------------------------------------------
    # FrameSource
    # -------------------------------------------------------------------------

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    def baseline_pixels(self) -> np.ndarray:
        if not self._frames:
            raise MissingBaselineError("Frame sequence is empty")
        if not self._frames[0].is_baseline:
            raise PrecedingBaselineMissingError("Frame 0 is a delta with no preceding baseline")
        pixels = self._frames[0].pixels()
        if len(pixels) != TOTAL_PIXELS:
            raise InvalidBaselineError(
                f"Baseline holds {len(pixels)} pixels, expected {TOTAL_PIXELS}"
            )
        return pixels

    def delta_changes(self, index: int) -> List[Change]:
        frame = self._frames[index]
        if frame.is_baseline:
            raise FrameNotFoundError(f"Frame {index} is a baseline, not a delta")
        return frame.changes()
