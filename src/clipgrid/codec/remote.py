"""
Remote Clip Adapter
===================

Maps between the in-memory frame sequence and the on-chain clip form.

Remote Form:
    first_frame       per-frame compressed baseline raster
    compressed_diffs  zlib(concat(raw delta_1, ..., raw delta_n))
    diff_lengths      raw length of each delta (uint32)

Decompression is lazy: nothing is inflated until prepare_for_playback().
"""

import logging
from itertools import accumulate
from typing import List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, Field

from clipgrid.codec.frames import CompressedFrame, compress, decompress
from clipgrid.codec.pixels import TOTAL_PIXELS, Change
from clipgrid.codec.serializer import deserialize
from clipgrid.errors import (
    ClipCodecError,
    FrameNotFoundError,
    InvalidBaselineError,
    MissingBaselineError,
)


logger = logging.getLogger(__name__)


UINT32_MAX = 0xFFFFFFFF


class RemoteClip(BaseModel):
    """
    Clip as stored by the remote contract.

    Attributes:
        first_frame: Compressed baseline raster
        compressed_diffs: Compressed concatenation of all raw deltas
        diff_lengths: Raw byte length of each delta, in capture order
        fid: Farcaster user identifier attached to the clip
        timestamp: Block timestamp of the write (0 before it is stored)
    """

    first_frame: bytes = Field(..., description="Compressed baseline raster")
    compressed_diffs: bytes = Field(default=b"", description="Compressed delta blob")
    diff_lengths: List[int] = Field(default_factory=list, description="uint32 delta lengths")
    fid: int = Field(default=0, ge=0, description="Farcaster user identifier")
    timestamp: int = Field(default=0, ge=0, description="Write timestamp (seconds)")


def to_remote_form(
    frames: Sequence[CompressedFrame],
    fid: int,
    timestamp: int = 0,
) -> RemoteClip:
    """
    Build the remote representation of a captured clip.

    Raises:
        MissingBaselineError: If the sequence has no baseline frame
    """
    baseline = next((f for f in frames if f.is_baseline), None)
    if baseline is None:
        raise MissingBaselineError("Cannot export a clip without a baseline frame")

    deltas = [f for f in frames if not f.is_baseline]
    lengths = [f.raw_length for f in deltas]
    for length in lengths:
        if length > UINT32_MAX:
            raise ValueError(f"Delta length {length} exceeds uint32")

    blob = b"".join(f.raw for f in deltas)
    compressed_diffs = compress(blob)

    logger.info(
        f"Remote form: baseline={len(baseline.compressed)}B, "
        f"deltas={len(deltas)} raw={len(blob)}B compressed={len(compressed_diffs)}B"
    )
    return RemoteClip(
        first_frame=baseline.compressed,
        compressed_diffs=compressed_diffs,
        diff_lengths=lengths,
        fid=fid,
        timestamp=timestamp,
    )


class RemoteClipAdapter:
    """
    Lazily decoded view over a RemoteClip.

    Implements the FrameSource interface: frame 0 is the baseline,
    frame k (k >= 1) is delta k-1 of the blob.

    Example:
        adapter = RemoteClipAdapter(remote)
        if adapter.is_valid:
            adapter.prepare_for_playback()
            player = SequentialPlayer(adapter)
    """

    def __init__(self, remote: RemoteClip) -> None:
        self.remote = remote
        self._baseline: Optional[np.ndarray] = None
        self._diff_blob: Optional[bytes] = None
        self._offsets: Optional[List[int]] = None
        self._failure: Optional[ClipCodecError] = None

    @property
    def is_valid(self) -> bool:
        """False for an empty or all-zero first frame (absent clip)."""
        first = self.remote.first_frame
        return len(first) > 0 and any(first)

    @property
    def frame_count(self) -> int:
        return 1 + len(self.remote.diff_lengths)

    @property
    def is_prepared(self) -> bool:
        return self._baseline is not None and self._diff_blob is not None

    def prepare_for_playback(self) -> None:
        """
        Inflate the baseline and the delta blob once.

        Repeated calls after success are no-ops. A failure is remembered
        and re-raised on later calls.

        Raises:
            DecompressionError: If either payload cannot be inflated
            InvalidBaselineError: If the baseline is not one full raster
        """
        if self.is_prepared:
            return
        if self._failure is not None:
            raise self._failure

        try:
            if self._baseline is None:
                baseline = np.frombuffer(
                    decompress(self.remote.first_frame), dtype=np.uint8
                ).copy()
                if len(baseline) != TOTAL_PIXELS:
                    raise InvalidBaselineError(
                        f"Baseline holds {len(baseline)} pixels, expected {TOTAL_PIXELS}"
                    )
                self._baseline = baseline
            if self._diff_blob is None:
                if self.remote.diff_lengths:
                    self._diff_blob = decompress(self.remote.compressed_diffs)
                else:
                    self._diff_blob = b""
        except ClipCodecError as e:
            logger.error(f"Clip fid={self.remote.fid}: {e}")
            self._failure = e
            raise

    def _prefix_offsets(self) -> List[int]:
        if self._offsets is None:
            self._offsets = [0, *accumulate(self.remote.diff_lengths)]
        return self._offsets

    def delta_slice(self, delta_index: int) -> bytes:
        """
        Raw serialized bytes of delta `delta_index` (0-based).

        Raises:
            FrameNotFoundError: If the index or its byte range is out of bounds
        """
        self.prepare_for_playback()
        lengths = self.remote.diff_lengths
        if not 0 <= delta_index < len(lengths):
            raise FrameNotFoundError(f"Delta {delta_index} out of range ({len(lengths)} deltas)")

        offsets = self._prefix_offsets()
        start, end = offsets[delta_index], offsets[delta_index + 1]
        if end > len(self._diff_blob):
            raise FrameNotFoundError(
                f"Delta {delta_index} spans [{start}, {end}) beyond blob of {len(self._diff_blob)}B"
            )
        return self._diff_blob[start:end]

    # -------------------------------------------------------------------------
    # FrameSource
    # -------------------------------------------------------------------------

    def baseline_pixels(self) -> np.ndarray:
        self.prepare_for_playback()
        return self._baseline.copy()

    def delta_changes(self, index: int) -> List[Change]:
        return deserialize(self.delta_slice(index - 1))
