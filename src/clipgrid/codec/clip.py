"""
Clip Codec
==========

Capture and reconstruction of baseline + delta clips.

Capture Path:
    IDLE -> CAPTURING -> STOPPED. The first captured sample becomes the
    BASELINE; every later sample is diffed against the previous captured
    sample (post-brightness), never against the baseline.

Reconstruction Path:
    - Sequential: one PlaybackContext owned by a playback loop carries the
      current reconstructed raster between calls. Frame 0 always resets it.
    - Random access: walks frames 0..k on a local accumulator and never
      touches a PlaybackContext.

Both modes apply deltas onto copies; a raster handed out is never mutated
afterwards. The render_* wrappers are the UI boundary: they never raise,
they return an error raster instead.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol

import numpy as np

from clipgrid.codec.frames import CompressedFrame, FrameStore
from clipgrid.codec.pixels import Change, FRAME_SIZE, adjust_brightness, diff, to_grayscale
from clipgrid.codec.serializer import apply_changes, serialize
from clipgrid.errors import (
    ClipCodecError,
    EmptyCaptureError,
    FrameNotFoundError,
    PrecedingBaselineMissingError,
)


logger = logging.getLogger(__name__)


RECORD_BRIGHTNESS = 1.20


# =============================================================================
# Frame Sources
# =============================================================================

class FrameSource(Protocol):
    """
    Anything that can hand out a clip's baseline and deltas.

    Implemented by FrameStore (local session) and RemoteClipAdapter
    (clip loaded from the remote store). Frame 0 is the baseline;
    frames 1..frame_count-1 are deltas.
    """

    @property
    def frame_count(self) -> int:
        ...

    def baseline_pixels(self) -> np.ndarray:
        ...

    def delta_changes(self, index: int) -> List[Change]:
        ...


@dataclass
class PlaybackContext:
    """
    Sequential reconstruction state for one playback loop.

    Attributes:
        current: Last reconstructed raster (flat uint8), None when unset
        index: Frame index `current` corresponds to, -1 when unset
    """

    current: Optional[np.ndarray] = None
    index: int = -1

    def reset(self) -> None:
        self.current = None
        self.index = -1


def _check_index(source: FrameSource, index: int) -> None:
    if not 0 <= index < source.frame_count:
        raise FrameNotFoundError(
            f"Frame {index} out of range for a {source.frame_count}-frame clip"
        )


def decode_at(source: FrameSource, index: int) -> np.ndarray:
    """
    Random-access reconstruction of frame `index`.

    Walks the baseline and deltas 1..index on a local accumulator.

    Raises:
        FrameNotFoundError: If index is outside the sequence
        DecompressionError: If a payload cannot be inflated
        PrecedingBaselineMissingError: If frame 0 is a delta
        InvalidBaselineError: If the baseline is not one full raster
    """
    _check_index(source, index)
    accumulator = source.baseline_pixels()
    for k in range(1, index + 1):
        accumulator = apply_changes(accumulator, source.delta_changes(k))
    return accumulator


def decode_sequential(
    source: FrameSource,
    index: int,
    context: PlaybackContext,
) -> np.ndarray:
    """
    Sequential reconstruction of frame `index` using `context`.

    Index 0 clears the context and decodes the baseline fresh. Index k
    applies delta k to a copy of the context's raster; if the context does
    not hold frame k-1 it is rebuilt by random access first.

    Raises:
        FrameNotFoundError: If index is outside the sequence
        DecompressionError: If a payload cannot be inflated
    """
    _check_index(source, index)

    if index == 0:
        context.reset()
        pixels = source.baseline_pixels()
    else:
        if context.current is None or context.index != index - 1:
            logger.debug(f"Playback context not at frame {index - 1}, rebuilding")
            base = decode_at(source, index - 1)
        else:
            base = context.current
        pixels = apply_changes(base, source.delta_changes(index))

    context.current = pixels
    context.index = index
    return pixels


# =============================================================================
# Render Boundary
# =============================================================================

def error_raster(size: int = FRAME_SIZE) -> np.ndarray:
    """Diagonal stripe pattern shown in place of a frame that failed to decode."""
    ys, xs = np.indices((size, size))
    return np.where(((xs + ys) // 8) % 2 == 0, 255, 0).astype(np.uint8).reshape(-1)


@dataclass(frozen=True)
class FrameRender:
    """Result of one render step: pixels to show and the failure, if any."""

    pixels: np.ndarray
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_image(self) -> np.ndarray:
        """Square (S, S) view of the flat raster."""
        side = int(round(self.pixels.shape[0] ** 0.5))
        return self.pixels.reshape(side, side)


def render_sequential(
    source: FrameSource,
    index: int,
    context: PlaybackContext,
    size: int = FRAME_SIZE,
) -> FrameRender:
    """Sequential decode that reports failures as an error raster."""
    try:
        return FrameRender(decode_sequential(source, index, context))
    except ClipCodecError as e:
        logger.error(f"Sequential reconstruction failed at frame {index}: {e}")
        context.reset()
        return FrameRender(error_raster(size), error=str(e))


def render_at(source: FrameSource, index: int, size: int = FRAME_SIZE) -> FrameRender:
    """Random-access decode that reports failures as an error raster."""
    try:
        return FrameRender(decode_at(source, index))
    except ClipCodecError as e:
        logger.error(f"Static reconstruction failed at frame {index}: {e}")
        return FrameRender(error_raster(size), error=str(e))


class SequentialPlayer:
    """
    Looping sequential playback over a frame source.

    Owns its PlaybackContext. Each step renders the current index and
    advances; after the last frame it wraps to 0, which resets the
    context before the baseline is decoded again.
    """

    def __init__(self, source: FrameSource, size: int = FRAME_SIZE) -> None:
        self.source = source
        self.size = size
        self.context = PlaybackContext()
        self.index = 0

    def step(self) -> FrameRender:
        count = self.source.frame_count
        if count == 0:
            return FrameRender(error_raster(self.size), error="Clip has no frames")
        if self.index >= count:
            logger.debug("Playback: looping back to frame 0")
            self.index = 0
        render = render_sequential(self.source, self.index, self.context, self.size)
        self.index = (self.index + 1) % count
        return render

    def rewind(self) -> None:
        self.index = 0
        self.context.reset()


# =============================================================================
# Capture
# =============================================================================

class CaptureState(str, Enum):
    """Capture session states."""

    IDLE = "IDLE"
    CAPTURING = "CAPTURING"
    STOPPED = "STOPPED"


@dataclass(frozen=True)
class CaptureSummary:
    """Size metrics logged at the end of a recording."""

    frame_count: int
    baseline_compressed_bytes: int
    raw_delta_bytes: int
    estimated_raw_bytes: int


class ClipCodec:
    """
    Builds a clip from raster samples and reconstructs its frames.

    Attributes:
        store: Frames captured in the current session
        state: Current CaptureState
        target_frame_count: Frames after which capture stops by itself

    Example:
        codec = ClipCodec(target_frame_count=10)
        codec.begin_capture()
        while codec.state is CaptureState.CAPTURING:
            codec.capture_frame(camera.read())
        frames = codec.frozen_frames()
    """

    def __init__(
        self,
        target_frame_count: int = 10,
        brightness: float = RECORD_BRIGHTNESS,
    ) -> None:
        if target_frame_count < 1:
            raise ValueError("target_frame_count must be >= 1")

        self.target_frame_count = target_frame_count
        self.brightness = brightness
        self.store = FrameStore()
        self.state = CaptureState.IDLE
        self._previous: Optional[np.ndarray] = None

    def begin_capture(self) -> None:
        """Start a fresh session, discarding any previous frames."""
        self.store.clear()
        self._previous = None
        self.state = CaptureState.CAPTURING
        logger.info(f"Capture started: target={self.target_frame_count} frames")

    def capture_frame(self, raster: np.ndarray) -> CompressedFrame:
        """
        Process one raster sample into a stored frame.

        Args:
            raster: RGB(A) or grayscale sample, already cropped and resized

        Returns:
            The stored CompressedFrame (BASELINE for the first sample)
        """
        if self.state is not CaptureState.CAPTURING:
            raise RuntimeError(f"Cannot capture in state {self.state.value}")

        sample = adjust_brightness(to_grayscale(raster), self.brightness)

        if self._previous is None:
            frame = CompressedFrame.baseline(sample)
        else:
            frame = CompressedFrame.delta(serialize(diff(sample, self._previous)))

        self.store.append(frame)
        self._previous = sample

        if len(self.store) >= self.target_frame_count:
            self.end_capture()
        return frame

    def end_capture(self) -> int:
        """Stop capturing (manual stop or target reached). Returns frame count."""
        if self.state is CaptureState.CAPTURING:
            self.state = CaptureState.STOPPED
            logger.info(f"Capture stopped: {len(self.store)} frames")
        return len(self.store)

    def frozen_frames(self) -> List[CompressedFrame]:
        """
        Snapshot of the captured frames for saving.

        Raises:
            EmptyCaptureError: If no frames were captured
        """
        if len(self.store) == 0:
            raise EmptyCaptureError("No recorded frames to save")
        return self.store.frames

    def capture_summary(self) -> CaptureSummary:
        baseline = self.store.baseline
        raw_deltas = sum(f.raw_length for f in self.store.deltas)
        return CaptureSummary(
            frame_count=len(self.store),
            baseline_compressed_bytes=len(baseline.compressed) if baseline else 0,
            raw_delta_bytes=raw_deltas,
            estimated_raw_bytes=(baseline.raw_length if baseline else 0) + raw_deltas,
        )

    # -------------------------------------------------------------------------
    # Reconstruction
    # -------------------------------------------------------------------------

    def preview(self, frame: CompressedFrame) -> np.ndarray:
        """
        Reconstruct one stored frame without touching playback state.

        Raises:
            FrameNotFoundError: If `frame` is not in this session
            PrecedingBaselineMissingError: If a delta precedes any baseline
        """
        accumulator: Optional[np.ndarray] = None
        for stored in self.store:
            if stored.is_baseline:
                accumulator = stored.pixels()
            else:
                if accumulator is None:
                    raise PrecedingBaselineMissingError(
                        "Delta frame found before any baseline frame"
                    )
                accumulator = apply_changes(accumulator, stored.changes())
            if stored is frame:
                return accumulator
        raise FrameNotFoundError(f"{frame!r} not found in the captured sequence")

    def render_preview(self, frame: CompressedFrame) -> FrameRender:
        """UI-boundary form of preview()."""
        try:
            return FrameRender(self.preview(frame))
        except ClipCodecError as e:
            logger.error(f"Static preview failed: {e}")
            return FrameRender(error_raster(), error=str(e))

    def player(self) -> SequentialPlayer:
        """Looping player over the captured session."""
        return SequentialPlayer(self.store)
