"""
Clip Recorder
=============

Capture session controller: camera + scheduler + ClipCodec.

Flow:
    open -> live preview -> record (fixed duration or manual stop)
         -> automatic looping playback -> save -> close

Live preview shows grayscale only; the recording path also applies the
brightness factor. Preview, recording and playback are mutually
exclusive activities on the ActivityScheduler.

Design Rules:
    - The camera is released on close, including after errors
    - A failed or empty recording never reaches the store
    - Save never retries; the user re-initiates it
"""

import logging
import time
from typing import Callable, Optional, Protocol

import numpy as np

from clipgrid.chain.store import ClipStore, save_clip
from clipgrid.client.camera import create_camera
from clipgrid.client.scheduler import Activity, ActivityScheduler
from clipgrid.codec.clip import CaptureState, ClipCodec, SequentialPlayer
from clipgrid.codec.pixels import to_grayscale
from clipgrid.config import CaptureConfig
from clipgrid.errors import CameraUnavailableError, EmptyCaptureError, RemoteWriteRejected


logger = logging.getLogger(__name__)


class Camera(Protocol):
    """Sample source used by the recorder (CameraSource in production)."""

    def open(self) -> None:
        ...

    def read(self) -> np.ndarray:
        ...

    def release(self) -> None:
        ...


class ClipRecorder:
    """
    Drives one capture surface.

    Attributes:
        codec: ClipCodec holding the current session
        scheduler: Activity scheduler (one activity at a time)
        status: Last user-facing status message
        image: Last image shown on the surface

    Example:
        with ClipRecorder(CameraSource()) as recorder:
            recorder.start_recording()
            while recorder.scheduler.current is not None and not recorder.has_recording:
                recorder.tick()
            recorder.save(chain, owner, fid)
    """

    def __init__(
        self,
        camera: Camera,
        config: Optional[CaptureConfig] = None,
        scheduler: Optional[ActivityScheduler] = None,
        clock: Callable[[], float] = time.monotonic,
        on_image: Optional[Callable[[np.ndarray], None]] = None,
    ) -> None:
        self.camera = camera
        self.config = config or CaptureConfig()
        self.scheduler = scheduler or ActivityScheduler()
        self.codec = ClipCodec(
            target_frame_count=self.config.target_frame_count,
            brightness=self.config.brightness,
        )
        self._clock = clock
        self._on_image = on_image
        self._player: Optional[SequentialPlayer] = None
        self.status = ""
        self.image: Optional[np.ndarray] = None
        self.last_error: Optional[Exception] = None

    @property
    def interval(self) -> float:
        return 1.0 / self.config.fps

    @property
    def has_recording(self) -> bool:
        return self.codec.state is CaptureState.STOPPED and len(self.codec.store) > 0

    def _show(self, image: np.ndarray) -> None:
        self.image = image
        if self._on_image is not None:
            self._on_image(image)

    def _fail(self, message: str, error: Exception) -> None:
        self.last_error = error
        self.status = message
        logger.error(f"{message}: {error}")

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def open(self) -> None:
        """
        Acquire the camera and start the live preview.

        Raises:
            CameraUnavailableError: If the camera cannot be opened
        """
        self.status = "Requesting camera permission..."
        try:
            self.camera.open()
        except CameraUnavailableError as e:
            self._fail("Camera Error", e)
            self.camera.release()
            raise
        self.start_preview()
        self.status = "Ready to record."

    def close(self) -> None:
        """Stop any activity and release the camera."""
        self.scheduler.stop()
        self.codec.end_capture()
        self._player = None
        self.camera.release()
        self.status = ""

    def __enter__(self) -> "ClipRecorder":
        self.open()
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def tick(self) -> bool:
        """Advance the active activity if due."""
        return self.scheduler.tick(self._clock())

    # -------------------------------------------------------------------------
    # Activities
    # -------------------------------------------------------------------------

    def start_preview(self) -> None:
        self.scheduler.start(Activity.PREVIEW, self.interval, self._preview_step, self._clock())

    def _preview_step(self) -> None:
        try:
            sample = self.camera.read()
        except CameraUnavailableError as e:
            self.scheduler.stop(Activity.PREVIEW)
            self._fail("Video element error. Cannot display preview.", e)
            return
        self._show(to_grayscale(sample))

    def start_recording(self) -> None:
        """Begin a new recording, replacing any previous one."""
        self._player = None
        self.codec.begin_capture()
        self.scheduler.start(Activity.RECORDING, self.interval, self._record_step, self._clock())
        self.status = "Recording..."

    def _record_step(self) -> None:
        if self.codec.state is not CaptureState.CAPTURING:
            self.stop_recording()
            return
        try:
            sample = self.camera.read()
        except CameraUnavailableError as e:
            self._fail("Error: Webcam not active.", e)
            self.stop_recording()
            return

        frame = self.codec.capture_frame(sample)
        self._show(self.codec.render_preview(frame).as_image())
        self.status = f"Recording... {len(self.codec.store)}/{self.codec.target_frame_count}"

        if self.codec.state is CaptureState.STOPPED:
            self.stop_recording()

    def stop_recording(self) -> int:
        """
        End the recording. A non-empty recording starts looping playback;
        an empty one returns to live preview.

        Returns:
            Number of frames captured
        """
        self.scheduler.stop(Activity.RECORDING)
        count = self.codec.end_capture()

        if count > 0:
            summary = self.codec.capture_summary()
            logger.info(
                f"Recording summary: {summary.frame_count} frames, "
                f"baseline {summary.baseline_compressed_bytes}B compressed, "
                f"raw diffs {summary.raw_delta_bytes}B"
            )
            self.status = (
                f"Done! {count} frames. Playing preview... "
                f"(Raw size ~{summary.estimated_raw_bytes / 1024:.2f} KB)"
            )
            self.start_playback()
        else:
            if self.last_error is None:
                self.status = "Recording stopped early or failed."
            self.start_preview()
        return count

    def start_playback(self) -> None:
        if len(self.codec.store) == 0:
            self.status = "No recording to play."
            return
        self._player = self.codec.player()
        self.scheduler.start(Activity.PLAYBACK, self.interval, self._playback_step, self._clock())

    def _playback_step(self) -> None:
        render = self._player.step()
        self._show(render.as_image())
        if not render.ok:
            self.status = f"Playback error: {render.error}"
        else:
            shown = (self._player.index - 1) % len(self.codec.store) + 1
            self.status = f"Previewing frame {shown}/{len(self.codec.store)}"

    # -------------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------------

    def save(self, store: ClipStore, owner: str, fid: int) -> str:
        """
        Write the recording to the remote store.

        Raises:
            EmptyCaptureError: If nothing was recorded
            RemoteWriteRejected: If the write fails
        """
        self.scheduler.stop(Activity.PLAYBACK)
        self.status = "Preparing to save..."
        try:
            tx_hash = save_clip(store, owner, self.codec.frozen_frames(), fid)
        except EmptyCaptureError as e:
            self._fail("No recorded frames to save.", e)
            raise
        except RemoteWriteRejected as e:
            self._fail(f"Error: {e}", e)
            raise

        self.status = "Video saved successfully!"
        return tx_hash


def create_recorder(config: CaptureConfig, **kwargs) -> ClipRecorder:
    """Recorder on the configured camera with the configured capture timing."""
    return ClipRecorder(create_camera(config), config=config, **kwargs)
