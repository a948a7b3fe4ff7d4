"""
Camera Source
=============

OpenCV webcam wrapper producing square RGB samples.

Design Rules:
    - Scoped acquisition: use as a context manager, the device is
      released on every exit path
    - Samples are centre-cropped to a square then resized to size x size
"""

import logging
from typing import Optional

import cv2
import numpy as np

from clipgrid.codec.pixels import FRAME_SIZE, center_square
from clipgrid.config import CaptureConfig
from clipgrid.errors import CameraUnavailableError


logger = logging.getLogger(__name__)


def to_sample(bgr: np.ndarray, size: int = FRAME_SIZE) -> np.ndarray:
    """Centre-crop a BGR camera frame and resize it to an RGB sample."""
    if bgr is None or bgr.ndim != 3 or bgr.shape[2] != 3:
        raise CameraUnavailableError(
            f"Invalid camera frame shape: {None if bgr is None else bgr.shape}"
        )
    square = center_square(bgr)
    resized = cv2.resize(square, (size, size), interpolation=cv2.INTER_AREA)
    return cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)


class CameraSource:
    """
    Webcam opened through cv2.VideoCapture.

    Example:
        with CameraSource(index=0) as camera:
            sample = camera.read()
    """

    def __init__(self, index: int = 0, size: int = FRAME_SIZE) -> None:
        self.index = index
        self.size = size
        self._capture: Optional[cv2.VideoCapture] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> None:
        if self._capture is not None:
            return
        capture = cv2.VideoCapture(self.index)
        if not capture.isOpened():
            capture.release()
            raise CameraUnavailableError(f"Cannot open camera {self.index}")
        self._capture = capture
        logger.info(f"Camera {self.index} opened")

    def read(self) -> np.ndarray:
        """
        Grab one (size, size, 3) RGB sample.

        Raises:
            CameraUnavailableError: If the camera is closed or returns no frame
        """
        if self._capture is None:
            raise CameraUnavailableError("Camera not started")
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise CameraUnavailableError(f"Camera {self.index} returned no frame")
        return to_sample(frame, self.size)

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Camera {self.index} released")

    def __enter__(self) -> "CameraSource":
        self.open()
        return self

    def __exit__(self, *args) -> None:
        self.release()


def create_camera(config: CaptureConfig) -> CameraSource:
    """Camera for the configured device index."""
    return CameraSource(index=config.camera_index)
