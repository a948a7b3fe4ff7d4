"""
Pixel Codec
===========

Grayscale conversion, brightness adjustment and per-pixel delta extraction.

Design Rules:
    - Pure functions over numpy rasters; inputs are never mutated
    - Grayscale is the UNWEIGHTED mean of R, G, B (alpha ignored)
    - Delta threshold is fixed at 5 intensity levels
    - Emitted changes follow raster (row-major) order
"""

from typing import List, Tuple

import numpy as np


FRAME_SIZE = 160
TOTAL_PIXELS = FRAME_SIZE * FRAME_SIZE
DIFF_THRESHOLD = 5

Change = Tuple[int, int]


def to_grayscale(raster: np.ndarray) -> np.ndarray:
    """
    Convert an RGB(A) raster to a single-channel grayscale raster.

    Args:
        raster: (H, W, 3) or (H, W, 4) uint8 array. A (H, W) array is
            already grayscale and is returned as a copy.

    Returns:
        (H, W) uint8 array, mean of the three colour channels rounded to
        the nearest integer.
    """
    if raster.ndim == 2:
        return raster.astype(np.uint8, copy=True)
    if raster.ndim != 3 or raster.shape[2] not in (3, 4):
        raise ValueError(f"Expected (H, W, 3|4) raster, got shape {raster.shape}")

    rgb = raster[..., :3].astype(np.float32)
    mean = rgb.sum(axis=2) / 3.0
    return np.clip(np.rint(mean), 0, 255).astype(np.uint8)


def adjust_brightness(raster: np.ndarray, factor: float) -> np.ndarray:
    """Scale every value by `factor`, clamped to [0, 255]."""
    scaled = raster.astype(np.float32) * factor
    return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)


def diff(current: np.ndarray, previous: np.ndarray) -> List[Change]:
    """
    Extract pixels whose intensity moved by more than the threshold.

    Args:
        current: Grayscale raster of the new frame
        previous: Grayscale raster of the immediately preceding frame

    Returns:
        List of (index, value) pairs in raster order, value taken from
        `current`.
    """
    if current.shape != previous.shape:
        raise ValueError(
            f"Frame shape mismatch: {current.shape} vs {previous.shape}"
        )

    cur = current.reshape(-1).astype(np.int16)
    prev = previous.reshape(-1).astype(np.int16)
    changed = np.flatnonzero(np.abs(cur - prev) > DIFF_THRESHOLD)
    return [(int(i), int(cur[i])) for i in changed]


def center_square(raster: np.ndarray) -> np.ndarray:
    """Crop the largest centred square out of a (H, W, ...) raster."""
    height, width = raster.shape[:2]
    size = min(height, width)
    top = (height - size) // 2
    left = (width - size) // 2
    return raster[top:top + size, left:left + size]
