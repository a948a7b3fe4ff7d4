"""
Grid Mosaic
===========

Display cells for the clip mosaic and the shared animation clock.

Slots:
    GridSlot = NoiseSlot | ClipSlot

    NoiseSlot  animated TV static, 30 fps
    ClipSlot   looping playback of a remote clip, 10 fps

One GridAnimator.tick(now) evaluates every slot; each slot renders only
when its own interval has elapsed. A slow slot delays the slots after it
within the same tick.

Population:
    build_grid ranks users by their newest ClipUpdated entry and gives the
    newest clips the first slots; the remaining slots stay noise.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

import numpy as np

from clipgrid.chain.models import LogEntry
from clipgrid.chain.store import ClipStore
from clipgrid.codec.clip import FrameRender, SequentialPlayer
from clipgrid.codec.pixels import FRAME_SIZE
from clipgrid.codec.remote import RemoteClipAdapter
from clipgrid.errors import ClipCodecError, ClipGridError
from clipgrid.logcache.cache import latest_per_user


logger = logging.getLogger(__name__)


GRID_FPS = 10
NOISE_FPS = 30


# =============================================================================
# Noise
# =============================================================================

class NoiseGenerator:
    """
    Animated static.

    Starts from coarse black/white grain (2x2 blocks), then each frame
    shifts a random set of columns up or down by 1-5 pixels, filling the
    vacated pixels with black.
    """

    def __init__(
        self,
        size: int = FRAME_SIZE,
        grain: int = 2,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.size = size
        self.grain = grain
        self.rng = rng or np.random.default_rng()
        self.pixels: Optional[np.ndarray] = None

    def _initial(self) -> np.ndarray:
        cells = math.ceil(self.size / self.grain)
        coarse = np.where(self.rng.random((cells, cells)) > 0.5, 255, 0).astype(np.uint8)
        fine = np.repeat(np.repeat(coarse, self.grain, axis=0), self.grain, axis=1)
        return fine[:self.size, :self.size].copy()

    def next_frame(self) -> np.ndarray:
        if self.pixels is None:
            self.pixels = self._initial()

        previous = self.pixels
        frame = previous.copy()
        num_shifts = int(self.rng.random() * (self.size / 10)) + self.size // 20

        for _ in range(num_shifts):
            x = int(self.rng.integers(self.size))
            shift = int(self.rng.integers(-5, 6))
            if shift == 0:
                shift = 1 if self.rng.random() > 0.5 else -1

            column = np.zeros(self.size, dtype=np.uint8)
            if shift > 0:
                column[shift:] = previous[:-shift, x]
            else:
                column[:shift] = previous[-shift:, x]
            frame[:, x] = column

        self.pixels = frame
        return frame


# =============================================================================
# Slots
# =============================================================================

@dataclass
class NoiseSlot:
    """Cell showing static."""

    generator: NoiseGenerator
    interval: float = 1.0 / NOISE_FPS
    last_render: Optional[float] = None
    image: Optional[np.ndarray] = None


@dataclass
class ClipSlot:
    """Cell playing one remote clip in a loop."""

    owner: str
    fid: int
    timestamp: int
    adapter: RemoteClipAdapter
    player: SequentialPlayer = field(init=False)
    interval: float = 1.0 / GRID_FPS
    last_render: Optional[float] = None
    image: Optional[np.ndarray] = None
    last_error: Optional[str] = None

    def __post_init__(self) -> None:
        self.player = SequentialPlayer(self.adapter)

    @property
    def title(self) -> str:
        return (
            f"FID: {self.fid} ({self.owner[:6]}...) "
            f"({self.adapter.frame_count} frames)"
        )


GridSlot = Union[NoiseSlot, ClipSlot]


def _is_due(slot: GridSlot, now: float) -> bool:
    return slot.last_render is None or now - slot.last_render >= slot.interval


def render_slot(slot: GridSlot) -> None:
    """Render one step of `slot` into `slot.image`."""
    if isinstance(slot, NoiseSlot):
        slot.image = slot.generator.next_frame()
    elif isinstance(slot, ClipSlot):
        render: FrameRender = slot.player.step()
        slot.image = render.as_image()
        slot.last_error = render.error
    else:
        raise TypeError(f"Unknown grid slot: {type(slot).__name__}")


class GridAnimator:
    """
    Shared clock for all grid slots.

    Example:
        animator = GridAnimator(build_grid(logs, 9, store))
        while running:
            animator.tick(time.monotonic())
            draw(animator.images())
    """

    def __init__(self, slots: List[GridSlot]) -> None:
        self.slots = slots
        self.ticks = 0

    def tick(self, now: float) -> int:
        """Render every due slot. Returns the number of slots rendered."""
        self.ticks += 1
        rendered = 0
        for slot in self.slots:
            if not _is_due(slot, now):
                continue
            render_slot(slot)
            slot.last_render = now
            rendered += 1
        return rendered

    def images(self) -> List[Optional[np.ndarray]]:
        return [slot.image for slot in self.slots]

    @property
    def clip_count(self) -> int:
        return sum(1 for slot in self.slots if isinstance(slot, ClipSlot))


# =============================================================================
# Population
# =============================================================================

def build_grid(
    logs: Iterable[LogEntry],
    total_cells: int,
    store: ClipStore,
    rng: Optional[np.random.Generator] = None,
    clip_fps: float = GRID_FPS,
    noise_fps: float = NOISE_FPS,
) -> List[GridSlot]:
    """
    Assign the newest clips to the first slots, noise everywhere else.

    Users whose clip cannot be read or whose first frame is empty are
    skipped. A clip that fails to decode keeps its slot and renders the
    error raster.
    """
    rng = rng or np.random.default_rng()
    slots: List[GridSlot] = [
        NoiseSlot(NoiseGenerator(rng=rng), interval=1.0 / noise_fps)
        for _ in range(total_cells)
    ]

    placed = 0
    for entry in latest_per_user(logs):
        if placed >= total_cells:
            break
        try:
            remote = store.read(entry.user)
        except ClipGridError as e:
            logger.error(f"Error loading clip for {entry.user} (FID {entry.fid}): {e}")
            continue

        if remote is None:
            logger.warning(f"No clip stored for {entry.user}, skipping")
            continue
        adapter = RemoteClipAdapter(remote)
        if not adapter.is_valid:
            logger.warning(f"No valid first frame for {entry.user}, FID {entry.fid}. Skipping.")
            continue

        try:
            adapter.prepare_for_playback()
        except ClipCodecError:
            logger.warning(f"Clip for {entry.user} will render as an error cell")

        slots[placed] = ClipSlot(
            owner=entry.user,
            fid=entry.fid,
            timestamp=entry.timestamp,
            adapter=adapter,
            interval=1.0 / clip_fps,
        )
        placed += 1

    logger.info(f"Loaded {placed} clips into a {total_cells}-cell grid")
    return slots
