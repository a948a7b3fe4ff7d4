"""
Test Configuration
==================

Pytest fixtures and test configuration for ClipGrid.
"""

from typing import Iterable, List, Optional, Set, Tuple

import numpy as np
import pytest

from clipgrid.chain.models import LogEntry
from clipgrid.chain.store import InMemoryChain
from clipgrid.codec.pixels import FRAME_SIZE
from clipgrid.errors import RpcError
from clipgrid.logcache.kv import MemoryKeyValueStore


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class ScriptedRpc:
    """
    ChainRpc double with a settable head, canned logs and failing ranges.

    Records every get_logs call as (from_block, to_block).
    """

    def __init__(
        self,
        head: int,
        logs: Iterable[LogEntry] = (),
        failing_ranges: Optional[Set[Tuple[int, int]]] = None,
    ) -> None:
        self.head = head
        self.logs: List[LogEntry] = list(logs)
        self.failing_ranges = failing_ranges or set()
        self.calls: List[Tuple[int, int]] = []
        self.head_error: Optional[Exception] = None

    def block_number(self) -> int:
        if self.head_error is not None:
            raise self.head_error
        return self.head

    def get_logs(self, from_block: int, to_block: int) -> List[LogEntry]:
        self.calls.append((from_block, to_block))
        if (from_block, to_block) in self.failing_ranges:
            raise RpcError(f"rate limited {from_block}-{to_block}")
        return [
            log for log in self.logs
            if from_block <= log.block_number <= to_block
        ]


def make_log(
    block: int,
    timestamp: Optional[int] = None,
    user: str = "0x00000000000000000000000000000000000000aa",
    fid: int = 1,
    log_index: int = 0,
    tx_hash: Optional[str] = None,
) -> LogEntry:
    """Build a LogEntry; defaults derive the timestamp and hash from the block."""
    return LogEntry(
        user=user,
        fid=fid,
        timestamp=timestamp if timestamp is not None else block * 2,
        transaction_hash=tx_hash or f"0x{block:064x}",
        log_index=log_index,
        block_number=block,
    )


def solid(value: int, size: int = FRAME_SIZE) -> np.ndarray:
    """(size, size, 3) RGB raster of one grey level."""
    return np.full((size, size, 3), value, dtype=np.uint8)


@pytest.fixture
def clock():
    """Manually advanced clock starting at t=1000."""
    return FakeClock()


@pytest.fixture
def kv_store(clock):
    """In-memory key-value store on the fake clock."""
    return MemoryKeyValueStore(clock=clock)


@pytest.fixture
def chain():
    """In-memory chain with a fixed write timestamp source."""
    ticks = iter(range(1_700_000_000, 1_800_000_000, 10))
    return InMemoryChain(start_block=100, clock=lambda: next(ticks))


@pytest.fixture
def moving_rasters():
    """
    Ten RGB samples: a dark background with a bright 20x20 square that
    moves 8 px to the right each frame.
    """
    rasters = []
    for i in range(10):
        frame = np.full((FRAME_SIZE, FRAME_SIZE, 3), 40, dtype=np.uint8)
        x = 10 + 8 * i
        frame[60:80, x:x + 20] = 200
        rasters.append(frame)
    return rasters


@pytest.fixture
def owner():
    return "0xAbCdEf0000000000000000000000000000000001"
