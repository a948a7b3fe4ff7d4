"""
Clip Store
==========

Interfaces to the remote clip contract and an in-memory implementation.

The contract is treated as an opaque key-value store keyed by owner
address: a write replaces the owner's clip (last write wins) and emits a
ClipUpdated event.

Design Rules:
    - save_clip never retries; the user re-initiates a failed save
    - Provider failures surface as RemoteWriteRejected with the provider's
      message when one is available
"""

import hashlib
import logging
import time
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from clipgrid.chain.models import LogEntry
from clipgrid.codec.frames import CompressedFrame
from clipgrid.codec.remote import UINT32_MAX, RemoteClip, to_remote_form
from clipgrid.errors import EmptyCaptureError, RemoteWriteRejected


logger = logging.getLogger(__name__)


class ClipStore(Protocol):
    """Remote clip contract surface."""

    def write(
        self,
        owner: str,
        first_frame: bytes,
        compressed_diffs: bytes,
        diff_lengths: Sequence[int],
        fid: int,
    ) -> str:
        """Replace the owner's clip. Returns the transaction hash."""
        ...

    def read(self, owner: str) -> Optional[RemoteClip]:
        """Current clip of `owner`, or None if none was ever written."""
        ...


class ChainRpc(Protocol):
    """Block height and event log queries."""

    def block_number(self) -> int:
        ...

    def get_logs(self, from_block: int, to_block: int) -> List[LogEntry]:
        ...


class InMemoryChain:
    """
    Local chain holding clips and ClipUpdated logs.

    Every write mines one block containing one ClipUpdated log.
    Implements both ClipStore and ChainRpc.

    Example:
        chain = InMemoryChain(start_block=100)
        tx = chain.write(owner, first, diffs, lengths, fid=7)
        logs = chain.get_logs(0, chain.block_number())
    """

    def __init__(
        self,
        start_block: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._head = start_block
        self._clock = clock
        self._clips: Dict[str, RemoteClip] = {}
        self._logs: List[LogEntry] = []
        self._reject_message: Optional[str] = None

    def reject_next_write(self, message: str = "execution reverted") -> None:
        """Make the next write revert with `message`."""
        self._reject_message = message

    def mine(self, blocks: int = 1) -> int:
        """Advance the head without emitting logs."""
        self._head += blocks
        return self._head

    def block_number(self) -> int:
        return self._head

    def get_logs(self, from_block: int, to_block: int) -> List[LogEntry]:
        return [
            log for log in self._logs
            if from_block <= log.block_number <= to_block
        ]

    def write(
        self,
        owner: str,
        first_frame: bytes,
        compressed_diffs: bytes,
        diff_lengths: Sequence[int],
        fid: int,
    ) -> str:
        if self._reject_message is not None:
            message, self._reject_message = self._reject_message, None
            raise RemoteWriteRejected(message)
        if any(not 0 <= n <= UINT32_MAX for n in diff_lengths):
            raise RemoteWriteRejected("diff length does not fit uint32")

        self._head += 1
        timestamp = int(self._clock())
        tx_hash = "0x" + hashlib.sha256(
            f"{owner}:{self._head}:{len(self._logs)}".encode()
        ).hexdigest()

        key = owner.lower()
        self._clips[key] = RemoteClip(
            first_frame=first_frame,
            compressed_diffs=compressed_diffs,
            diff_lengths=list(diff_lengths),
            fid=fid,
            timestamp=timestamp,
        )
        self._logs.append(LogEntry(
            user=key,
            fid=fid,
            timestamp=timestamp,
            transaction_hash=tx_hash,
            log_index=0,
            block_number=self._head,
        ))
        logger.debug(f"Clip written for {key} at block {self._head}")
        return tx_hash

    def read(self, owner: str) -> Optional[RemoteClip]:
        return self._clips.get(owner.lower())


def save_clip(
    store: ClipStore,
    owner: str,
    frames: Sequence[CompressedFrame],
    fid: int,
) -> str:
    """
    Export a captured clip and write it to the store.

    Raises:
        EmptyCaptureError: If no frames were captured
        MissingBaselineError: If the frames hold no baseline
        RemoteWriteRejected: If the store rejects the write
    """
    if not frames:
        raise EmptyCaptureError("No recorded frames to save")

    remote = to_remote_form(frames, fid=fid)

    try:
        tx_hash = store.write(
            owner,
            remote.first_frame,
            remote.compressed_diffs,
            remote.diff_lengths,
            fid,
        )
    except RemoteWriteRejected:
        raise
    except Exception as e:
        message = str(e) or RemoteWriteRejected.GENERIC_MESSAGE
        logger.error(f"Save failed for {owner}: {message}")
        raise RemoteWriteRejected(message, code=getattr(e, "code", None)) from e

    logger.info(f"Clip saved for {owner}: tx={tx_hash[:10]}...")
    return tx_hash
