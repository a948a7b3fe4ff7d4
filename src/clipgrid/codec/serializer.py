"""
Diff Serializer
===============

Binary packing of (index, value) delta records.

Wire Format:
    Each record is 3 bytes: little-endian uint16 pixel index followed by a
    uint8 intensity. No header, no count prefix; the record count is
    len(buffer) / 3.
"""

from typing import Iterable, List, Sequence

import numpy as np

from clipgrid.codec.pixels import Change
from clipgrid.errors import MalformedDiffError


RECORD_SIZE = 3

_RECORD_DTYPE = np.dtype([("index", "<u2"), ("value", "u1")])


def serialize(changes: Sequence[Change]) -> bytes:
    """
    Pack change records into the 3-byte wire format.

    Raises:
        ValueError: If an index does not fit in uint16 or a value in uint8
    """
    records = np.empty(len(changes), dtype=_RECORD_DTYPE)
    for i, (index, value) in enumerate(changes):
        if not 0 <= index <= 0xFFFF:
            raise ValueError(f"Pixel index out of range: {index}")
        if not 0 <= value <= 0xFF:
            raise ValueError(f"Pixel value out of range: {value}")
        records[i] = (index, value)
    return records.tobytes()


def deserialize(data: bytes) -> List[Change]:
    """
    Unpack a serialized diff buffer.

    Raises:
        MalformedDiffError: If the buffer is not a whole number of records
    """
    if len(data) % RECORD_SIZE != 0:
        raise MalformedDiffError(
            f"Diff buffer length {len(data)} is not a multiple of {RECORD_SIZE}"
        )
    records = np.frombuffer(bytes(data), dtype=_RECORD_DTYPE)
    return [(int(r["index"]), int(r["value"])) for r in records]


def apply_changes(pixels: np.ndarray, changes: Iterable[Change]) -> np.ndarray:
    """
    Apply change records onto a copy of a flat raster.

    Indices beyond the raster are ignored. The input array is never
    modified.
    """
    result = pixels.copy()
    limit = result.shape[0]
    for index, value in changes:
        if index < limit:
            result[index] = value
    return result
