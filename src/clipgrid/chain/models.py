"""
Chain Event Models
==================

Pydantic models for ClipUpdated event logs.

Serialized Form (camelCase, uint256 fields as decimal strings):
    {
        "user": "0xabc...",
        "fid": "1234",
        "timestamp": "1717171717",
        "transactionHash": "0x...",
        "logIndex": 0,
        "blockNumber": "15600000"
    }

uint256 values are string-encoded so consumers without big integers do
not lose precision.
"""

from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class LogEntry(BaseModel):
    """
    One ClipUpdated event.

    Identity is (transaction_hash, log_index). For a given user only the
    entry with the greatest timestamp matters for display.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user: str = Field(..., description="Clip owner address")
    fid: int = Field(..., ge=0, description="Farcaster user identifier")
    timestamp: int = Field(..., ge=0, description="Event timestamp (seconds)")
    transaction_hash: str = Field(..., alias="transactionHash")
    log_index: int = Field(..., ge=0, alias="logIndex")
    block_number: int = Field(..., ge=0, alias="blockNumber")

    @field_serializer("fid", "timestamp", "block_number")
    def _uint256_as_string(self, value: int) -> str:
        return str(value)

    @property
    def identity(self) -> Tuple[str, int]:
        return (self.transaction_hash, self.log_index)

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        """Newest first when sorted in reverse."""
        return (self.timestamp, self.block_number, self.log_index)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
