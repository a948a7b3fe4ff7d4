"""
JSON-RPC Client
===============

Minimal Ethereum JSON-RPC client for block height and ClipUpdated logs.

Event Layout:
    VideoClipUpdated(address indexed user, uint256 fid, uint256 timestamp)
        topics[0]  keccak256 of the canonical signature
        topics[1]  user address, left-padded to 32 bytes
        data       fid (32 bytes) || timestamp (32 bytes)

Design Rules:
    - Transport and protocol failures raise RpcError
    - Logs that cannot be decoded are logged and skipped
    - Logs are filtered by topic0, so other events of the contract never
      decode as ClipUpdated
"""

import itertools
import logging
from typing import Any, List, Optional

import requests
from Crypto.Hash import keccak

from clipgrid.chain.models import LogEntry
from clipgrid.errors import RpcError


logger = logging.getLogger(__name__)


CLIP_UPDATED_SIGNATURE = "VideoClipUpdated(address,uint256,uint256)"


def event_topic(signature: str) -> str:
    """topic0 of an event: keccak256 of its canonical signature."""
    digest = keccak.new(digest_bits=256, data=signature.encode("ascii"))
    return "0x" + digest.hexdigest()


CLIP_UPDATED_TOPIC = event_topic(CLIP_UPDATED_SIGNATURE)


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)


def decode_clip_updated(raw: dict, topic: str = CLIP_UPDATED_TOPIC) -> LogEntry:
    """
    Decode one eth_getLogs entry into a LogEntry.

    Raises:
        ValueError: If the topics or data do not match the event layout
    """
    topics = raw.get("topics") or []
    if len(topics) < 2:
        raise ValueError(f"Expected indexed user topic, got {len(topics)} topics")
    if topics[0].lower() != topic.lower():
        raise ValueError(f"Unexpected event topic {topics[0]}")

    data = (raw.get("data") or "0x")[2:]
    if len(data) < 128:
        raise ValueError(f"Event data too short: {len(data) // 2} bytes")

    return LogEntry(
        user="0x" + topics[1][-40:].lower(),
        fid=int(data[0:64], 16),
        timestamp=int(data[64:128], 16),
        transaction_hash=raw["transactionHash"],
        log_index=_to_int(raw["logIndex"]),
        block_number=_to_int(raw["blockNumber"]),
    )


class JsonRpcClient:
    """
    Synchronous JSON-RPC client over HTTP.

    Attributes:
        url: RPC endpoint
        contract_address: Contract whose logs are queried
        event_topic: topic0 filter, CLIP_UPDATED_TOPIC unless overridden

    Example:
        rpc = JsonRpcClient(settings.rpc.url, settings.rpc.contract_address)
        head = rpc.block_number()
        logs = rpc.get_logs(head - 999, head)
    """

    def __init__(
        self,
        url: str,
        contract_address: str,
        event_topic: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.contract_address = contract_address
        self.event_topic = (event_topic or CLIP_UPDATED_TOPIC).lower()
        self.timeout = timeout
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    def _call(self, method: str, params: list) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise RpcError(f"{method} request failed: {e}") from e
        except ValueError as e:
            raise RpcError(f"{method} returned invalid JSON: {e}") from e

        if body.get("error"):
            error = body["error"]
            raise RpcError(f"{method} error {error.get('code')}: {error.get('message')}")
        return body.get("result")

    def block_number(self) -> int:
        return _to_int(self._call("eth_blockNumber", []))

    def get_logs(self, from_block: int, to_block: int) -> List[LogEntry]:
        log_filter = {
            "address": self.contract_address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
            "topics": [self.event_topic],
        }

        raw_logs = self._call("eth_getLogs", [log_filter]) or []
        entries = []
        for raw in raw_logs:
            if raw.get("removed"):
                continue
            try:
                entries.append(decode_clip_updated(raw, self.event_topic))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping undecodable log {raw.get('transactionHash')}: {e}")
        return entries
