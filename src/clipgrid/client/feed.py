"""
Log Feed Client
===============

HTTP client for the log-cache service's /recent endpoint.
"""

import logging
from typing import List, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from clipgrid.chain.models import LogEntry
from clipgrid.errors import RpcError


logger = logging.getLogger(__name__)


class RecentLogs(BaseModel):
    """Body of GET /recent."""

    model_config = ConfigDict(populate_by_name=True)

    logs: List[LogEntry] = Field(default_factory=list)
    cached_up_to_block: int = Field(default=0, ge=0, alias="cachedUpToBlock")
    total_logs: int = Field(default=0, ge=0, alias="totalLogs")
    source: str = Field(default="unknown")
    cache_timestamp: Optional[str] = Field(default=None, alias="cacheTimestamp")


class LogFeedClient:
    """
    Fetches merged ClipUpdated logs for the grid.

    Example:
        feed = LogFeedClient(settings.client.api_base_url)
        logs = feed.fetch().logs
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint = base_url.rstrip("/") + "/recent"
        self.timeout = timeout
        self._session = session or requests.Session()

    def fetch(self) -> RecentLogs:
        """
        Raises:
            RpcError: On transport failure, non-2xx status or invalid body
        """
        try:
            response = self._session.get(self.endpoint, timeout=self.timeout)
        except requests.RequestException as e:
            raise RpcError(f"Log feed request failed: {e}") from e

        if not response.ok:
            raise RpcError(
                f"API request failed with status {response.status_code}: {response.text}"
            )

        try:
            page = RecentLogs.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RpcError(f"Invalid log feed response: {e}") from e

        logger.info(
            f"Received {len(page.logs)} logs from {self.endpoint} "
            f"(up to block {page.cached_up_to_block}, source={page.source})"
        )
        return page
