"""
ClipGrid Configuration
======================

This module handles configuration loading for both the capture client and
the log-cache service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    CLIPGRID_RPC_URL            -> rpc.url
    ALCHEMY_MONAD_RPC_URL       -> rpc.url (fallback name)
    CLIPGRID_CONTRACT_ADDRESS   -> rpc.contract_address
    CLIPGRID_BLOCK_RANGE_LIMIT  -> rpc.block_range_limit
    CLIPGRID_EVENT_TOPIC        -> rpc.event_topic
    CLIPGRID_CACHE_BACKEND      -> cache.backend
    CLIPGRID_CACHE_PATH         -> cache.path
    CLIPGRID_RECENT_TTL         -> cache.recent_ttl_seconds
    CLIPGRID_API_BASE_URL       -> client.api_base_url
    CLIPGRID_PUBLIC_RPC_URL     -> client.rpc_url
    CLIPGRID_PORT               -> server.port
    CLIPGRID_LOG_LEVEL          -> logging.level
    PORT                        -> server.port (Cloud Run)

Example:
    from clipgrid.config import settings

    print(settings.capture.target_frame_count)
    print(settings.rpc.block_range_limit)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class CaptureConfig(BaseModel):
    """Recording session configuration."""

    fps: int = Field(default=5, ge=1, le=60, description="Capture frames per second")
    duration_ms: int = Field(
        default=2000,
        gt=0,
        description="Fixed recording duration in milliseconds",
    )
    brightness: float = Field(
        default=1.20,
        gt=0,
        description="Brightness factor applied on the recording path only",
    )
    camera_index: int = Field(default=0, ge=0, description="OpenCV camera index")

    @property
    def target_frame_count(self) -> int:
        """Frames captured by a full-length recording."""
        return int(self.duration_ms / 1000 * self.fps)


class GridConfig(BaseModel):
    """Mosaic display configuration."""

    columns: int = Field(default=3, ge=1, description="Grid columns")
    rows: int = Field(default=3, ge=1, description="Grid rows")
    clip_fps: int = Field(default=10, ge=1, description="Clip cell playback rate")
    noise_fps: int = Field(default=30, ge=1, description="Noise cell animation rate")

    @property
    def total_cells(self) -> int:
        return self.columns * self.rows


class RpcConfig(BaseModel):
    """Upstream chain RPC configuration."""

    url: Optional[str] = Field(default=None, description="JSON-RPC endpoint URL")
    contract_address: str = Field(
        default="0x1B5481D98B0cD6b3422E15d6e16102C3780B08Ec",
        description="Clip recorder contract address",
    )
    event_topic: Optional[str] = Field(
        default=None,
        description="topic0 override for the ClipUpdated event (derived from the event signature if unset)",
    )
    block_range_limit: int = Field(
        default=1000,
        ge=1,
        description="Maximum blocks spanned by one getLogs call",
    )
    initial_lookback_blocks: int = Field(
        default=10000,
        ge=1,
        description="Lookback used when no cache tier exists",
    )
    timeout_seconds: float = Field(default=10.0, gt=0, description="HTTP timeout")


class CacheConfig(BaseModel):
    """Log cache tier configuration."""

    backend: str = Field(default="file", description="Key-value backend: 'memory' or 'file'")
    path: str = Field(default="./data/log_cache", description="Directory for the file backend")
    recent_key: str = Field(default="clipgrid:recent_logs_v2", description="Recent tier key")
    historical_key: str = Field(
        default="clipgrid:historical_logs_v1",
        description="Historical tier key",
    )
    recent_ttl_seconds: int = Field(default=120, ge=1, description="Recent tier TTL")


class BackfillConfig(BaseModel):
    """Offline historical backfill configuration."""

    start_block: int = Field(default=15592132, ge=0, description="First block to scan")
    calls_per_batch: int = Field(default=5, ge=1, description="getLogs calls between pauses")
    batch_delay_ms: int = Field(default=200, ge=0, description="Pause between batches")
    chunk_error_delay_ms: int = Field(default=5000, ge=0, description="Pause after a failed chunk")


class ClientConfig(BaseModel):
    """Capture client configuration."""

    api_base_url: str = Field(
        default="http://localhost:8787",
        description="Base URL of the log-cache service",
    )
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    rpc_url: Optional[str] = Field(
        default="https://testnet-rpc.monad.xyz",
        description="Public JSON-RPC endpoint queried directly for the newest logs",
    )
    direct_lookback_blocks: int = Field(
        default=200,
        ge=1,
        description="Blocks behind the head queried directly when loading the grid",
    )
    direct_block_range_limit: int = Field(
        default=100,
        ge=1,
        description="Maximum blocks spanned by one direct getLogs call",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8787, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for ClipGrid.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    grid: GridConfig = Field(default_factory=GridConfig)
    rpc: RpcConfig = Field(default_factory=RpcConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    backfill: BackfillConfig = Field(default_factory=BackfillConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # RPC settings
    if env_rpc := os.environ.get("CLIPGRID_RPC_URL"):
        config_data.setdefault("rpc", {})["url"] = env_rpc
    elif env_rpc := os.environ.get("ALCHEMY_MONAD_RPC_URL"):
        config_data.setdefault("rpc", {})["url"] = env_rpc
    if env_addr := os.environ.get("CLIPGRID_CONTRACT_ADDRESS"):
        config_data.setdefault("rpc", {})["contract_address"] = env_addr
    if env_limit := os.environ.get("CLIPGRID_BLOCK_RANGE_LIMIT"):
        config_data.setdefault("rpc", {})["block_range_limit"] = int(env_limit)
    if env_topic := os.environ.get("CLIPGRID_EVENT_TOPIC"):
        config_data.setdefault("rpc", {})["event_topic"] = env_topic

    # Cache settings
    if env_backend := os.environ.get("CLIPGRID_CACHE_BACKEND"):
        config_data.setdefault("cache", {})["backend"] = env_backend
    if env_path := os.environ.get("CLIPGRID_CACHE_PATH"):
        config_data.setdefault("cache", {})["path"] = env_path
    if env_ttl := os.environ.get("CLIPGRID_RECENT_TTL"):
        config_data.setdefault("cache", {})["recent_ttl_seconds"] = int(env_ttl)

    # Client settings
    if env_api := os.environ.get("CLIPGRID_API_BASE_URL"):
        config_data.setdefault("client", {})["api_base_url"] = env_api
    if env_public := os.environ.get("CLIPGRID_PUBLIC_RPC_URL"):
        config_data.setdefault("client", {})["rpc_url"] = env_public

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("CLIPGRID_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("CLIPGRID_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
