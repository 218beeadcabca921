"""
videostream Configuration
=========================

This module handles configuration loading for the streamer and viewer.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    VIDEOSTREAM_HOST             -> server.host
    VIDEOSTREAM_PORT             -> server.port, client.port
    VIDEOSTREAM_SEND_INTERVAL_MS -> server.send_interval_ms
    VIDEOSTREAM_FRAMING          -> server.framing, client.framing
    VIDEOSTREAM_CONNECT_TIMEOUT  -> client.connect_timeout_seconds
    VIDEOSTREAM_CAPTURE_BACKEND  -> capture.backend
    VIDEOSTREAM_CAMERA_INDEX     -> capture.device_index
    VIDEOSTREAM_JPEG_QUALITY     -> capture.jpeg_quality
    VIDEOSTREAM_STATUS_PORT      -> status.port
    VIDEOSTREAM_LOG_LEVEL        -> logging.level

Example:
    from videostream.config import settings

    print(settings.server.port)
    print(settings.capture.jpeg_quality)
"""

import os
import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from videostream.stream.framing import FramingMode


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServerConfig(BaseModel):
    """Streaming server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=0, le=65535, description="Bind port")
    send_interval_ms: int = Field(
        default=60,
        ge=1,
        description="Pause between frame messages per client (milliseconds)",
    )
    framing: FramingMode = Field(
        default=FramingMode.LENGTH_PREFIXED,
        description="Wire framing: 'length_prefixed' or 'jpeg_stream'",
    )


class ClientConfig(BaseModel):
    """Viewer connection configuration."""

    host: str = Field(default="127.0.0.1", description="Server address")
    port: int = Field(default=8080, ge=1, le=65535, description="Server port")
    connect_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="TCP connect timeout",
    )
    framing: FramingMode = Field(
        default=FramingMode.LENGTH_PREFIXED,
        description="Wire framing: 'length_prefixed' or 'jpeg_stream'",
    )
    max_frame_bytes: int = Field(
        default=16 * 1024 * 1024,
        ge=1024,
        description="Largest frame accepted from the server",
    )
    read_chunk_bytes: int = Field(
        default=64 * 1024,
        ge=1024,
        description="Socket read size in jpeg_stream mode",
    )


class CaptureConfig(BaseModel):
    """Frame capture and encoding configuration."""

    backend: Literal["camera", "synthetic"] = Field(
        default="synthetic",
        description="Capture backend: 'camera' or 'synthetic'",
    )
    device_index: int = Field(default=0, ge=0, description="OpenCV camera index")
    width: int = Field(default=640, ge=16, description="Frame width")
    height: int = Field(default=480, ge=16, description="Frame height")
    fps: int = Field(default=30, ge=1, le=120, description="Capture rate")
    jpeg_quality: int = Field(default=70, ge=1, le=100, description="JPEG quality")
    pixel_format: Literal["bgr", "nv21"] = Field(
        default="bgr",
        description="Raw frame layout handed to the encoder (synthetic backend)",
    )


class StatusConfig(BaseModel):
    """HTTP status endpoint configuration."""

    enabled: bool = Field(default=False, description="Serve /health and /metrics")
    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=8081, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for videostream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    status: StatusConfig = Field(default_factory=StatusConfig)
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
    elif config_path:
        logger.warning(f"Config file {config_path} not found, using defaults")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Network settings shared by both roles
    if env_host := os.environ.get("VIDEOSTREAM_HOST"):
        config_data.setdefault("server", {})["host"] = env_host
    if env_port := os.environ.get("VIDEOSTREAM_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
        config_data.setdefault("client", {})["port"] = int(env_port)
    if env_framing := os.environ.get("VIDEOSTREAM_FRAMING"):
        config_data.setdefault("server", {})["framing"] = env_framing
        config_data.setdefault("client", {})["framing"] = env_framing

    # Server settings
    if env_interval := os.environ.get("VIDEOSTREAM_SEND_INTERVAL_MS"):
        config_data.setdefault("server", {})["send_interval_ms"] = int(env_interval)

    # Client settings
    if env_timeout := os.environ.get("VIDEOSTREAM_CONNECT_TIMEOUT"):
        config_data.setdefault("client", {})["connect_timeout_seconds"] = float(env_timeout)

    # Capture settings
    if env_backend := os.environ.get("VIDEOSTREAM_CAPTURE_BACKEND"):
        config_data.setdefault("capture", {})["backend"] = env_backend
    if env_camera := os.environ.get("VIDEOSTREAM_CAMERA_INDEX"):
        config_data.setdefault("capture", {})["device_index"] = int(env_camera)
    if env_quality := os.environ.get("VIDEOSTREAM_JPEG_QUALITY"):
        config_data.setdefault("capture", {})["jpeg_quality"] = int(env_quality)

    # Status endpoint
    if env_status := os.environ.get("VIDEOSTREAM_STATUS_PORT"):
        config_data.setdefault("status", {})["port"] = int(env_status)

    # Logging settings
    if env_log := os.environ.get("VIDEOSTREAM_LOG_LEVEL"):
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
        force=True,
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
