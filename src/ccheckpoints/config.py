"""Configuration for ccheckpoints."""

import os
import sys
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
DEFAULT_MAX_FILES = 10_000
DEFAULT_PORT = 9271


def get_app_data_dir() -> Path:
    """Get the per-user application data directory for this platform."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        return Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support"
    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    return Path(xdg_data_home) if xdg_data_home else Path.home() / ".local" / "share"


def default_database_path() -> Path:
    """Default location of the checkpoint database file."""
    return get_app_data_dir() / "CCheckpoints" / "checkpoints.db"


class CheckpointsConfig(BaseSettings):
    """Configuration for the checkpoint store, scanner and server."""

    model_config = SettingsConfigDict(
        env_prefix="CCHECKPOINTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    database_path: Path = Field(
        default_factory=default_database_path,
        description="SQLite database file holding sessions, checkpoints and snapshots",
    )

    # Server
    host: str = Field(default="127.0.0.1", description="Address the server binds to")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="Server port")
    request_timeout: float = Field(
        default=3.0,
        gt=0,
        description="Timeout in seconds for hook requests to the running server",
    )

    # Scanner limits
    max_file_size: int = Field(
        default=DEFAULT_MAX_FILE_SIZE,
        gt=0,
        description="Files larger than this many bytes are skipped",
    )
    max_files: int = Field(
        default=DEFAULT_MAX_FILES,
        gt=0,
        description="Maximum number of files captured in one checkpoint",
    )
    scan_batch_size: int = Field(default=50, ge=1, le=1000)
    scan_workers: int = Field(default=8, ge=1, le=64)
    extra_ignore_patterns: list[str] = Field(
        default_factory=list,
        description="Additional gitignore-style patterns excluded from every scan",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    @property
    def server_url(self) -> str:
        """Base URL of the local checkpoint server."""
        return f"http://{self.host}:{self.port}"


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "ccheckpoints" / "config.toml"


def load_config(config_file: str | Path | None = None) -> CheckpointsConfig:
    """Load configuration from config file, with environment variable overrides.

    Priority (highest to lowest):
    1. Environment variables (CCHECKPOINTS_*)
    2. Provided config file
    3. Default config file (~/.config/ccheckpoints/config.toml)
    4. Default values

    Args:
        config_file: Optional path to a config file

    Returns:
        Loaded configuration
    """
    import tomllib

    config_path = Path(config_file) if config_file else DEFAULT_CONFIG_PATH

    file_config: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid config file {config_path}: {e}") from e
        file_config = data.get("ccheckpoints", {})

    # Environment variables win over file values
    env_keys = {
        name
        for name in CheckpointsConfig.model_fields
        if f"CCHECKPOINTS_{name.upper()}" in os.environ
    }
    file_config = {k: v for k, v in file_config.items() if k not in env_keys}

    return CheckpointsConfig(**file_config)
