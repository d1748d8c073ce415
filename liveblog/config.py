"""Configuration loading for the live blog service."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:5173"]
    )


@dataclass
class StoreConfig:
    """Configuration for the SQLite entry store."""

    db_path: str = "~/.liveblog/liveblog.db"


@dataclass
class SyncConfig:
    """Configuration for viewer-side polling."""

    api_url: str = "http://127.0.0.1:8080"
    poll_interval_seconds: float = 30.0
    new_entries_timeout_seconds: float = 5.0  # How long the "new updates" badge stays up
    request_timeout_seconds: float = 30.0
    retry_max_attempts: int = 3


@dataclass
class EditorConfig:
    author_name: str | None = None


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    editor: EditorConfig = field(default_factory=EditorConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with LIVEBLOG_ prefix."""
    return os.environ.get(f"LIVEBLOG_{key}", default)


def _to_int(name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _to_float(name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def _split_origins(value: str | list[str]) -> list[str]:
    if isinstance(value, list):
        return [str(o).strip() for o in value if str(o).strip()]
    return [o.strip() for o in value.split(",") if o.strip()]


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Server overrides
    if host := _get_env("HOST"):
        config.server.host = host
    if port := _get_env("PORT"):
        config.server.port = _to_int("LIVEBLOG_PORT", port)
    if origins := _get_env("CORS_ORIGINS"):
        config.server.cors_origins = _split_origins(origins)

    # Store overrides
    if db_path := _get_env("DB_PATH"):
        config.store.db_path = db_path

    # Sync overrides
    if api_url := _get_env("API_URL"):
        config.sync.api_url = api_url
    if interval := _get_env("POLL_INTERVAL"):
        config.sync.poll_interval_seconds = _to_float("LIVEBLOG_POLL_INTERVAL", interval)
    if timeout := _get_env("NEW_ENTRIES_TIMEOUT"):
        config.sync.new_entries_timeout_seconds = _to_float(
            "LIVEBLOG_NEW_ENTRIES_TIMEOUT", timeout
        )

    # Editor overrides
    if author := _get_env("AUTHOR_NAME"):
        config.editor.author_name = author

    return config


def _validate(config: Config) -> None:
    if not 0 < config.server.port < 65536:
        raise ConfigError(f"server.port out of range: {config.server.port}")
    if config.sync.poll_interval_seconds <= 0:
        raise ConfigError("sync.poll_interval_seconds must be positive")
    if config.sync.new_entries_timeout_seconds <= 0:
        raise ConfigError("sync.new_entries_timeout_seconds must be positive")
    if config.sync.retry_max_attempts < 1:
        raise ConfigError("sync.retry_max_attempts must be at least 1")


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.

    Raises:
        ConfigError: If the file is not valid YAML or a value is invalid.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

            # Parse server config
            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=_to_int(
                        "server.port", server_data.get("port", config.server.port)
                    ),
                    cors_origins=_split_origins(
                        server_data.get("cors_origins", config.server.cors_origins)
                    ),
                )

            # Parse store config
            if "store" in data:
                config.store = StoreConfig(
                    db_path=data["store"].get("db_path", config.store.db_path)
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    api_url=sync_data.get("api_url", config.sync.api_url),
                    poll_interval_seconds=_to_float(
                        "sync.poll_interval_seconds",
                        sync_data.get(
                            "poll_interval_seconds", config.sync.poll_interval_seconds
                        ),
                    ),
                    new_entries_timeout_seconds=_to_float(
                        "sync.new_entries_timeout_seconds",
                        sync_data.get(
                            "new_entries_timeout_seconds",
                            config.sync.new_entries_timeout_seconds,
                        ),
                    ),
                    request_timeout_seconds=_to_float(
                        "sync.request_timeout_seconds",
                        sync_data.get(
                            "request_timeout_seconds",
                            config.sync.request_timeout_seconds,
                        ),
                    ),
                    retry_max_attempts=_to_int(
                        "sync.retry_max_attempts",
                        sync_data.get(
                            "retry_max_attempts", config.sync.retry_max_attempts
                        ),
                    ),
                )

            # Parse editor config
            if "editor" in data:
                config.editor = EditorConfig(
                    author_name=data["editor"].get(
                        "author_name", config.editor.author_name
                    )
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    _validate(config)
    return config
