"""Configuration management for the VoxNest extension manager.

Loads configuration from:
1. voxnest.toml (defaults)
2. Environment variables (overrides)
"""

import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from extensions.installer import ALLOWED_FILE_TYPES, MAX_ARCHIVE_BYTES

# Load .env file if present
load_dotenv()

CONFIG_FILE_NAME = "voxnest.toml"


@dataclass
class StorageConfig:
    """Where extensions and their configs live on disk."""

    extensions_dir: str = "extensions"
    configs_dir: str = "ExtensionConfigs"
    index_file: str = "extensions.json"


@dataclass
class LifecycleConfig:
    """Lifecycle manager configuration."""

    # Ids that can never be uninstalled (built-in plugins, default theme)
    protected_extensions: list[str] = field(default_factory=list)

    # Extension id -> directory name, for extensions whose folder differs from the id
    aliases: dict[str, str] = field(default_factory=dict)

    # Directory names never treated as extensions
    ignored_dirs: list[str] = field(default_factory=lambda: ["node_modules"])

    # Theme activated by "reset to default"; empty means the first builtin theme
    default_theme: str = ""

    # Delete the stored config when an extension is uninstalled
    purge_config_on_uninstall: bool = False

    max_archive_bytes: int = MAX_ARCHIVE_BYTES
    allowed_file_types: list[str] = field(default_factory=lambda: list(ALLOWED_FILE_TYPES))


@dataclass
class ServerConfig:
    """HTTP API configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    api_prefix: str = "/api/extension"
    admin_token: str = ""  # Empty = admin routes are open
    debug: bool = False
    cors_origins: list[str] = field(default_factory=list)


@dataclass
class LoggingConfig:
    level: str = "INFO"
    rich: bool = True


@dataclass
class Config:
    """Main configuration container."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        return cls(
            storage=StorageConfig(**data.get("storage", {})),
            lifecycle=LifecycleConfig(**data.get("lifecycle", {})),
            server=ServerConfig(**data.get("server", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def find_config_file(start: Path | None = None) -> Path | None:
    """Find voxnest.toml in the given (or current) directory or its parents."""
    current = start or Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.is_file():
            return candidate
    return None


def _env_overrides() -> dict[str, dict[str, Any]]:
    """Settings taken from VOXNEST_* environment variables."""
    return {
        "storage": {
            "extensions_dir": os.getenv("VOXNEST_EXTENSIONS_DIR"),
            "configs_dir": os.getenv("VOXNEST_CONFIGS_DIR"),
        },
        "lifecycle": {
            "default_theme": os.getenv("VOXNEST_DEFAULT_THEME"),
        },
        "server": {
            "host": os.getenv("VOXNEST_HOST"),
            "port": _int_or_none(os.getenv("VOXNEST_PORT")),
            "admin_token": os.getenv("VOXNEST_ADMIN_TOKEN"),
            "debug": _bool_or_none(os.getenv("VOXNEST_DEBUG")),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL"),
        },
    }


def load_config(config_path: Path | str | None = None) -> Config:
    """Load voxnest.toml, then apply environment overrides.

    Args:
        config_path: Explicit path to voxnest.toml. Searched for when omitted.
    """
    path = Path(config_path) if config_path is not None else find_config_file()
    data: dict[str, Any] = {}
    if path is not None and path.is_file():
        with open(path, "rb") as f:
            data = tomllib.load(f)

    for section, values in _env_overrides().items():
        present = {key: value for key, value in values.items() if value is not None}
        if present:
            data[section] = {**data.get(section, {}), **present}

    return Config.from_dict(data)


def _int_or_none(value: str | None) -> int | None:
    if value is None or not value.strip().isdigit():
        return None
    return int(value)


def _bool_or_none(value: str | None) -> bool | None:
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


_config: Config | None = None


def get_config() -> Config:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(config_path: Path | str | None = None) -> Config:
    """Reload the process-wide configuration from disk and environment."""
    global _config
    _config = load_config(config_path)
    return _config
