"""
Configuration management for BroadcastSync.

Handles loading, validation, and access to engine configuration.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from broadcastsync.playout.clock import TimezoneKind

# Global configuration instance
_config: Optional["BroadcastSyncConfig"] = None


class SyncConfig(BaseModel):
    """Resync loop configuration."""
    tick_interval_seconds: float = Field(default=5.0, gt=0)
    drift_threshold_seconds: float = Field(default=30.0, ge=0)
    seek_retry_delay_seconds: float = Field(default=0.3, ge=0)
    metadata_timeout_seconds: float = Field(default=15.0, gt=0)


class ContinuousConfig(BaseModel):
    """Continuous (adaptive manifest) delivery configuration."""
    recovery_window_seconds: float = Field(default=5.0, gt=0)
    probe_manifest: bool = False
    probe_timeout_seconds: float = Field(default=10.0, gt=0)
    probe_max_retries: int = Field(default=2, ge=0)
    supported_codecs: list[str] = Field(
        default_factory=lambda: ["avc1", "avc3", "mp4a", "opus", "vp09"]
    )
    # Handed to the backend factory untouched
    backend_options: dict[str, Any] = Field(
        default_factory=lambda: {
            "max_buffer_length": 30,
            "max_max_buffer_length": 60,
            "manifest_loading_timeout_ms": 10000,
            "level_loading_timeout_ms": 10000,
            "frag_loading_timeout_ms": 60000,
            "frag_loading_max_retry": 3,
            "frag_loading_retry_delay_ms": 2000,
        }
    )


class TimezoneConfig(BaseModel):
    """Broadcast clock timezone configuration."""
    default_mode: TimezoneKind = TimezoneKind.LOCAL
    reference_offset_seconds: int = 9 * 3600


class SourcesConfig(BaseModel):
    """Declared delivery sources (flat layout: m3u8 plus p1..p6)."""
    m3u8: Optional[str] = None
    p1: Optional[str] = None
    p2: Optional[str] = None
    p3: Optional[str] = None
    p4: Optional[str] = None
    p5: Optional[str] = None
    p6: Optional[str] = None

    def as_mapping(self) -> dict[str, str]:
        """Return only the declared entries."""
        return {key: value for key, value in self.model_dump().items() if value}


class PreferencesConfig(BaseModel):
    """Player preference persistence."""
    path: str = "broadcastsync-preferences.json"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: str = "logs/broadcastsync.log"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class BroadcastSyncConfig(BaseModel):
    """Main BroadcastSync configuration."""
    sync: SyncConfig = Field(default_factory=SyncConfig)
    continuous: ContinuousConfig = Field(default_factory=ContinuousConfig)
    timezone: TimezoneConfig = Field(default_factory=TimezoneConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    preferences: PreferencesConfig = Field(default_factory=PreferencesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> BroadcastSyncConfig:
    """
    Load configuration from file.

    Args:
        config_path: Path to config file. Defaults to broadcastsync.yaml
            in the current directory or project root.

    Returns:
        Loaded and validated configuration.
    """
    global _config

    if config_path is None:
        possible_paths = [
            Path("broadcastsync.yaml"),
            Path(__file__).parent.parent / "broadcastsync.yaml",
        ]
        for path in possible_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data: dict[str, Any] = {}

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    env_overrides = _get_env_overrides()
    _deep_merge(config_data, env_overrides)

    _config = BroadcastSyncConfig(**config_data)
    return _config


def get_config() -> BroadcastSyncConfig:
    """
    Get the current configuration.

    Returns:
        Current configuration (loads default if not yet loaded).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> BroadcastSyncConfig:
    """
    Reload configuration from disk.

    Returns:
        Freshly loaded configuration.
    """
    global _config
    _config = None
    return load_config()


def _get_env_overrides() -> dict[str, Any]:
    """Get configuration overrides from environment variables."""
    overrides: dict[str, Any] = {}

    env_map = {
        "BROADCASTSYNC_LOG_LEVEL": ("logging", "level"),
        "BROADCASTSYNC_TIMEZONE": ("timezone", "default_mode"),
        "BROADCASTSYNC_REFERENCE_OFFSET": ("timezone", "reference_offset_seconds"),
        "BROADCASTSYNC_TICK_INTERVAL": ("sync", "tick_interval_seconds"),
        "BROADCASTSYNC_DRIFT_THRESHOLD": ("sync", "drift_threshold_seconds"),
        "BROADCASTSYNC_M3U8": ("sources", "m3u8"),
        "BROADCASTSYNC_PREFERENCES_PATH": ("preferences", "path"),
    }

    for env_var, path in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested(overrides, path, _parse_env_value(value))

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    # Boolean
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False

    # Integer
    try:
        return int(value)
    except ValueError:
        pass

    # Float
    try:
        return float(value)
    except ValueError:
        pass

    return value


def _set_nested(d: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    """Set a nested dictionary value from a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Deep merge override into base dictionary."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


class _ConfigProxy:
    """
    Proxy object that provides lazy access to configuration.

    Allows modules to import `config` directly and access it like:
        from broadcastsync.config import config
        config.sync.tick_interval_seconds

    The actual config is loaded on first attribute access.
    """

    def __getattr__(self, name: str) -> Any:
        return getattr(get_config(), name)

    def __repr__(self) -> str:
        return f"<ConfigProxy for {get_config()}>"


config = _ConfigProxy()
