"""
Unit tests for configuration module.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from broadcastsync.config import (
    BroadcastSyncConfig,
    ContinuousConfig,
    LoggingConfig,
    SourcesConfig,
    SyncConfig,
    TimezoneConfig,
    get_config,
    load_config,
    reload_config,
)
from broadcastsync.playout.clock import TimezoneKind


@pytest.mark.unit
class TestSyncConfig:
    """Tests for SyncConfig."""

    def test_default_values(self):
        """Test default resync loop values."""
        config = SyncConfig()

        assert config.tick_interval_seconds == 5.0
        assert config.drift_threshold_seconds == 30.0
        assert config.seek_retry_delay_seconds == 0.3
        assert config.metadata_timeout_seconds == 15.0

    def test_tick_interval_must_be_positive(self):
        """Test that a zero tick interval is rejected."""
        with pytest.raises(ValidationError):
            SyncConfig(tick_interval_seconds=0)

    def test_drift_threshold_must_be_non_negative(self):
        """Test drift threshold validation."""
        assert SyncConfig(drift_threshold_seconds=0).drift_threshold_seconds == 0

        with pytest.raises(ValidationError):
            SyncConfig(drift_threshold_seconds=-1)


@pytest.mark.unit
class TestContinuousConfig:
    """Tests for ContinuousConfig."""

    def test_default_values(self):
        """Test default continuous delivery values."""
        config = ContinuousConfig()

        assert config.recovery_window_seconds == 5.0
        assert config.probe_manifest is False
        assert "avc1" in config.supported_codecs
        assert config.backend_options["frag_loading_max_retry"] == 3

    def test_recovery_window_must_be_positive(self):
        """Test recovery window validation."""
        with pytest.raises(ValidationError):
            ContinuousConfig(recovery_window_seconds=0)


@pytest.mark.unit
class TestTimezoneConfig:
    """Tests for TimezoneConfig."""

    def test_mode_parsed(self):
        """Test that mode names become timezone kinds."""
        config = TimezoneConfig(default_mode="fixed_reference")

        assert config.default_mode == TimezoneKind.FIXED_REFERENCE

    def test_unknown_mode_rejected(self):
        """Test that only known timezone modes are accepted."""
        with pytest.raises(ValidationError):
            TimezoneConfig(default_mode="tokyo")


@pytest.mark.unit
class TestSourcesConfig:
    """Tests for SourcesConfig."""

    def test_as_mapping_skips_missing_entries(self):
        """Test that only declared sources are returned."""
        config = SourcesConfig(m3u8="day.m3u8", p1="p1.mp4")

        assert config.as_mapping() == {"m3u8": "day.m3u8", "p1": "p1.mp4"}

    def test_empty_sources(self):
        """Test that nothing is declared by default."""
        assert SourcesConfig().as_mapping() == {}


@pytest.mark.unit
class TestBroadcastSyncConfig:
    """Tests for main BroadcastSyncConfig class."""

    def test_default_config(self):
        """Test default configuration."""
        config = BroadcastSyncConfig()

        assert isinstance(config.sync, SyncConfig)
        assert isinstance(config.timezone, TimezoneConfig)
        assert isinstance(config.logging, LoggingConfig)
        assert config.timezone.default_mode == "local"
        assert config.timezone.reference_offset_seconds == 9 * 3600

    def test_nested_config(self):
        """Test nested configuration access."""
        config = BroadcastSyncConfig(
            sync=SyncConfig(tick_interval_seconds=1.0),
            sources=SourcesConfig(m3u8="day.m3u8"),
        )

        assert config.sync.tick_interval_seconds == 1.0
        assert config.sources.m3u8 == "day.m3u8"


@pytest.mark.unit
class TestLoadConfig:
    """Tests for config loading functions."""

    def test_load_from_yaml(self, temp_config_file: Path):
        """Test values are read from a YAML file."""
        config = load_config(str(temp_config_file))

        assert config.sync.tick_interval_seconds == 2
        assert config.sync.drift_threshold_seconds == 10
        assert config.timezone.default_mode == "fixed_reference"
        assert config.timezone.reference_offset_seconds == 3600
        assert config.sources.p3 == "https://media.example.com/p3.mp4"
        # Untouched sections keep their defaults
        assert config.continuous.recovery_window_seconds == 5.0

    def test_missing_file_uses_defaults(self, temp_dir: Path):
        """Test that a missing file yields defaults."""
        config = load_config(str(temp_dir / "missing.yaml"))

        assert config.sync.tick_interval_seconds == 5.0

    def test_env_overrides(self, temp_config_file: Path, mock_env_vars):
        """Test environment variables override file values."""
        config = load_config(str(temp_config_file))

        assert config.logging.level == "DEBUG"
        assert config.sync.tick_interval_seconds == 2.5
        assert config.sources.m3u8 == "https://media.example.com/env.m3u8"
        # File values not overridden survive
        assert config.sync.drift_threshold_seconds == 10

    def test_invalid_env_timezone_rejected(self, temp_config_file: Path):
        """Test that a bad timezone override fails at load time."""
        with patch.dict(os.environ, {"BROADCASTSYNC_TIMEZONE": "tokyo"}):
            with pytest.raises(ValidationError):
                load_config(str(temp_config_file))

    def test_get_config_caching(self):
        """Test that get_config returns cached config."""
        config1 = get_config()
        config2 = get_config()

        assert config1 is config2

    def test_reload_config_creates_new_instance(self):
        """Test that reload_config replaces the cached config."""
        config1 = get_config()
        config2 = reload_config()

        assert config1 is not config2
        assert get_config() is config2
