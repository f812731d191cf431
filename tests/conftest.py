"""
BroadcastSync Test Configuration

Shared fixtures and configuration for all tests.
"""

import logging
import os
import sys
import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import broadcastsync.config as config_module
from broadcastsync.config import ContinuousConfig, SyncConfig
from broadcastsync.playout.clock import TimezoneMode
from broadcastsync.playout.plan import SourceDescriptors
from tests.fixtures import BackendRecorder, FakeSurface, ManualUtcClock, six_parts, three_parts, utc


# ============ Playback Fixtures ============


@pytest.fixture
def surface() -> FakeSurface:
    """A fake playback surface with automatic metadata."""
    return FakeSurface()


@pytest.fixture
def backend_factory() -> BackendRecorder:
    """Adaptive backend factory recording the backends it builds."""
    return BackendRecorder()


@pytest.fixture
def utc_clock() -> ManualUtcClock:
    """A UTC clock stopped at 05:00:00 (day offset 14400 in UTC)."""
    return ManualUtcClock(utc(5))


@pytest.fixture
def utc_mode() -> TimezoneMode:
    """Fixed reference at UTC so offsets do not depend on the host timezone."""
    return TimezoneMode.fixed(0)


@pytest.fixture
def full_descriptors() -> SourceDescriptors:
    """Continuous manifest plus six and three part sets."""
    return SourceDescriptors(
        continuous="https://media.example.com/day.m3u8",
        segmented_six=six_parts(),
        segmented_three=three_parts(),
    )


@pytest.fixture
def fast_sync_config() -> SyncConfig:
    """Short seek and metadata timers; ticks are driven by hand."""
    return SyncConfig(
        tick_interval_seconds=60.0,
        seek_retry_delay_seconds=0.01,
        metadata_timeout_seconds=0.5,
    )


@pytest.fixture
def fast_continuous_config() -> ContinuousConfig:
    return ContinuousConfig(recovery_window_seconds=0.05)


# ============ File Fixtures ============


@pytest.fixture(scope="function")
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(scope="function")
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_file = temp_dir / "broadcastsync.yaml"
    config_content = """
sync:
  tick_interval_seconds: 2
  drift_threshold_seconds: 10

timezone:
  default_mode: fixed_reference
  reference_offset_seconds: 3600

sources:
  p1: "https://media.example.com/p1.mp4"
  p2: "https://media.example.com/p2.mp4"
  p3: "https://media.example.com/p3.mp4"

logging:
  level: DEBUG
"""
    config_file.write_text(config_content)
    return config_file


# ============ Environment Fixtures ============


@pytest.fixture(autouse=True)
def clean_environment():
    """Clean environment variables and cached config for each test."""
    # Save current environment
    original_env = os.environ.copy()

    # Remove BroadcastSync-specific vars
    for key in list(os.environ.keys()):
        if key.startswith("BROADCASTSYNC_"):
            del os.environ[key]

    config_module._config = None

    yield

    config_module._config = None

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_env_vars():
    """Set up mock environment variables."""
    env_vars = {
        "BROADCASTSYNC_LOG_LEVEL": "DEBUG",
        "BROADCASTSYNC_TICK_INTERVAL": "2.5",
        "BROADCASTSYNC_TIMEZONE": "fixed_reference",
        "BROADCASTSYNC_M3U8": "https://media.example.com/env.m3u8",
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


# ============ Logging Fixtures ============


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
