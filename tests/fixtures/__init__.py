"""
Test Fixtures

Playback surface, stream backend and clock doubles.
"""

from .fakes import (
    DAY_DURATION,
    BackendRecorder,
    FakeStreamBackend,
    FakeSurface,
    ManualUtcClock,
    settle,
    six_parts,
    three_parts,
    utc,
)

__all__ = [
    "DAY_DURATION",
    "BackendRecorder",
    "FakeStreamBackend",
    "FakeSurface",
    "ManualUtcClock",
    "settle",
    "six_parts",
    "three_parts",
    "utc",
]
