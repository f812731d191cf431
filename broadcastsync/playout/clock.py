"""
Broadcast day clock.

Maps wall-clock time onto the repeating 24-hour broadcast cycle. The cycle
starts at 01:00, so a timestamp before 01:00 belongs to the previous day's
cycle and the offset never jumps backwards at midnight.

All timestamps handled here are naive datetimes holding wall-clock time in
the selected timezone mode.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

DAY_SECONDS = 24 * 3600
ANCHOR_HOUR = 1
DEFAULT_REFERENCE_OFFSET_SECONDS = 9 * 3600


class TimezoneKind(str, Enum):
    """Which clock the broadcast follows."""

    LOCAL = "local"
    FIXED_REFERENCE = "fixed_reference"


@dataclass(frozen=True)
class TimezoneMode:
    """
    Clock selection for the broadcast.

    Attributes:
        kind: Local wall clock or a fixed UTC offset
        offset_seconds: UTC offset used by FIXED_REFERENCE (ignored for LOCAL)
    """

    kind: TimezoneKind = TimezoneKind.LOCAL
    offset_seconds: int = 0

    @classmethod
    def local(cls) -> "TimezoneMode":
        return cls(TimezoneKind.LOCAL)

    @classmethod
    def fixed(cls, offset_seconds: int = DEFAULT_REFERENCE_OFFSET_SECONDS) -> "TimezoneMode":
        return cls(TimezoneKind.FIXED_REFERENCE, offset_seconds)

    @classmethod
    def from_name(
        cls,
        name: str,
        reference_offset_seconds: int = DEFAULT_REFERENCE_OFFSET_SECONDS,
    ) -> "TimezoneMode":
        """Build a mode from its config/preference name."""
        if TimezoneKind(name) == TimezoneKind.LOCAL:
            return cls.local()
        return cls.fixed(reference_offset_seconds)

    @property
    def is_local(self) -> bool:
        return self.kind == TimezoneKind.LOCAL


@dataclass(frozen=True)
class PartPlan:
    """Position inside a segmented day: which part, and where in it."""

    part_index: int
    offset_in_part: int


def day_base(timestamp: datetime) -> datetime:
    """Return the 01:00 anchor at or before ``timestamp``."""
    base = timestamp.replace(hour=ANCHOR_HOUR, minute=0, second=0, microsecond=0)
    if timestamp < base:
        base -= timedelta(days=1)
    return base


def day_offset(timestamp: datetime) -> int:
    """Whole seconds elapsed since the most recent 01:00 anchor, in [0, 86400)."""
    elapsed = (timestamp - day_base(timestamp)) // timedelta(seconds=1)
    return elapsed % DAY_SECONDS


def part_plan(offset: int, part_length_seconds: int) -> PartPlan:
    """Split a day offset into a part index and the offset inside that part."""
    if part_length_seconds <= 0:
        raise ValueError(f"part length must be positive, got {part_length_seconds}")
    return PartPlan(
        part_index=offset // part_length_seconds,
        offset_in_part=offset % part_length_seconds,
    )


def part_index_to_key(index: int, part_count: int) -> str:
    """Map a part index to its source key (p1, p2, ...), wrapping past the set."""
    if part_count <= 0:
        raise ValueError(f"part count must be positive, got {part_count}")
    return f"p{index % part_count + 1}"


def is_drifted(current: float, expected: float, threshold: float = 30.0) -> bool:
    """True when playback is more than ``threshold`` seconds from where it should be."""
    return abs(current - expected) > threshold


def _system_utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BroadcastClock:
    """
    Reads "now" for a timezone mode and converts it to broadcast positions.

    The UTC source is injectable so the clock can be driven from tests.
    """

    def __init__(self, utc_source: Optional[Callable[[], datetime]] = None):
        self._utc_source = utc_source or _system_utc_now

    def now(self, mode: TimezoneMode) -> datetime:
        """Current wall-clock time for ``mode`` as a naive datetime."""
        utc_now = self._utc_source()
        if mode.is_local:
            return utc_now.astimezone().replace(tzinfo=None)
        shifted = utc_now.astimezone(timezone.utc) + timedelta(seconds=mode.offset_seconds)
        return shifted.replace(tzinfo=None)

    def current_offset(self, mode: TimezoneMode) -> int:
        return day_offset(self.now(mode))

    def current_plan(self, mode: TimezoneMode, part_length_seconds: int) -> PartPlan:
        return part_plan(self.current_offset(mode), part_length_seconds)

    @staticmethod
    def format_time(timestamp: datetime) -> str:
        return timestamp.strftime("%H:%M:%S")
