"""
Delivery plan selection.

Decides how the broadcast reaches the playback surface: a single
continuous manifest, six 4-hour part files, or three 8-hour part files.
"""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from broadcastsync.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SIX_PART_KEYS = ("p1", "p2", "p3", "p4", "p5", "p6")
THREE_PART_KEYS = ("p1", "p2", "p3")


class DeliveryMode(str, Enum):
    """Delivery modes in order of preference."""

    CONTINUOUS = "continuous"
    SEGMENTED_SIX = "segmented_six"
    SEGMENTED_THREE = "segmented_three"

    @property
    def is_segmented(self) -> bool:
        return self != DeliveryMode.CONTINUOUS

    @property
    def part_count(self) -> Optional[int]:
        return _PART_COUNTS.get(self)

    @property
    def part_length_seconds(self) -> Optional[int]:
        """Length of one part file, None for continuous delivery."""
        count = self.part_count
        if count is None:
            return None
        return 24 * 3600 // count


_PART_COUNTS = {
    DeliveryMode.SEGMENTED_SIX: 6,
    DeliveryMode.SEGMENTED_THREE: 3,
}


def _has_keys(parts: Optional[Mapping[str, str]], keys: tuple[str, ...]) -> bool:
    return bool(parts) and all(parts.get(key) for key in keys)


class SourceDescriptors(BaseModel):
    """
    Immutable description of the delivery options for one broadcast.

    Attributes:
        continuous: Manifest reference for continuous delivery
        segmented_six: Part files keyed p1..p6 (4 hours each)
        segmented_three: Part files keyed p1..p3 (8 hours each)
    """

    model_config = ConfigDict(frozen=True)

    continuous: Optional[str] = None
    segmented_six: Optional[dict[str, str]] = None
    segmented_three: Optional[dict[str, str]] = None

    @classmethod
    def from_sources(cls, sources: Mapping[str, Optional[str]]) -> "SourceDescriptors":
        """
        Build descriptors from a flat source map.

        The flat layout is ``{"m3u8": ..., "p1": ..., ..., "p6": ...}``.
        Six parts yield a six-part set; otherwise three parts yield a
        three-part set.
        """
        segmented_six = None
        segmented_three = None
        if _has_keys(sources, SIX_PART_KEYS):
            segmented_six = {key: sources[key] for key in SIX_PART_KEYS}
        elif _has_keys(sources, THREE_PART_KEYS):
            segmented_three = {key: sources[key] for key in THREE_PART_KEYS}
        return cls(
            continuous=sources.get("m3u8") or None,
            segmented_six=segmented_six,
            segmented_three=segmented_three,
        )

    def available_modes(self) -> list[DeliveryMode]:
        """Every mode the declared sources can serve, best first."""
        modes = []
        if self.continuous:
            modes.append(DeliveryMode.CONTINUOUS)
        if _has_keys(self.segmented_six, SIX_PART_KEYS):
            modes.append(DeliveryMode.SEGMENTED_SIX)
        if _has_keys(self.segmented_three, THREE_PART_KEYS):
            modes.append(DeliveryMode.SEGMENTED_THREE)
        return modes

    def parts_for(self, mode: DeliveryMode) -> dict[str, str]:
        """Part files for a segmented mode, keyed p1..pN."""
        if mode == DeliveryMode.SEGMENTED_SIX and self.segmented_six:
            return {key: self.segmented_six[key] for key in SIX_PART_KEYS}
        if mode == DeliveryMode.SEGMENTED_THREE and self.segmented_three:
            return {key: self.segmented_three[key] for key in THREE_PART_KEYS}
        raise ConfigurationError(f"No part files declared for {mode.value}")


class DeliveryPlanSelector:
    """
    Picks the delivery mode for a set of source descriptors.

    Holds the one-way ``continuous_failed`` latch: once continuous
    delivery has failed, it is never selected again by this selector.
    """

    def __init__(self, descriptors: SourceDescriptors):
        self.descriptors = descriptors
        self._continuous_failed = False

    @property
    def continuous_failed(self) -> bool:
        return self._continuous_failed

    def mark_continuous_failed(self) -> None:
        """Latch continuous delivery as failed for the rest of the session."""
        if not self._continuous_failed:
            logger.warning("Continuous delivery marked failed for this session")
        self._continuous_failed = True

    def select(self, exclude_continuous: bool = False) -> DeliveryMode:
        """
        Return the best available mode.

        Args:
            exclude_continuous: Skip continuous delivery even if declared

        Raises:
            ConfigurationError: If no declared source can be played
        """
        for mode in self.descriptors.available_modes():
            if mode == DeliveryMode.CONTINUOUS and (
                exclude_continuous or self._continuous_failed
            ):
                continue
            return mode
        raise ConfigurationError("No playable source available")
