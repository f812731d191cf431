"""
Base delivery adapter.

A delivery adapter translates broadcast positions into load/seek actions
on the playback surface for one delivery mode.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from broadcastsync.playout.plan import DeliveryMode
from broadcastsync.streaming.surface import PlaybackRejectedError, PlaybackSurface

logger = logging.getLogger(__name__)


class DeliveryAdapter(ABC):
    """
    Abstract base for delivery adapters.

    Lifecycle:
        adapter = SomeAdapter(surface, ...)
        await adapter.initialize()      # attaches to the surface
        await adapter.ensure_loaded(i)  # segmented only; no-op otherwise
        await adapter.seek_to(seconds)
        adapter.teardown()              # detaches, ignores later events
    """

    mode: DeliveryMode

    def __init__(self, surface: PlaybackSurface):
        self.surface = surface
        self._torn_down = False

    @property
    def is_live(self) -> bool:
        """True while this adapter is the surface's attached owner."""
        return not self._torn_down and self.surface.owner is self

    @property
    def loaded_part_index(self) -> Optional[int]:
        """Part currently loaded on the surface; None for continuous delivery."""
        return None

    @abstractmethod
    async def initialize(self) -> None:
        """Attach to the surface and wait until seeks can be accepted."""

    @abstractmethod
    async def ensure_loaded(self, part_index: int) -> bool:
        """Load the resource for ``part_index`` if needed. True if a load was issued."""

    @abstractmethod
    async def seek_to(self, offset: float) -> None:
        """Move playback to ``offset`` within the active resource."""

    @abstractmethod
    def current_offset(self) -> Optional[int]:
        """Day offset implied by the surface position, None if nothing is loaded."""

    async def play(self) -> bool:
        """
        Start playback if paused.

        Rejections (e.g. autoplay policy) are logged, not raised; they
        clear on the first user interaction, outside the engine's control.

        Returns:
            True if playback is running afterwards.
        """
        if not self.surface.paused:
            return True
        try:
            await self.surface.play()
        except PlaybackRejectedError as e:
            logger.info(f"Playback start rejected by surface: {e}")
            return False
        return True

    def teardown(self) -> None:
        """Release the surface; events arriving afterwards are ignored."""
        self._torn_down = True
        self.surface.detach(self)
