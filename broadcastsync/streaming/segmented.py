"""
Segmented delivery adapter.

Plays the broadcast day from fixed-length part files (six 4-hour parts or
three 8-hour parts). A day offset becomes a part index plus an offset in
that part; switching parts means loading another file and waiting for its
metadata before the seek can be applied.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Optional

from broadcastsync.exceptions import DeliveryFault, TransientDeliveryError
from broadcastsync.playout.clock import part_index_to_key
from broadcastsync.playout.plan import DeliveryMode
from broadcastsync.streaming.adapter import DeliveryAdapter
from broadcastsync.streaming.surface import PlaybackSurface, SeekRejectedError, SurfaceEvent

logger = logging.getLogger(__name__)

# A seek counts as applied when the surface reports a position this close
SEEK_TOLERANCE_SECONDS = 1.0


class SegmentedAdapter(DeliveryAdapter):
    """
    Drives the surface through a set of part files.

    Usage:
        adapter = SegmentedAdapter(surface, {"p1": "p1.mp4", ...}, DeliveryMode.SEGMENTED_SIX)
        await adapter.initialize()
        await adapter.ensure_loaded(plan.part_index)
        await adapter.seek_to(plan.offset_in_part)
    """

    def __init__(
        self,
        surface: PlaybackSurface,
        parts: Mapping[str, str],
        mode: DeliveryMode,
        seek_retry_delay: float = 0.3,
        metadata_timeout: float = 15.0,
    ):
        """
        Initialize the adapter.

        Args:
            surface: Playback surface to drive
            parts: Part files keyed p1..pN
            mode: SEGMENTED_SIX or SEGMENTED_THREE
            seek_retry_delay: Delay before the single seek retry (seconds)
            metadata_timeout: Longest wait for a loaded part's metadata (seconds)
        """
        if not mode.is_segmented:
            raise ValueError(f"SegmentedAdapter cannot serve {mode.value}")
        super().__init__(surface)
        self.mode = mode
        self.parts = dict(parts)
        self.part_length_seconds: int = mode.part_length_seconds
        self.seek_retry_delay = seek_retry_delay
        self.metadata_timeout = metadata_timeout

        self._loaded_index: Optional[int] = None
        self._reload_required = False
        self._metadata_waiter: Optional[asyncio.Future] = None

    @property
    def loaded_part_index(self) -> Optional[int]:
        return self._loaded_index

    def key_for(self, part_index: int) -> str:
        return part_index_to_key(part_index, self.mode.part_count)

    def resource_for(self, part_index: int) -> str:
        return self.parts[self.key_for(part_index)]

    async def initialize(self) -> None:
        self.surface.attach(self)
        self.surface.subscribe(self, SurfaceEvent.METADATA_READY, self._on_metadata_ready)
        self.surface.subscribe(self, SurfaceEvent.FATAL_ERROR, self._on_fatal_error)
        self.surface.subscribe(self, SurfaceEvent.TRANSIENT_ERROR, self._on_transient_error)
        logger.info(
            f"Segmented delivery ready: {self.mode.value} "
            f"({len(self.parts)} parts of {self.part_length_seconds}s)"
        )

    async def ensure_loaded(self, part_index: int) -> bool:
        resource = self.resource_for(part_index)

        if self.surface.current_resource == resource and not self._reload_required:
            self._loaded_index = part_index
            return False

        self._loaded_index = None
        self._reload_required = False
        waiter = self._new_metadata_waiter()

        logger.info(f"Loading part {self.key_for(part_index)}: {resource}")
        self.surface.load(resource)
        await self._wait_for_metadata(waiter)

        self._loaded_index = part_index
        return True

    async def seek_to(self, offset: float) -> None:
        if not self.surface.has_metadata:
            waiter = self._metadata_waiter
            if waiter is None or waiter.done():
                waiter = self._new_metadata_waiter()
            await self._wait_for_metadata(waiter)

        target = float(offset)
        duration = self.surface.duration
        # Truncated part file: wrap instead of seeking to or past the end
        if duration and target >= duration:
            target = target % duration
        target = max(0.0, target)

        if self._apply_seek(target):
            return

        logger.debug(f"Seek to {target:.1f}s not applied, retrying in {self.seek_retry_delay}s")
        await asyncio.sleep(self.seek_retry_delay)
        if not self.is_live:
            return
        if not self._apply_seek(target):
            logger.warning(f"Seek to {target:.1f}s failed after retry")

    def current_offset(self) -> Optional[int]:
        if self._loaded_index is None:
            return None
        if self.surface.current_resource != self.resource_for(self._loaded_index):
            return None
        return self._loaded_index * self.part_length_seconds + int(self.surface.current_position)

    def teardown(self) -> None:
        if self._metadata_waiter is not None and not self._metadata_waiter.done():
            self._metadata_waiter.cancel()
        self._metadata_waiter = None
        super().teardown()

    def _apply_seek(self, target: float) -> bool:
        try:
            self.surface.seek(target)
        except SeekRejectedError as e:
            logger.debug(f"Surface rejected seek to {target:.1f}s: {e}")
            return False
        return abs(self.surface.current_position - target) <= SEEK_TOLERANCE_SECONDS

    def _new_metadata_waiter(self) -> asyncio.Future:
        if self._metadata_waiter is not None and not self._metadata_waiter.done():
            self._metadata_waiter.cancel()
        self._metadata_waiter = asyncio.get_running_loop().create_future()
        return self._metadata_waiter

    async def _wait_for_metadata(self, waiter: asyncio.Future) -> None:
        try:
            await asyncio.wait_for(asyncio.shield(waiter), timeout=self.metadata_timeout)
        except asyncio.TimeoutError:
            raise TransientDeliveryError(
                f"No metadata for {self.surface.current_resource} "
                f"within {self.metadata_timeout}s"
            ) from None

    def _on_metadata_ready(self, *args) -> None:
        if self._torn_down:
            return
        waiter = self._metadata_waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(None)

    def _on_fatal_error(self, fault: DeliveryFault) -> None:
        if self._torn_down:
            return
        # No lower mode to fall back to: reload the part on the next resync
        logger.error(
            f"Segmented playback error on {self.surface.current_resource}: "
            f"{fault.kind.value} ({fault.details or '-'})"
        )
        self._loaded_index = None
        self._reload_required = True

    def _on_transient_error(self, fault: DeliveryFault) -> None:
        if self._torn_down:
            return
        logger.debug(f"Segmented playback report: {fault.kind.value} ({fault.details or '-'})")
