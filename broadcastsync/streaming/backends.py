"""
Adaptive stream backends.

A backend sits between a manifest and the playback surface and speaks the
adaptive-streaming protocol itself. The engine treats it as a black box
with a narrow contract: attach to a manifest, reload in place, attempt an
in-place media recovery, and report readiness and faults.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Optional

from broadcastsync.exceptions import DeliveryFault
from broadcastsync.streaming.surface import PlaybackSurface, SurfaceEvent

logger = logging.getLogger(__name__)

ReadyCallback = Callable[[], None]
FaultCallback = Callable[[DeliveryFault], None]


class StreamBackend(ABC):
    """Abstract adaptive stream backend."""

    name = "backend"

    def __init__(self, options: Optional[dict[str, Any]] = None):
        self.options = dict(options or {})

    def is_supported(self) -> bool:
        """True if this backend can run on the current platform."""
        return True

    @abstractmethod
    def attach(
        self,
        surface: PlaybackSurface,
        owner: object,
        manifest_url: str,
        on_ready: ReadyCallback,
        on_error: FaultCallback,
    ) -> None:
        """
        Start playing ``manifest_url`` on ``surface``.

        ``on_ready`` is called every time the manifest has been parsed and
        seeks can be accepted; ``on_error`` receives every fault the
        backend detects. Surface subscriptions must be made on behalf of
        ``owner``.
        """

    @abstractmethod
    def start_load(self) -> None:
        """Reload the stream in place after a network failure."""

    @abstractmethod
    def recover_media_error(self) -> None:
        """Attempt an in-place recovery after a media failure."""

    @abstractmethod
    def destroy(self) -> None:
        """Stop all activity; no callbacks may fire afterwards."""


class NativeManifestBackend(StreamBackend):
    """
    Lets the surface play the manifest by itself.

    Used when no adaptive backend is available but the surface understands
    the manifest format natively. Readiness is the surface's metadata
    signal; faults arrive through the surface's own error events.
    """

    name = "native"

    def __init__(self, options: Optional[dict[str, Any]] = None):
        super().__init__(options)
        self._surface: Optional[PlaybackSurface] = None
        self._manifest_url: Optional[str] = None
        self._on_ready: Optional[ReadyCallback] = None
        self._destroyed = False

    def attach(
        self,
        surface: PlaybackSurface,
        owner: object,
        manifest_url: str,
        on_ready: ReadyCallback,
        on_error: FaultCallback,
    ) -> None:
        self._surface = surface
        self._manifest_url = manifest_url
        self._on_ready = on_ready
        surface.subscribe(owner, SurfaceEvent.METADATA_READY, self._on_metadata_ready)
        surface.load(manifest_url)

    def start_load(self) -> None:
        if self._destroyed or self._surface is None:
            return
        logger.info(f"Reloading native manifest {self._manifest_url}")
        self._surface.load(self._manifest_url)

    def recover_media_error(self) -> None:
        # Nothing finer-grained than a reload is available natively
        self.start_load()

    def destroy(self) -> None:
        self._destroyed = True
        self._on_ready = None

    def _on_metadata_ready(self, *args) -> None:
        if not self._destroyed and self._on_ready is not None:
            self._on_ready()
