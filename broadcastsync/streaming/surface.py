"""
Playback surface contract.

The surface is the audio/video sink the engine drives: it loads a
resource, seeks, plays, reports position and duration, and emits
readiness and error signals. Concrete surfaces wrap a real player;
the engine only ever talks to this interface.

Only one owner (the active delivery adapter) may be attached at a time,
and events are delivered to that owner only.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class SurfaceEvent(str, Enum):
    """Signals a playback surface emits."""

    METADATA_READY = "metadata_ready"  # Duration known, seeks accepted
    CAN_ACCEPT_SEEK = "can_accept_seek"
    FATAL_ERROR = "fatal_error"  # Payload: DeliveryFault
    TRANSIENT_ERROR = "transient_error"  # Payload: DeliveryFault


class SurfaceBusyError(RuntimeError):
    """Raised when a second owner tries to drive an attached surface."""


class SeekRejectedError(RuntimeError):
    """The surface could not apply a seek (e.g. no data yet)."""


class PlaybackRejectedError(RuntimeError):
    """The surface refused to start playback (e.g. autoplay policy)."""


class PlaybackSurface(ABC):
    """Abstract playback sink driven by one delivery adapter at a time."""

    def __init__(self) -> None:
        self._owner: Optional[object] = None
        self._listeners: dict[SurfaceEvent, list[Callable[..., Any]]] = {}

    # Actuation

    @abstractmethod
    def load(self, resource: Optional[str]) -> None:
        """Start loading ``resource``; None unloads the current one."""

    @abstractmethod
    def seek(self, seconds: float) -> None:
        """Set the playback position. May raise SeekRejectedError."""

    @abstractmethod
    async def play(self) -> None:
        """Start playback. May raise PlaybackRejectedError."""

    # Observation

    @property
    @abstractmethod
    def current_resource(self) -> Optional[str]:
        """Reference of the loaded resource, None when nothing is loaded."""

    @property
    @abstractmethod
    def duration(self) -> Optional[float]:
        """Duration of the loaded resource in seconds, None if unknown."""

    @property
    @abstractmethod
    def current_position(self) -> float:
        """Current playback position in seconds."""

    @property
    @abstractmethod
    def paused(self) -> bool:
        """True when playback is not running."""

    @property
    def has_metadata(self) -> bool:
        """True once the loaded resource can accept seeks."""
        return self.duration is not None

    @property
    def supports_native_manifest(self) -> bool:
        """True if the surface can play an adaptive manifest by itself."""
        return False

    # Ownership and events

    @property
    def owner(self) -> Optional[object]:
        return self._owner

    def attach(self, owner: object) -> None:
        """Claim the surface for ``owner``."""
        if self._owner is not None and self._owner is not owner:
            raise SurfaceBusyError(
                f"Surface already driven by {self._owner!r}, cannot attach {owner!r}"
            )
        self._owner = owner

    def detach(self, owner: object) -> None:
        """Release the surface and drop every listener ``owner`` registered."""
        if self._owner is owner:
            self._owner = None
            self._listeners.clear()

    def subscribe(
        self, owner: object, event: SurfaceEvent, callback: Callable[..., Any]
    ) -> None:
        """Register ``callback`` for ``event`` on behalf of the attached owner."""
        if owner is not self._owner:
            raise SurfaceBusyError(f"{owner!r} is not attached to this surface")
        self._listeners.setdefault(event, []).append(callback)

    def emit(self, event: SurfaceEvent, *args: Any) -> None:
        """Deliver ``event`` to the attached owner's listeners."""
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Surface listener for {event.value} failed: {e}", exc_info=True)
