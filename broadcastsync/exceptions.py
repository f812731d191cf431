"""
Error taxonomy for BroadcastSync.

Only ConfigurationError and the terminal Degraded state ever reach the
caller; every DeliveryError is handled by the sync engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class FaultKind(str, Enum):
    """Kind of failure reported by a playback surface or stream backend."""

    NETWORK = "network"  # Manifest/fragment loading failures
    MEDIA = "media"  # Decode or buffer glitches
    UNSUPPORTED_CODEC = "unsupported_codec"  # Runtime cannot decode the stream
    UNSUPPORTED_PLATFORM = "unsupported_platform"  # No backend and no native path
    OTHER = "other"


@dataclass
class DeliveryFault:
    """A failure report as delivered by the surface or backend."""

    kind: FaultKind
    fatal: bool = True
    details: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)


class BroadcastSyncError(Exception):
    """Base class for all BroadcastSync errors."""


class ConfigurationError(BroadcastSyncError):
    """No usable source descriptor; fatal at construction."""


class DeliveryError(BroadcastSyncError):
    """Failure of the active delivery path."""

    fatal = True

    def __init__(self, message: str, fault: Optional[DeliveryFault] = None):
        super().__init__(message)
        self.fault = fault


class TransientDeliveryError(DeliveryError):
    """Network hiccup, recovered in place within a bounded window."""

    fatal = False


class RecoverableMediaError(DeliveryError):
    """Decode glitch, one in-place recovery attempt per report."""

    fatal = False


class UnsupportedFormatError(DeliveryError):
    """The runtime cannot decode the stream; fall back without retrying."""


class FatalDeliveryError(DeliveryError):
    """Any other fatal failure of the active delivery path."""
