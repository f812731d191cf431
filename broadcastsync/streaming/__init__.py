"""
BroadcastSync Streaming Module

Drives a playback surface so it follows the broadcast day.

Components:
- SyncEngine: State machine, periodic resync and continuous-to-segmented fallback
- ContinuousAdapter: One adaptive manifest for the whole day
- SegmentedAdapter: Six 4-hour or three 8-hour part files
- PlaybackSurface: Contract for the audio/video sink
- StreamBackend: Adaptive streaming backend contract (native fallback included)
- ErrorHandler: Fault classification into the delivery error taxonomy
- RetryManager: Retry logic with backoff for network I/O
- ManifestProbe: Optional manifest preflight with codec checks
"""

from broadcastsync.streaming.adapter import DeliveryAdapter
from broadcastsync.streaming.backends import NativeManifestBackend, StreamBackend
from broadcastsync.streaming.continuous import ContinuousAdapter
from broadcastsync.streaming.error_handler import (
    ConfigurationError,
    DeliveryError,
    DeliveryFault,
    ErrorClassifier,
    ErrorHandler,
    FatalDeliveryError,
    FaultKind,
    RecoverableMediaError,
    TransientDeliveryError,
    UnsupportedFormatError,
)
from broadcastsync.streaming.manifest_probe import (
    ManifestProbe,
    ManifestReport,
    ManifestVariant,
    parse_manifest,
)
from broadcastsync.streaming.retry_manager import RetryConfig, RetryManager
from broadcastsync.streaming.segmented import SegmentedAdapter
from broadcastsync.streaming.surface import (
    PlaybackRejectedError,
    PlaybackSurface,
    SeekRejectedError,
    SurfaceBusyError,
    SurfaceEvent,
)
from broadcastsync.streaming.sync_engine import ResyncResult, SyncEngine

__all__ = [
    # Engine
    "ResyncResult",
    "SyncEngine",
    # Adapters
    "ContinuousAdapter",
    "DeliveryAdapter",
    "SegmentedAdapter",
    # Surface
    "PlaybackRejectedError",
    "PlaybackSurface",
    "SeekRejectedError",
    "SurfaceBusyError",
    "SurfaceEvent",
    # Backends
    "NativeManifestBackend",
    "StreamBackend",
    # Errors
    "ConfigurationError",
    "DeliveryError",
    "DeliveryFault",
    "ErrorClassifier",
    "ErrorHandler",
    "FatalDeliveryError",
    "FaultKind",
    "RecoverableMediaError",
    "TransientDeliveryError",
    "UnsupportedFormatError",
    # Retry
    "RetryConfig",
    "RetryManager",
    # Manifest probe
    "ManifestProbe",
    "ManifestReport",
    "ManifestVariant",
    "parse_manifest",
]
