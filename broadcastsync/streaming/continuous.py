"""
Continuous delivery adapter.

Plays the whole broadcast day from a single adaptive manifest. Wraps a
stream backend (or the surface's native manifest support) behind the
same contract as segmented delivery, and classifies every fatal fault:

- network: reload in place, escalate if not ready again within the
  recovery window
- media: one in-place recovery attempt per report
- unsupported codec/platform and anything else: fatal immediately

On a fatal error the adapter reports upward once and does nothing else;
switching delivery modes is the sync engine's job.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Optional

from broadcastsync.exceptions import (
    DeliveryError,
    DeliveryFault,
    FatalDeliveryError,
    FaultKind,
    RecoverableMediaError,
    TransientDeliveryError,
    UnsupportedFormatError,
)
from broadcastsync.playout.clock import DAY_SECONDS
from broadcastsync.playout.plan import DeliveryMode
from broadcastsync.streaming.adapter import DeliveryAdapter
from broadcastsync.streaming.backends import NativeManifestBackend, StreamBackend
from broadcastsync.streaming.error_handler import ErrorClassifier, ErrorHandler
from broadcastsync.streaming.manifest_probe import ManifestProbe
from broadcastsync.streaming.surface import PlaybackSurface, SeekRejectedError, SurfaceEvent

logger = logging.getLogger(__name__)

BackendFactory = Callable[[dict[str, Any]], StreamBackend]
FatalCallback = Callable[[DeliveryError], None]


class ContinuousAdapter(DeliveryAdapter):
    """
    Drives the surface from one adaptive manifest covering the full day.

    Usage:
        adapter = ContinuousAdapter(surface, "day.m3u8", on_fatal=engine_callback)
        await adapter.initialize()   # raises the DeliveryError if it fails
        await adapter.seek_to(day_offset)
    """

    mode = DeliveryMode.CONTINUOUS

    def __init__(
        self,
        surface: PlaybackSurface,
        manifest_url: str,
        on_fatal: FatalCallback,
        backend_factory: Optional[BackendFactory] = None,
        backend_options: Optional[dict[str, Any]] = None,
        recovery_window: float = 5.0,
        error_handler: Optional[ErrorHandler] = None,
        manifest_probe: Optional[ManifestProbe] = None,
    ):
        """
        Initialize the adapter.

        Args:
            surface: Playback surface to drive
            manifest_url: Adaptive manifest covering the broadcast day
            on_fatal: Called once with the error that ends this adapter
            backend_factory: Builds the adaptive backend from backend_options
            backend_options: Opaque backend tuning
            recovery_window: Seconds a network reload has to become ready again
            error_handler: Shared classifier/history
            manifest_probe: Optional preflight run before attaching
        """
        super().__init__(surface)
        self.manifest_url = manifest_url
        self.recovery_window = recovery_window
        self.error_handler = error_handler or ErrorHandler()
        self.backend_options = dict(backend_options or {})

        self._on_fatal = on_fatal
        self._backend_factory = backend_factory
        self._probe = manifest_probe
        self._backend: Optional[StreamBackend] = None

        self._ready = asyncio.Event()
        self._stopped = asyncio.Event()
        self._failure: Optional[DeliveryError] = None
        self._recovery_handle: Optional[asyncio.TimerHandle] = None

        # Metrics
        self.reloads = 0
        self.media_recoveries = 0

    @property
    def failure(self) -> Optional[DeliveryError]:
        return self._failure

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set() and self._failure is None

    @property
    def backend_name(self) -> Optional[str]:
        return self._backend.name if self._backend else None

    async def initialize(self) -> None:
        self.surface.attach(self)
        self.surface.subscribe(self, SurfaceEvent.FATAL_ERROR, self._on_fault)
        self.surface.subscribe(self, SurfaceEvent.TRANSIENT_ERROR, self._on_fault)

        try:
            if self._probe is not None:
                await self._probe.probe(self.manifest_url)
            if self._torn_down:
                return
            self._backend = self._select_backend()

            logger.info(f"Attaching {self._backend.name} backend to {self.manifest_url}")
            self._backend.attach(
                self.surface,
                self,
                self.manifest_url,
                on_ready=self._on_backend_ready,
                on_error=self._on_fault,
            )
        except DeliveryError as e:
            self._fail(e)
            raise
        except Exception as e:
            # A backend or probe that cannot come up is fatal like any other fault
            error = FatalDeliveryError(
                f"Continuous delivery could not start: {e}",
                ErrorClassifier.fault_from_exception(e, {"url": self.manifest_url}),
            )
            self._fail(error)
            raise error from e

        await self._wait_ready()
        logger.info("Continuous delivery ready")

    async def ensure_loaded(self, part_index: int) -> bool:
        # A single resource covers the whole day
        return False

    async def seek_to(self, offset: float) -> None:
        await self._wait_ready()
        if not self.is_live:
            return
        target = max(0.0, float(offset))
        try:
            self.surface.seek(target)
        except SeekRejectedError as e:
            logger.warning(f"Continuous seek to {target:.1f}s rejected: {e}")

    def current_offset(self) -> Optional[int]:
        if not self.is_ready:
            return None
        return int(self.surface.current_position) % DAY_SECONDS

    def teardown(self) -> None:
        self._cancel_recovery_timer()
        if self._backend is not None:
            self._backend.destroy()
        self._stopped.set()
        super().teardown()

    def _select_backend(self) -> StreamBackend:
        backend: Optional[StreamBackend] = None
        if self._backend_factory is not None:
            try:
                backend = self._backend_factory(self.backend_options)
            except Exception as e:
                logger.warning(f"Adaptive backend unavailable: {e}")
                backend = None

        if backend is not None and backend.is_supported():
            return backend

        if self.surface.supports_native_manifest:
            return NativeManifestBackend(self.backend_options)

        raise UnsupportedFormatError(
            "Neither an adaptive backend nor native manifest playback is available",
            DeliveryFault(kind=FaultKind.UNSUPPORTED_PLATFORM, details="no adaptive backend"),
        )

    async def _wait_ready(self) -> None:
        if self._failure is None and not self._torn_down and not self._ready.is_set():
            ready = asyncio.ensure_future(self._ready.wait())
            stopped = asyncio.ensure_future(self._stopped.wait())
            try:
                await asyncio.wait({ready, stopped}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                ready.cancel()
                stopped.cancel()

        if self._failure is not None:
            raise self._failure
        if self._torn_down:
            raise FatalDeliveryError("Continuous adapter was torn down")

    def _on_backend_ready(self) -> None:
        if self._torn_down or self._failure is not None:
            return
        if self._recovery_handle is not None:
            self._cancel_recovery_timer()
            logger.info("Continuous stream recovered after reload")
        self._ready.set()

    def _on_fault(self, fault: DeliveryFault) -> None:
        if self._torn_down or self._failure is not None:
            return

        if not fault.fatal:
            self.error_handler.record_transient(fault)
            return

        error = self.error_handler.handle_fault(fault)

        if isinstance(error, TransientDeliveryError):
            self._begin_reload(error)
        elif isinstance(error, RecoverableMediaError):
            # Every report gets its own attempt, repeated faults are not deduplicated
            self.media_recoveries += 1
            logger.warning(
                f"Media error, attempting in-place recovery (#{self.media_recoveries})"
            )
            if self._backend is not None:
                self._backend.recover_media_error()
        else:
            self._fail(error)

    def _begin_reload(self, error: TransientDeliveryError) -> None:
        self.reloads += 1
        self._ready.clear()
        logger.warning(
            f"Network error, reloading in place "
            f"(window {self.recovery_window}s): {error}"
        )
        if self._backend is not None:
            self._backend.start_load()
        if self._recovery_handle is None:
            loop = asyncio.get_running_loop()
            self._recovery_handle = loop.call_later(
                self.recovery_window, self._on_recovery_expired, error
            )

    def _on_recovery_expired(self, error: TransientDeliveryError) -> None:
        self._recovery_handle = None
        if self._torn_down or self._failure is not None or self._ready.is_set():
            return
        self._fail(
            FatalDeliveryError(
                f"Stream not ready within {self.recovery_window}s of reload: {error}",
                error.fault,
            )
        )

    def _cancel_recovery_timer(self) -> None:
        if self._recovery_handle is not None:
            self._recovery_handle.cancel()
            self._recovery_handle = None

    def _fail(self, error: DeliveryError) -> None:
        if self._failure is not None:
            return
        self._failure = error
        self._cancel_recovery_timer()
        logger.error(f"Continuous delivery failed: {error}")

        if self._backend is not None:
            self._backend.destroy()

        try:
            self._on_fatal(error)
        except Exception as e:
            logger.error(f"Fatal-error callback failed: {e}", exc_info=True)
        self._stopped.set()
