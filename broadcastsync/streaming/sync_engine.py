"""
Sync engine.

Owns the delivery state machine for one session:

    UNINITIALIZED -> INITIALIZING(mode) -> READY(mode) <-> RESYNCING(mode)
    INITIALIZING / READY / RESYNCING -> FALLBACK_PENDING   (continuous fatal)
    FALLBACK_PENDING -> INITIALIZING(segmented) | DEGRADED (terminal)

Every tick (and every caller-requested resync) compares where the surface
is with where the broadcast clock says it should be and reseeks when the
drift exceeds the threshold or a part boundary has been crossed. A fatal
continuous failure latches continuous delivery off for the session and
re-initializes on the best segmented mode.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from broadcastsync.config import BroadcastSyncConfig, ContinuousConfig, SyncConfig, get_config
from broadcastsync.exceptions import ConfigurationError, DeliveryError
from broadcastsync.playout.clock import (
    DEFAULT_REFERENCE_OFFSET_SECONDS,
    BroadcastClock,
    TimezoneMode,
    day_offset,
    is_drifted,
    part_plan,
)
from broadcastsync.playout.plan import DeliveryMode, DeliveryPlanSelector, SourceDescriptors
from broadcastsync.playout.state import EngineState, EngineStateKind
from broadcastsync.streaming.adapter import DeliveryAdapter
from broadcastsync.streaming.continuous import BackendFactory, ContinuousAdapter
from broadcastsync.streaming.error_handler import ErrorHandler
from broadcastsync.streaming.manifest_probe import ManifestProbe
from broadcastsync.streaming.retry_manager import RetryConfig
from broadcastsync.streaming.segmented import SegmentedAdapter
from broadcastsync.streaming.surface import PlaybackSurface

logger = logging.getLogger(__name__)


@dataclass
class ResyncResult:
    """Outcome of one resync pass."""

    mode: DeliveryMode
    desired_offset: int
    reported_offset: Optional[int] = None
    part_index: Optional[int] = None
    applied_correction: bool = False
    part_changed: bool = False
    error: Optional[DeliveryError] = None


class SyncEngine:
    """
    Keeps a playback surface aligned with the broadcast day.

    Usage:
        engine = SyncEngine(surface, SourceDescriptors(continuous="day.m3u8",
                                                       segmented_six={...}))
        await engine.start()
        ...
        await engine.set_timezone_mode(TimezoneMode.fixed())
        ...
        await engine.dispose()

    Raises ConfigurationError at construction if no source is playable.
    """

    def __init__(
        self,
        surface: PlaybackSurface,
        descriptors: SourceDescriptors,
        config: Optional[SyncConfig] = None,
        continuous_config: Optional[ContinuousConfig] = None,
        clock: Optional[BroadcastClock] = None,
        timezone_mode: Optional[TimezoneMode] = None,
        reference_offset_seconds: int = DEFAULT_REFERENCE_OFFSET_SECONDS,
        backend_factory: Optional[BackendFactory] = None,
        manifest_probe: Optional[ManifestProbe] = None,
        on_mode_changed: Optional[Callable[[DeliveryMode], Any]] = None,
        on_degraded: Optional[Callable[[], Any]] = None,
        on_resync: Optional[Callable[[int, bool], Any]] = None,
        on_timezone_mode_changed: Optional[Callable[[TimezoneMode], Any]] = None,
    ):
        """
        Initialize the engine.

        Args:
            surface: The playback surface, driven exclusively by this engine
            descriptors: Declared delivery sources
            config: Tick, drift and seek settings
            continuous_config: Recovery window and backend options
            clock: Broadcast clock (injectable for tests)
            timezone_mode: Initial timezone mode (local by default)
            reference_offset_seconds: Offset used when toggling to the fixed reference
            backend_factory: Builds the adaptive backend for continuous delivery
            manifest_probe: Optional preflight for the continuous manifest
            on_mode_changed: Called with the new mode when initialization starts
            on_degraded: Called once when no playable source remains
            on_resync: Called with (desired_offset, applied_correction) per resync
            on_timezone_mode_changed: Called when the timezone mode changes
        """
        self.surface = surface
        self.descriptors = descriptors
        self.sync_config = config or SyncConfig()
        self.continuous_config = continuous_config or ContinuousConfig()
        self.clock = clock or BroadcastClock()
        self.reference_offset_seconds = reference_offset_seconds
        self.error_handler = ErrorHandler()

        self.on_mode_changed = on_mode_changed
        self.on_degraded = on_degraded
        self.on_resync = on_resync
        self.on_timezone_mode_changed = on_timezone_mode_changed

        self._timezone_mode = timezone_mode or TimezoneMode.local()
        self._backend_factory = backend_factory
        self._manifest_probe = manifest_probe

        self._selector = DeliveryPlanSelector(descriptors)
        self._initial_mode = self._selector.select()

        self._state = EngineState.uninitialized()
        self._adapter: Optional[DeliveryAdapter] = None
        self._failure: Optional[DeliveryError] = None
        self._started = False
        self._disposed = False

        self._tick_task: Optional[asyncio.Task] = None
        self._resync_task: Optional[asyncio.Task] = None
        self._fallback_task: Optional[asyncio.Task] = None

        # Metrics
        self.ticks = 0
        self.skipped_ticks = 0
        self.resyncs = 0
        self.corrections = 0
        self.part_switches = 0
        self.fallbacks = 0
        self.degraded_events = 0

    @classmethod
    def from_config(
        cls,
        surface: PlaybackSurface,
        config: Optional[BroadcastSyncConfig] = None,
        **kwargs: Any,
    ) -> "SyncEngine":
        """Build an engine from the application configuration."""
        config = config or get_config()
        descriptors = SourceDescriptors.from_sources(config.sources.as_mapping())

        kwargs.setdefault(
            "timezone_mode",
            TimezoneMode.from_name(
                config.timezone.default_mode, config.timezone.reference_offset_seconds
            ),
        )
        if config.continuous.probe_manifest:
            kwargs.setdefault(
                "manifest_probe",
                ManifestProbe(
                    supported_codecs=config.continuous.supported_codecs,
                    timeout=config.continuous.probe_timeout_seconds,
                    retry_config=RetryConfig(max_retries=config.continuous.probe_max_retries),
                ),
            )

        return cls(
            surface,
            descriptors,
            config=config.sync,
            continuous_config=config.continuous,
            reference_offset_seconds=config.timezone.reference_offset_seconds,
            **kwargs,
        )

    # Properties

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def mode(self) -> Optional[DeliveryMode]:
        """Mode of the live adapter, None while none is live."""
        return self._adapter.mode if self._adapter is not None else None

    @property
    def continuous_failed(self) -> bool:
        return self._selector.continuous_failed

    @property
    def timezone_mode(self) -> TimezoneMode:
        return self._timezone_mode

    @property
    def adapter(self) -> Optional[DeliveryAdapter]:
        return self._adapter

    @property
    def failure(self) -> Optional[DeliveryError]:
        """Error that left the engine degraded, if any."""
        return self._failure

    @property
    def is_degraded(self) -> bool:
        return self._state.is_terminal

    # Lifecycle

    async def start(self) -> None:
        """
        Initialize the best available mode, seek, and start the tick loop.

        Returns once the engine is READY (possibly after a fallback) or
        DEGRADED.
        """
        if self._started:
            raise RuntimeError("SyncEngine already started")
        self._started = True

        logger.info(f"Starting sync engine in {self._initial_mode.value} mode")
        await self._activate(self._initial_mode)

        if self._fallback_task is not None:
            await asyncio.wait({self._fallback_task})

        if not self._state.is_terminal and not self._disposed:
            self._tick_task = asyncio.create_task(self._tick_loop())
            logger.info(
                f"Resync loop started (interval={self.sync_config.tick_interval_seconds}s, "
                f"drift threshold={self.sync_config.drift_threshold_seconds}s)"
            )

    async def dispose(self) -> None:
        """Stop the tick loop, cancel pending work and release the surface."""
        if self._disposed:
            return
        self._disposed = True

        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._tick_task, self._resync_task, self._fallback_task)
            if task is not None and not task.done() and task is not current
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)

        self._teardown_adapter()
        logger.info("Sync engine disposed")

    # Resync

    def tick(self) -> Optional[asyncio.Task]:
        """
        Run one periodic resync.

        A tick that finds a resync still in flight, or the engine in any
        state but READY, does nothing.
        """
        self.ticks += 1
        if self._disposed:
            return None
        if self._resync_in_flight:
            self.skipped_ticks += 1
            logger.debug("Resync still in flight, skipping tick")
            return None
        if self._state.kind != EngineStateKind.READY:
            logger.debug(f"Skipping tick in state {self._state}")
            return None
        return self._launch_resync()

    async def resync(self) -> Optional[ResyncResult]:
        """
        Resync now, after any resync already in flight has finished.

        Returns:
            The resync outcome, or None if the engine was not READY or the
            pass was pre-empted by a fallback.
        """
        while self._resync_in_flight:
            await asyncio.wait({self._resync_task})

        if self._disposed or self._state.kind != EngineStateKind.READY:
            return None

        task = self._launch_resync()
        await asyncio.wait({task})
        if task.cancelled():
            return None
        return task.result()

    async def set_timezone_mode(self, mode: TimezoneMode) -> Optional[ResyncResult]:
        """Switch the clock the broadcast follows and resync immediately."""
        changed = mode != self._timezone_mode
        self._timezone_mode = mode
        if changed:
            logger.info(f"Timezone mode set to {mode.kind.value}")
            self._emit("on_timezone_mode_changed", mode)
        return await self.resync()

    async def toggle_timezone_mode(self) -> Optional[ResyncResult]:
        """Flip between local time and the fixed reference timezone."""
        if self._timezone_mode.is_local:
            return await self.set_timezone_mode(TimezoneMode.fixed(self.reference_offset_seconds))
        return await self.set_timezone_mode(TimezoneMode.local())

    def get_stats(self) -> dict[str, Any]:
        """Get engine statistics."""
        return {
            "state": str(self._state),
            "mode": self.mode.value if self.mode else None,
            "continuous_failed": self.continuous_failed,
            "timezone_mode": self._timezone_mode.kind.value,
            "ticks": self.ticks,
            "skipped_ticks": self.skipped_ticks,
            "resyncs": self.resyncs,
            "corrections": self.corrections,
            "part_switches": self.part_switches,
            "fallbacks": self.fallbacks,
            "transient_reports": self.error_handler.transient_reports,
            "recent_errors": [str(e) for e in self.error_handler.get_recent_errors(limit=5)],
        }

    # Internals

    @property
    def _resync_in_flight(self) -> bool:
        return self._resync_task is not None and not self._resync_task.done()

    def _set_state(self, target: EngineState) -> None:
        previous = self._state
        self._state = previous.transition_to(target)
        if {previous.kind, target.kind} == {EngineStateKind.READY, EngineStateKind.RESYNCING}:
            logger.debug(f"Engine state {previous} -> {target}")
        else:
            logger.info(f"Engine state {previous} -> {target}")

    def _emit(self, name: str, *args: Any) -> None:
        callback = getattr(self, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"{name} callback failed: {e}", exc_info=True)

    def _build_adapter(self, mode: DeliveryMode) -> DeliveryAdapter:
        if mode == DeliveryMode.CONTINUOUS:
            return ContinuousAdapter(
                self.surface,
                self.descriptors.continuous,
                on_fatal=self._on_adapter_fatal,
                backend_factory=self._backend_factory,
                backend_options=self.continuous_config.backend_options,
                recovery_window=self.continuous_config.recovery_window_seconds,
                error_handler=self.error_handler,
                manifest_probe=self._manifest_probe,
            )
        return SegmentedAdapter(
            self.surface,
            self.descriptors.parts_for(mode),
            mode,
            seek_retry_delay=self.sync_config.seek_retry_delay_seconds,
            metadata_timeout=self.sync_config.metadata_timeout_seconds,
        )

    async def _activate(self, mode: DeliveryMode) -> None:
        if self._adapter is not None:
            raise RuntimeError("Previous delivery adapter is still live")

        self._set_state(EngineState.initializing(mode))
        adapter = self._build_adapter(mode)
        self._adapter = adapter
        self._emit("on_mode_changed", mode)

        try:
            await adapter.initialize()
        except DeliveryError as e:
            # The adapter has already reported the failure; fallback is scheduled
            logger.warning(f"{mode.value} initialization failed: {e}")
            return

        if self._state != EngineState.initializing(mode) or self._adapter is not adapter:
            return

        self._set_state(EngineState.ready(mode))
        await self.resync()

    def _launch_resync(self) -> asyncio.Task:
        task = asyncio.create_task(self._resync_once())
        task.add_done_callback(self._on_resync_done)
        self._resync_task = task
        return task

    @staticmethod
    def _on_resync_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Resync crashed: {error}", exc_info=error)

    @staticmethod
    def _on_fallback_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Fallback crashed: {error}", exc_info=error)

    async def _resync_once(self) -> ResyncResult:
        adapter = self._adapter
        mode = adapter.mode
        desired = day_offset(self.clock.now(self._timezone_mode))
        result = ResyncResult(mode=mode, desired_offset=desired)

        self._set_state(EngineState.resyncing(mode))
        try:
            await self._align(adapter, result)
        except DeliveryError as e:
            logger.warning(f"Resync in {mode.value} mode failed: {e}")
            result.error = e
        finally:
            if self._state == EngineState.resyncing(mode):
                self._set_state(EngineState.ready(mode))

        self.resyncs += 1
        if result.applied_correction:
            self.corrections += 1
        self._emit("on_resync", desired, result.applied_correction)
        return result

    async def _align(self, adapter: DeliveryAdapter, result: ResyncResult) -> None:
        threshold = self.sync_config.drift_threshold_seconds
        desired = result.desired_offset

        if isinstance(adapter, SegmentedAdapter):
            plan = part_plan(desired, adapter.part_length_seconds)
            result.part_index = plan.part_index

            if adapter.loaded_part_index != plan.part_index:
                # Crossing a part boundary always needs the other file
                await adapter.ensure_loaded(plan.part_index)
                await adapter.seek_to(plan.offset_in_part)
                result.part_changed = True
                result.applied_correction = True
                self.part_switches += 1
                logger.info(
                    f"Switched to part {adapter.key_for(plan.part_index)} "
                    f"at {plan.offset_in_part}s"
                )
            else:
                result.reported_offset = adapter.current_offset()
                if result.reported_offset is None or is_drifted(
                    result.reported_offset, desired, threshold
                ):
                    await adapter.seek_to(plan.offset_in_part)
                    result.applied_correction = True
        else:
            result.reported_offset = adapter.current_offset()
            if result.reported_offset is None or is_drifted(
                result.reported_offset, desired, threshold
            ):
                await adapter.seek_to(desired)
                result.applied_correction = True

        if result.applied_correction and not result.part_changed:
            logger.info(
                f"Reseeked to day offset {desired}s "
                f"(reported {result.reported_offset if result.reported_offset is not None else '-'})"
            )
        elif not result.applied_correction:
            logger.debug(f"Drift within {threshold}s at day offset {desired}s")

        await adapter.play()

    def _on_adapter_fatal(self, error: DeliveryError) -> None:
        if self._fallback_task is not None or self._state.is_terminal or self._disposed:
            return

        logger.error(f"Continuous delivery failed, falling back: {error}")
        self._set_state(EngineState.fallback_pending())
        self._selector.mark_continuous_failed()
        self.fallbacks += 1

        if self._resync_in_flight and self._resync_task is not asyncio.current_task():
            self._resync_task.cancel()

        self._fallback_task = asyncio.create_task(self._fallback(error))
        self._fallback_task.add_done_callback(self._on_fallback_done)

    async def _fallback(self, error: DeliveryError) -> None:
        if self._resync_in_flight and self._resync_task is not asyncio.current_task():
            self._resync_task.cancel()
            await asyncio.wait({self._resync_task})

        # The discarded adapter must be gone before its successor exists
        self._teardown_adapter()

        try:
            mode = self._selector.select()
        except ConfigurationError:
            self._enter_degraded(error)
            return

        logger.info(f"Falling back to {mode.value} delivery")
        await self._activate(mode)

    def _enter_degraded(self, error: DeliveryError) -> None:
        self._failure = error
        self._set_state(EngineState.degraded())
        logger.error(f"No playable source available, engine degraded: {error}")

        if self._tick_task is not None and self._tick_task is not asyncio.current_task():
            self._tick_task.cancel()

        self.degraded_events += 1
        self._emit("on_degraded")

    def _teardown_adapter(self) -> None:
        if self._adapter is not None:
            self._adapter.teardown()
            self._adapter = None

    async def _tick_loop(self) -> None:
        interval = self.sync_config.tick_interval_seconds
        while not self._disposed and not self._state.is_terminal:
            await asyncio.sleep(interval)
            self.tick()
