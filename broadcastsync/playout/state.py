"""
Engine state management.

Tracks which step of the sync lifecycle the engine is in and which
transitions between steps are legal.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from broadcastsync.playout.plan import DeliveryMode


class EngineStateKind(str, Enum):
    """Lifecycle states of the sync engine."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    RESYNCING = "resyncing"
    FALLBACK_PENDING = "fallback_pending"
    DEGRADED = "degraded"


ALLOWED_TRANSITIONS: dict[EngineStateKind, frozenset[EngineStateKind]] = {
    EngineStateKind.UNINITIALIZED: frozenset({EngineStateKind.INITIALIZING}),
    EngineStateKind.INITIALIZING: frozenset(
        {EngineStateKind.READY, EngineStateKind.FALLBACK_PENDING}
    ),
    EngineStateKind.READY: frozenset(
        {EngineStateKind.RESYNCING, EngineStateKind.FALLBACK_PENDING}
    ),
    EngineStateKind.RESYNCING: frozenset(
        {EngineStateKind.READY, EngineStateKind.FALLBACK_PENDING}
    ),
    EngineStateKind.FALLBACK_PENDING: frozenset(
        {EngineStateKind.INITIALIZING, EngineStateKind.DEGRADED}
    ),
    EngineStateKind.DEGRADED: frozenset(),
}


class InvalidStateTransition(RuntimeError):
    """Raised when the engine attempts a transition the lifecycle forbids."""


@dataclass(frozen=True)
class EngineState:
    """
    Current engine state.

    ``mode`` is set for INITIALIZING, READY and RESYNCING and None otherwise.
    """

    kind: EngineStateKind = EngineStateKind.UNINITIALIZED
    mode: Optional[DeliveryMode] = None

    @classmethod
    def uninitialized(cls) -> "EngineState":
        return cls(EngineStateKind.UNINITIALIZED)

    @classmethod
    def initializing(cls, mode: DeliveryMode) -> "EngineState":
        return cls(EngineStateKind.INITIALIZING, mode)

    @classmethod
    def ready(cls, mode: DeliveryMode) -> "EngineState":
        return cls(EngineStateKind.READY, mode)

    @classmethod
    def resyncing(cls, mode: DeliveryMode) -> "EngineState":
        return cls(EngineStateKind.RESYNCING, mode)

    @classmethod
    def fallback_pending(cls) -> "EngineState":
        return cls(EngineStateKind.FALLBACK_PENDING)

    @classmethod
    def degraded(cls) -> "EngineState":
        return cls(EngineStateKind.DEGRADED)

    @property
    def is_terminal(self) -> bool:
        return self.kind == EngineStateKind.DEGRADED

    def can_transition_to(self, target: "EngineState") -> bool:
        return target.kind in ALLOWED_TRANSITIONS[self.kind]

    def transition_to(self, target: "EngineState") -> "EngineState":
        """Return ``target`` if the move is legal, else raise."""
        if not self.can_transition_to(target):
            raise InvalidStateTransition(f"{self} -> {target}")
        return target

    def __str__(self) -> str:
        if self.mode is None:
            return self.kind.value
        return f"{self.kind.value}({self.mode.value})"
