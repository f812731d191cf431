"""
BroadcastSync Playout

Where in the 24-hour cycle playback should be, and how it is delivered.

Features:
- Broadcast day clock anchored at 01:00, local or fixed reference timezone
- Part plans for six and three part segmented delivery
- Delivery mode selection with a one-way continuous failure latch
- Engine lifecycle states and legal transitions
"""

from broadcastsync.playout.clock import (
    DAY_SECONDS,
    BroadcastClock,
    PartPlan,
    TimezoneKind,
    TimezoneMode,
    day_base,
    day_offset,
    is_drifted,
    part_index_to_key,
    part_plan,
)
from broadcastsync.playout.plan import DeliveryMode, DeliveryPlanSelector, SourceDescriptors
from broadcastsync.playout.state import (
    ALLOWED_TRANSITIONS,
    EngineState,
    EngineStateKind,
    InvalidStateTransition,
)

__all__ = [
    # Clock
    "DAY_SECONDS",
    "BroadcastClock",
    "PartPlan",
    "TimezoneKind",
    "TimezoneMode",
    "day_base",
    "day_offset",
    "is_drifted",
    "part_index_to_key",
    "part_plan",
    # Plan
    "DeliveryMode",
    "DeliveryPlanSelector",
    "SourceDescriptors",
    # State
    "ALLOWED_TRANSITIONS",
    "EngineState",
    "EngineStateKind",
    "InvalidStateTransition",
]
