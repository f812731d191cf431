"""
BroadcastSync - day-cycle broadcast synchronization engine

Keeps a playback surface aligned with a perpetual 24-hour program:
- Wall-clock to broadcast-day offset mapping (anchored at 01:00)
- Delivery mode selection (continuous manifest, six or three part files)
- Periodic drift correction
- One-way fallback from a failed continuous stream to segmented files
"""

__version__ = "1.0.0"
__author__ = "BroadcastSync Contributors"
__license__ = "MIT"

from broadcastsync.config import get_config, load_config

__all__ = [
    "__version__",
    "get_config",
    "load_config",
]
