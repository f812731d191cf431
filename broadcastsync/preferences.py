"""
Player preference persistence.

Stores the listener's muted/volume choice and timezone mode as a small
JSON document. Missing or unreadable files fall back to defaults; the
engine itself never reads this file, callers apply the values.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from broadcastsync.playout.clock import (
    DEFAULT_REFERENCE_OFFSET_SECONDS,
    TimezoneKind,
    TimezoneMode,
)

logger = logging.getLogger(__name__)


class PlayerPreferences(BaseModel):
    """Listener preferences restored on startup."""
    muted: bool = True  # Autoplay is only allowed muted
    volume: float = Field(default=1.0, ge=0.0, le=1.0)
    timezone_mode: TimezoneKind = TimezoneKind.LOCAL

    def to_timezone_mode(
        self, reference_offset_seconds: int = DEFAULT_REFERENCE_OFFSET_SECONDS
    ) -> TimezoneMode:
        return TimezoneMode.from_name(self.timezone_mode.value, reference_offset_seconds)


class PreferenceStore:
    """
    JSON-backed preference storage.

    Usage:
        store = PreferenceStore("prefs.json")
        prefs = store.get_with_defaults()
        engine = SyncEngine(..., timezone_mode=prefs.to_timezone_mode(),
                            on_timezone_mode_changed=store.save_timezone_mode)
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Optional[dict[str, Any]]:
        """Return the raw saved values, or None if nothing usable is stored."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read preferences from {self.path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed preferences in {self.path}")
            return None
        return data

    def get_with_defaults(self) -> PlayerPreferences:
        """Saved values merged over the defaults."""
        saved = self.load() or {}
        defaults = PlayerPreferences().model_dump(mode="json")
        merged = {**defaults, **{k: v for k, v in saved.items() if k in defaults}}
        try:
            return PlayerPreferences(**merged)
        except ValidationError as e:
            logger.warning(f"Invalid preferences in {self.path}, using defaults: {e}")
            return PlayerPreferences()

    def save(self, preferences: PlayerPreferences) -> bool:
        """Write ``preferences``. Returns False if the file could not be written."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(preferences.model_dump_json(indent=2))
        except OSError as e:
            logger.warning(f"Could not save preferences to {self.path}: {e}")
            return False
        logger.debug(f"Preferences saved to {self.path}")
        return True

    def save_timezone_mode(self, mode: TimezoneMode) -> bool:
        """Persist only the timezone choice, keeping the other values."""
        current = self.get_with_defaults()
        return self.save(current.model_copy(update={"timezone_mode": mode.kind}))

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove preferences at {self.path}: {e}")
