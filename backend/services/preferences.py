from __future__ import annotations

import json
import logging
from typing import Any, Literal, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)


class Preferences(BaseModel):
    """Reminder preferences with their defaults applied."""

    reminderMode: Literal["adaptive", "fixed"] = "adaptive"
    fixedTime: Optional[str] = None
    breakDetection: bool = False
    commitPattern: Literal["frequent", "end-only"] = "end-only"
    notifications: bool = True

    model_config = {"extra": "ignore"}


class PreferencesUpdate(BaseModel):
    reminderMode: Optional[Literal["adaptive", "fixed"]] = None
    fixedTime: Optional[str] = None
    breakDetection: Optional[bool] = None
    commitPattern: Optional[Literal["frequent", "end-only"]] = None
    notifications: Optional[bool] = None


def load_preferences(raw: str | dict | None) -> Preferences:
    """Parse stored preferences; anything unusable falls back to the defaults."""
    if not raw:
        return Preferences()
    data: Any = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Stored preferences are not valid JSON; using defaults")
            return Preferences()
    if not isinstance(data, dict):
        return Preferences()

    cleaned = {k: v for k, v in data.items() if v is not None}
    try:
        return Preferences(**cleaned)
    except PydanticValidationError:
        # Keep whichever individual options are still valid.
        prefs = Preferences()
        for key, value in cleaned.items():
            if key not in Preferences.model_fields:
                continue
            try:
                prefs = Preferences(**{**prefs.model_dump(), key: value})
            except PydanticValidationError:
                logger.warning(f"Ignoring invalid preference {key}={value!r}")
        return prefs


def merge_preferences(current: Preferences, update: PreferencesUpdate) -> Preferences:
    changes = {
        key: value
        for key, value in update.model_dump(exclude_unset=True).items()
        if value is not None or key == "fixedTime"
    }
    return Preferences(**{**current.model_dump(), **changes})


def dump_preferences(prefs: Preferences) -> str:
    return json.dumps(prefs.model_dump())
