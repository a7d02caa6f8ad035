"""
Teacher preference loading.

The preferences file is user-edited input: it may be missing, malformed or
partially filled in. Anything unusable is dropped rather than failing startup.
"""

import json
from pathlib import Path
from typing import Any, List, Optional

from src.core.models import TeacherPreferences
from src.shared.logging import get_logger

logger = get_logger(__name__)

_TONES = {"warm", "neutral", "direct"}


def _string_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    cleaned = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return cleaned or None


def sanitize_preferences(data: Any) -> Optional[TeacherPreferences]:
    """Build preferences from a decoded JSON value, keeping only well-typed fields."""
    if not isinstance(data, dict):
        return None

    tone = data.get("tone")
    notes = data.get("teacherNotes")

    return TeacherPreferences(
        class_goals=_string_list(data.get("classGoals")),
        focus_areas=_string_list(data.get("focusAreas")),
        preferred_strategies=_string_list(data.get("preferredStrategies")),
        tone=tone if tone in _TONES else None,
        teacher_notes=notes.strip() if isinstance(notes, str) else None,
    )


def load_preferences(path: Optional[Path]) -> Optional[TeacherPreferences]:
    """
    Load teacher preferences from a JSON file.

    Args:
        path: Preferences file, or None when not configured

    Returns:
        Sanitized preferences, or None when absent or unusable
    """
    if path is None:
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning(f"Teacher preferences file not found: {path}")
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load teacher preferences from {path}: {e}")
        return None

    preferences = sanitize_preferences(data)
    if preferences is None:
        logger.warning(f"Teacher preferences file must be a JSON object: {path}")
        return None

    logger.info(f"Teacher preferences loaded from {path}")
    return preferences
