"""
Contract checks for raw LLM output.

The model is asked for a bare JSON object but may wrap it in prose or code
fences, leave fields out, or write far too much. Parsing extracts the object,
collects every contract error, and silently clips over-long content so that
what comes back is always safe to render and persist.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from src.core.models import (
    ATTENTION_NAME_MAX,
    ATTENTION_REASON_MAX,
    CLASS_ARRAY_BOUNDS,
    CLASS_OVERVIEW_MAX,
    ITEM_MAX_CHARS,
    STUDENT_ARRAY_BOUNDS,
    STUDENT_TEXT_MAX,
    AttentionItem,
    ClassInsight,
    StudentInsight,
)
from src.shared.results import ContractResult


def clip_text(value: Any, max_len: int) -> Optional[str]:
    """Trimmed string capped at max_len, or None when not a non-empty string."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return trimmed[:max_len]


def normalize_string_list(
    value: Any,
    bounds: Tuple[int, int],
    label: str,
) -> ContractResult[List[str]]:
    """Clean a string array: drop blanks, cap each entry, enforce min, slice to max."""
    if not isinstance(value, list):
        return ContractResult.failure([f"{label} must be an array"])

    minimum, maximum = bounds
    cleaned = [item for item in (clip_text(v, ITEM_MAX_CHARS) for v in value) if item]
    if len(cleaned) < minimum:
        return ContractResult.failure([f"{label} must include at least {minimum} item(s)"])
    return ContractResult.success(cleaned[:maximum])


def extract_json_object(text: str) -> Optional[str]:
    """Slice from the first '{' to the last '}'."""
    if not isinstance(text, str):
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start:end + 1]


def _load_object(raw: str) -> ContractResult[Dict[str, Any]]:
    candidate = extract_json_object(raw)
    if candidate is None:
        return ContractResult.failure(["No JSON object found in response"])
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return ContractResult.failure(["Invalid JSON in response"])
    if not isinstance(parsed, dict):
        return ContractResult.failure(["Response JSON must be an object"])
    return ContractResult.success(parsed)


def parse_student_insight(raw: str) -> ContractResult[StudentInsight]:
    """
    Parse and check a student insight returned by the LLM.

    Args:
        raw: Raw completion text

    Returns:
        ContractResult with a StudentInsight, or every contract error found
    """
    loaded = _load_object(raw)
    if not loaded.ok:
        return ContractResult.failure(loaded.errors)
    record = loaded.value

    errors: List[str] = []
    texts: Dict[str, Optional[str]] = {}
    for key, cap in STUDENT_TEXT_MAX.items():
        texts[key] = clip_text(record.get(key), cap)
        if texts[key] is None:
            errors.append(f"{key} must be a non-empty string")

    lists: Dict[str, ContractResult[List[str]]] = {
        key: normalize_string_list(record.get(key), bounds, key)
        for key, bounds in STUDENT_ARRAY_BOUNDS.items()
    }
    for result in lists.values():
        errors.extend(result.errors)

    if errors:
        return ContractResult.failure(errors)

    return ContractResult.success(StudentInsight(
        positive_observation=texts["positiveObservation"],
        strengths=lists["strengths"].value,
        improvement_areas=lists["improvementAreas"].value,
        strategies=lists["strategies"].value,
        next_step_goal=texts["nextStepGoal"],
        encouragement=texts["encouragement"],
    ))


def _parse_attention(value: Any) -> ContractResult[List[AttentionItem]]:
    if not isinstance(value, list):
        return ContractResult.failure(["attentionNeeded must be an array"])

    items: List[AttentionItem] = []
    errors: List[str] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            errors.append(f"attentionNeeded[{index}] must be an object")
            continue
        name = clip_text(entry.get("name"), ATTENTION_NAME_MAX)
        reason = clip_text(entry.get("reason"), ATTENTION_REASON_MAX)
        if not name or not reason:
            errors.append(f"attentionNeeded[{index}] must include name and reason")
            continue
        items.append(AttentionItem(name=name, reason=reason))

    if errors:
        return ContractResult.failure(errors)
    return ContractResult.success(items)


def parse_class_insight(raw: str) -> ContractResult[ClassInsight]:
    """Parse and check the class summary insight returned by the LLM."""
    loaded = _load_object(raw)
    if not loaded.ok:
        return ContractResult.failure(loaded.errors)
    record = loaded.value

    overview = clip_text(record.get("classOverview"), CLASS_OVERVIEW_MAX)
    strengths = normalize_string_list(record.get("strengths"), CLASS_ARRAY_BOUNDS["strengths"], "strengths")
    next_steps = normalize_string_list(record.get("nextSteps"), CLASS_ARRAY_BOUNDS["nextSteps"], "nextSteps")
    attention = _parse_attention(record.get("attentionNeeded"))

    errors: List[str] = []
    if overview is None:
        errors.append("classOverview must be a non-empty string")
    errors.extend(strengths.errors)
    errors.extend(next_steps.errors)
    errors.extend(attention.errors)

    if errors:
        return ContractResult.failure(errors)

    return ContractResult.success(ClassInsight(
        class_overview=overview,
        strengths=strengths.value,
        attention_needed=attention.value,
        next_steps=next_steps.value,
    ))
