"""
Pure memory update functions.

Memory is prompt context, so every list is de-duplicated and capped and the
history is a short rolling log.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from src.core.models import ClassInsight, Student, StudentInsight, TeacherPreferences
from src.memory.models import (
    ClassMemory,
    ClassMemoryArchive,
    MemoryEntry,
    StudentMemory,
    StudentMemoryArchive,
)


def _timestamp(now: Optional[datetime]) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def unique_list(items: Iterable[str], limit: int) -> List[str]:
    """Trim, drop blanks, de-duplicate preserving first occurrence, cap at limit."""
    result: List[str] = []
    seen = set()
    for item in items:
        cleaned = item.strip() if isinstance(item, str) else ""
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        result.append(cleaned)
        if len(result) >= limit:
            break
    return result


def trim_history(entries: List[MemoryEntry], limit: int) -> List[MemoryEntry]:
    if limit <= 0:
        return []
    return entries[:limit]


def update_student_memory(
    previous: StudentMemory,
    student: Student,
    insight: StudentInsight,
    history_limit: int,
    now: Optional[datetime] = None,
) -> StudentMemory:
    """
    Fold a new insight into a student's memory.

    Args:
        previous: Memory loaded before this run
        student: The student the insight is for
        insight: Contract-conforming insight from this run
        history_limit: Maximum history entries kept (<= 0 keeps none)
        now: Clock override for tests

    Returns:
        New StudentMemory; previous is not mutated
    """
    stamp = _timestamp(now)
    entry = MemoryEntry(
        date=stamp,
        note=f"Focus: {'; '.join(insight.improvement_areas)} | Goal: {insight.next_step_goal}",
    )

    return StudentMemory(
        student_id=student.id,
        summary=f"{insight.positive_observation} Goal: {insight.next_step_goal}",
        strengths=unique_list([insight.positive_observation, *insight.strengths], 3),
        improvement_areas=unique_list(insight.improvement_areas, 3),
        goals=unique_list([insight.next_step_goal, *previous.goals], 3),
        last_updated=stamp,
        history=trim_history([entry, *previous.history], history_limit),
    )


def update_class_memory(
    previous: ClassMemory,
    insight: ClassInsight,
    history_limit: int,
    preferences: Optional[TeacherPreferences] = None,
    now: Optional[datetime] = None,
) -> ClassMemory:
    """Fold a class insight into class memory, merging teacher goals first."""
    stamp = _timestamp(now)
    entry = MemoryEntry(date=stamp, note=f"Next steps: {'; '.join(insight.next_steps)}")

    goals = (preferences.class_goals if preferences else None) or []
    focus = (preferences.focus_areas if preferences else None) or []

    return ClassMemory(
        summary=insight.class_overview,
        strengths=unique_list(insight.strengths, 4),
        class_goals=unique_list([*goals, *previous.class_goals], 4),
        focus_areas=unique_list([*focus, *previous.focus_areas], 4),
        last_updated=stamp,
        history=trim_history([entry, *previous.history], history_limit),
    )


def build_student_archive(run_id: str, memory: StudentMemory) -> StudentMemoryArchive:
    return StudentMemoryArchive(
        run_id=run_id,
        student_id=memory.student_id,
        created_at=memory.last_updated or _timestamp(None),
        summary=memory.summary,
        strengths=memory.strengths,
        improvement_areas=memory.improvement_areas,
        goals=memory.goals,
    )


def build_class_archive(run_id: str, insight: ClassInsight, now: Optional[datetime] = None) -> ClassMemoryArchive:
    return ClassMemoryArchive(
        run_id=run_id,
        created_at=_timestamp(now),
        summary=insight.class_overview,
        strengths=insight.strengths,
        attention_needed=insight.attention_needed,
        next_steps=insight.next_steps,
    )
