"""
Plain-text rendering of insights.

Section labels are stable so stored messages stay comparable across runs.
"""

from typing import List

from src.core.models import ClassInsight, StudentInsight

NO_ATTENTION_LINE = "- No students flagged for immediate attention."


def _bullets(items: List[str]) -> List[str]:
    return [f"- {item}" for item in items]


def render_student_message(insight: StudentInsight) -> str:
    """Render a student insight as a message body."""
    lines = [
        insight.positive_observation,
        "",
        "Strengths:",
        *_bullets(insight.strengths),
        "",
        "Focus areas:",
        *_bullets(insight.improvement_areas),
        "",
        "Try this:",
        *_bullets(insight.strategies),
        "",
        f"Next step goal: {insight.next_step_goal}",
        "",
        insight.encouragement,
    ]
    return "\n".join(lines)


def render_class_message(insight: ClassInsight) -> str:
    """Render the class insight as the teacher's summary."""
    attention_lines = [
        f"- {item.name}: {item.reason}" for item in insight.attention_needed
    ] or [NO_ATTENTION_LINE]

    lines = [
        insight.class_overview,
        "",
        "Class strengths:",
        *_bullets(insight.strengths),
        "",
        "Students needing attention:",
        *attention_lines,
        "",
        "Next steps (next week):",
        *_bullets(insight.next_steps),
    ]
    return "\n".join(lines)
