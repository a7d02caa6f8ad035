"""
Deterministic fallback insights.

Used whenever the LLM is unavailable or its output breaks the contract. Every
string is clipped to the same caps the parser enforces, so a fallback always
passes the contract checks itself.
"""

from typing import List, Optional

from src.core.insights.contract import clip_text
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
    ClassSummary,
    StudentAnalysis,
    StudentInsight,
    TeacherPreferences,
)

DEFAULT_STRENGTH = "You're making steady progress across your classes."
DEFAULT_IMPROVEMENT = "Keep building consistency with assignments and review routines."
DEFAULT_STRATEGY = "Ask for quick feedback from your teacher on one recent assignment."
DEFAULT_GOAL = "Choose one focus area and practice it three times this week."
ENCOURAGEMENT = "Small steps add up, so keep going and reach out if you need support."

DEFAULT_CLASS_STRENGTH = "Several students are maintaining steady performance."
ATTENTION_REASON = "Flagged for additional check-ins based on recent trends."
DEFAULT_NEXT_STEPS = [
    "Plan one small-group session for students needing support.",
    "Highlight one success story to reinforce growth mindset.",
]


def _clip_items(items: List[str]) -> List[str]:
    return [item for item in (clip_text(i, ITEM_MAX_CHARS) for i in items) if item]


def _preferred_strategies(preferences: Optional[TeacherPreferences]) -> List[str]:
    if preferences is None or not preferences.preferred_strategies:
        return []
    return _clip_items(preferences.preferred_strategies)


def build_fallback_student_insight(
    analysis: StudentAnalysis,
    preferences: Optional[TeacherPreferences] = None,
) -> StudentInsight:
    """
    Build a contract-conforming student insight from deterministic signals.

    Args:
        analysis: Deterministic analysis of the student
        preferences: Optional teacher preferences (strategies, class goals)

    Returns:
        StudentInsight within every contract bound
    """
    metrics = analysis.metrics
    strengths = _clip_items(analysis.strengths) or [DEFAULT_STRENGTH]
    improvement_areas = _clip_items(analysis.improvement_areas)[:2] or [DEFAULT_IMPROVEMENT]

    strategies: List[str] = []
    if metrics.assignment_completion_rate < 85:
        strategies.append("Use a checklist and finish assignments 24 hours before the deadline.")
    if metrics.participation_score <= 6:
        strategies.append("Prepare one question or comment before class and share it.")
    if metrics.average_score < 75:
        strategies.append("Set a 20-minute daily review block and summarize notes in your own words.")
    if metrics.lowest_subjects:
        subjects = ", ".join(grade.subject for grade in metrics.lowest_subjects)
        strategies.append(f"Spend extra practice time on {subjects} with short, focused sessions.")

    for item in _preferred_strategies(preferences):
        if len(strategies) >= 3:
            break
        strategies.append(item)

    while len(strategies) < 2:
        strategies.append(DEFAULT_STRATEGY)

    goal = None
    if preferences is not None and preferences.class_goals:
        goal = clip_text(preferences.class_goals[0], STUDENT_TEXT_MAX["nextStepGoal"])

    _, max_strengths = STUDENT_ARRAY_BOUNDS["strengths"]
    _, max_strategies = STUDENT_ARRAY_BOUNDS["strategies"]

    return StudentInsight(
        positive_observation=clip_text(strengths[0], STUDENT_TEXT_MAX["positiveObservation"]),
        strengths=strengths[:max_strengths],
        improvement_areas=improvement_areas,
        strategies=_clip_items(strategies)[:max_strategies],
        next_step_goal=goal or DEFAULT_GOAL,
        encouragement=ENCOURAGEMENT,
    )


def build_fallback_class_insight(
    summary: ClassSummary,
    preferences: Optional[TeacherPreferences] = None,
) -> ClassInsight:
    """Build a contract-conforming class insight from the class summary."""
    if summary.top_students:
        strengths = _clip_items([f"Top performers this cycle: {', '.join(summary.top_students)}."])
    else:
        strengths = [DEFAULT_CLASS_STRENGTH]

    attention_needed = []
    for name in summary.attention_needed:
        clipped = clip_text(name, ATTENTION_NAME_MAX)
        if clipped:
            attention_needed.append(AttentionItem(
                name=clipped,
                reason=ATTENTION_REASON[:ATTENTION_REASON_MAX],
            ))

    next_steps = _preferred_strategies(preferences)[:2]
    if len(next_steps) < 2:
        next_steps.extend(DEFAULT_NEXT_STEPS)

    _, max_steps = CLASS_ARRAY_BOUNDS["nextSteps"]
    overview = (
        f"Class average is {summary.class_average:.1f}. "
        "Overall trends are stable with a few students needing additional attention."
    )

    return ClassInsight(
        class_overview=overview[:CLASS_OVERVIEW_MAX],
        strengths=strengths,
        attention_needed=attention_needed,
        next_steps=next_steps[:max_steps],
    )
