"""
Tests for insight contract checks, fallbacks, and rendering.
"""

import json

import pytest

from src.core.analyzer import build_class_summary
from src.core.insights.contract import (
    extract_json_object,
    parse_class_insight,
    parse_student_insight,
)
from src.core.insights.fallback import (
    DEFAULT_GOAL,
    build_fallback_class_insight,
    build_fallback_student_insight,
)
from src.core.insights.render import (
    NO_ATTENTION_LINE,
    render_class_message,
    render_student_message,
)
from src.core.models import ClassSummary, TeacherPreferences
from tests.sample_data import CLASS_INSIGHT_JSON, STUDENT_INSIGHT_JSON


def test_extract_json_from_fenced_prose():
    text = 'Sure! Here you go:\n```json\n{"a": {"b": 1}}\n```\nHope that helps.'
    assert extract_json_object(text) == '{"a": {"b": 1}}'
    assert extract_json_object("no braces here") is None
    assert extract_json_object("} backwards {") is None


def test_student_insight_accepted_and_rendered():
    result = parse_student_insight(f"Here it is: {STUDENT_INSIGHT_JSON} thanks")

    assert result.ok
    message = render_student_message(result.value)
    assert "Strengths:" in message
    assert "Focus areas:" in message
    assert "Try this:" in message
    assert "Next step goal: Draft one essay outline this week." in message


def test_missing_arrays_rejected():
    """Only positiveObservation present: every other field is reported."""
    result = parse_student_insight('{"positiveObservation": "Nice work"}')

    assert not result.ok
    assert "strengths must be an array" in result.errors
    assert "improvementAreas must be an array" in result.errors
    assert "strategies must be an array" in result.errors
    assert "nextStepGoal must be a non-empty string" in result.errors
    assert "encouragement must be a non-empty string" in result.errors


@pytest.mark.parametrize("raw,error", [
    ("plain text", "No JSON object found in response"),
    ("{not: json}", "Invalid JSON in response"),
])
def test_structural_failures(raw, error):
    assert parse_student_insight(raw).errors == [error]


def test_array_minimum_is_enforced_after_dropping_blanks():
    payload = json.loads(STUDENT_INSIGHT_JSON)
    payload["strategies"] = ["Only one", "   ", 42, None]

    result = parse_student_insight(json.dumps(payload))

    assert result.errors == ["strategies must include at least 2 item(s)"]


def test_overlong_content_is_clipped_not_rejected():
    payload = json.loads(STUDENT_INSIGHT_JSON)
    payload["positiveObservation"] = "x" * 500
    payload["strengths"] = ["a" * 300, "b", "c", "d", "e"]

    result = parse_student_insight(json.dumps(payload))

    assert result.ok
    assert len(result.value.positive_observation) == 220
    assert len(result.value.strengths) == 3
    assert len(result.value.strengths[0]) == 180


def test_class_insight_accepted():
    result = parse_class_insight(CLASS_INSIGHT_JSON)

    assert result.ok
    assert result.value.attention_needed[0].name == "Ben Ortiz"
    message = render_class_message(result.value)
    assert "Class strengths:" in message
    assert "- Ben Ortiz: Recent decline in completion." in message
    assert "Next steps (next week):" in message


def test_class_attention_errors_reject_whole_value():
    payload = json.loads(CLASS_INSIGHT_JSON)
    payload["attentionNeeded"] = [{"name": "Ok", "reason": "Fine"}, "bad", {"name": "No reason"}]

    result = parse_class_insight(json.dumps(payload))

    assert not result.ok
    assert result.errors == [
        "attentionNeeded[1] must be an object",
        "attentionNeeded[2] must include name and reason",
    ]


def test_empty_attention_list_renders_none_row():
    payload = json.loads(CLASS_INSIGHT_JSON)
    payload["attentionNeeded"] = []

    result = parse_class_insight(json.dumps(payload))

    assert result.ok
    assert NO_ATTENTION_LINE in render_class_message(result.value)


def test_student_fallback_round_trips(analysis, struggling_analysis):
    """Fallback output always passes the same contract checks."""
    for item in (analysis, struggling_analysis):
        fallback = build_fallback_student_insight(item)
        reparsed = parse_student_insight(json.dumps(fallback.model_dump(by_alias=True)))
        assert reparsed.ok, reparsed.errors
        assert reparsed.value == fallback


def test_student_fallback_signals_and_preferences(struggling_analysis):
    preferences = TeacherPreferences(
        class_goals=["Read for 15 minutes every night."],
        preferred_strategies=["Use flashcards", "Study with a partner"],
    )

    fallback = build_fallback_student_insight(struggling_analysis, preferences)

    assert fallback.strategies[0].startswith("Use a checklist")
    assert len(fallback.strategies) == 3
    assert fallback.next_step_goal == "Read for 15 minutes every night."
    assert len(fallback.improvement_areas) == 2


def test_student_fallback_fills_minimum(analysis):
    """With no weak signals and no preferences, generic strategies fill the minimum."""
    analysis.metrics.lowest_subjects = []

    fallback = build_fallback_student_insight(analysis)

    assert len(fallback.strategies) == 2
    assert fallback.next_step_goal == DEFAULT_GOAL


def test_class_fallback_round_trips(analysis, struggling_analysis):
    summary = build_class_summary([analysis, struggling_analysis])

    fallback = build_fallback_class_insight(summary)
    reparsed = parse_class_insight(json.dumps(fallback.model_dump(by_alias=True)))

    assert reparsed.ok, reparsed.errors
    assert fallback.class_overview.startswith(f"Class average is {summary.class_average:.1f}.")
    assert [a.name for a in fallback.attention_needed] == ["Ben Ortiz"]
    assert len(fallback.next_steps) >= 2


def test_class_fallback_clips_long_names():
    summary = ClassSummary(
        class_average=71.25,
        top_students=["N" * 120, "M" * 120],
        attention_needed=["Z" * 200],
    )

    fallback = build_fallback_class_insight(summary)

    assert parse_class_insight(json.dumps(fallback.model_dump(by_alias=True))).ok
    assert fallback.class_overview.startswith("Class average is 71.2")
