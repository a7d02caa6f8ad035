"""
Sample student records and canned LLM responses shared by tests.
"""

import json
from typing import Any, Dict


VALID_STUDENT: Dict[str, Any] = {
    "id": "s-001",
    "name": "Ava Chen",
    "email": "ava.chen@example.com",
    "grades": [
        {"subject": "Math", "score": 92},
        {"subject": "Science", "score": 88},
        {"subject": "History", "score": 79},
    ],
    "participationScore": 8,
    "assignmentCompletionRate": 95,
    "teacherNotes": "Asks thoughtful questions.",
    "performanceTrend": "improving",
    "lastAssessmentDate": "2024-03-15",
}

STRUGGLING_STUDENT: Dict[str, Any] = {
    "id": "s-002",
    "name": "Ben Ortiz",
    "email": "ben.ortiz@example.com",
    "grades": [
        {"subject": "Math", "score": 58},
        {"subject": "English", "score": 71},
    ],
    "participationScore": 4,
    "assignmentCompletionRate": 62,
    "teacherNotes": "",
    "performanceTrend": "declining",
    "lastAssessmentDate": "03/01/2024",
}

STUDENT_INSIGHT_JSON = json.dumps({
    "positiveObservation": "You bring real curiosity to every lesson.",
    "strengths": ["Strong problem solving", "Consistent effort"],
    "improvementAreas": ["Show your working in history essays"],
    "strategies": ["Outline essays before writing", "Review notes weekly"],
    "nextStepGoal": "Draft one essay outline this week.",
    "encouragement": "Keep it up!",
})

CLASS_INSIGHT_JSON = json.dumps({
    "classOverview": "The class is making steady progress.",
    "strengths": ["High participation"],
    "attentionNeeded": [{"name": "Ben Ortiz", "reason": "Recent decline in completion."}],
    "nextSteps": ["Run a review session", "Pair students for practice"],
})
