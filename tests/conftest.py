"""
Pytest fixtures for coaching pipeline tests.
"""

import copy
from typing import Any, Dict, List
from unittest.mock import AsyncMock

import pytest

from src.audit.store import AuditStore
from src.core.analyzer import analyze_student
from src.core.models import Student, StudentAnalysis
from src.core.pipeline import InsightPipeline
from src.core.validator import validate_student
from src.delivery.email import EmailOutbox
from src.memory.store import MemoryStore
from src.shared.config import CoachSettings
from tests.sample_data import (
    CLASS_INSIGHT_JSON,
    STRUGGLING_STUDENT,
    STUDENT_INSIGHT_JSON,
    VALID_STUDENT,
)


@pytest.fixture
def valid_student_data() -> Dict[str, Any]:
    return copy.deepcopy(VALID_STUDENT)


@pytest.fixture
def raw_students() -> List[Dict[str, Any]]:
    """Two valid students and one invalid record."""
    return [
        copy.deepcopy(VALID_STUDENT),
        copy.deepcopy(STRUGGLING_STUDENT),
        {"id": "", "name": "Nobody", "email": "not-an-email"},
    ]


@pytest.fixture
def student() -> Student:
    result = validate_student(copy.deepcopy(VALID_STUDENT), 0)
    assert result.ok
    return result.value


@pytest.fixture
def struggling_student() -> Student:
    result = validate_student(copy.deepcopy(STRUGGLING_STUDENT), 0)
    assert result.ok
    return result.value


@pytest.fixture
def analysis(student) -> StudentAnalysis:
    return analyze_student(student)


@pytest.fixture
def struggling_analysis(struggling_student) -> StudentAnalysis:
    return analyze_student(struggling_student)


@pytest.fixture
def test_settings(tmp_path) -> CoachSettings:
    """Settings pointing every path at a temporary directory."""
    config = CoachSettings()
    config.pipeline.students_json_path = tmp_path / "students.json"
    config.pipeline.history_db_path = tmp_path / "data" / "history.sqlite"
    config.pipeline.outbox_dir = tmp_path / "outbox"
    config.pipeline.preferences_path = None
    config.pipeline.require_run_record = False
    config.memory.memory_dir = tmp_path / "memory"
    config.memory.history_limit = 5
    return config


@pytest.fixture
def audit_store(test_settings) -> AuditStore:
    return AuditStore(test_settings.pipeline.history_db_path, require_run_record=False)


@pytest.fixture
def memory_store(test_settings) -> MemoryStore:
    return MemoryStore(test_settings.memory.memory_dir)


@pytest.fixture
def mock_agent():
    """Mock insight agent that returns contract-conforming JSON."""
    mock = AsyncMock()
    mock.generate_student_insight.return_value = STUDENT_INSIGHT_JSON
    mock.generate_class_insight.return_value = CLASS_INSIGHT_JSON
    return mock


@pytest.fixture
def mock_llm():
    """Mock LLM client that returns canned text."""
    mock = AsyncMock()
    mock.get_completion.return_value = STUDENT_INSIGHT_JSON
    return mock


@pytest.fixture
def pipeline(test_settings, audit_store, memory_store, mock_agent) -> InsightPipeline:
    return InsightPipeline(
        audit_store=audit_store,
        memory_store=memory_store,
        agent=mock_agent,
        outbox=EmailOutbox(test_settings.pipeline.outbox_dir, "Coach <noreply@local>"),
        config=test_settings,
    )
