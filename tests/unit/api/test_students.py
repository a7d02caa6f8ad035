"""
Tests for the student list and summary endpoints.
"""

import json

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from tests.sample_data import STRUGGLING_STUDENT, VALID_STUDENT


@pytest.fixture
def client(pipeline):
    with TestClient(create_app(pipeline)) as tc:
        yield tc


def test_list_students_skips_invalid(client, test_settings):
    test_settings.pipeline.students_json_path.write_text(
        json.dumps([VALID_STUDENT, {"id": "bad"}, STRUGGLING_STUDENT])
    )

    response = client.get("/students")

    assert response.status_code == 200
    assert response.json()["students"] == [
        {"id": "s-001", "name": "Ava Chen", "email": "ava.chen@example.com"},
        {"id": "s-002", "name": "Ben Ortiz", "email": "ben.ortiz@example.com"},
    ]


def test_list_students_missing_file(client):
    assert client.get("/students").status_code == 500


def test_summary_for_unknown_student(client):
    response = client.get("/students/s-999/summary")

    assert response.status_code == 200
    data = response.json()
    assert data["student_id"] == "s-999"
    assert data["memory"]["studentId"] == "s-999"
    assert data["memory"]["history"] == []
    assert data["latest_insight"] is None
    assert data["last_run_at"] is None


def test_summary_after_run(client, test_settings):
    test_settings.pipeline.students_json_path.write_text(json.dumps([VALID_STUDENT]))
    assert client.post("/analyze").status_code == 200

    data = client.get("/students/s-001/summary").json()

    assert data["memory"]["goals"] == ["Draft one essay outline this week."]
    assert data["latest_insight"]["nextStepGoal"] == "Draft one essay outline this week."
    assert data["last_run_at"] is not None
