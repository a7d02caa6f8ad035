"""
Tests for AuditStore: WAL mode, run lifecycle, outcome rows.
"""

import pytest

from src.audit.models import RunStats, RunStatus, StudentOutcomeStatus
from src.audit.store import AuditStore
from src.core.insights.contract import parse_student_insight
from src.shared.exceptions import PersistenceFailure
from src.shared.results import WriteStatus
from tests.sample_data import STUDENT_INSIGHT_JSON


def _stats(run_id: str, started_at: str = "2024-03-15T10:00:00+00:00") -> RunStats:
    return RunStats(run_id=run_id, started_at=started_at, student_count=3, valid_student_count=2)


def test_wal_mode_enabled(audit_store):
    """Test that WAL mode is enabled."""
    with audit_store._get_connection() as conn:
        result = conn.execute("PRAGMA journal_mode").fetchone()
        assert result[0].upper() == "WAL"


def test_run_lifecycle(audit_store):
    assert audit_store.start_run(_stats("run-1")).ok

    running = audit_store.get_run("run-1")
    assert running.status == RunStatus.RUNNING.value
    assert running.completed_at is None
    assert running.valid_student_count == 2

    assert audit_store.finish_run("run-1", RunStatus.COMPLETED).ok

    finished = audit_store.get_run("run-1")
    assert finished.status == "completed"
    assert finished.completed_at is not None


def test_finish_run_rejects_unknown_status(audit_store):
    audit_store.start_run(_stats("run-1"))

    outcome = audit_store.finish_run("run-1", "bogus")

    assert outcome.status is WriteStatus.FAILED
    record = audit_store.get_run("run-1")
    assert record.status == "running"
    assert record.completed_at is None


def test_interrupted_run_stays_running(test_settings):
    """A process that dies after start_run leaves a 'running' row for the next reader."""
    AuditStore(test_settings.pipeline.history_db_path).start_run(_stats("run-crash"))

    reopened = AuditStore(test_settings.pipeline.history_db_path)
    record = reopened.get_run("run-crash")

    assert record.status == "running"
    assert record.completed_at is None


def test_list_runs_newest_first(audit_store):
    audit_store.start_run(_stats("old", "2024-01-01T00:00:00+00:00"))
    audit_store.start_run(_stats("new", "2024-02-01T00:00:00+00:00"))
    audit_store.start_run(_stats("mid", "2024-01-15T00:00:00+00:00"))

    assert [r.run_id for r in audit_store.list_runs()] == ["new", "mid", "old"]
    assert [r.run_id for r in audit_store.list_runs(limit=1)] == ["new"]


def test_start_failure_is_fatal_only_when_required(test_settings):
    lenient = AuditStore(test_settings.pipeline.history_db_path, require_run_record=False)
    strict = AuditStore(test_settings.pipeline.history_db_path, require_run_record=True)
    lenient.start_run(_stats("dup"))

    assert lenient.start_run(_stats("dup")).status is WriteStatus.FAILED
    assert strict.start_run(_stats("dup")).status is WriteStatus.FATAL


def test_student_outcomes_and_latest_insight(audit_store, analysis):
    insight = parse_student_insight(STUDENT_INSIGHT_JSON).value
    audit_store.start_run(_stats("run-1"))

    audit_store.record_student_outcome(
        "run-1", "s-001", StudentOutcomeStatus.SENT,
        analysis=analysis, insight=insight, email_subject="Hi", used_fallback=True,
    )
    audit_store.record_student_outcome(
        "run-1", "s-002", StudentOutcomeStatus.ENRICHMENT_FAILED, error="enrichment: boom",
    )

    outcomes = audit_store.list_student_outcomes("run-1")
    assert [o.student_id for o in outcomes] == ["s-001", "s-002"]
    assert outcomes[0].status == "sent"
    assert outcomes[0].used_fallback is True
    assert outcomes[1].error == "enrichment: boom"

    latest = audit_store.latest_student_insight("s-001")
    assert latest.insight == insight
    assert audit_store.latest_student_insight("s-002") is None


def test_latest_insight_tolerates_bad_blob(audit_store):
    with audit_store._get_connection() as conn:
        conn.execute(
            """
            INSERT INTO student_outcomes (run_id, student_id, insight_json, status, created_at)
            VALUES ('run-1', 's-001', '{"strengths": "nope"}', 'sent', '2024-03-15T10:00:00+00:00')
            """
        )

    latest = audit_store.latest_student_insight("s-001")

    assert latest is not None
    assert latest.insight is None
    assert latest.created_at == "2024-03-15T10:00:00+00:00"


def test_unknown_run(audit_store):
    assert audit_store.get_run("missing") is None
    assert audit_store.list_student_outcomes("missing") == []


def test_unusable_location_raises_persistence_failure(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")

    with pytest.raises(PersistenceFailure):
        AuditStore(blocker / "history.sqlite")
