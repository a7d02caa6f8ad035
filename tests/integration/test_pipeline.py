"""
End-to-end pipeline runs against real stores in a temporary directory.
"""

import asyncio
import copy
import json
from unittest.mock import patch

import pytest

from src.audit.models import RunStatus
from src.core.pipeline import InsightPipeline, create_pipeline
from src.delivery.email import EmailOutbox
from src.shared.config import settings
from src.shared.exceptions import RunInProgressError
from src.shared.results import WriteOutcome
from tests.sample_data import STUDENT_INSIGHT_JSON, VALID_STUDENT


def _archives(memory_store):
    return sorted(p.name for p in memory_store.archive_dir.iterdir())


def _class_rows(audit_store, run_id):
    with audit_store._get_connection() as conn:
        return conn.execute(
            "SELECT status, error, used_fallback FROM class_outcomes WHERE run_id = ?", (run_id,)
        ).fetchall()


@pytest.mark.asyncio
async def test_full_run(pipeline, raw_students, audit_store, memory_store, test_settings):
    result = await pipeline.run_once(raw_students)

    assert result.status is RunStatus.COMPLETED
    assert result.student_count == 3
    assert result.valid_student_count == 2
    assert result.processed_count == 2
    assert result.fallback_count == 0
    assert any(e.startswith("students[2]: ") for e in result.validation_errors)

    record = audit_store.get_run(result.run_id)
    assert record.status == "completed"
    assert record.completed_at is not None

    outcomes = audit_store.list_student_outcomes(result.run_id)
    assert [(o.student_id, o.status) for o in outcomes] == [("s-001", "sent"), ("s-002", "sent")]
    assert all(o.error is None for o in outcomes)
    assert outcomes[0].email_subject == "Your learning update and next steps, Ava Chen"

    assert [row["status"] for row in _class_rows(audit_store, result.run_id)] == ["sent"]

    # Two student emails and one teacher email
    assert len(list(test_settings.pipeline.outbox_dir.iterdir())) == 3

    memory = memory_store.load_student("s-001")
    assert memory.goals == ["Draft one essay outline this week."]
    assert memory_store.load_class().summary == "The class is making steady progress."
    assert len(_archives(memory_store)) == 3
    assert pipeline.active_run_id() is None


@pytest.mark.asyncio
async def test_second_run_overwrites_memory_and_adds_archives(pipeline, raw_students, memory_store):
    first = await pipeline.run_once(copy.deepcopy(raw_students))
    second = await pipeline.run_once(copy.deepcopy(raw_students))

    assert first.run_id != second.run_id
    archives = _archives(memory_store)
    assert len(archives) == 6
    assert any(first.run_id in name for name in archives)
    assert any(second.run_id in name for name in archives)

    memory = memory_store.load_student("s-001")
    assert len(memory.history) == 2
    assert len(list(memory_store.students_dir.iterdir())) == 2


@pytest.mark.asyncio
async def test_memory_is_passed_to_next_run(pipeline, raw_students, mock_agent):
    await pipeline.run_once(copy.deepcopy(raw_students))
    await pipeline.run_once(copy.deepcopy(raw_students))

    _, memory = mock_agent.generate_student_insight.call_args.args
    assert memory.summary.startswith("You bring real curiosity")


@pytest.mark.asyncio
async def test_run_rejected_while_another_is_active(pipeline, raw_students, mock_agent):
    """A second trigger during a run is rejected with the active id, never queued."""
    release = asyncio.Event()
    entered = asyncio.Event()

    async def slow_insight(analysis, memory):
        entered.set()
        await release.wait()
        return STUDENT_INSIGHT_JSON

    mock_agent.generate_student_insight.side_effect = slow_insight

    first = asyncio.create_task(pipeline.run_once(raw_students))
    await entered.wait()

    active = pipeline.active_run_id()
    assert active is not None
    with pytest.raises(RunInProgressError) as exc_info:
        await pipeline.run_once(raw_students)
    assert exc_info.value.run_id == active

    release.set()
    result = await first

    assert result.run_id == active
    assert result.status is RunStatus.COMPLETED
    assert pipeline.active_run_id() is None


@pytest.mark.asyncio
async def test_enrichment_failure_is_isolated(pipeline, raw_students, mock_agent, audit_store):
    mock_agent.generate_student_insight.side_effect = [RuntimeError("LLM down"), STUDENT_INSIGHT_JSON]

    result = await pipeline.run_once(raw_students)

    assert result.status is RunStatus.COMPLETED
    assert result.processed_count == 1
    outcomes = audit_store.list_student_outcomes(result.run_id)
    assert outcomes[0].status == "enrichment_failed"
    assert outcomes[0].error == "LLM down"
    assert outcomes[1].status == "sent"
    # The failed student's analysis still counts toward the class summary
    mock_agent.generate_class_insight.assert_awaited_once()
    summary = mock_agent.generate_class_insight.call_args.args[0]
    assert summary.attention_needed == ["Ben Ortiz"]


@pytest.mark.asyncio
async def test_delivery_failure_is_isolated(pipeline, raw_students, audit_store, memory_store):
    real_send = pipeline.outbox.send

    def flaky_send(email):
        if email.to == "ava.chen@example.com":
            raise OSError("disk full")
        return real_send(email)

    with patch.object(pipeline.outbox, "send", side_effect=flaky_send):
        result = await pipeline.run_once(raw_students)

    outcomes = audit_store.list_student_outcomes(result.run_id)
    assert outcomes[0].status == "delivery_failed"
    assert outcomes[0].error == "disk full"
    assert outcomes[1].status == "sent"
    assert not memory_store.student_path("s-001").exists()
    assert result.status is RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_invalid_llm_output_uses_fallback(pipeline, raw_students, mock_agent, audit_store):
    mock_agent.generate_student_insight.return_value = "I'd rather not answer in JSON."
    mock_agent.generate_class_insight.return_value = '{"classOverview": ""}'

    result = await pipeline.run_once(raw_students)

    assert result.status is RunStatus.COMPLETED
    assert result.fallback_count == 3
    outcomes = audit_store.list_student_outcomes(result.run_id)
    assert all(o.status == "sent" and o.used_fallback for o in outcomes)
    assert _class_rows(audit_store, result.run_id)[0]["used_fallback"] == 1


@pytest.mark.asyncio
async def test_runs_without_agent(test_settings, audit_store, memory_store, raw_students):
    pipeline = InsightPipeline(
        audit_store=audit_store,
        memory_store=memory_store,
        agent=None,
        outbox=EmailOutbox(None, "Coach <noreply@local>"),
        config=test_settings,
    )

    result = await pipeline.run_once(raw_students)

    assert result.status is RunStatus.COMPLETED
    assert result.processed_count == 2
    assert result.fallback_count == 3
    assert memory_store.load_student("s-002").goals


@pytest.mark.asyncio
async def test_class_failure_keeps_student_results(pipeline, raw_students, mock_agent, audit_store):
    mock_agent.generate_class_insight.side_effect = RuntimeError("timeout")

    result = await pipeline.run_once(raw_students)

    assert result.status is RunStatus.COMPLETED_WITH_CLASS_FAILURE
    assert result.processed_count == 2
    rows = _class_rows(audit_store, result.run_id)
    assert rows[0]["status"] == "summary_failed"
    assert rows[0]["error"] == "timeout"
    assert audit_store.get_run(result.run_id).status == "completed_with_class_failure"


@pytest.mark.asyncio
async def test_memory_write_failure_keeps_sent_status(pipeline, raw_students, memory_store, audit_store):
    with patch.object(
        memory_store, "save_student",
        return_value=WriteOutcome.failed("student memory save failed: read-only"),
    ):
        result = await pipeline.run_once(raw_students)

    outcomes = audit_store.list_student_outcomes(result.run_id)
    assert all(o.status == "sent" for o in outcomes)
    assert outcomes[0].error == "student memory save failed: read-only"
    assert result.status is RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_students_read_from_configured_file(pipeline, test_settings):
    test_settings.pipeline.students_json_path.write_text(json.dumps([VALID_STUDENT]))

    result = await pipeline.run_once()

    assert result.status is RunStatus.COMPLETED
    assert result.processed_count == 1


@pytest.mark.asyncio
async def test_unreadable_input(pipeline, audit_store, mock_agent):
    result = await pipeline.run_once()

    assert result.status is RunStatus.INPUT_FAILED
    assert audit_store.get_run(result.run_id).status == "input_failed"
    mock_agent.generate_student_insight.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [[{"id": ""}], {"students": []}, []])
async def test_no_valid_students(pipeline, audit_store, payload):
    result = await pipeline.run_once(payload)

    assert result.status is RunStatus.NO_VALID_STUDENTS
    assert audit_store.get_run(result.run_id).status == "no_valid_students"


@pytest.mark.asyncio
async def test_no_successful_analyses(pipeline, raw_students, mock_agent, audit_store):
    with patch("src.core.pipeline.analyze_student", side_effect=ValueError("bad grades")):
        result = await pipeline.run_once(raw_students)

    assert result.status is RunStatus.NO_SUCCESSFUL_ANALYSES
    outcomes = audit_store.list_student_outcomes(result.run_id)
    assert [o.status for o in outcomes] == ["analysis_failed", "analysis_failed"]
    mock_agent.generate_class_insight.assert_not_awaited()


@pytest.mark.asyncio
async def test_fatal_start_aborts_before_any_work(pipeline, raw_students, audit_store, mock_agent):
    with patch.object(audit_store, "start_run", return_value=WriteOutcome.failed("locked", fatal=True)):
        result = await pipeline.run_once(raw_students)

    assert result.status is RunStatus.PERSISTENCE_ABORTED
    mock_agent.generate_student_insight.assert_not_awaited()
    assert pipeline.active_run_id() is None


@pytest.mark.asyncio
async def test_memory_load_error_is_isolated(pipeline, raw_students, memory_store, audit_store):
    real_load = memory_store.load_student

    def flaky_load(student_id):
        if student_id == "s-001":
            raise RuntimeError("boom")
        return real_load(student_id)

    with patch.object(memory_store, "load_student", side_effect=flaky_load):
        result = await pipeline.run_once(raw_students)

    assert result.status is RunStatus.COMPLETED
    assert result.processed_count == 1
    outcomes = audit_store.list_student_outcomes(result.run_id)
    assert [(o.student_id, o.status) for o in outcomes] == [
        ("s-001", "enrichment_failed"), ("s-002", "sent"),
    ]
    assert outcomes[0].error == "boom"
    assert audit_store.get_run(result.run_id).status == "completed"
    assert pipeline.active_run_id() is None


@pytest.mark.asyncio
async def test_undecodable_memory_file_is_treated_as_empty(pipeline, raw_students, memory_store, mock_agent):
    path = memory_store.student_path("s-001")
    path.parent.mkdir(parents=True)
    path.write_bytes(b'{"summary": "\xff\xfe bad"}')

    result = await pipeline.run_once(raw_students)

    assert result.status is RunStatus.COMPLETED
    assert result.processed_count == 2
    first_memory = mock_agent.generate_student_insight.call_args_list[0].args[1]
    assert first_memory.summary == ""
    assert memory_store.load_student("s-001").goals == ["Draft one essay outline this week."]


@pytest.mark.asyncio
async def test_memory_update_error_keeps_sent_status(pipeline, raw_students, audit_store):
    with patch("src.core.pipeline.update_student_memory", side_effect=RuntimeError("bad merge")), \
            patch("src.core.pipeline.update_class_memory", side_effect=RuntimeError("bad class merge")):
        result = await pipeline.run_once(raw_students)

    assert result.status is RunStatus.COMPLETED
    assert result.processed_count == 2
    outcomes = audit_store.list_student_outcomes(result.run_id)
    assert all(o.status == "sent" for o in outcomes)
    assert outcomes[0].error == "memory update failed: bad merge"
    rows = _class_rows(audit_store, result.run_id)
    assert rows[0]["status"] == "sent"
    assert rows[0]["error"] == "memory update failed: bad class merge"


@pytest.mark.asyncio
async def test_unexpected_error_marks_run_failed(pipeline, raw_students, audit_store):
    with patch("src.core.pipeline.build_class_summary", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            await pipeline.run_once(raw_students)

    assert pipeline.active_run_id() is None
    assert audit_store.get_run(pipeline.last_run_id).status == "failed"


def test_create_pipeline_uses_given_llm_config(test_settings, monkeypatch):
    monkeypatch.setattr(settings.llm, "openai_api_key", None)
    test_settings.llm.provider = "openai"
    test_settings.llm.openai_api_key = "cfg-key"
    test_settings.llm.default_model = "gpt-cfg"

    pipeline = create_pipeline(test_settings)

    assert pipeline.agent is not None
    assert pipeline.agent.llm.model == "gpt-cfg"

    test_settings.llm.openai_api_key = None
    assert create_pipeline(test_settings).agent is None
