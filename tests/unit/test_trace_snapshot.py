from __future__ import annotations

from pydantic import ValidationError
import pytest

from trace_console.enums import PipelineStatus, StageStatus
from trace_console.schema.results import DecisionResult, ResearchResult, TriageResult
from trace_console.schema.trace import RunSnapshot, StageTrace
from tests.utils.snapshot_helpers import build_snapshot, stage_record


def test_snapshot_reads_wire_payload() -> None:
    snapshot = RunSnapshot.model_validate(
        {
            "ticket_id": "TKT-7",
            "ticket": {"status": "processing"},
            "traces": [
                stage_record("research", "running", input_tokens=10),
                stage_record("triage", "completed", confidence=0.9),
            ],
            "pipeline_status": "running",
            "total_duration_ms": 1234.5,
            "total_tokens": 321,
            "total_llm_calls": 3,
        }
    )
    assert snapshot.run_id == "TKT-7"
    assert snapshot.pipeline_status == PipelineStatus.RUNNING
    assert [t.agent for t in snapshot.traces] == ["triage", "research"]
    assert snapshot.total_tokens == 321
    assert snapshot.business_status == "processing"
    assert not snapshot.business_finished
    assert not snapshot.is_terminal


def test_null_lists_read_as_empty() -> None:
    trace = StageTrace.model_validate(
        {"agent": "triage", "step_number": 1, "reasoning": None, "tool_calls": None}
    )
    assert trace.reasoning == ()
    assert trace.tool_calls == ()
    snapshot = RunSnapshot.model_validate({"ticket_id": "T", "traces": None})
    assert snapshot.traces == ()


def test_stage_map_prefers_later_step_for_repeated_stage() -> None:
    snapshot = build_snapshot(
        stage_record("research", "completed", step=2, model="first"),
        stage_record("research", "running", step=5, model="retry"),
    )
    assert snapshot.stage("research").model == "retry"
    assert snapshot.status_of("research") == StageStatus.RUNNING
    assert snapshot.status_of("quality") == StageStatus.PENDING


def test_known_stages_keep_canonical_order_then_extras() -> None:
    snapshot = build_snapshot(
        stage_record("triage", "completed"),
        stage_record("escalation_review", "running", step=7),
    )
    assert snapshot.known_stages() == [
        "triage",
        "research",
        "decision",
        "simulation",
        "execution",
        "quality",
        "escalation_review",
    ]


@pytest.mark.parametrize("status", ["resolved", "escalated"])
def test_finished_business_states(status: str) -> None:
    snapshot = build_snapshot(pipeline_status="pending", ticket={"status": status})
    assert snapshot.business_finished


def test_token_totals_and_terminal_flags() -> None:
    trace = StageTrace.model_validate(
        {
            "agent": "decision",
            "step_number": 3,
            "status": "skipped",
            "input_tokens": 120,
            "output_tokens": 30,
        }
    )
    assert trace.total_tokens == 150
    assert trace.is_terminal


def test_negative_counters_are_rejected() -> None:
    with pytest.raises(ValidationError):
        StageTrace.model_validate({"agent": "triage", "step_number": 1, "llm_calls": -1})
    with pytest.raises(ValidationError):
        StageTrace.model_validate({"agent": "triage", "step_number": 0})


def test_confidence_reading_falls_back_to_result() -> None:
    stage_level = StageTrace.model_validate(
        {"agent": "triage", "step_number": 1, "confidence": 0.7, "result": {"confidence": 0.2}}
    )
    from_result = StageTrace.model_validate(
        {"agent": "triage", "step_number": 1, "result": {"confidence": 0.55}}
    )
    missing = StageTrace.model_validate({"agent": "triage", "step_number": 1})
    assert stage_level.confidence_reading() == 0.7
    assert from_result.confidence_reading() == 0.55
    assert missing.confidence_reading() is None


def test_typed_result_is_advisory() -> None:
    triage = StageTrace.model_validate(
        {
            "agent": "triage",
            "step_number": 1,
            "result": {"category": "refund", "priority": "high", "unexpected": 1},
        }
    )
    typed = triage.typed_result()
    assert isinstance(typed, TriageResult)
    assert typed.category == "refund"
    assert triage.result["unexpected"] == 1

    decision = StageTrace.model_validate(
        {
            "agent": "decision",
            "step_number": 3,
            "result": {
                "action_type": "refund",
                "debate_transcript": {"turns": [{"role": "pragmatist"}]},
            },
        }
    )
    parsed = decision.typed_result()
    assert isinstance(parsed, DecisionResult)
    assert parsed.debate_transcript is not None
    assert len(parsed.debate_transcript.turns) == 1

    unreadable = StageTrace.model_validate(
        {"agent": "decision", "step_number": 3, "result": {"debate_transcript": "n/a"}}
    )
    assert unreadable.typed_result() is None
    assert unreadable.result == {"debate_transcript": "n/a"}


def test_snapshot_wire_round_trip_keeps_unknown_keys() -> None:
    snapshot = build_snapshot(
        stage_record("triage", "completed", cost_usd=0.01),
        pipeline_status="completed",
        region="eu",
    )
    wire = snapshot.to_wire()
    assert wire["ticket_id"] == snapshot.run_id
    assert wire["region"] == "eu"
    assert wire["traces"][0]["cost_usd"] == 0.01
    assert RunSnapshot.model_validate(wire).to_wire() == wire


def test_research_result_counts_findings() -> None:
    research = StageTrace.model_validate(
        {
            "agent": "research",
            "step_number": 2,
            "result": {
                "similar_tickets": [{"id": "TKT-3"}, {"id": "TKT-9"}],
                "knowledge_articles": [],
                "customer": {"name": "Ana", "vip": True},
            },
        }
    )
    typed = research.typed_result()
    assert isinstance(typed, ResearchResult)
    assert typed.similar_ticket_count == 2
    assert typed.knowledge_article_count == 0
    assert typed.customer is not None and typed.customer.vip


def test_schema_package_exports_lazily() -> None:
    import trace_console.schema as schema

    assert schema.RunSnapshot is RunSnapshot
    with pytest.raises(AttributeError):
        schema.NotAModel
