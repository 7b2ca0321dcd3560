"""Stage-specific result payloads produced by the pipeline executor.

The engine passes ``StageTrace.result`` through untouched. These models are an
advisory reading of those payloads for downstream consumers: every field is
optional, unknown keys are preserved, and a payload that does not fit simply
yields ``None`` from :func:`parse_stage_result`.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

from pydantic import Field, ValidationError

from trace_console.enums import DebateRole, DebateWinner
from trace_console.schema.base import TypedBaseModel

logger = logging.getLogger(__name__)


class TriageEntities(TypedBaseModel):
    customer_id: str | None = None
    order_id: str | None = None
    product_id: str | None = None


class TriageResult(TypedBaseModel):
    """Classification of the incoming ticket."""

    category: str | None = None
    priority: str | None = None
    sentiment: str | None = None
    confidence: float | None = None
    complexity: str | None = None
    entities: TriageEntities = Field(default_factory=TriageEntities)


class CustomerProfile(TypedBaseModel):
    name: str | None = None
    vip: bool = False
    lifetime_value: float | None = None
    total_orders: int | None = None


class ResearchResult(TypedBaseModel):
    """Findings gathered before a decision is made."""

    similar_tickets: list[Any] = Field(default_factory=list)
    knowledge_articles: list[Any] = Field(default_factory=list)
    available_actions: list[Any] = Field(default_factory=list)
    customer: CustomerProfile | None = None
    trending_pattern: bool | None = None
    research_summary: str | None = None

    @property
    def similar_ticket_count(self) -> int:
        return len(self.similar_tickets)

    @property
    def knowledge_article_count(self) -> int:
        return len(self.knowledge_articles)


class DebateProposal(TypedBaseModel):
    action_type: str | None = None
    reasoning: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class DebateTurn(TypedBaseModel):
    """One argument made by a debate persona."""

    role: DebateRole
    argument: str = ""
    proposed_action: str = ""
    proposed_parameters: dict[str, Any] = Field(default_factory=dict)
    confidence: float | None = None
    key_points: list[str] = Field(default_factory=list)


class DebateTranscript(TypedBaseModel):
    """Two-persona argumentation attached to a decision result."""

    initial_proposal: DebateProposal = Field(default_factory=DebateProposal)
    turns: list[DebateTurn] = Field(default_factory=list)
    consensus_reached: bool = False
    winner: DebateWinner = DebateWinner.CONSENSUS
    final_action_type: str | None = None
    final_parameters: dict[str, Any] = Field(default_factory=dict)
    final_reasoning: str | None = None
    judge_rationale: str | None = None
    changes_from_original: list[str] = Field(default_factory=list)


class DecisionResult(TypedBaseModel):
    action_type: str | None = None
    should_automate: bool | None = None
    confidence: float | None = None
    reasoning: str | None = None
    business_rules_applied: list[str] = Field(default_factory=list)
    debate_transcript: DebateTranscript | None = None


class SimulationScenario(TypedBaseModel):
    name: str | None = None
    description: str | None = None
    action_type: str | None = None
    satisfaction_estimate: float | None = None
    projected_ltv_impact: float | None = None


class SimulationResult(TypedBaseModel):
    scenarios: list[SimulationScenario] = Field(default_factory=list)
    recommended_action: str | None = None
    projected_roi: float | None = None
    confidence: float | None = None


class ToolSynthesis(TypedBaseModel):
    """Descriptor of a tool generated on the fly by the execution stage."""

    tool_name: str
    parameters: list[str] = Field(default_factory=list)
    source: str = "knowledge_base"


class ExecutionResult(TypedBaseModel):
    success: bool | None = None
    workflow_id: str | None = None
    steps_completed: list[str] = Field(default_factory=list)
    customer_notification: str | None = None
    tool_synthesis: ToolSynthesis | None = None


class QualityResult(TypedBaseModel):
    quality_score: float | None = None
    passed: bool | None = None
    scores: dict[str, float] = Field(default_factory=dict)
    feedback: str | None = None
    improvements: list[str] = Field(default_factory=list)


StageResult = (
    TriageResult
    | ResearchResult
    | DecisionResult
    | SimulationResult
    | ExecutionResult
    | QualityResult
)

RESULT_MODELS: dict[str, type[TypedBaseModel]] = {
    "triage": TriageResult,
    "research": ResearchResult,
    "decision": DecisionResult,
    "simulation": SimulationResult,
    "execution": ExecutionResult,
    "quality": QualityResult,
}


def parse_stage_result(stage: str, payload: Any) -> StageResult | None:
    """Read a raw result payload as the typed shape for ``stage``, if it fits."""
    model = RESULT_MODELS.get(stage)
    if model is None or not isinstance(payload, Mapping):
        return None
    try:
        return model.model_validate(dict(payload))  # type: ignore[return-value]
    except ValidationError as exc:
        logger.debug("Result for stage %s does not match its schema: %s", stage, exc)
        return None


__all__ = [
    "CustomerProfile",
    "DebateProposal",
    "DebateTranscript",
    "DebateTurn",
    "DecisionResult",
    "ExecutionResult",
    "QualityResult",
    "RESULT_MODELS",
    "ResearchResult",
    "SimulationResult",
    "SimulationScenario",
    "StageResult",
    "ToolSynthesis",
    "TriageEntities",
    "TriageResult",
    "parse_stage_result",
]
