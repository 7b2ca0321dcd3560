"""Per-stage trace records and the run-level snapshot that rolls them up."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from numbers import Real
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from trace_console.constants import FINISHED_BUSINESS_STATES, STAGE_ORDER
from trace_console.enums import PipelineStatus, StageStatus
from trace_console.schema.base import TypedBaseModel
from trace_console.schema.results import StageResult, parse_stage_result


class ToolCallTrace(TypedBaseModel):
    tool_id: str = "unknown"
    params: dict[str, Any] = Field(default_factory=dict)
    results: list[Any] = Field(default_factory=list)


class StageTrace(TypedBaseModel):
    """One stage of one run as recorded by the pipeline executor.

    ``result`` is kept exactly as received; use :meth:`typed_result` for an
    advisory typed reading.
    """

    agent: str = Field(..., min_length=1)
    step_number: int = Field(..., ge=1)
    status: StageStatus = StageStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: float | None = Field(None, ge=0)
    reasoning: tuple[str, ...] = ()
    tool_calls: tuple[ToolCallTrace, ...] = ()
    llm_calls: int = Field(0, ge=0)
    input_tokens: int = Field(0, ge=0)
    output_tokens: int = Field(0, ge=0)
    model: str = ""
    result: Any = None
    confidence: float | None = None
    raw_response: str = ""

    @field_validator("reasoning", "tool_calls", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return () if value is None else value

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def confidence_reading(self) -> float | None:
        """Stage confidence, falling back to the confidence inside ``result``."""
        if self.confidence:
            return float(self.confidence)
        if isinstance(self.result, Mapping):
            from_result = self.result.get("confidence")
            if isinstance(from_result, Real) and not isinstance(from_result, bool):
                return float(from_result)
        return self.confidence

    def typed_result(self) -> StageResult | None:
        return parse_stage_result(self.agent, self.result)


class RunSnapshot(TypedBaseModel):
    """Authoritative point-in-time ledger of a run."""

    run_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("run_id", "ticket_id", "runId"),
        serialization_alias="ticket_id",
    )
    ticket: Any = None
    traces: tuple[StageTrace, ...] = ()
    pipeline_status: PipelineStatus = PipelineStatus.PENDING
    total_duration_ms: float = 0.0
    total_tokens: int = 0
    total_llm_calls: int = 0

    @field_validator("traces", mode="before")
    @classmethod
    def _traces_default(cls, value: Any) -> Any:
        return () if value is None else value

    @field_validator("traces")
    @classmethod
    def _order_by_step(cls, value: tuple[StageTrace, ...]) -> tuple[StageTrace, ...]:
        return tuple(sorted(value, key=lambda trace: trace.step_number))

    @property
    def is_terminal(self) -> bool:
        return self.pipeline_status.is_terminal

    @property
    def business_status(self) -> str | None:
        if isinstance(self.ticket, Mapping):
            status = self.ticket.get("status")
            return str(status) if status is not None else None
        return None

    @property
    def business_finished(self) -> bool:
        return self.business_status in FINISHED_BUSINESS_STATES

    def stage_map(self) -> dict[str, StageTrace]:
        """Map stage identifier to trace; a repeated identifier keeps the later step."""
        return {trace.agent: trace for trace in self.traces}

    def stage(self, agent: str) -> StageTrace | None:
        return self.stage_map().get(agent)

    def status_of(self, agent: str) -> StageStatus:
        trace = self.stage(agent)
        return trace.status if trace else StageStatus.PENDING

    def stages_with_status(self, status: StageStatus) -> list[StageTrace]:
        return [trace for trace in self.traces if trace.status == status]

    def known_stages(self) -> list[str]:
        """Canonical stages followed by any extra stage the executor reported."""
        extra = [trace.agent for trace in self.traces if trace.agent not in STAGE_ORDER]
        return [*STAGE_ORDER, *dict.fromkeys(extra)]

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


__all__ = ["RunSnapshot", "StageTrace", "ToolCallTrace"]
