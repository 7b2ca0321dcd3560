"""Push notifications narrating pipeline activity.

Events are incremental narration, never state: no single event is enough to
rebuild a :class:`~trace_console.schema.trace.RunSnapshot`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
import json
from typing import Any

from pydantic import AliasChoices, Field, ValidationError

from trace_console.enums import EventType
from trace_console.errors import MalformedEventError
from trace_console.schema.base import TypedBaseModel
from trace_console.schema.results import DebateTurn, ToolSynthesis


class ToolCallDetail(TypedBaseModel):
    tool_name: str
    params: dict[str, Any] = Field(default_factory=dict)


class PipelineEvent(TypedBaseModel):
    type: EventType
    run_id: str = Field(
        "",
        validation_alias=AliasChoices("run_id", "ticket_id", "runId"),
        serialization_alias="ticket_id",
    )
    timestamp: datetime | None = None
    agent: str = ""
    step: int = 0
    message: str = ""
    detail: Any = None

    @property
    def is_connection_marker(self) -> bool:
        return self.type == EventType.CONNECTED

    def debate_turn(self) -> DebateTurn | None:
        """Return the debate turn carried by a ``debate`` event, if readable."""
        if self.type != EventType.DEBATE or not isinstance(self.detail, Mapping):
            return None
        if not self.detail.get("role"):
            return None
        try:
            return DebateTurn.model_validate(dict(self.detail))
        except ValidationError:
            return None

    def tool_call(self) -> ToolCallDetail | None:
        if self.type != EventType.TOOL_CALL or not isinstance(self.detail, Mapping):
            return None
        try:
            return ToolCallDetail.model_validate(dict(self.detail))
        except ValidationError:
            return None

    def tool_synthesis(self) -> ToolSynthesis | None:
        if self.type != EventType.TOOL_SYNTHESIS or not isinstance(
            self.detail, Mapping
        ):
            return None
        try:
            return ToolSynthesis.model_validate(dict(self.detail))
        except ValidationError:
            return None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def parse_event(data: str | bytes) -> PipelineEvent:
    """Read one stream record as an event or raise :class:`MalformedEventError`."""
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedEventError(f"Event is not valid JSON: {exc}", raw=text) from exc
    if not isinstance(payload, dict):
        raise MalformedEventError("Event payload must be a JSON object", raw=text)
    try:
        return PipelineEvent.model_validate(payload)
    except ValidationError as exc:
        raise MalformedEventError(
            f"Event does not match the event schema: {exc.error_count()} error(s)",
            raw=text,
        ) from exc


__all__ = ["PipelineEvent", "ToolCallDetail", "parse_event"]
