"""Narration feed shaping: contiguous agent groups and compact detail summaries."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
import json
from typing import Any

from trace_console.constants import (
    TOOL_NAME_PREFIXES,
    TOOL_PARAM_PREVIEW_LIMIT,
    TOOL_PARAM_VALUE_WIDTH,
    TOOL_RESULT_COLLAPSE_CHARS,
)
from trace_console.enums import EventType
from trace_console.schema.events import PipelineEvent, ToolCallDetail


@dataclass(frozen=True)
class EventGroup:
    """A run of consecutive events emitted by the same agent."""

    agent: str
    events: tuple[PipelineEvent, ...]

    @property
    def is_complete(self) -> bool:
        return any(event.type == EventType.COMPLETE for event in self.events)

    def __len__(self) -> int:
        return len(self.events)


def group_events(events: Iterable[PipelineEvent]) -> list[EventGroup]:
    """Split events into groups wherever ``agent`` changes, preserving order.

    Non-adjacent events from the same agent stay in separate groups, so the
    result reads as the order in which stages actually ran.
    """
    groups: list[EventGroup] = []
    current_agent: str | None = None
    bucket: list[PipelineEvent] = []
    for event in events:
        if current_agent is not None and event.agent != current_agent:
            groups.append(EventGroup(agent=current_agent, events=tuple(bucket)))
            bucket = []
        current_agent = event.agent
        bucket.append(event)
    if current_agent is not None:
        groups.append(EventGroup(agent=current_agent, events=tuple(bucket)))
    return groups


def in_progress_group(groups: Sequence[EventGroup]) -> EventGroup | None:
    """The latest group, when it has not yet seen a ``complete`` event."""
    if not groups or groups[-1].is_complete:
        return None
    return groups[-1]


def display_tool_name(tool_name: str) -> str:
    for prefix in TOOL_NAME_PREFIXES:
        if tool_name.startswith(prefix):
            tool_name = tool_name[len(prefix) :]
            break
    return tool_name.replace("_", " ")


def summarize_tool_call(detail: ToolCallDetail) -> str:
    """``name (key: value, key: value, ...)`` with truncated parameter values."""
    name = display_tool_name(detail.tool_name)
    if not detail.params:
        return name
    preview = [
        f"{key}: {str(value)[:TOOL_PARAM_VALUE_WIDTH]}"
        for key, value in list(detail.params.items())[:TOOL_PARAM_PREVIEW_LIMIT]
    ]
    more = ", ..." if len(detail.params) > TOOL_PARAM_PREVIEW_LIMIT else ""
    return f"{name} ({', '.join(preview)}{more})"


@dataclass(frozen=True)
class ToolResultSummary:
    label: str
    rendered: str
    collapsed: bool


def summarize_tool_result(detail: Any) -> ToolResultSummary:
    rendered = json.dumps(detail, indent=2, default=str)
    count = detail.get("count") if isinstance(detail, Mapping) else None
    if isinstance(count, int) and not isinstance(count, bool):
        label = f"{count} record{'' if count == 1 else 's'}"
    else:
        label = f"{len(rendered)} chars"
    return ToolResultSummary(
        label=label,
        rendered=rendered,
        collapsed=len(rendered) > TOOL_RESULT_COLLAPSE_CHARS,
    )


__all__ = [
    "EventGroup",
    "ToolResultSummary",
    "display_tool_name",
    "group_events",
    "in_progress_group",
    "summarize_tool_call",
    "summarize_tool_result",
]
