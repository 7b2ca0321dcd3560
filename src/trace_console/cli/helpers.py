"""Support routines for the trace console CLI."""

from __future__ import annotations

from collections.abc import Mapping
import json
from pathlib import Path
import sys
from typing import Any

import yaml

from trace_console.engine.grouping import (
    display_tool_name,
    summarize_tool_call,
    summarize_tool_result,
)
from trace_console.engine.view import RunView
from trace_console.engine.view_state import StageRow
from trace_console.enums import EventType, StageStatus
from trace_console.schema.events import PipelineEvent

_STATUS_MARKERS: dict[StageStatus, str] = {
    StageStatus.PENDING: " ",
    StageStatus.RUNNING: "~",
    StageStatus.COMPLETED: "+",
    StageStatus.FAILED: "x",
    StageStatus.SKIPPED: "-",
}


def load_config(config_path: str | None, logger: Any) -> dict[str, Any]:
    """Load configuration from a YAML file; a missing path means defaults."""
    if not config_path:
        return {}
    path = Path(config_path)
    if not path.exists():
        logger.warning("Config file not found at %s, using defaults", config_path)
        return {}
    try:
        with open(path, encoding="utf-8") as file:
            config = yaml.safe_load(file) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to load config file %s: %s", config_path, exc)
        sys.exit(1)
    if not isinstance(config, dict):
        logger.error("Config file must contain a mapping, got %s", type(config).__name__)
        sys.exit(1)
    return config


def format_stage_row(row: StageRow) -> str:
    marker = _STATUS_MARKERS.get(row.status, "?")
    step = f"{row.step_number}." if row.step_number is not None else "-."
    status = "adaptive" if row.adaptive_skip else row.status.value
    line = f"[{marker}] {step} {row.label:<11} {status}"
    if row.duration_ms is not None:
        line += f" ({row.duration_ms / 1000:.1f}s)"
    if row.active:
        line += " <"
    return line


def format_event(event: PipelineEvent) -> str:
    """One narration line; tool details are summarized, not dumped."""
    prefix = f"  {event.agent or '-'} | {event.type.value}"
    if event.type == EventType.TOOL_CALL:
        call = event.tool_call()
        if call is not None:
            return f"{prefix}: {summarize_tool_call(call)}"
    if event.type == EventType.TOOL_RESULT and event.detail is not None:
        summary = summarize_tool_result(event.detail)
        text = f"{prefix}: {event.message} [{summary.label}]".rstrip()
        if not summary.collapsed:
            text += "\n" + "\n".join(f"      {ln}" for ln in summary.rendered.splitlines())
        return text
    if event.type == EventType.DEBATE:
        turn = event.debate_turn()
        if turn is not None:
            return f"{prefix} ({turn.role.value}): {event.message}"
    if event.type == EventType.TOOL_SYNTHESIS:
        synthesis = event.tool_synthesis()
        if synthesis is not None and synthesis.tool_name:
            return f"{prefix}: {display_tool_name(synthesis.tool_name)}"
    return f"{prefix}: {event.message}" if event.message else prefix


class WatchRenderer:
    """Produces only what changed since the previous render of a view."""

    def __init__(self) -> None:
        self._statuses: dict[str, StageStatus] = {}
        self._events_seen = 0

    def render(self, view: RunView) -> list[str]:
        lines: list[str] = []
        for row in view.stage_rows():
            if self._statuses.get(row.agent, StageStatus.PENDING) != row.status:
                lines.append(format_stage_row(row))
            self._statuses[row.agent] = row.status
        events = view.events
        lines.extend(format_event(event) for event in events[self._events_seen :])
        self._events_seen = len(events)
        return lines


def format_summary(view: RunView) -> list[str]:
    snapshot = view.snapshot
    if snapshot is None:
        return [f"Run {view.run_id}: no snapshot available"]
    lines = [f"Run {view.run_id}: {snapshot.pipeline_status.value}"]
    lines.extend(format_stage_row(row) for row in view.stage_rows())
    rollup = view.rollup()
    if rollup is not None:
        lines.append(
            f"Duration {rollup.total_duration_ms / 1000:.1f}s, "
            f"{rollup.total_tokens} tokens, {rollup.total_llm_calls} LLM calls"
        )
    report = view.confidence()
    if report.overall is not None:
        level = report.overall_level.value if report.overall_level else "?"
        lines.append(f"Confidence {report.overall:.0%} ({level})")
    if report.needs_review:
        flagged = ", ".join(s.agent for s in report.stages if s.needs_review)
        lines.append(f"NEEDS REVIEW: low confidence at {flagged}")
    budget = view.token_budget()
    if budget.skipped_count:
        lines.append(f"{budget.skipped_count} stage(s) bypassed")
    banner = view.banner
    if banner is not None:
        lines.append(f"! {banner.message}")
    return lines


def dump_json(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


__all__ = [
    "WatchRenderer",
    "dump_json",
    "format_event",
    "format_stage_row",
    "format_summary",
    "load_config",
]
