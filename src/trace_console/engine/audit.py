"""Advisory consistency checks over stage traces and run snapshots.

Upstream records are read-only to the engine, so nothing here raises: each
check returns human-readable findings that callers log.
"""

from __future__ import annotations

from trace_console.enums import PipelineStatus, StageStatus
from trace_console.schema.trace import RunSnapshot, StageTrace


def stage_findings(trace: StageTrace) -> list[str]:
    findings: list[str] = []
    label = f"{trace.agent}#{trace.step_number}"
    if trace.completed_at is not None and not trace.is_terminal:
        findings.append(f"{label} has completed_at while {trace.status.value}")
    if (
        trace.status in (StageStatus.COMPLETED, StageStatus.FAILED)
        and trace.completed_at is None
    ):
        findings.append(f"{label} is {trace.status.value} without completed_at")
    if trace.duration_ms is not None and trace.completed_at is None:
        findings.append(f"{label} reports duration_ms before completing")
    if trace.confidence is not None and not 0.0 <= trace.confidence <= 1.0:
        findings.append(f"{label} confidence {trace.confidence} outside [0, 1]")
    if (
        trace.started_at is not None
        and trace.completed_at is not None
        and trace.completed_at < trace.started_at
    ):
        findings.append(f"{label} completed before it started")
    return findings


def counter_regressions(previous: StageTrace, current: StageTrace) -> list[str]:
    """Counters must not shrink while the same stage keeps running."""
    if previous.status != StageStatus.RUNNING:
        return []
    shrunk = [
        name
        for name in ("llm_calls", "input_tokens", "output_tokens")
        if getattr(current, name) < getattr(previous, name)
    ]
    if len(current.reasoning) < len(previous.reasoning):
        shrunk.append("reasoning")
    return [f"{current.agent} {name} decreased" for name in shrunk]


def snapshot_findings(snapshot: RunSnapshot) -> list[str]:
    findings: list[str] = []
    seen_steps: dict[int, str] = {}
    for trace in snapshot.traces:
        owner = seen_steps.get(trace.step_number)
        if owner is not None and owner != trace.agent:
            findings.append(
                f"step {trace.step_number} shared by {owner} and {trace.agent}"
            )
        seen_steps[trace.step_number] = trace.agent
        findings.extend(stage_findings(trace))

    all_terminal = bool(snapshot.traces) and all(
        trace.is_terminal for trace in snapshot.traces
    )
    if snapshot.pipeline_status.is_terminal and not all_terminal and snapshot.traces:
        findings.append(
            f"pipeline {snapshot.pipeline_status.value} with non-terminal stages"
        )
    if (
        snapshot.pipeline_status == PipelineStatus.COMPLETED
        and snapshot.stages_with_status(StageStatus.FAILED)
    ):
        findings.append("pipeline completed although a stage failed")
    return findings


__all__ = ["counter_regressions", "snapshot_findings", "stage_findings"]
