"""Stateless presentation decisions derived from aggregator output."""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass

from trace_console.constants import (
    HIGH_CONFIDENCE_THRESHOLD,
    REVIEW_CONFIDENCE_THRESHOLD,
    STAGE_LABELS,
    STAGE_ORDER,
)
from trace_console.enums import ConfidenceLevel, PipelineStatus, StageStatus, ViewMode
from trace_console.schema.trace import RunSnapshot, StageTrace


def select_view_mode(
    pipeline_status: PipelineStatus | None,
    business_finished: bool = False,
) -> ViewMode:
    """Live while running, or while pending on a record that is not finished yet."""
    if pipeline_status == PipelineStatus.RUNNING:
        return ViewMode.LIVE
    if pipeline_status == PipelineStatus.PENDING and not business_finished:
        return ViewMode.LIVE
    return ViewMode.REPLAY


def mode_for_snapshot(
    snapshot: RunSnapshot | None,
    business_finished: bool | None = None,
) -> ViewMode:
    if snapshot is None:
        return select_view_mode(None)
    finished = snapshot.business_finished if business_finished is None else business_finished
    return select_view_mode(snapshot.pipeline_status, finished)


@dataclass(frozen=True)
class StageConfidence:
    agent: str
    confidence: float
    level: ConfidenceLevel
    needs_review: bool


@dataclass(frozen=True)
class ConfidenceReport:
    stages: tuple[StageConfidence, ...]
    overall: float | None
    needs_review: bool

    @property
    def overall_level(self) -> ConfidenceLevel | None:
        if self.overall is None:
            return None
        return ConfidenceLevel.for_confidence(self.overall)


def _ordered(stage_map: Mapping[str, StageTrace]) -> list[StageTrace]:
    known = [stage_map[agent] for agent in STAGE_ORDER if agent in stage_map]
    extra = [trace for agent, trace in stage_map.items() if agent not in STAGE_ORDER]
    return known + sorted(extra, key=lambda trace: trace.step_number)


def confidence_report(
    stage_map: Mapping[str, StageTrace],
    threshold: float = REVIEW_CONFIDENCE_THRESHOLD,
) -> ConfidenceReport:
    """Per-stage confidence of completed stages with a review flag below ``threshold``."""
    readings: list[StageConfidence] = []
    for trace in _ordered(stage_map):
        if trace.status != StageStatus.COMPLETED:
            continue
        value = trace.confidence_reading()
        if value is None:
            continue
        readings.append(
            StageConfidence(
                agent=trace.agent,
                confidence=value,
                level=ConfidenceLevel.for_confidence(
                    value,
                    review_threshold=threshold,
                    high_threshold=max(threshold, HIGH_CONFIDENCE_THRESHOLD),
                ),
                needs_review=value < threshold,
            )
        )
    overall = sum(r.confidence for r in readings) / len(readings) if readings else None
    return ConfidenceReport(
        stages=tuple(readings),
        overall=overall,
        needs_review=any(r.needs_review for r in readings),
    )


def needs_review(
    stage_map: Mapping[str, StageTrace],
    threshold: float = REVIEW_CONFIDENCE_THRESHOLD,
) -> bool:
    return confidence_report(stage_map, threshold).needs_review


@dataclass(frozen=True)
class StageTokenShare:
    agent: str
    tokens: int
    share: float
    skipped: bool


@dataclass(frozen=True)
class TokenBudget:
    stages: tuple[StageTokenShare, ...]
    total_tokens: int
    skipped_count: int


def token_budget(stage_map: Mapping[str, StageTrace]) -> TokenBudget:
    """Token use per stage as a share of the tokens spent across all stages."""
    ordered = _ordered(stage_map)
    total = sum(trace.total_tokens for trace in ordered)
    shares = tuple(
        StageTokenShare(
            agent=trace.agent,
            tokens=trace.total_tokens,
            share=min(1.0, trace.total_tokens / total) if total else 0.0,
            skipped=trace.status == StageStatus.SKIPPED,
        )
        for trace in ordered
    )
    return TokenBudget(
        stages=shares,
        total_tokens=total,
        skipped_count=sum(1 for share in shares if share.skipped),
    )


@dataclass(frozen=True)
class StageRow:
    """One stage as laid out in the pipeline strip and detail list."""

    agent: str
    label: str
    step_number: int | None
    status: StageStatus
    expanded: bool
    has_detail: bool
    adaptive_skip: bool
    duration_ms: float | None
    active: bool


def stage_rows(
    stage_map: Mapping[str, StageTrace],
    expanded: Collection[int],
    active_stage: str | None = None,
) -> list[StageRow]:
    agents = [*STAGE_ORDER, *(a for a in stage_map if a not in STAGE_ORDER)]
    rows: list[StageRow] = []
    for agent in agents:
        trace = stage_map.get(agent)
        status = trace.status if trace else StageStatus.PENDING
        step = trace.step_number if trace else None
        rows.append(
            StageRow(
                agent=agent,
                label=STAGE_LABELS.get(agent, agent.replace("_", " ").title()),
                step_number=step,
                status=status,
                expanded=step is not None and step in expanded,
                has_detail=status != StageStatus.PENDING,
                adaptive_skip=status == StageStatus.SKIPPED,
                duration_ms=trace.duration_ms if trace else None,
                active=agent == active_stage,
            )
        )
    return rows


__all__ = [
    "ConfidenceReport",
    "StageConfidence",
    "StageRow",
    "StageTokenShare",
    "TokenBudget",
    "confidence_report",
    "mode_for_snapshot",
    "needs_review",
    "select_view_mode",
    "stage_rows",
    "token_budget",
]
