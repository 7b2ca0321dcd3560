"""Reconciles polled snapshots and streamed events into one view of a run.

Two independent slices are held side by side and merged only at read time:

* the latest accepted :class:`RunSnapshot`, replaced wholesale on every
  accepted fetch and authoritative for stage status and rollups;
* the append-only log of :class:`PipelineEvent` narration, which never
  overrides snapshot data.

All mutation happens on the event loop thread through :meth:`apply_snapshot`
and :meth:`append_event`. A host that delivers from several threads must wrap
both calls in one lock around the whole aggregator.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any

from trace_console.engine.audit import counter_regressions, snapshot_findings
from trace_console.engine.grouping import EventGroup, group_events
from trace_console.engine.transitions import LifecycleLedger
from trace_console.enums import EventType, StageStatus
from trace_console.schema.events import PipelineEvent
from trace_console.schema.trace import RunSnapshot, StageTrace

CompletionCallback = Callable[[RunSnapshot], None]


@dataclass(frozen=True)
class RunRollup:
    """Run totals as reported by the snapshot, never recomputed from events."""

    total_duration_ms: float
    total_tokens: int
    total_llm_calls: int

    @classmethod
    def from_snapshot(cls, snapshot: RunSnapshot) -> RunRollup:
        return cls(
            total_duration_ms=snapshot.total_duration_ms,
            total_tokens=snapshot.total_tokens,
            total_llm_calls=snapshot.total_llm_calls,
        )


class Aggregator:
    """Single source of truth for one view of one run."""

    def __init__(
        self,
        run_id: str,
        *,
        auto_expand: bool = True,
        logger: Any | None = None,
    ) -> None:
        self.run_id = run_id
        self.auto_expand = auto_expand
        self.logger = logger or logging.getLogger(__name__)
        self._snapshot: RunSnapshot | None = None
        self._issued_sequence = 0
        self._applied_sequence = 0
        self._events: list[PipelineEvent] = []
        self._expanded: set[int] = set()
        self._auto_expanded_step = 0
        self._active_stage: str | None = None
        self._complete = False
        self._completion_callbacks: list[CompletionCallback] = []
        self._lifecycles = LifecycleLedger()
        self._open_findings: frozenset[str] = frozenset()
        self._closed = False

    # -- snapshot slice -------------------------------------------------

    def next_sequence(self) -> int:
        """Ticket for a fetch about to be issued; later tickets win."""
        self._issued_sequence += 1
        return self._issued_sequence

    def apply_snapshot(self, snapshot: RunSnapshot, sequence: int | None = None) -> bool:
        """Accept ``snapshot`` unless it is stale, foreign, or the view is closed."""
        if self._closed:
            self.logger.debug("Discarding snapshot for closed view %s", self.run_id)
            return False
        if sequence is None:
            sequence = self.next_sequence()
        if sequence <= self._applied_sequence:
            self.logger.debug(
                "Discarding stale snapshot #%d (applied #%d)",
                sequence,
                self._applied_sequence,
            )
            return False
        if snapshot.run_id != self.run_id:
            self.logger.warning(
                "Snapshot for run %s delivered to view of %s",
                snapshot.run_id,
                self.run_id,
            )
            return False

        self._audit(snapshot)
        self._snapshot = snapshot
        self._applied_sequence = sequence
        self._issued_sequence = max(self._issued_sequence, sequence)
        if self.auto_expand:
            self._auto_expand(snapshot)
        if snapshot.is_terminal:
            self._signal_complete(snapshot)
        return True

    def _audit(self, snapshot: RunSnapshot) -> None:
        previous = self._snapshot.stage_map() if self._snapshot else {}
        for trace in snapshot.traces:
            if not self._lifecycles.observe(trace.agent, trace.status):
                self.logger.warning(
                    "Stage %s regressed from %s to %s",
                    trace.agent,
                    self._lifecycles.state_of(trace.agent).value,
                    trace.status.value,
                )
            earlier = previous.get(trace.agent)
            if earlier is not None:
                for finding in counter_regressions(earlier, trace):
                    self.logger.warning("Snapshot anomaly: %s", finding)
        findings = snapshot_findings(snapshot)
        # A standing anomaly is reported once, not on every poll.
        for finding in findings:
            if finding not in self._open_findings:
                self.logger.warning("Snapshot anomaly: %s", finding)
        self._open_findings = frozenset(findings)

    def _auto_expand(self, snapshot: RunSnapshot) -> None:
        completed = snapshot.stages_with_status(StageStatus.COMPLETED)
        if not completed:
            return
        latest = max(trace.step_number for trace in completed)
        # Out-of-order step numbers must never move the selection backwards.
        if latest <= self._auto_expanded_step:
            return
        self._auto_expanded_step = latest
        self._expanded.add(latest)

    def _signal_complete(self, snapshot: RunSnapshot) -> None:
        if self._complete:
            return
        self._complete = True
        self.logger.info(
            "Run %s finished with status %s",
            self.run_id,
            snapshot.pipeline_status.value,
        )
        callbacks, self._completion_callbacks = self._completion_callbacks, []
        for callback in callbacks:
            self._notify(callback, snapshot)

    def _notify(self, callback: CompletionCallback, snapshot: RunSnapshot) -> None:
        try:
            callback(snapshot)
        except Exception:
            self.logger.exception("Completion callback failed for run %s", self.run_id)

    def on_complete(self, callback: CompletionCallback) -> None:
        """Register a one-shot completion callback.

        A callback registered after completion fires immediately.
        """
        if self._complete and self._snapshot is not None:
            self._notify(callback, self._snapshot)
            return
        self._completion_callbacks.append(callback)

    # -- event slice ----------------------------------------------------

    def append_event(self, event: PipelineEvent) -> bool:
        if self._closed:
            return False
        if event.is_connection_marker:
            return False
        if event.run_id and event.run_id != self.run_id:
            self.logger.warning(
                "Event for run %s delivered to view of %s", event.run_id, self.run_id
            )
            return False
        self._events.append(event)
        if event.type == EventType.STATUS and event.agent:
            self._active_stage = event.agent
        return True

    # -- expansion ------------------------------------------------------

    def toggle_stage(self, step_number: int) -> bool:
        """Flip a stage row open or closed; returns the new expanded state."""
        if step_number in self._expanded:
            self._expanded.discard(step_number)
            return False
        self._expanded.add(step_number)
        return True

    def expand_stage(self, step_number: int) -> None:
        self._expanded.add(step_number)

    def collapse_stage(self, step_number: int) -> None:
        self._expanded.discard(step_number)

    # -- read side ------------------------------------------------------

    @property
    def snapshot(self) -> RunSnapshot | None:
        return self._snapshot

    @property
    def applied_sequence(self) -> int:
        return self._applied_sequence

    @property
    def events(self) -> tuple[PipelineEvent, ...]:
        return tuple(self._events)

    @property
    def event_count(self) -> int:
        return len(self._events)

    @property
    def expanded_stages(self) -> frozenset[int]:
        return frozenset(self._expanded)

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def active_stage(self) -> str | None:
        return self._active_stage

    @property
    def closed(self) -> bool:
        return self._closed

    def stage_lookup(self) -> dict[str, StageTrace]:
        return self._snapshot.stage_map() if self._snapshot else {}

    def event_groups(self) -> list[EventGroup]:
        return group_events(self._events)

    def events_for(self, agent: str) -> list[PipelineEvent]:
        """Narration shown inside an expanded stage row."""
        return [event for event in self._events if event.agent == agent]

    def rollup(self) -> RunRollup | None:
        return RunRollup.from_snapshot(self._snapshot) if self._snapshot else None

    def close(self) -> None:
        """Freeze the view; later deliveries become no-ops."""
        self._closed = True
        self._completion_callbacks.clear()


__all__ = ["Aggregator", "CompletionCallback", "RunRollup"]
