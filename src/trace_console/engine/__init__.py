"""Reconciliation engine for run snapshots and streamed pipeline events."""

from __future__ import annotations

from .aggregator import Aggregator, RunRollup
from .grouping import EventGroup, group_events
from .poller import SnapshotPoller
from .stream import EventStreamConsumer
from .view import RunView
from .view_state import (
    confidence_report,
    needs_review,
    select_view_mode,
    stage_rows,
    token_budget,
)

__all__ = [
    "Aggregator",
    "EventGroup",
    "EventStreamConsumer",
    "RunRollup",
    "RunView",
    "SnapshotPoller",
    "confidence_report",
    "group_events",
    "needs_review",
    "select_view_mode",
    "stage_rows",
    "token_budget",
]
