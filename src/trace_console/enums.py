"""Centralized semantic enums for the trace console."""

from __future__ import annotations

from enum import Enum

from trace_console.constants import (
    HIGH_CONFIDENCE_THRESHOLD,
    REVIEW_CONFIDENCE_THRESHOLD,
)


class StageStatus(str, Enum):
    """Lifecycle of a single pipeline stage."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STAGE_STATUSES


_TERMINAL_STAGE_STATUSES = frozenset(
    {StageStatus.COMPLETED, StageStatus.FAILED, StageStatus.SKIPPED}
)


class PipelineStatus(str, Enum):
    """Rollup status of a whole run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStatus.COMPLETED, PipelineStatus.FAILED)


class EventType(str, Enum):
    """Tags carried by push notifications on the event stream."""

    CONNECTED = "connected"
    STATUS = "status"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    DECISION = "decision"
    INSIGHT = "insight"
    COMPLETE = "complete"
    DEBATE = "debate"
    CONFIDENCE = "confidence"
    TOOL_SYNTHESIS = "tool_synthesis"


class ConnectionState(str, Enum):
    """Health of the push channel as shown to an operator."""

    CONNECTED = "connected"
    DEGRADED = "degraded"
    OFFLINE = "offline"


class ViewMode(str, Enum):
    """Whether a view follows a run as it executes or replays a finished one."""

    LIVE = "live"
    REPLAY = "replay"


class DebateRole(str, Enum):
    OPTIMIST = "optimist"
    PRAGMATIST = "pragmatist"


class DebateWinner(str, Enum):
    OPTIMIST = "optimist"
    PRAGMATIST = "pragmatist"
    CONSENSUS = "consensus"


class ConfidenceLevel(str, Enum):
    """Buckets that map floating-point confidences to qualitative levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def for_confidence(
        cls,
        confidence: float,
        review_threshold: float = REVIEW_CONFIDENCE_THRESHOLD,
        high_threshold: float = HIGH_CONFIDENCE_THRESHOLD,
    ) -> ConfidenceLevel:
        if confidence >= high_threshold:
            return cls.HIGH
        if confidence >= review_threshold:
            return cls.MEDIUM
        return cls.LOW
