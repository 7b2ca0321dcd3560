"""Global constants shared by the trace console engine."""

from __future__ import annotations

STAGE_ORDER: tuple[str, ...] = (
    "triage",
    "research",
    "decision",
    "simulation",
    "execution",
    "quality",
)
"""Known pipeline stages in execution order; positions map to step numbers."""

STAGE_LABELS: dict[str, str] = {
    "triage": "Triage",
    "research": "Research",
    "decision": "Decision",
    "simulation": "Simulation",
    "execution": "Execution",
    "quality": "Quality",
}

FINISHED_BUSINESS_STATES: frozenset[str] = frozenset({"resolved", "escalated"})

REVIEW_CONFIDENCE_THRESHOLD = 0.6
HIGH_CONFIDENCE_THRESHOLD = 0.8

TOOL_NAME_PREFIXES: tuple[str, ...] = ("supportgenius.", "platform.core.")
TOOL_PARAM_PREVIEW_LIMIT = 2
TOOL_PARAM_VALUE_WIDTH = 30
TOOL_RESULT_COLLAPSE_CHARS = 300


def step_for_stage(stage: str) -> int | None:
    """Return the canonical step number for a known stage identifier."""
    try:
        return STAGE_ORDER.index(stage) + 1
    except ValueError:
        return None
