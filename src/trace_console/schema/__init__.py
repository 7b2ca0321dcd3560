"""Wire schemas for trace snapshots, stream events, and stage results.

Keep this module import-light: ``trace_console.errors`` imports
``trace_console.schema.base`` while ``schema.events`` imports the errors
module, so eager re-exports here would form an import cycle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

__all__ = [
    "PipelineEvent",
    "RunSnapshot",
    "StageTrace",
    "ToolCallTrace",
    "TypedBaseModel",
    "parse_event",
]

if TYPE_CHECKING:
    from .base import TypedBaseModel
    from .events import PipelineEvent, parse_event
    from .trace import RunSnapshot, StageTrace, ToolCallTrace

_LAZY_EXPORTS = {
    "TypedBaseModel": "base",
    "PipelineEvent": "events",
    "parse_event": "events",
    "RunSnapshot": "trace",
    "StageTrace": "trace",
    "ToolCallTrace": "trace",
}


def __getattr__(name: str) -> Any:
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(f"{__name__}.{module_name}"), name)
