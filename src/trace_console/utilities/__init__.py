"""Utilities package for the trace console.

Currently holds the logging and telemetry setup shared by the CLI and tests.
"""

from __future__ import annotations

from .logger_manager import LoggerConfig, LoggerManager, LoggerSettings

__all__ = [
    "LoggerConfig",
    "LoggerManager",
    "LoggerSettings",
]
