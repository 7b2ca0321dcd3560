"""Explicit default settings for the trace console."""

from __future__ import annotations

CONSOLE_DEFAULTS: dict[str, object] = {
    "api_url": "http://localhost:5000/api",
    "poll_interval": 2.5,
    "handshake_timeout": 8.0,
    "request_timeout": 10.0,
    "review_threshold": 0.6,
}

MINIMAL_CONSOLE_CONFIG: dict[str, object] = {
    "console": {"api_url": "http://localhost:5000/api", "poll_interval": 2.5},
    "logging": {"level": "INFO"},
}
