"""Loads and validates console settings from the environment and config files."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, replace
import os
from pathlib import Path
from typing import Any, cast

from dotenv import load_dotenv

from trace_console.config.defaults import CONSOLE_DEFAULTS


@dataclass(frozen=True)
class SettingSpec:
    """Describes how one setting is exposed in the environment."""

    name: str
    env_var: str
    description: str
    parse: Callable[[str], Any]


def _positive_float(raw: str) -> float:
    value = float(raw)
    if value <= 0:
        raise ValueError("must be positive")
    return value


def _unit_float(raw: str) -> float:
    value = float(raw)
    if not 0.0 <= value <= 1.0:
        raise ValueError("must be between 0 and 1")
    return value


def _http_url(raw: str) -> str:
    value = raw.strip()
    if not value.startswith(("http://", "https://")):
        raise ValueError("must be an http(s) URL")
    return value.rstrip("/")


SETTING_REGISTRY: tuple[SettingSpec, ...] = (
    SettingSpec("api_url", "TRACE_CONSOLE_API_URL", "Base URL of the pipeline API", _http_url),
    SettingSpec(
        "poll_interval",
        "TRACE_CONSOLE_POLL_INTERVAL",
        "Seconds between snapshot fetches in live mode",
        _positive_float,
    ),
    SettingSpec(
        "handshake_timeout",
        "TRACE_CONSOLE_HANDSHAKE_TIMEOUT",
        "Seconds to wait for the stream's connected record",
        _positive_float,
    ),
    SettingSpec(
        "request_timeout",
        "TRACE_CONSOLE_REQUEST_TIMEOUT",
        "Per-request timeout for snapshot fetches and submission",
        _positive_float,
    ),
    SettingSpec(
        "review_threshold",
        "TRACE_CONSOLE_REVIEW_THRESHOLD",
        "Stage confidence below which a run needs review",
        _unit_float,
    ),
)

_SPECS_BY_NAME = {spec.name: spec for spec in SETTING_REGISTRY}


@dataclass(frozen=True)
class ConsoleSettings:
    api_url: str = cast(str, CONSOLE_DEFAULTS["api_url"])
    poll_interval: float = cast(float, CONSOLE_DEFAULTS["poll_interval"])
    handshake_timeout: float = cast(float, CONSOLE_DEFAULTS["handshake_timeout"])
    request_timeout: float = cast(float, CONSOLE_DEFAULTS["request_timeout"])
    review_threshold: float = cast(float, CONSOLE_DEFAULTS["review_threshold"])

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ConsoleSettings:
        return cls().with_env(environ)

    def with_env(self, environ: Mapping[str, str] | None = None) -> ConsoleSettings:
        """Apply every registered variable that is set; the rest keep their value."""
        source = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for spec in SETTING_REGISTRY:
            raw = source.get(spec.env_var)
            if raw is None or raw == "":
                continue
            values[spec.name] = _parse(spec, raw, origin=spec.env_var)
        return replace(self, **values)

    def with_overrides(self, overrides: Mapping[str, Any]) -> ConsoleSettings:
        """Apply known, non-null overrides from a config section or CLI flags."""
        known = {field.name for field in fields(self)}
        values: dict[str, Any] = {}
        for name, value in overrides.items():
            if name not in known or value is None:
                continue
            spec = _SPECS_BY_NAME[name]
            values[name] = _parse(spec, str(value), origin=name)
        return replace(self, **values)


def _parse(spec: SettingSpec, raw: str, *, origin: str) -> Any:
    try:
        return spec.parse(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid value for {origin} ({raw!r}): {exc}") from exc


def load_environment(dotenv_path: str | Path | None = None) -> None:
    """Load `.env` files when available to seed setting lookups."""
    path = Path(dotenv_path) if dotenv_path else Path(".env")
    if path.exists():
        load_dotenv(dotenv_path=path)


def load_settings(
    config: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConsoleSettings:
    """Defaults, then the ``console`` section of a config file, then the environment."""
    section = (config or {}).get("console") or {}
    if not isinstance(section, Mapping):
        raise RuntimeError("Config section 'console' must be a mapping")
    return ConsoleSettings().with_overrides(section).with_env(environ)


__all__ = [
    "SETTING_REGISTRY",
    "ConsoleSettings",
    "SettingSpec",
    "load_environment",
    "load_settings",
]
