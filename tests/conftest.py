from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from trace_console.config.env import SETTING_REGISTRY
from trace_console.utilities.logger_manager import LoggerConfig, LoggerManager


@pytest.fixture(autouse=True)
def _isolated_settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host configuration out of tests that read the environment."""
    for spec in SETTING_REGISTRY:
        monkeypatch.delenv(spec.env_var, raising=False)


@pytest.fixture
def logger_manager(tmp_path: Path) -> Iterator[LoggerManager]:
    manager = LoggerManager(
        LoggerConfig(log_dir=tmp_path / "logs", log_level="DEBUG", telemetry_enabled=True)
    )
    yield manager
    manager.shutdown()
