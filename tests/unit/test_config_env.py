from __future__ import annotations

import pytest

from trace_console.config.defaults import CONSOLE_DEFAULTS, MINIMAL_CONSOLE_CONFIG
from trace_console.config.env import (
    SETTING_REGISTRY,
    ConsoleSettings,
    load_environment,
    load_settings,
)
from trace_console.utilities.logger_manager import LoggerConfig


def test_defaults_match_default_table() -> None:
    settings = ConsoleSettings()
    for name, value in CONSOLE_DEFAULTS.items():
        assert getattr(settings, name) == value
    assert settings.poll_interval == 2.5
    assert settings.review_threshold == 0.6


def test_every_setting_has_an_env_var() -> None:
    names = {spec.name for spec in SETTING_REGISTRY}
    assert names == set(CONSOLE_DEFAULTS)
    assert all(spec.env_var.startswith("TRACE_CONSOLE_") for spec in SETTING_REGISTRY)


def test_from_env_reads_registered_variables() -> None:
    settings = ConsoleSettings.from_env(
        {
            "TRACE_CONSOLE_API_URL": "https://pipeline.example.com/api/",
            "TRACE_CONSOLE_POLL_INTERVAL": "1.5",
            "TRACE_CONSOLE_REVIEW_THRESHOLD": "0.7",
            "TRACE_CONSOLE_HANDSHAKE_TIMEOUT": "",
        }
    )
    assert settings.api_url == "https://pipeline.example.com/api"
    assert settings.poll_interval == 1.5
    assert settings.review_threshold == 0.7
    assert settings.handshake_timeout == 8.0


@pytest.mark.parametrize(
    ("env_var", "raw"),
    [
        ("TRACE_CONSOLE_POLL_INTERVAL", "-1"),
        ("TRACE_CONSOLE_POLL_INTERVAL", "fast"),
        ("TRACE_CONSOLE_REVIEW_THRESHOLD", "1.5"),
        ("TRACE_CONSOLE_API_URL", "ftp://example.com"),
    ],
)
def test_invalid_values_name_the_variable(env_var: str, raw: str) -> None:
    with pytest.raises(RuntimeError, match=env_var):
        ConsoleSettings.from_env({env_var: raw})


def test_environment_overrides_config_file() -> None:
    config = {"console": {"poll_interval": 4, "request_timeout": 3}}
    settings = load_settings(config, environ={"TRACE_CONSOLE_POLL_INTERVAL": "1"})
    assert settings.poll_interval == 1.0
    assert settings.request_timeout == 3.0


def test_overrides_skip_unknown_and_null_values() -> None:
    settings = ConsoleSettings().with_overrides(
        {"poll_interval": None, "handshake_timeout": "2", "colour": "blue"}
    )
    assert settings.poll_interval == 2.5
    assert settings.handshake_timeout == 2.0


def test_console_section_must_be_a_mapping() -> None:
    with pytest.raises(RuntimeError, match="console"):
        load_settings({"console": ["not", "a", "mapping"]}, environ={})


def test_load_environment_reads_dotenv(tmp_path, monkeypatch) -> None:
    # Registers the variable with monkeypatch so teardown removes what dotenv sets.
    monkeypatch.setenv("TRACE_CONSOLE_POLL_INTERVAL", "9")
    monkeypatch.delenv("TRACE_CONSOLE_POLL_INTERVAL")
    dotenv = tmp_path / ".env"
    dotenv.write_text("TRACE_CONSOLE_POLL_INTERVAL=0.75\n")
    load_environment(dotenv)
    assert ConsoleSettings.from_env().poll_interval == 0.75


def test_load_environment_ignores_missing_file(tmp_path) -> None:
    load_environment(tmp_path / "absent.env")
    assert ConsoleSettings.from_env().poll_interval == 2.5


def test_minimal_config_loads_cleanly() -> None:
    settings = load_settings(MINIMAL_CONSOLE_CONFIG, environ={})
    assert settings == ConsoleSettings()
    logging_section = MINIMAL_CONSOLE_CONFIG["logging"]
    assert LoggerConfig.from_mapping(logging_section).log_level == "INFO"
