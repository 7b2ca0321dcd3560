"""Logging setup for the console: colored terminal output, rotating files, telemetry.

Engine modules log through ``logging.getLogger(__name__)``; configuring the
``trace_console`` logger here is enough to route all of them.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
import datetime
from enum import Enum
import json
import logging
from logging import Handler, Logger, LogRecord, getLevelName
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
import threading
from typing import Any, ClassVar

import colorlog

ROOT_LOGGER_NAME = "trace_console"


class MetricType(Enum):
    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass
class LoggerConfig:
    """Where and how console logs are written.

    ``log_dir`` of ``None`` keeps logging on the terminal only.
    """

    log_dir: Path | None = None
    log_level: str = "INFO"
    log_file_name: str = "trace-console.log"
    max_file_size_mb: int = 10
    backup_count: int = 3
    structured_logging: bool = False
    telemetry_enabled: bool = False
    log_colors: dict[str, str] = field(default_factory=dict)
    stream: Any = None

    DEFAULT_LOG_COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "red,bg_white",
    }

    def __post_init__(self) -> None:
        self.log_level = self.log_level.upper()
        if not isinstance(getLevelName(self.log_level), int):
            raise ValueError(f"Unknown log level: {self.log_level}")
        if self.log_dir is not None:
            self.log_dir = Path(self.log_dir).resolve()
            self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_colors = self.log_colors or dict(self.DEFAULT_LOG_COLORS)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> LoggerConfig:
        """Build from the ``logging`` section of a YAML config file."""
        allowed = {
            "log_dir",
            "log_level",
            "log_file_name",
            "max_file_size_mb",
            "backup_count",
            "structured_logging",
            "telemetry_enabled",
        }
        unknown = sorted(set(data) - allowed - {"level"})
        if unknown:
            raise ValueError(f"Unknown logging settings: {', '.join(unknown)}")
        values = {key: value for key, value in data.items() if key in allowed}
        if "level" in data and "log_level" not in values:
            values["log_level"] = str(data["level"])
        return cls(**values)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, carrying any ``context`` attached to it."""

    def format(self, record: LogRecord) -> str:
        payload = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
            "context": getattr(record, "context", {}),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ContextFilter(logging.Filter):
    """Stamps the active context mapping onto every record passing a handler.

    The context lives in a :class:`~contextvars.ContextVar`, so each asyncio
    task keeps its own binding and ``asyncio.to_thread`` workers inherit it.
    """

    def __init__(self) -> None:
        super().__init__()
        self._context: ContextVar[dict[str, Any]] = ContextVar(
            f"log_context_{id(self)}", default={}
        )

    @property
    def current(self) -> dict[str, Any]:
        return self._context.get()

    @contextmanager
    def bind(self, **context: Any) -> Iterator[None]:
        token = self._context.set({**self.current, **context})
        try:
            yield
        finally:
            self._context.reset(token)

    def filter(self, record: LogRecord) -> bool:
        merged = {**self.current, **getattr(record, "context", {})}
        record.context = merged
        return True


class LoggerSettings:
    """Builds the handlers described by a :class:`LoggerConfig`."""

    _PLAIN_FORMAT = "%(asctime)s - [%(levelname)s] %(name)s: %(message)s"
    _DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

    def __init__(self, config: LoggerConfig) -> None:
        self.config = config

    def get_handlers(self) -> tuple[Handler, Handler | None]:
        return self._get_console_handler(), self._get_file_handler()

    def _get_console_handler(self) -> Handler:
        handler = colorlog.StreamHandler(self.config.stream or sys.stderr)
        if self.config.structured_logging:
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(
                colorlog.ColoredFormatter(
                    "%(log_color)s" + self._PLAIN_FORMAT,
                    datefmt=self._DATE_FORMAT,
                    log_colors=self.config.log_colors,
                )
            )
        return handler

    def _get_file_handler(self) -> RotatingFileHandler | None:
        if self.config.log_dir is None:
            return None
        file_path = self.config.log_dir / self.config.log_file_name
        try:
            handler = RotatingFileHandler(
                file_path,
                maxBytes=self.config.max_file_size_mb * 1024 * 1024,
                backupCount=self.config.backup_count,
                encoding="utf-8",
            )
        except OSError as e:
            print(f"Failed to create RotatingFileHandler: {e}", file=sys.stderr)
            return None
        handler.setFormatter(
            StructuredFormatter()
            if self.config.structured_logging
            else logging.Formatter(self._PLAIN_FORMAT, datefmt=self._DATE_FORMAT)
        )
        return handler


class LoggerManager:
    """Owns the handlers on the package logger plus a small telemetry registry."""

    def __init__(
        self,
        config: LoggerConfig | None = None,
        name: str = ROOT_LOGGER_NAME,
    ) -> None:
        self.name = name
        self.config = config or LoggerConfig()
        self.settings = LoggerSettings(self.config)
        self._context_filter = ContextFilter()
        self._handlers: list[Handler] = []
        self._metrics: dict[str, dict[str, Any]] = {}
        self._metrics_lock = threading.Lock()
        self._logger = self._configure_logger()

    def _configure_logger(self) -> Logger:
        logger = logging.getLogger(self.name)
        logger.setLevel(getLevelName(self.config.log_level))
        for handler in list(getattr(logger, "_trace_console_handlers", [])):
            logger.removeHandler(handler)
            handler.close()
        console_handler, file_handler = self.settings.get_handlers()
        for handler in (console_handler, file_handler):
            if handler is None:
                continue
            handler.addFilter(self._context_filter)
            logger.addHandler(handler)
            self._handlers.append(handler)
        logger._trace_console_handlers = list(self._handlers)  # type: ignore[attr-defined]
        logger.propagate = False
        return logger

    def get_logger(self, suffix: str | None = None) -> Logger:
        """The package logger, or one of its children for ``suffix``."""
        if suffix:
            return self._logger.getChild(suffix)
        return self._logger

    @contextmanager
    def context(self, **context_kwargs: Any) -> Iterator[Logger]:
        """Attach ``context_kwargs`` to every record emitted inside the block."""
        with self._context_filter.bind(**context_kwargs):
            yield self._logger

    def log_metric(
        self,
        metric_name: str,
        value: int | float,
        metric_type: MetricType = MetricType.COUNTER,
        tags: Mapping[str, str] | None = None,
    ) -> None:
        if not self.config.telemetry_enabled:
            return
        with self._metrics_lock:
            metric = self._metrics.setdefault(
                metric_name, {"type": metric_type.value, "value": 0, "tags": {}}
            )
            metric["type"] = metric_type.value
            metric["tags"] = dict(tags or {})
            if metric_type == MetricType.COUNTER:
                metric["value"] += value
            else:
                metric["value"] = value
        self._logger.debug("Metric recorded: %s = %s", metric_name, value)

    def get_metrics(self) -> dict[str, dict[str, Any]]:
        with self._metrics_lock:
            return {name: dict(data) for name, data in self._metrics.items()}

    def reset_metrics(self) -> None:
        with self._metrics_lock:
            self._metrics.clear()

    def flush(self) -> None:
        for handler in self._handlers:
            handler.flush()

    def shutdown(self) -> None:
        """Detach and close the handlers this manager installed."""
        for handler in self._handlers:
            self._logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self._logger._trace_console_handlers = []  # type: ignore[attr-defined]
        self._logger.propagate = True
        self._logger.setLevel(logging.NOTSET)


__all__ = [
    "ROOT_LOGGER_NAME",
    "ContextFilter",
    "LoggerConfig",
    "LoggerManager",
    "LoggerSettings",
    "MetricType",
    "StructuredFormatter",
]
