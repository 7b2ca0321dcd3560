"""Failure taxonomy for the poller, the stream consumer, and the run rollup.

Nothing in this module halts the engine. Transport-boundary code raises the
exceptions below; the Poller and Stream Consumer catch them and publish a
:class:`FailureNotice` as state for the presentation layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from pydantic import ConfigDict, Field

from trace_console.schema.base import TypedBaseModel


class FailureCategory(str, Enum):
    TRANSPORT = "transport"
    STREAM = "stream"
    PAYLOAD = "payload"
    PIPELINE = "pipeline"


class FailureClass(str, Enum):
    POLL_FAILED = "poll_failed"
    STREAM_FAILED = "stream_failed"
    HANDSHAKE_TIMEOUT = "handshake_timeout"
    MALFORMED_MESSAGE = "malformed_message"
    PIPELINE_FAILED = "pipeline_failed"


@dataclass(frozen=True)
class FailureProfile:
    user_visible: bool
    shows_banner: bool
    degrades_stream: bool
    category: FailureCategory
    halts_engine: bool = False


FAILURE_PROFILES: dict[FailureClass, FailureProfile] = {
    FailureClass.POLL_FAILED: FailureProfile(
        user_visible=True,
        shows_banner=True,
        degrades_stream=False,
        category=FailureCategory.TRANSPORT,
    ),
    FailureClass.STREAM_FAILED: FailureProfile(
        user_visible=True,
        shows_banner=False,
        degrades_stream=True,
        category=FailureCategory.STREAM,
    ),
    FailureClass.HANDSHAKE_TIMEOUT: FailureProfile(
        user_visible=True,
        shows_banner=False,
        degrades_stream=True,
        category=FailureCategory.STREAM,
    ),
    FailureClass.MALFORMED_MESSAGE: FailureProfile(
        user_visible=False,
        shows_banner=False,
        degrades_stream=False,
        category=FailureCategory.PAYLOAD,
    ),
    FailureClass.PIPELINE_FAILED: FailureProfile(
        user_visible=True,
        shows_banner=False,
        degrades_stream=False,
        category=FailureCategory.PIPELINE,
    ),
}


def failure_profile_for(failure_class: FailureClass) -> FailureProfile:
    profile = FAILURE_PROFILES.get(failure_class)
    if profile is None:
        raise RuntimeError(f"Missing failure profile for {failure_class.value}")
    return profile


class ConsoleError(RuntimeError):
    """Structured failure raised at the transport boundary."""

    failure_class: FailureClass
    failure_category: FailureCategory

    def __init__(self, message: str, failure_class: FailureClass) -> None:
        super().__init__(message)
        self.failure_class = failure_class
        self.failure_category = failure_profile_for(failure_class).category


class TransportError(ConsoleError):
    """A snapshot fetch or run submission did not produce a usable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, FailureClass.POLL_FAILED)
        self.status_code = status_code


class StreamError(ConsoleError):
    """The push channel could not be opened or broke while reading."""

    def __init__(self, message: str) -> None:
        super().__init__(message, FailureClass.STREAM_FAILED)


class MalformedEventError(ConsoleError):
    """A single inbound stream record could not be read as an event."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message, FailureClass.MALFORMED_MESSAGE)
        self.raw = raw


class FailureNotice(TypedBaseModel):
    """Failure surfaced as state rather than raised."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    failure_class: FailureClass = Field(
        ..., description="Machine-actionable failure classification"
    )
    message: str = Field(..., description="Human-readable failure message")
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    category: FailureCategory = Field(
        FailureCategory.TRANSPORT,
        description="Class of failure guiding how to react",
    )

    @classmethod
    def from_error(cls, error: ConsoleError) -> FailureNotice:
        return cls(
            failure_class=error.failure_class,
            message=str(error),
            category=error.failure_category,
        )

    @classmethod
    def of(cls, failure_class: FailureClass, message: str) -> FailureNotice:
        return cls(
            failure_class=failure_class,
            message=message,
            category=failure_profile_for(failure_class).category,
        )

    @property
    def profile(self) -> FailureProfile:
        return failure_profile_for(self.failure_class)


if set(FAILURE_PROFILES.keys()) != set(FailureClass):
    missing = set(FailureClass) - set(FAILURE_PROFILES.keys())
    extra = set(FAILURE_PROFILES.keys()) - set(FailureClass)
    raise RuntimeError(
        "Failure profiles must cover all failure classes: "
        f"missing={sorted(cls.value for cls in missing)} "
        f"extra={sorted(cls.value for cls in extra)}"
    )
if any(profile.halts_engine for profile in FAILURE_PROFILES.values()):
    raise RuntimeError("No failure class may halt the engine")


__all__ = [
    "ConsoleError",
    "FAILURE_PROFILES",
    "FailureCategory",
    "FailureClass",
    "FailureNotice",
    "FailureProfile",
    "MalformedEventError",
    "StreamError",
    "TransportError",
    "failure_profile_for",
]
