"""Push-channel consumer with handshake tracking and connection health."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from typing import Any

from trace_console.enums import ConnectionState
from trace_console.errors import (
    FailureClass,
    FailureNotice,
    MalformedEventError,
    StreamError,
)
from trace_console.schema.events import PipelineEvent, parse_event
from trace_console.transport.channel import ChannelOpener
from trace_console.transport.sse import iter_sse

EventSink = Callable[[PipelineEvent], Any]
StateListener = Callable[[ConnectionState], None]

DEFAULT_HANDSHAKE_TIMEOUT = 8.0


class EventStreamConsumer:
    """Reads one run's event stream and forwards each event to ``sink``.

    The channel starts ``DEGRADED`` and turns ``CONNECTED`` on the
    ``connected`` record. If no handshake arrives within
    ``handshake_timeout`` the channel is reported ``OFFLINE``, unless other
    events are already flowing, in which case it stays ``DEGRADED``. A broken
    or closed channel ends ``OFFLINE``; there is no reconnect, since polling
    keeps the view correct on its own.

    Use as ``async with consumer:`` so the channel is released on every exit
    path.
    """

    def __init__(
        self,
        run_id: str,
        open_channel: ChannelOpener,
        sink: EventSink,
        *,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        on_state_change: StateListener | None = None,
        logger: Any | None = None,
    ) -> None:
        if handshake_timeout <= 0:
            raise ValueError("Handshake timeout must be positive")
        self.run_id = run_id
        self.handshake_timeout = handshake_timeout
        self.logger = logger or logging.getLogger(__name__)
        self._open_channel = open_channel
        self._sink = sink
        self._on_state_change = on_state_change
        self._state = ConnectionState.OFFLINE
        self._handshake_seen = False
        self._handshake_expired = False
        self._handshake_timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._closing = False
        self.last_error: FailureNotice | None = None
        self.events_received = 0
        self.dropped_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def handshake_seen(self) -> bool:
        return self._handshake_seen

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        self.logger.debug(
            "Event stream for %s: %s -> %s", self.run_id, self._state.value, state.value
        )
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _fail(self, notice: FailureNotice) -> None:
        self.last_error = notice
        self.logger.warning("Event stream for %s: %s", self.run_id, notice.message)
        self._set_state(ConnectionState.OFFLINE)

    def _expire_handshake(self) -> None:
        self._handshake_timer = None
        if self._handshake_seen or self._closing:
            return
        self._handshake_expired = True
        self.last_error = FailureNotice.of(
            FailureClass.HANDSHAKE_TIMEOUT,
            f"No handshake within {self.handshake_timeout:g}s",
        )
        if self.events_received:
            self.logger.warning(
                "Event stream for %s never confirmed; events are flowing", self.run_id
            )
            return
        self.logger.warning(
            "Event stream for %s timed out waiting for handshake", self.run_id
        )
        self._set_state(ConnectionState.OFFLINE)

    def handle_record(self, data: str) -> PipelineEvent | None:
        """Decode one record; malformed input is counted and dropped."""
        try:
            event = parse_event(data)
        except MalformedEventError as exc:
            self.dropped_count += 1
            self.logger.warning(
                "Dropped malformed event on %s: %s", self.run_id, exc
            )
            return None
        if event.is_connection_marker:
            self._handshake_seen = True
            if self.last_error and self.last_error.failure_class == FailureClass.HANDSHAKE_TIMEOUT:
                self.last_error = None
            self._set_state(ConnectionState.CONNECTED)
            return event
        self.events_received += 1
        if self._state == ConnectionState.OFFLINE and self._handshake_expired:
            # Late traffic after a silent timeout: usable, but unconfirmed.
            self._set_state(ConnectionState.DEGRADED)
        self._sink(event)
        return event

    async def run(self) -> None:
        """Consume the channel until it ends, fails, or the task is cancelled."""
        loop = asyncio.get_running_loop()
        self._set_state(ConnectionState.DEGRADED)
        self._handshake_timer = loop.call_later(
            self.handshake_timeout, self._expire_handshake
        )
        try:
            async with self._open_channel() as lines:
                async for record in iter_sse(lines):
                    self.handle_record(record.data)
            if not self._closing:
                self._fail(
                    FailureNotice.of(
                        FailureClass.STREAM_FAILED, "Event stream closed by server"
                    )
                )
        except StreamError as exc:
            self._fail(FailureNotice.from_error(exc))
        except OSError as exc:
            self._fail(
                FailureNotice.of(FailureClass.STREAM_FAILED, f"Event stream failed: {exc!s}")
            )
        except Exception as exc:
            self.logger.exception("Unexpected error reading event stream for %s", self.run_id)
            self._fail(
                FailureNotice.of(
                    FailureClass.STREAM_FAILED,
                    f"Event stream failed: {type(exc).__name__}: {exc!s}",
                )
            )
        finally:
            if self._handshake_timer is not None:
                self._handshake_timer.cancel()
                self._handshake_timer = None
            self._set_state(ConnectionState.OFFLINE)

    def start(self) -> asyncio.Task[None]:
        if self._task is not None and not self._task.done():
            raise RuntimeError(f"Event stream for {self.run_id} is already open")
        self._closing = False
        self._set_state(ConnectionState.DEGRADED)
        self._task = asyncio.create_task(self.run(), name=f"stream:{self.run_id}")
        return self._task

    def request_close(self) -> None:
        """Cancel the consumer task without waiting for it."""
        self._closing = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def close(self) -> None:
        self.request_close()
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._set_state(ConnectionState.OFFLINE)

    async def __aenter__(self) -> EventStreamConsumer:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


__all__ = [
    "DEFAULT_HANDSHAKE_TIMEOUT",
    "EventSink",
    "EventStreamConsumer",
    "StateListener",
]
