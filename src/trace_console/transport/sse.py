"""Incremental decoder for ``text/event-stream`` bodies.

The pipeline pushes one JSON object per record as ``data: <json>`` followed by
a blank line. The decoder follows the event-stream field rules so comments,
keep-alives and multi-line ``data`` fields are tolerated.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass


@dataclass(frozen=True)
class ServerSentEvent:
    data: str
    event: str = "message"
    id: str | None = None
    retry: int | None = None


class SSEDecoder:
    """Turns a sequence of lines into dispatched records."""

    def __init__(self) -> None:
        self._data: list[str] = []
        self._event = ""
        self._last_id: str | None = None
        self._retry: int | None = None

    def feed_line(self, line: str) -> ServerSentEvent | None:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            if "\0" not in value:
                self._last_id = value
        elif field == "retry":
            if value.isdigit():
                self._retry = int(value)
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        if not self._data:
            self._event = ""
            return None
        record = ServerSentEvent(
            data="\n".join(self._data),
            event=self._event or "message",
            id=self._last_id,
            retry=self._retry,
        )
        self._data = []
        self._event = ""
        return record

    def reset(self) -> None:
        """Drop a partially received record, as happens when the stream ends."""
        self._data = []
        self._event = ""


async def iter_sse(lines: AsyncIterable[bytes | str]) -> AsyncIterator[ServerSentEvent]:
    decoder = SSEDecoder()
    async for raw in lines:
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        # A chunk may carry several lines when the source is not line-buffered.
        for part in line.splitlines() or [""]:
            record = decoder.feed_line(part)
            if record is not None:
                yield record
    decoder.reset()


__all__ = ["SSEDecoder", "ServerSentEvent", "iter_sse"]
