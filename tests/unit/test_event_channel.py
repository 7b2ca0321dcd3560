from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import partial
import json

from aiohttp import test_utils, web
import pytest

from trace_console.engine.stream import EventStreamConsumer
from trace_console.enums import ConnectionState, EventType
from trace_console.errors import FailureClass, StreamError
from trace_console.schema.events import PipelineEvent
from trace_console.transport.channel import open_event_channel
from tests.utils.snapshot_helpers import RUN_ID


def _frame(payload: dict) -> bytes:
    return f"data: {json.dumps(payload)}\n\n".encode()


class StreamEndpoint:
    """Event-stream handler that records what the client did to the connection."""

    def __init__(self, frames: list[bytes]) -> None:
        self.frames = frames
        self.headers: dict[str, str] = {}
        self.released = asyncio.Event()

    async def __call__(self, request: web.Request) -> web.StreamResponse:
        self.headers = dict(request.headers)
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        try:
            for frame in self.frames:
                await response.write(frame)
            # Keep-alive comments until the client goes away; bounded so a
            # failing test cannot leave the server waiting forever.
            for _ in range(500):
                await asyncio.sleep(0.01)
                await response.write(b": keep-alive\n\n")
        finally:
            self.released.set()
        return response


@asynccontextmanager
async def _serve(handler) -> AsyncIterator[str]:
    app = web.Application()
    app.router.add_get("/tickets/{run_id}/stream", handler)
    async with test_utils.TestServer(app) as server:
        yield str(server.make_url(f"/tickets/{RUN_ID}/stream"))


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.mark.asyncio
async def test_error_status_raises_stream_error() -> None:
    async def unavailable(request: web.Request) -> web.Response:
        return web.Response(status=502, text="bad gateway")

    async with _serve(unavailable) as url:
        with pytest.raises(StreamError, match="502"):
            async with open_event_channel(url):
                pass


@pytest.mark.asyncio
async def test_unreachable_host_raises_stream_error() -> None:
    async def never_called(request: web.Request) -> web.Response:
        return web.Response()

    async with _serve(never_called) as url:
        pass

    with pytest.raises(StreamError, match="failed"):
        async with open_event_channel(url, connect_timeout=1):
            pass


@pytest.mark.asyncio
async def test_channel_requests_event_stream() -> None:
    endpoint = StreamEndpoint([_frame({"type": "connected", "ticket_id": RUN_ID})])

    async with _serve(endpoint) as url:
        async with open_event_channel(url, headers={"X-Trace": "1"}) as lines:
            first = await lines.readline()
        await asyncio.wait_for(endpoint.released.wait(), timeout=2)

    assert first.startswith(b"data: ")
    assert endpoint.headers["Accept"] == "text/event-stream"
    assert endpoint.headers["X-Trace"] == "1"


@pytest.mark.asyncio
async def test_consumer_reads_real_stream_and_releases_it_on_close() -> None:
    large_detail = {"count": 1, "rows": ["x" * 100 for _ in range(500)]}
    endpoint = StreamEndpoint(
        [
            _frame({"type": "connected", "ticket_id": RUN_ID, "message": "hi"}),
            _frame({"type": "status", "agent": "triage", "ticket_id": RUN_ID}),
            b"data: {not json\n\n",
            _frame(
                {
                    "type": "tool_result",
                    "agent": "research",
                    "ticket_id": RUN_ID,
                    "detail": large_detail,
                }
            ),
        ]
    )
    received: list[PipelineEvent] = []

    async with _serve(endpoint) as url:
        consumer = EventStreamConsumer(
            RUN_ID,
            partial(open_event_channel, url),
            received.append,
            handshake_timeout=2,
        )
        async with consumer:
            await _wait_for(lambda: len(received) == 2)
            assert consumer.state == ConnectionState.CONNECTED
            assert consumer.dropped_count == 1

        assert consumer.state == ConnectionState.OFFLINE
        await asyncio.wait_for(endpoint.released.wait(), timeout=2)

    assert [event.type for event in received] == [EventType.STATUS, EventType.TOOL_RESULT]
    assert received[1].detail == large_detail
    assert consumer.last_error is None


@pytest.mark.asyncio
async def test_consumer_goes_offline_when_server_refuses_stream() -> None:
    async def unavailable(request: web.Request) -> web.Response:
        return web.Response(status=502)

    async with _serve(unavailable) as url:
        consumer = EventStreamConsumer(
            RUN_ID, partial(open_event_channel, url), lambda event: None
        )
        await asyncio.wait_for(consumer.start(), timeout=2)

    assert consumer.state == ConnectionState.OFFLINE
    assert consumer.last_error.failure_class == FailureClass.STREAM_FAILED
