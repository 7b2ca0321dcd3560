"""aiohttp-backed push channel for the per-run event stream."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
import logging

import aiohttp

from trace_console.errors import StreamError

ChannelOpener = Callable[[], AbstractAsyncContextManager[AsyncIterable[bytes | str]]]
"""Zero-argument factory that opens the channel and yields its body lines."""

_logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_event_channel(
    url: str,
    *,
    connect_timeout: float = 10.0,
    headers: dict[str, str] | None = None,
) -> AsyncIterator[AsyncIterable[bytes]]:
    """Open ``url`` as an event stream and yield the response body line by line.

    Leaving the context closes the response and its session, which is how a
    view tears the channel down.
    """
    # The body is unbounded; only the connect phase is timed.
    timeout = aiohttp.ClientTimeout(total=None, sock_connect=connect_timeout)
    request_headers = {
        "Accept": "text/event-stream",
        "Cache-Control": "no-cache",
        **(headers or {}),
    }
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, headers=request_headers) as response:
                if response.status >= 400:
                    raise StreamError(
                        f"Event stream {url} returned status {response.status}"
                    )
                _logger.debug("Event stream %s open", url)
                yield response.content
    except aiohttp.ClientError as exc:
        raise StreamError(f"Event stream {url} failed: {exc!s}") from exc


__all__ = ["ChannelOpener", "open_event_channel"]
