"""Network boundary: snapshot fetches, run submission, and the push channel."""

from __future__ import annotations

from .channel import ChannelOpener, open_event_channel
from .client import RunSubmission, SubmittedRun, TraceClient
from .sse import ServerSentEvent, SSEDecoder, iter_sse

__all__ = [
    "ChannelOpener",
    "RunSubmission",
    "SSEDecoder",
    "ServerSentEvent",
    "SubmittedRun",
    "TraceClient",
    "iter_sse",
    "open_event_channel",
]
