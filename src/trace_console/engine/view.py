"""One open view of one run: aggregator, poller and push channel tied together."""

from __future__ import annotations

import asyncio
from functools import partial
import logging
from typing import TYPE_CHECKING, Any

from trace_console.constants import REVIEW_CONFIDENCE_THRESHOLD
from trace_console.engine.aggregator import Aggregator, CompletionCallback, RunRollup
from trace_console.engine.grouping import EventGroup, in_progress_group
from trace_console.engine.poller import DEFAULT_POLL_INTERVAL, SnapshotFetcher, SnapshotPoller
from trace_console.engine.stream import DEFAULT_HANDSHAKE_TIMEOUT, EventStreamConsumer
from trace_console.engine.view_state import (
    ConfidenceReport,
    StageRow,
    TokenBudget,
    confidence_report,
    mode_for_snapshot,
    stage_rows,
    token_budget,
)
from trace_console.enums import ConnectionState, PipelineStatus, StageStatus, ViewMode
from trace_console.errors import FailureClass, FailureNotice
from trace_console.schema.events import PipelineEvent
from trace_console.schema.trace import RunSnapshot
from trace_console.transport.channel import ChannelOpener, open_event_channel

if TYPE_CHECKING:
    from trace_console.config.env import ConsoleSettings
    from trace_console.transport.client import TraceClient


class RunView:
    """Live or replay view of a single run.

    Open with ``async with RunView(...) as view:``. Leaving the block stops
    polling and the push channel; a response still in flight is discarded.

    The first snapshot decides the mode. A live view polls on a fixed cadence
    and, when a channel opener is given, consumes the event stream. A replay
    view fetches once and opens nothing.
    """

    def __init__(
        self,
        run_id: str,
        fetch: SnapshotFetcher,
        *,
        open_channel: ChannelOpener | None = None,
        mode: ViewMode | None = None,
        business_finished: bool | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        review_threshold: float = REVIEW_CONFIDENCE_THRESHOLD,
        logger: Any | None = None,
    ) -> None:
        self.run_id = run_id
        self.logger = logger or logging.getLogger(__name__)
        self.review_threshold = review_threshold
        self._forced_mode = mode
        self._business_finished = business_finished
        self.mode: ViewMode | None = mode
        self.aggregator = Aggregator(run_id, logger=self.logger)
        self.poller = SnapshotPoller(
            run_id, fetch, self.aggregator, interval=poll_interval, logger=self.logger
        )
        self.stream: EventStreamConsumer | None = None
        if open_channel is not None:
            self.stream = EventStreamConsumer(
                run_id,
                open_channel,
                self.aggregator.append_event,
                handshake_timeout=handshake_timeout,
                logger=self.logger,
            )
        self._completed = asyncio.Event()
        self._started = False
        self._closed = False

    @classmethod
    def for_client(
        cls,
        client: TraceClient,
        run_id: str,
        settings: ConsoleSettings | None = None,
        **kwargs: Any,
    ) -> RunView:
        """Wire a view to the HTTP snapshot endpoint and the event-stream channel."""
        if settings is not None:
            kwargs.setdefault("poll_interval", settings.poll_interval)
            kwargs.setdefault("handshake_timeout", settings.handshake_timeout)
            kwargs.setdefault("review_threshold", settings.review_threshold)
        opener = partial(
            open_event_channel, client.stream_url(run_id), connect_timeout=client.timeout
        )
        return cls(
            run_id,
            client.fetch_snapshot_async,
            open_channel=opener,
            **kwargs,
        )

    async def start(self) -> None:
        if self._started:
            raise RuntimeError(f"View of {self.run_id} was already started")
        self._started = True
        self.aggregator.on_complete(self._handle_complete)
        initial = await self.poller.poll_once()
        if self._forced_mode is not None:
            self.mode = self._forced_mode
        elif initial is None:
            # Nothing to judge the run by yet; keep polling until it answers.
            self.mode = ViewMode.LIVE
        else:
            self.mode = mode_for_snapshot(initial, self._business_finished)
        self.logger.info("Opened %s view of run %s", self.mode.value, self.run_id)
        if self.mode != ViewMode.LIVE or self.aggregator.is_complete:
            return
        self.poller.start(initial_delay=True)
        if self.stream is not None:
            self.stream.start()

    def _handle_complete(self, snapshot: RunSnapshot) -> None:
        self._completed.set()
        if self.stream is not None:
            self.stream.request_close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.aggregator.close()
        await self.poller.cancel()
        if self.stream is not None:
            await self.stream.close()
        self.logger.debug("Closed view of run %s", self.run_id)

    async def __aenter__(self) -> RunView:
        try:
            await self.start()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def refresh(self) -> RunSnapshot | None:
        """Fetch out of cadence; still ordered against scheduled fetches."""
        return await self.poller.poll_once()

    async def wait_complete(self, timeout: float | None = None) -> RunSnapshot | None:
        """Wait for the run to finish; returns ``None`` on timeout."""
        try:
            await asyncio.wait_for(self._completed.wait(), timeout)
        except TimeoutError:
            return None
        return self.aggregator.snapshot

    def on_complete(self, callback: CompletionCallback) -> None:
        self.aggregator.on_complete(callback)

    def toggle_stage(self, step_number: int) -> bool:
        return self.aggregator.toggle_stage(step_number)

    @property
    def snapshot(self) -> RunSnapshot | None:
        return self.aggregator.snapshot

    @property
    def events(self) -> tuple[PipelineEvent, ...]:
        return self.aggregator.events

    @property
    def expanded_stages(self) -> frozenset[int]:
        return self.aggregator.expanded_stages

    @property
    def is_complete(self) -> bool:
        return self.aggregator.is_complete

    @property
    def active_stage(self) -> str | None:
        return self.aggregator.active_stage

    @property
    def connection_state(self) -> ConnectionState:
        return self.stream.state if self.stream is not None else ConnectionState.OFFLINE

    @property
    def poll_error(self) -> FailureNotice | None:
        return self.poller.last_error

    @property
    def stream_error(self) -> FailureNotice | None:
        return self.stream.last_error if self.stream is not None else None

    @property
    def banner(self) -> FailureNotice | None:
        """Failure worth a banner: a failed poll, else a failed pipeline."""
        error = self.poll_error
        if error is not None and error.profile.shows_banner:
            return error
        snapshot = self.snapshot
        if snapshot is not None and snapshot.pipeline_status == PipelineStatus.FAILED:
            failed = [t.agent for t in snapshot.stages_with_status(StageStatus.FAILED)]
            where = f" at {', '.join(failed)}" if failed else ""
            return FailureNotice.of(
                FailureClass.PIPELINE_FAILED, f"Run {self.run_id} failed{where}"
            )
        return None

    def rollup(self) -> RunRollup | None:
        return self.aggregator.rollup()

    def confidence(self) -> ConfidenceReport:
        return confidence_report(self.aggregator.stage_lookup(), self.review_threshold)

    @property
    def needs_review(self) -> bool:
        return self.confidence().needs_review

    def token_budget(self) -> TokenBudget:
        return token_budget(self.aggregator.stage_lookup())

    def stage_rows(self) -> list[StageRow]:
        return stage_rows(
            self.aggregator.stage_lookup(),
            self.aggregator.expanded_stages,
            self.aggregator.active_stage,
        )

    def event_groups(self) -> list[EventGroup]:
        return self.aggregator.event_groups()

    def current_group(self) -> EventGroup | None:
        return in_progress_group(self.aggregator.event_groups())


__all__ = ["RunView"]
