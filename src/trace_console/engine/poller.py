"""Fixed-cadence snapshot polling for a live view."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import Any

from trace_console.engine.aggregator import Aggregator
from trace_console.errors import ConsoleError, FailureClass, FailureNotice, TransportError
from trace_console.schema.trace import RunSnapshot

SnapshotFetcher = Callable[[str], Awaitable[RunSnapshot]]

DEFAULT_POLL_INTERVAL = 2.5


class SnapshotPoller:
    """Fetches the run snapshot on a fixed cadence and hands it to the aggregator.

    Fetches never overlap: the next one is scheduled only after the previous
    one settled. Every fetch takes a sequence ticket from the aggregator before
    it is issued, so a response that loses a race against a later one is
    discarded there. A failed fetch is recorded as :attr:`last_error` and the
    loop keeps its cadence.
    """

    def __init__(
        self,
        run_id: str,
        fetch: SnapshotFetcher,
        aggregator: Aggregator,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        logger: Any | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("Poll interval must be positive")
        self.run_id = run_id
        self.interval = interval
        self.logger = logger or logging.getLogger(__name__)
        self._fetch = fetch
        self._aggregator = aggregator
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False
        self.last_error: FailureNotice | None = None
        self.consecutive_failures = 0
        self.fetch_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def poll_once(self) -> RunSnapshot | None:
        """Run one fetch; returns the snapshot only if the aggregator accepted it."""
        async with self._lock:
            if self._cancelled:
                return None
            sequence = self._aggregator.next_sequence()
            self.fetch_count += 1
            try:
                snapshot = await self._fetch(self.run_id)
            except ConsoleError as exc:
                self._record_failure(FailureNotice.from_error(exc))
                return None
            except OSError as exc:
                self._record_failure(
                    FailureNotice.from_error(TransportError(f"Snapshot fetch failed: {exc!s}"))
                )
                return None
            except Exception as exc:
                # Injected fetchers may raise anything.
                self.logger.exception("Unexpected error fetching snapshot for %s", self.run_id)
                self._record_failure(
                    FailureNotice.of(
                        FailureClass.POLL_FAILED,
                        f"Snapshot fetch failed: {type(exc).__name__}: {exc!s}",
                    )
                )
                return None
            if self._cancelled:
                self.logger.debug("Dropping snapshot #%d fetched after cancel", sequence)
                return None
            self.last_error = None
            self.consecutive_failures = 0
            if not self._aggregator.apply_snapshot(snapshot, sequence):
                return None
            return snapshot

    def _record_failure(self, notice: FailureNotice) -> None:
        self.last_error = notice
        self.consecutive_failures += 1
        self.logger.warning(
            "Snapshot fetch for %s failed (%d in a row): %s",
            self.run_id,
            self.consecutive_failures,
            notice.message,
        )

    async def run(self, *, initial_delay: bool = False) -> None:
        """Poll until the run reaches a terminal status or the poller is cancelled."""
        if initial_delay:
            await asyncio.sleep(self.interval)
        while not self._cancelled:
            await self.poll_once()
            if self._aggregator.is_complete:
                self.logger.debug("Polling for %s stopped: run finished", self.run_id)
                return
            await asyncio.sleep(self.interval)

    def start(self, *, initial_delay: bool = False) -> asyncio.Task[None]:
        if self.running:
            raise RuntimeError(f"Poller for {self.run_id} is already running")
        self._task = asyncio.create_task(
            self.run(initial_delay=initial_delay), name=f"poll:{self.run_id}"
        )
        return self._task

    async def cancel(self) -> None:
        """Stop scheduling fetches; a response still in flight is discarded."""
        self._cancelled = True
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


__all__ = ["DEFAULT_POLL_INTERVAL", "SnapshotFetcher", "SnapshotPoller"]
