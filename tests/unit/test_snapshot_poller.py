from __future__ import annotations

import asyncio
import logging

import pytest

from trace_console.engine.aggregator import Aggregator
from trace_console.engine.poller import SnapshotPoller
from trace_console.errors import FailureClass, TransportError
from tests.utils.snapshot_helpers import (
    RUN_ID,
    ScriptedFetcher,
    build_snapshot,
    settle,
    stage_record,
)


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        SnapshotPoller(RUN_ID, ScriptedFetcher([]), Aggregator(RUN_ID), interval=0)


@pytest.mark.asyncio
async def test_poll_once_applies_snapshot() -> None:
    aggregator = Aggregator(RUN_ID)
    snapshot = build_snapshot(stage_record("triage", "running"))
    poller = SnapshotPoller(RUN_ID, ScriptedFetcher([snapshot]), aggregator)

    assert await poller.poll_once() is snapshot
    assert aggregator.snapshot is snapshot
    assert poller.last_error is None


@pytest.mark.asyncio
async def test_failed_fetch_becomes_state_and_polling_continues() -> None:
    aggregator = Aggregator(RUN_ID)
    recovered = build_snapshot(stage_record("triage", "completed"))
    fetcher = ScriptedFetcher(
        [TransportError("boom", status_code=503), ConnectionResetError("reset"), recovered]
    )
    poller = SnapshotPoller(RUN_ID, fetcher, aggregator, interval=0.01)

    assert await poller.poll_once() is None
    assert poller.last_error is not None
    assert poller.last_error.failure_class == FailureClass.POLL_FAILED
    assert poller.last_error.profile.shows_banner

    assert await poller.poll_once() is None
    assert poller.consecutive_failures == 2
    assert "reset" in poller.last_error.message

    assert await poller.poll_once() is recovered
    assert poller.last_error is None
    assert poller.consecutive_failures == 0


@pytest.mark.asyncio
async def test_run_stops_on_terminal_snapshot() -> None:
    aggregator = Aggregator(RUN_ID)
    fetcher = ScriptedFetcher(
        [
            build_snapshot(pipeline_status="running"),
            build_snapshot(pipeline_status="running"),
            build_snapshot(pipeline_status="completed"),
        ]
    )
    poller = SnapshotPoller(RUN_ID, fetcher, aggregator, interval=0.001)

    await asyncio.wait_for(poller.run(), timeout=2)

    assert len(fetcher.calls) == 3
    assert aggregator.is_complete


@pytest.mark.asyncio
async def test_fetches_never_overlap() -> None:
    aggregator = Aggregator(RUN_ID)
    in_flight = 0
    peak = 0

    async def slow_fetch(run_id: str):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return build_snapshot(pipeline_status="running")

    poller = SnapshotPoller(RUN_ID, slow_fetch, aggregator, interval=0.001)
    await asyncio.gather(poller.poll_once(), poller.poll_once(), poller.poll_once())
    assert peak == 1
    assert aggregator.applied_sequence == 3


@pytest.mark.asyncio
async def test_cancel_discards_in_flight_response() -> None:
    loop = asyncio.get_running_loop()
    pending = loop.create_future()
    aggregator = Aggregator(RUN_ID)
    poller = SnapshotPoller(RUN_ID, ScriptedFetcher([pending]), aggregator)

    fetch = asyncio.create_task(poller.poll_once())
    await settle()
    await poller.cancel()
    aggregator.close()
    pending.set_result(build_snapshot(pipeline_status="completed"))

    assert await fetch is None
    assert aggregator.snapshot is None
    assert not aggregator.is_complete


@pytest.mark.asyncio
async def test_cancel_stops_the_loop() -> None:
    aggregator = Aggregator(RUN_ID)
    fetcher = ScriptedFetcher([build_snapshot(pipeline_status="running")])
    poller = SnapshotPoller(RUN_ID, fetcher, aggregator, interval=0.005)

    task = poller.start()
    await asyncio.sleep(0.03)
    await poller.cancel()
    calls = len(fetcher.calls)
    await asyncio.sleep(0.03)

    assert task.done()
    assert not poller.running
    assert len(fetcher.calls) == calls
    assert await poller.poll_once() is None


@pytest.mark.asyncio
async def test_unexpected_fetch_error_does_not_end_the_loop(caplog) -> None:
    aggregator = Aggregator(RUN_ID)
    recovered = build_snapshot(stage_record("triage", "running"), pipeline_status="running")
    fetcher = ScriptedFetcher([ValueError("bad payload"), recovered])
    poller = SnapshotPoller(RUN_ID, fetcher, aggregator, interval=0.01)

    with caplog.at_level(logging.ERROR):
        assert await poller.poll_once() is None
    assert poller.last_error is not None
    assert poller.last_error.failure_class == FailureClass.POLL_FAILED
    assert "ValueError: bad payload" in poller.last_error.message
    assert "Unexpected error fetching snapshot" in caplog.text

    poller.start()
    try:
        await asyncio.wait_for(_until(lambda: aggregator.snapshot is recovered), timeout=1)
    finally:
        await poller.cancel()
    assert poller.last_error is None


@pytest.mark.asyncio
async def test_loop_survives_a_raising_fetcher() -> None:
    aggregator = Aggregator(RUN_ID)
    recovered = build_snapshot(pipeline_status="running")
    fetcher = ScriptedFetcher([KeyError("traces"), recovered])
    poller = SnapshotPoller(RUN_ID, fetcher, aggregator, interval=0.01)

    poller.start()
    try:
        await asyncio.wait_for(_until(lambda: len(fetcher.calls) >= 2), timeout=1)
        await asyncio.wait_for(_until(lambda: aggregator.snapshot is recovered), timeout=1)
    finally:
        await poller.cancel()


async def _until(predicate) -> None:
    while not predicate():
        await asyncio.sleep(0.005)
