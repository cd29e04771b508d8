"""
Tests for message status tracking streams.
"""

import asyncio

import httpx
import pytest

from onft_bridge.core.tracking.models import MessageState, MessageStatus
from onft_bridge.core.tracking.tracker import MessageStatusTracker


GUID = "0x" + "ab" * 32
PENDING = MessageStatus(state=MessageState.PENDING)
DELIVERED = MessageStatus(state=MessageState.DELIVERED, destination_tx_hash="0xdest")
FAILED = MessageStatus(state=MessageState.FAILED)


class StepClock:
    """Monotonic clock advancing one second per reading."""

    def __init__(self):
        self.now = -1.0

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


def make_tracker(protocol, *, max_poll_seconds=60.0, clock=None) -> MessageStatusTracker:
    kwargs = {"poll_interval_seconds": 0.001, "max_poll_seconds": max_poll_seconds}
    if clock is not None:
        kwargs["clock"] = clock
    return MessageStatusTracker(protocol, **kwargs)


async def collect(stream):
    return [snapshot async for snapshot in stream]


class TestTrack:
    @pytest.mark.asyncio
    async def test_delivered_after_pending(self, protocol, source_chain, destination_chain):
        protocol.statuses = [PENDING, PENDING, DELIVERED]
        tracker = make_tracker(protocol)

        snapshots = await collect(tracker.track(GUID, source_chain, destination_chain))

        assert [s.state for s in snapshots] == [
            MessageState.PENDING,
            MessageState.PENDING,
            MessageState.DELIVERED,
        ]
        assert snapshots[-1].destination_tx_hash == "0xdest"
        assert all(s.guid == GUID for s in snapshots)

    @pytest.mark.asyncio
    async def test_failed_is_terminal(self, protocol, source_chain, destination_chain):
        protocol.statuses = [FAILED, DELIVERED]
        tracker = make_tracker(protocol)

        snapshots = await collect(tracker.track(GUID, source_chain, destination_chain))

        assert [s.state for s in snapshots] == [MessageState.FAILED]
        assert protocol.status_calls == 1

    @pytest.mark.asyncio
    async def test_pending_forever_times_out(self, protocol, source_chain, destination_chain):
        protocol.statuses = [PENDING]
        tracker = make_tracker(protocol, max_poll_seconds=2.5, clock=StepClock())

        snapshots = await asyncio.wait_for(
            collect(tracker.track(GUID, source_chain, destination_chain)), timeout=5
        )

        assert [s.state for s in snapshots] == [
            MessageState.PENDING,
            MessageState.PENDING,
            MessageState.PENDING,
            MessageState.TIMED_OUT,
        ]
        assert snapshots[-1].state.is_terminal

    @pytest.mark.asyncio
    async def test_real_clock_budget_is_bounded(self, protocol, source_chain, destination_chain):
        protocol.statuses = [PENDING]
        tracker = MessageStatusTracker(protocol, poll_interval_seconds=0.01, max_poll_seconds=0.03)

        last = await asyncio.wait_for(tracker.track(GUID, source_chain, destination_chain).wait(), timeout=5)

        assert last.state == MessageState.TIMED_OUT

    @pytest.mark.asyncio
    async def test_poll_error_is_pending_with_error(self, protocol, source_chain, destination_chain):
        protocol.statuses = [httpx.ConnectError("All connection attempts failed"), DELIVERED]
        tracker = make_tracker(protocol)

        snapshots = await collect(tracker.track(GUID, source_chain, destination_chain))

        assert snapshots[0].state == MessageState.PENDING
        assert snapshots[0].error
        assert snapshots[1].state == MessageState.DELIVERED
        assert snapshots[1].error is None

    @pytest.mark.asyncio
    async def test_stream_is_restartable(self, protocol, source_chain, destination_chain):
        protocol.statuses = [DELIVERED]
        stream = make_tracker(protocol).track(GUID, source_chain, destination_chain)

        first = await collect(stream)
        second = await collect(stream)

        assert len(first) == len(second) == 1
        assert protocol.status_calls == 2

    @pytest.mark.asyncio
    async def test_cancel_ends_stream_silently(self, protocol, source_chain, destination_chain):
        protocol.statuses = [PENDING]
        cancel_event = asyncio.Event()
        tracker = MessageStatusTracker(protocol, poll_interval_seconds=10, max_poll_seconds=60)
        stream = tracker.track(GUID, source_chain, destination_chain, cancel_event=cancel_event)

        snapshots = []

        async def consume():
            async for snapshot in stream:
                snapshots.append(snapshot)
                cancel_event.set()

        await asyncio.wait_for(consume(), timeout=5)

        assert [s.state for s in snapshots] == [MessageState.PENDING]

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, protocol, source_chain, destination_chain):
        cancel_event = asyncio.Event()
        cancel_event.set()
        stream = make_tracker(protocol).track(GUID, source_chain, destination_chain, cancel_event=cancel_event)

        assert await collect(stream) == []
        assert protocol.status_calls == 0

    @pytest.mark.asyncio
    async def test_independent_streams(self, protocol, source_chain, destination_chain):
        tracker = make_tracker(protocol)
        guids = [f"0x{i:064x}" for i in range(3)]

        results = await asyncio.gather(
            *(tracker.track(g, source_chain, destination_chain).wait() for g in guids)
        )

        assert [r.guid for r in results] == guids
        assert all(r.state == MessageState.DELIVERED for r in results)

    @pytest.mark.asyncio
    async def test_poll_once(self, protocol):
        snapshot = await make_tracker(protocol).poll_once(GUID)

        assert snapshot.state == MessageState.DELIVERED
        assert snapshot.to_dict()["state"] == "delivered"


class HangingSource:
    """Status source whose lookups never return on their own."""

    def __init__(self):
        self.calls = 0
        self.cancelled = 0

    async def get_message_status(self, guid):
        self.calls += 1
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise


class SlowSource:
    def __init__(self, delay):
        self.delay = delay

    async def get_message_status(self, guid):
        await asyncio.sleep(self.delay)
        return DELIVERED


class TestStalledLookups:
    @pytest.mark.asyncio
    async def test_stalled_lookup_ends_with_timed_out(self, source_chain, destination_chain):
        source = HangingSource()
        tracker = MessageStatusTracker(source, poll_interval_seconds=0.05, max_poll_seconds=0.15)

        snapshots = await asyncio.wait_for(
            collect(tracker.track(GUID, source_chain, destination_chain)), timeout=2
        )

        assert [s.state for s in snapshots] == [MessageState.TIMED_OUT]
        assert source.calls == 1
        await asyncio.sleep(0.01)
        assert source.cancelled == 1

    @pytest.mark.asyncio
    async def test_cancel_during_stalled_lookup_ends_stream(self, source_chain, destination_chain):
        source = HangingSource()
        cancel_event = asyncio.Event()
        tracker = MessageStatusTracker(source, poll_interval_seconds=0.05, max_poll_seconds=60)
        asyncio.get_running_loop().call_later(0.1, cancel_event.set)

        snapshots = await asyncio.wait_for(
            collect(tracker.track(GUID, source_chain, destination_chain, cancel_event=cancel_event)),
            timeout=1,
        )

        assert snapshots == []
        assert source.calls == 1

    @pytest.mark.asyncio
    async def test_slow_lookup_within_budget_still_delivers(self, source_chain, destination_chain):
        tracker = MessageStatusTracker(SlowSource(0.02), poll_interval_seconds=0.01, max_poll_seconds=5)

        last = await asyncio.wait_for(tracker.track(GUID, source_chain, destination_chain).wait(), timeout=2)

        assert last.state == MessageState.DELIVERED
        assert last.destination_tx_hash == "0xdest"
