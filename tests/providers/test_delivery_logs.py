"""
Tests for delivery detection from destination-chain ONFTReceived logs.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from onft_bridge.core.tracking.models import MessageState, MessageStatus
from onft_bridge.core.tracking.tracker import MessageStatusTracker
from onft_bridge.providers.delivery_logs import DeliveryLogStatusSource
from onft_bridge.providers.onft import ONFT_RECEIVED_TOPIC


CHAIN = 84532
CONTRACT = "0x5555555555555555555555555555555555555555"
GUID = "0x" + "AB" * 32


@pytest.fixture
def rpc():
    mock = MagicMock()
    mock.get_block_number = AsyncMock(return_value=50_000)
    mock.get_logs = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def scan():
    mock = MagicMock()
    mock.get_message_status = AsyncMock(
        return_value=MessageStatus(state=MessageState.PENDING, raw_status="INFLIGHT")
    )
    return mock


class TestDeliveryLogStatusSource:
    @pytest.mark.asyncio
    async def test_received_log_means_delivered(self, rpc, scan):
        rpc.get_logs.return_value = [{"transactionHash": "0xdest", "blockNumber": "0xc350"}]
        source = DeliveryLogStatusSource(rpc, CHAIN, CONTRACT, fallback=scan, lookback_blocks=10_000)

        status = await source.get_message_status(GUID)

        assert status.state == MessageState.DELIVERED
        assert status.destination_tx_hash == "0xdest"
        rpc.get_logs.assert_awaited_once_with(
            CHAIN, CONTRACT, [ONFT_RECEIVED_TOPIC, GUID.lower()], from_block=40_000
        )
        scan.get_message_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_log_defers_to_fallback(self, rpc, scan):
        source = DeliveryLogStatusSource(rpc, CHAIN, CONTRACT, fallback=scan)

        status = await source.get_message_status(GUID)

        assert status.raw_status == "INFLIGHT"
        scan.get_message_status.assert_awaited_once_with(GUID)

    @pytest.mark.asyncio
    async def test_no_log_without_fallback_is_pending(self, rpc):
        status = await DeliveryLogStatusSource(rpc, CHAIN, CONTRACT).get_message_status(GUID)

        assert status.state == MessageState.PENDING

    @pytest.mark.asyncio
    async def test_window_start_fixed_at_first_lookup(self, rpc):
        source = DeliveryLogStatusSource(rpc, CHAIN, CONTRACT, lookback_blocks=100)

        await source.get_message_status(GUID)
        rpc.get_block_number.return_value = 60_000
        await source.get_message_status(GUID)

        rpc.get_block_number.assert_awaited_once()
        starts = [c.kwargs["from_block"] for c in rpc.get_logs.await_args_list]
        assert starts == [49_900, 49_900]

    @pytest.mark.asyncio
    async def test_window_clamped_at_genesis(self, rpc):
        rpc.get_block_number.return_value = 5
        source = DeliveryLogStatusSource(rpc, CHAIN, CONTRACT, lookback_blocks=100)

        await source.get_message_status(GUID)

        assert rpc.get_logs.await_args.kwargs["from_block"] == 0

    @pytest.mark.asyncio
    async def test_malformed_guid(self, rpc):
        with pytest.raises(ValueError):
            await DeliveryLogStatusSource(rpc, CHAIN, CONTRACT).get_message_status("0x1234")

        rpc.get_logs.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_drives_tracker_to_delivered(self, rpc, scan, source_chain, destination_chain):
        rpc.get_logs.side_effect = [[], [{"transactionHash": "0xdest"}]]
        source = DeliveryLogStatusSource(rpc, CHAIN, CONTRACT, fallback=scan)
        tracker = MessageStatusTracker(source, poll_interval_seconds=0.001, max_poll_seconds=5)

        states = [s.state async for s in tracker.track(GUID, source_chain, destination_chain)]

        assert states == [MessageState.PENDING, MessageState.DELIVERED]
