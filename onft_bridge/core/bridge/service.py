"""BridgeService wires the bridge components together for API and CLI callers."""

from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional, Sequence

from ...providers.delivery_logs import DeliveryLogStatusSource
from ...providers.layerzero_scan import LayerZeroScanClient
from ...providers.onft import OnftProtocolClient
from ...providers.rpc import JsonRpcClient
from ..gas.estimator import GasEstimator
from ..gas.models import GasBreakdown
from ..recovery.policy import RetryOutcome, execute_with_retry
from ..tracking.models import MessageStatusSnapshot, TrackedMessage
from ..tracking.retry import MessageRetryService, RetryResult
from ..tracking.tracker import MessageStatusStream, MessageStatusTracker
from .batch import BatchOrchestrator, ProgressCallback
from .executor import BridgeExecutor
from .models import (
    BatchBridgeResult,
    BridgeResult,
    ChainDescriptor,
    ChainPair,
    ContractType,
    TransferRequest,
)


class BridgeService:
    """Entry point exposing bridge, batch, tracking and gas operations."""

    def __init__(
        self,
        rpc: Optional[JsonRpcClient] = None,
        protocol: Optional[OnftProtocolClient] = None,
        scan: Optional[LayerZeroScanClient] = None,
        *,
        tracker: Optional[MessageStatusTracker] = None,
    ) -> None:
        self.rpc = rpc or JsonRpcClient()
        self.scan = scan or LayerZeroScanClient()
        self.protocol = protocol or OnftProtocolClient(self.rpc, self.scan)
        self.estimator = GasEstimator(self.rpc, self.protocol)
        self.executor = BridgeExecutor(self.protocol, self.estimator)
        self.orchestrator = BatchOrchestrator(self.executor, self.protocol)
        self.tracker = tracker or MessageStatusTracker(self.protocol)
        self.retries = MessageRetryService(self.executor)

    async def execute_bridge(
        self,
        request: TransferRequest,
        source: ChainDescriptor,
        destination: ChainDescriptor,
        recipient: str,
        signer,
    ) -> BridgeResult:
        return await self.executor.execute(request, source, destination, recipient, signer)

    async def execute_bridge_with_retry(
        self,
        request: TransferRequest,
        source: ChainDescriptor,
        destination: ChainDescriptor,
        recipient: str,
        signer,
        *,
        max_attempts: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RetryOutcome:
        return await execute_with_retry(
            self.executor,
            request,
            source,
            destination,
            recipient,
            signer,
            max_attempts=max_attempts,
            cancel_event=cancel_event,
        )

    async def run_batch(
        self,
        requests: Sequence[TransferRequest],
        source: ChainDescriptor,
        destination: ChainDescriptor,
        recipient: str,
        signer,
        on_progress: Optional[ProgressCallback] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchBridgeResult:
        return await self.orchestrator.run_batch(
            requests,
            source,
            destination,
            recipient,
            signer,
            on_progress,
            cancel_event=cancel_event,
        )

    def status_source_for(self, destination: ChainDescriptor, destination_contract: Optional[str] = None):
        """
        Status source for messages to ``destination``.

        With a destination contract and an RPC endpoint for the destination
        chain, delivery is read from ONFTReceived logs and Scan covers the
        in-flight states. Otherwise Scan alone.
        """
        if destination_contract and self.rpc.has_chain(destination.chain_id):
            return DeliveryLogStatusSource(
                self.rpc, destination.chain_id, destination_contract, fallback=self.protocol
            )
        return self.protocol

    def track_message(
        self,
        guid: str,
        source: ChainDescriptor,
        destination: ChainDescriptor,
        *,
        destination_contract: Optional[str] = None,
        poll_interval_seconds: Optional[float] = None,
        max_poll_seconds: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> MessageStatusStream:
        tracker = self.tracker
        if destination_contract or poll_interval_seconds or max_poll_seconds:
            tracker = MessageStatusTracker(
                self.status_source_for(destination, destination_contract),
                poll_interval_seconds=poll_interval_seconds,
                max_poll_seconds=max_poll_seconds,
            )
        return tracker.track(guid, source, destination, cancel_event=cancel_event)

    async def get_message_status(self, guid: str) -> MessageStatusSnapshot:
        return await self.tracker.poll_once(guid)

    async def detect_contract_type(self, contract: str, chain: ChainDescriptor) -> ContractType:
        return await self.protocol.detect_contract_type(chain.chain_id, contract)

    async def get_available_destinations(
        self, bridge_address: str, source: ChainDescriptor
    ) -> List[ChainDescriptor]:
        return await self.protocol.get_available_destinations(bridge_address, source)

    async def retry_message(self, message: TrackedMessage, signer) -> RetryResult:
        return await self.retries.retry_message(message, signer)

    async def estimate_gas(
        self,
        request: TransferRequest,
        source: ChainDescriptor,
        destination: ChainDescriptor,
        recipient: Optional[str] = None,
    ) -> GasBreakdown:
        chains = ChainPair(source=source, destination=destination)
        return await self.estimator.estimate(request, chains, recipient=recipient)

    def aggregate_gas(self, breakdowns: Iterable[GasBreakdown]) -> GasBreakdown:
        return self.estimator.aggregate(breakdowns)

    async def close(self) -> None:
        await self.rpc.close()


# Singleton instance
_bridge_service: Optional[BridgeService] = None


def get_bridge_service() -> BridgeService:
    """Get the singleton bridge service instance."""
    global _bridge_service
    if _bridge_service is None:
        _bridge_service = BridgeService()
    return _bridge_service
