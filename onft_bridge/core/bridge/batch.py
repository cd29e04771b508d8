"""
Batch Orchestrator

Bridges a list of NFTs one after another. Items share the signer's nonce
sequence, so each item is submitted and observed before the next starts.
The run is a single pass: failed items are reported, never retried here.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

import structlog

from ...config import settings
from ..gas.estimator import aggregate_breakdowns
from ..recovery.errors import ErrorKind, build_classified
from .executor import BridgeExecutor
from .models import (
    BatchBridgeProgress,
    BatchBridgeResult,
    BridgeResult,
    ChainDescriptor,
    ItemProgress,
    ItemState,
    TransferRequest,
)

if TYPE_CHECKING:  # pragma: no cover
    from ...providers.base import MessagingProtocol, SigningCapability

ProgressCallback = Callable[[BatchBridgeProgress], None]


def cancelled_result(request: TransferRequest) -> BridgeResult:
    return BridgeResult(
        success=False,
        token_id=request.token_id,
        error=build_classified(
            ErrorKind.CANCELLED,
            f"Batch cancelled before token {request.token_id} was submitted",
        ),
    )


class BatchOrchestrator:
    def __init__(
        self,
        executor: BridgeExecutor,
        protocol: Optional["MessagingProtocol"] = None,
        *,
        batch_approvals: Optional[bool] = None,
        default_currency: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._executor = executor
        self._protocol = protocol
        self._batch_approvals = settings.batch_approvals if batch_approvals is None else batch_approvals
        self._default_currency = default_currency
        self._logger = logger or logging.getLogger(__name__)

    async def prepare_approvals(
        self,
        requests: Sequence[TransferRequest],
        source: ChainDescriptor,
        signer: "SigningCapability",
    ) -> Dict[str, bool]:
        """
        Grant ``setApprovalForAll`` once per adapter collection.

        Returns a map of ``collection:bridge`` to whether the adapter is
        approved afterwards. Failures are logged; the affected items then
        fail (or approve) individually in the executor.
        """
        groups: "OrderedDict[tuple, List[TransferRequest]]" = OrderedDict()
        for request in requests:
            if request.is_adapter:
                key = (request.ownership_contract_address.lower(), request.bridge_contract_address.lower())
                groups.setdefault(key, []).append(request)

        outcome: Dict[str, bool] = {}
        if not groups or self._protocol is None:
            return outcome

        for (collection, bridge), items in groups.items():
            label = f"{collection}:{bridge}"
            try:
                if await self._protocol.is_approved_for_all(source.chain_id, collection, signer.address, bridge):
                    outcome[label] = True
                    continue

                self._logger.info(
                    f"Approving adapter {bridge} for all tokens of {collection} ({len(items)} items)"
                )
                receipt = await signer.sign_and_send(
                    self._protocol.build_set_approval_for_all(source.chain_id, collection, bridge, True)
                )
                outcome[label] = receipt.succeeded
                if not receipt.succeeded:
                    self._logger.warning(f"setApprovalForAll reverted for {collection}: {receipt.transaction_hash}")
            except Exception as e:
                self._logger.warning(f"Collection approval failed for {collection}: {e!r}")
                outcome[label] = False

        return outcome

    async def run_batch(
        self,
        requests: Sequence[TransferRequest],
        source: ChainDescriptor,
        destination: ChainDescriptor,
        recipient: str,
        signer: "SigningCapability",
        on_progress: Optional[ProgressCallback] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchBridgeResult:
        """
        Run every request in order and return the terminal result.

        ``on_progress`` is called once per item, after the item resolves.
        Setting ``cancel_event`` stops the run from starting further items;
        those are recorded as ``Cancelled`` failures.
        """
        progress = BatchBridgeProgress(total=len(requests))
        batch_id = uuid.uuid4().hex[:12]

        with structlog.contextvars.bound_contextvars(batch_id=batch_id):
            self._logger.info(
                f"Batch {batch_id}: bridging {len(requests)} items from {source.name} to {destination.name}"
            )

            if self._batch_approvals and not self._is_cancelled(cancel_event):
                await self.prepare_approvals(requests, source, signer)

            for request in requests:
                if self._is_cancelled(cancel_event):
                    progress.current = ItemProgress(request.token_id, ItemState.FAILED)
                    self._resolve(progress, cancelled_result(request), on_progress)
                    continue

                progress.current = ItemProgress(request.token_id, ItemState.EXECUTING)
                result = await self._executor.execute(request, source, destination, recipient, signer)
                progress.current.state = ItemState.COMPLETED if result.success else ItemState.FAILED
                self._resolve(progress, result, on_progress)

            successful = [r.gas_breakdown for r in progress.results if r.success and r.gas_breakdown]
            total_gas = (
                aggregate_breakdowns(successful, self._default_currency or source.native_symbol)
                if successful
                else None
            )

            self._logger.info(
                f"Batch {batch_id} finished: {progress.completed} succeeded, {progress.failed} failed"
            )

        return BatchBridgeResult(
            total=progress.total,
            succeeded=progress.completed,
            failed=progress.failed,
            results=tuple(progress.results),
            total_gas_breakdown=total_gas,
        )

    def _resolve(
        self,
        progress: BatchBridgeProgress,
        result: BridgeResult,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        progress.record(result)
        if on_progress is None:
            return
        try:
            on_progress(progress)
        except Exception:
            # A broken observer must not abort items that are still to run
            self._logger.exception("Progress callback raised")

    @staticmethod
    def _is_cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
        return cancel_event is not None and cancel_event.is_set()
