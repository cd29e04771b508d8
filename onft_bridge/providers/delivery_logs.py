"""
Destination-chain delivery checks.

A message is delivered once the destination ONFT emits
``ONFTReceived(bytes32 indexed guid, ...)`` for its GUID. This source looks
for that log with ``eth_getLogs`` and, while it is absent, defers to another
status source (normally LayerZero Scan) for the in-flight state.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Optional

from ..config import settings
from ..core.tracking.models import MessageState, MessageStatus
from .onft import ONFT_RECEIVED_TOPIC
from .rpc import JsonRpcClient

if TYPE_CHECKING:  # pragma: no cover
    from .base import MessageStatusSource

logger = logging.getLogger(__name__)

_GUID_RE = re.compile(r"0x[0-9a-fA-F]{64}")


class DeliveryLogStatusSource:
    """
    ``MessageStatusSource`` reading ONFTReceived logs on one destination contract.

    The block window starts ``lookback_blocks`` before the head seen on the
    first lookup and stays fixed, so later polls still cover a delivery that
    landed right after tracking began.
    """

    def __init__(
        self,
        rpc: JsonRpcClient,
        chain_id: int,
        contract: str,
        *,
        fallback: Optional["MessageStatusSource"] = None,
        lookback_blocks: Optional[int] = None,
    ):
        self._rpc = rpc
        self.chain_id = chain_id
        self.contract = contract
        self._fallback = fallback
        self.lookback_blocks = (
            settings.delivery_log_lookback_blocks if lookback_blocks is None else lookback_blocks
        )
        self._from_block: Optional[int] = None

    async def _window_start(self) -> int:
        if self._from_block is None:
            head = await self._rpc.get_block_number(self.chain_id)
            self._from_block = max(0, head - self.lookback_blocks)
        return self._from_block

    async def get_message_status(self, guid: str) -> MessageStatus:
        if not _GUID_RE.fullmatch(guid):
            raise ValueError(f"Invalid message GUID: {guid!r}")

        logs = await self._rpc.get_logs(
            self.chain_id,
            self.contract,
            [ONFT_RECEIVED_TOPIC, guid.lower()],
            from_block=await self._window_start(),
        )
        if logs:
            tx_hash = logs[0].get("transactionHash")
            logger.info(f"Message {guid} delivered on chain {self.chain_id} in {tx_hash}")
            return MessageStatus(
                state=MessageState.DELIVERED,
                destination_tx_hash=tx_hash,
                raw_status="ONFTReceived",
            )

        if self._fallback is not None:
            return await self._fallback.get_message_status(guid)
        return MessageStatus(state=MessageState.PENDING)
