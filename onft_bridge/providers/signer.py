"""Local private-key signer used by the CLI and by server-side batch runs."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from eth_account import Account
from eth_utils import to_checksum_address

from ..config import settings
from ..core.execution.models import TransactionReceipt, TransactionRequest
from ..core.execution.nonce_manager import NonceManager
from .rpc import JsonRpcClient

logger = logging.getLogger(__name__)


class ReceiptTimeoutError(TimeoutError):
    """No receipt was found before the confirmation timeout."""

    def __init__(self, tx_hash: str, timeout_seconds: float):
        super().__init__(f"Transaction {tx_hash} not confirmed within {timeout_seconds}s (timed out)")
        self.tx_hash = tx_hash


class LocalAccountSigner:
    """
    Signs EIP-1559 transactions with a local key and waits for inclusion.

    Satisfies the ``SigningCapability`` protocol.
    """

    def __init__(
        self,
        private_key: str,
        rpc: JsonRpcClient,
        nonce_manager: Optional[NonceManager] = None,
        gas_limit_multiplier: Optional[float] = None,
        confirmation_timeout_seconds: Optional[float] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self._account = Account.from_key(private_key)
        self._rpc = rpc
        self._nonces = nonce_manager or NonceManager(rpc)
        self._gas_multiplier = gas_limit_multiplier or settings.gas_limit_multiplier
        self._timeout = confirmation_timeout_seconds or settings.confirmation_timeout_seconds
        self._poll_interval = poll_interval_seconds or settings.receipt_poll_interval_seconds

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_and_send(self, tx: TransactionRequest) -> TransactionReceipt:
        """Sign, broadcast and wait for the receipt of ``tx``."""
        chain_id = tx.chain_id
        gas_limit = tx.gas_limit
        if gas_limit is None:
            estimated = await self._rpc.estimate_gas(chain_id, self.address, tx.to, tx.data, tx.value)
            gas_limit = int(estimated * self._gas_multiplier)

        max_fee, priority_fee = await self._rpc.get_fee_data(chain_id)
        nonce = await self._nonces.get_next_nonce(self.address, chain_id)

        payload: Dict[str, Any] = {
            "type": 2,
            "chainId": chain_id,
            "nonce": nonce,
            "to": to_checksum_address(tx.to),
            "data": tx.data,
            "value": tx.value,
            "gas": gas_limit,
            "maxFeePerGas": max_fee,
            "maxPriorityFeePerGas": priority_fee,
        }

        try:
            signed = self._account.sign_transaction(payload)
            raw_tx = "0x" + bytes(signed.raw_transaction).hex()
            tx_hash = await self._rpc.send_raw_transaction(chain_id, raw_tx)
        except Exception:
            await self._nonces.release_nonce(self.address, chain_id, nonce)
            raise

        logger.info(f"Submitted {tx.description or 'transaction'} on chain {chain_id}: {tx_hash}")

        receipt = await self.wait_for_receipt(chain_id, tx_hash)
        await self._nonces.confirm_nonce(self.address, chain_id, nonce)
        return receipt

    async def wait_for_receipt(self, chain_id: int, tx_hash: str) -> TransactionReceipt:
        """Poll for a receipt until it appears or the timeout elapses."""
        deadline = time.monotonic() + self._timeout
        while True:
            receipt = await self._rpc.get_transaction_receipt(chain_id, tx_hash)
            if receipt is not None:
                return receipt
            if time.monotonic() >= deadline:
                raise ReceiptTimeoutError(tx_hash, self._timeout)
            await asyncio.sleep(self._poll_interval)
