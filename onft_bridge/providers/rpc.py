"""JSON-RPC client for EVM chains."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx

from ..config import settings
from ..core.execution.models import TransactionReceipt

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_FEE_WEI = 1_000_000_000


class RpcError(Exception):
    """JSON-RPC error response from a node."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    @classmethod
    def from_payload(cls, error: Any) -> "RpcError":
        if isinstance(error, dict):
            return cls(
                str(error.get("message") or error),
                code=error.get("code"),
                data=error.get("data"),
            )
        return cls(str(error))


class JsonRpcClient:
    """
    Minimal async JSON-RPC client, one endpoint per chain id.

    Implements the read side used by the bridge (gas price, receipts,
    eth_call) plus the calls the local signer needs to broadcast.
    """

    def __init__(
        self,
        rpc_urls: Optional[Dict[int, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self._rpc_urls = rpc_urls if rpc_urls is not None else settings.resolved_rpc_urls()
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.request_timeout_seconds
        )
        self._request_id = 0

    def has_chain(self, chain_id: int) -> bool:
        return chain_id in self._rpc_urls

    async def request(self, chain_id: int, method: str, params: List[Any]) -> Any:
        """Make an RPC call to the chain."""
        rpc_url = self._rpc_urls.get(chain_id)
        if not rpc_url:
            raise ValueError(f"No RPC URL configured for chain {chain_id}")

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        response = await self._client.post(rpc_url, json=payload)
        response.raise_for_status()
        result = response.json()

        if "error" in result:
            logger.debug(f"RPC {method} on chain {chain_id} failed: {result['error']}")
            raise RpcError.from_payload(result["error"])

        return result.get("result")

    async def get_gas_price(self, chain_id: int) -> int:
        return int(await self.request(chain_id, "eth_gasPrice", []), 16)

    async def get_fee_data(self, chain_id: int) -> Tuple[int, int]:
        """Return ``(max_fee_per_gas, max_priority_fee_per_gas)`` from fee history."""
        fee_history = await self.request(chain_id, "eth_feeHistory", [1, "latest", [50]])

        base_fee = int(fee_history["baseFeePerGas"][-1], 16)
        reward = fee_history.get("reward")
        priority_fee = int(reward[0][0], 16) if reward and reward[0] else DEFAULT_PRIORITY_FEE_WEI

        return base_fee * 2 + priority_fee, priority_fee

    async def get_transaction_count(self, chain_id: int, address: str) -> int:
        return int(await self.request(chain_id, "eth_getTransactionCount", [address, "pending"]), 16)

    async def get_transaction_receipt(self, chain_id: int, tx_hash: str) -> Optional[TransactionReceipt]:
        payload = await self.request(chain_id, "eth_getTransactionReceipt", [tx_hash])
        if not payload:
            return None
        return TransactionReceipt.from_rpc(payload)

    async def call(self, chain_id: int, to: str, data: str, from_address: Optional[str] = None) -> str:
        call_obj: Dict[str, Any] = {"to": to, "data": data}
        if from_address:
            call_obj["from"] = from_address
        return await self.request(chain_id, "eth_call", [call_obj, "latest"])

    async def estimate_gas(
        self,
        chain_id: int,
        from_address: str,
        to: str,
        data: str,
        value: int = 0,
    ) -> int:
        call_obj: Dict[str, Any] = {"from": from_address, "to": to, "data": data}
        if value > 0:
            call_obj["value"] = hex(value)
        return int(await self.request(chain_id, "eth_estimateGas", [call_obj]), 16)

    async def get_block_number(self, chain_id: int) -> int:
        return int(await self.request(chain_id, "eth_blockNumber", []), 16)

    async def get_logs(
        self,
        chain_id: int,
        address: str,
        topics: List[Optional[str]],
        from_block: Union[int, str] = "earliest",
        to_block: Union[int, str] = "latest",
    ) -> List[Dict[str, Any]]:
        """Event logs emitted by ``address`` matching ``topics`` (None matches any value)."""
        log_filter = {
            "address": address,
            "topics": topics,
            "fromBlock": hex(from_block) if isinstance(from_block, int) else from_block,
            "toBlock": hex(to_block) if isinstance(to_block, int) else to_block,
        }
        return await self.request(chain_id, "eth_getLogs", [log_filter]) or []

    async def send_raw_transaction(self, chain_id: int, raw_tx: str) -> str:
        return await self.request(chain_id, "eth_sendRawTransaction", [raw_tx])

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
