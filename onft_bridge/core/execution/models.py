"""
Transaction execution models and types.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class TransactionRequest:
    """An unsigned contract call to be signed and broadcast."""
    chain_id: int
    to: str
    data: str                                   # Encoded calldata (hex)
    value: int = 0                              # Wei to send
    gas_limit: Optional[int] = None
    description: str = ""


@dataclass(frozen=True)
class TransactionReceipt:
    """Mined transaction receipt (subset used by the bridge)."""
    transaction_hash: str
    status: int                                 # 1 success, 0 reverted
    block_number: Optional[int] = None
    gas_used: int = 0
    effective_gas_price: int = 0
    logs: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @property
    def fee_wei(self) -> int:
        return self.gas_used * self.effective_gas_price

    @classmethod
    def from_rpc(cls, payload: Dict[str, Any]) -> "TransactionReceipt":
        """Build from an ``eth_getTransactionReceipt`` result."""
        def _int(value: Any) -> int:
            if value is None:
                return 0
            if isinstance(value, str):
                return int(value, 16)
            return int(value)

        return cls(
            transaction_hash=payload.get("transactionHash", ""),
            status=_int(payload.get("status")),
            block_number=_int(payload.get("blockNumber")) if payload.get("blockNumber") else None,
            gas_used=_int(payload.get("gasUsed")),
            effective_gas_price=_int(payload.get("effectiveGasPrice")),
            logs=list(payload.get("logs") or []),
        )


@dataclass(frozen=True)
class MessageSubmission:
    """A mined send() and the messaging GUID it produced."""
    receipt: TransactionReceipt
    guid: Optional[str]

    @property
    def transaction_hash(self) -> str:
        return self.receipt.transaction_hash
