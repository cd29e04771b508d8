"""Typed models used by the bridge subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from ..gas.models import GasBreakdown
from ..recovery.errors import ClassifiedError


@dataclass(frozen=True)
class DirectTransfer:
    """The bridge contract is the NFT contract itself (native ONFT)."""

    kind: str = field(default="direct", init=False)


@dataclass(frozen=True)
class AdapterTransfer:
    """The bridge contract is an adapter locking tokens of an existing collection."""

    collection_address: str
    kind: str = field(default="adapter", init=False)


TransferMode = Union[DirectTransfer, AdapterTransfer]


class ContractType(str, Enum):
    """What a contract answers to: ONFT, ONFT adapter, plain ERC721 or none of these."""

    ONFT = "onft"
    ADAPTER = "adapter"
    ERC721 = "erc721"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TransferRequest:
    """One NFT to bridge."""

    token_id: str
    nft_contract_address: str
    bridge_contract_address: str
    mode: TransferMode = field(default_factory=DirectTransfer)

    @classmethod
    def create(
        cls,
        token_id: Union[str, int],
        nft_contract_address: str,
        bridge_contract_address: str,
        original_collection_address: Optional[str] = None,
    ) -> "TransferRequest":
        mode: TransferMode = (
            AdapterTransfer(original_collection_address)
            if original_collection_address
            else DirectTransfer()
        )
        return cls(
            token_id=str(token_id),
            nft_contract_address=nft_contract_address,
            bridge_contract_address=bridge_contract_address,
            mode=mode,
        )

    @property
    def is_adapter(self) -> bool:
        return isinstance(self.mode, AdapterTransfer)

    @property
    def original_collection_address(self) -> Optional[str]:
        if isinstance(self.mode, AdapterTransfer):
            return self.mode.collection_address
        return None

    @property
    def ownership_contract_address(self) -> str:
        """Contract whose ``ownerOf`` decides who holds the token."""
        return self.original_collection_address or self.nft_contract_address


@dataclass(frozen=True)
class ChainDescriptor:
    chain_id: int
    endpoint_id: int
    name: str
    native_symbol: str = "ETH"
    native_decimals: int = 18

    @property
    def is_testnet(self) -> bool:
        # LayerZero V2 testnet endpoint ids are in the 40000 range
        return self.endpoint_id >= 40_000


@dataclass(frozen=True)
class ChainPair:
    source: ChainDescriptor
    destination: ChainDescriptor


@dataclass(frozen=True)
class SendParam:
    """ONFT721 V2 SendParam struct."""

    dst_eid: int
    to: bytes
    token_id: int
    extra_options: bytes = b""
    compose_msg: bytes = b""
    onft_cmd: bytes = b""

    def as_tuple(self) -> Tuple[int, bytes, int, bytes, bytes, bytes]:
        return (
            self.dst_eid,
            self.to,
            self.token_id,
            self.extra_options,
            self.compose_msg,
            self.onft_cmd,
        )


@dataclass(frozen=True)
class BridgeResult:
    """Outcome of bridging one token."""

    success: bool
    token_id: Optional[str] = None
    transaction_hash: Optional[str] = None
    message_guid: Optional[str] = None
    gas_breakdown: Optional[GasBreakdown] = None
    destination_contract_address: Optional[str] = None
    error: Optional[ClassifiedError] = None
    scan_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "tokenId": self.token_id,
            "transactionHash": self.transaction_hash,
            "messageGuid": self.message_guid,
            "gasBreakdown": self.gas_breakdown.to_dict() if self.gas_breakdown else None,
            "destinationContractAddress": self.destination_contract_address,
            "error": self.error.to_dict() if self.error else None,
            "scanUrl": self.scan_url,
        }


class ItemState(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ItemProgress:
    token_id: str
    state: ItemState = ItemState.PENDING


@dataclass
class BatchBridgeProgress:
    """Live progress of a batch run. Mutated only by the orchestrator."""

    total: int
    completed: int = 0
    failed: int = 0
    results: List[BridgeResult] = field(default_factory=list)
    current: Optional[ItemProgress] = None

    @property
    def remaining(self) -> int:
        return self.total - self.completed - self.failed

    def record(self, result: BridgeResult) -> None:
        self.results.append(result)
        if result.success:
            self.completed += 1
        else:
            self.failed += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "current": (
                {"tokenId": self.current.token_id, "state": self.current.state.value}
                if self.current
                else None
            ),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class BatchBridgeResult:
    total: int
    succeeded: int
    failed: int
    results: Tuple[BridgeResult, ...]
    total_gas_breakdown: Optional[GasBreakdown] = None

    @property
    def success(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
            "totalGasBreakdown": (
                self.total_gas_breakdown.to_dict() if self.total_gas_breakdown else None
            ),
        }
