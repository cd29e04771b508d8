"""Bridge orchestration components."""

from typing import TYPE_CHECKING

from .models import (
    AdapterTransfer,
    BatchBridgeProgress,
    BatchBridgeResult,
    BridgeResult,
    ChainDescriptor,
    ChainPair,
    ContractType,
    DirectTransfer,
    TransferRequest,
)

if TYPE_CHECKING:  # pragma: no cover
    from .batch import BatchOrchestrator
    from .executor import BridgeExecutor
    from .service import BridgeService

__all__ = [
    "AdapterTransfer",
    "BatchBridgeProgress",
    "BatchBridgeResult",
    "BridgeResult",
    "ChainDescriptor",
    "ChainPair",
    "ContractType",
    "DirectTransfer",
    "TransferRequest",
    "BatchOrchestrator",
    "BridgeExecutor",
    "BridgeService",
]

_LAZY = {
    "BatchOrchestrator": ".batch",
    "BridgeExecutor": ".executor",
    "BridgeService": ".service",
}


def __getattr__(name: str):  # pragma: no cover - simple thunk
    if name in _LAZY:
        import importlib

        return getattr(importlib.import_module(_LAZY[name], __name__), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
