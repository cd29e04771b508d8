"""
Transaction Execution Layer

Transaction models and the nonce manager used by the local signer.
"""

from .models import MessageSubmission, TransactionReceipt, TransactionRequest
from .nonce_manager import NonceManager, NonceState

__all__ = [
    "MessageSubmission",
    "TransactionReceipt",
    "TransactionRequest",
    "NonceManager",
    "NonceState",
]
