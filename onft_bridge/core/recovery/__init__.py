"""
Error Recovery Module

Classifies bridging failures and drives single-item retries.
"""

from .errors import (
    BridgeError,
    ClassifiedError,
    ErrorKind,
    QuoteUnavailableError,
    classify_error,
)
from .policy import RetryOutcome, RetryPolicy, execute_with_retry

__all__ = [
    # Errors
    "BridgeError",
    "ClassifiedError",
    "ErrorKind",
    "QuoteUnavailableError",
    "classify_error",
    # Retry
    "RetryOutcome",
    "RetryPolicy",
    "execute_with_retry",
]
