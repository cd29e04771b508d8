"""
Retry policy for single-item bridges.

Batch runs never retry; callers that want automatic retries of one item
drive them through ``execute_with_retry``, which honours the classified
error's retry budget and backoff.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional

from .errors import ClassifiedError

if TYPE_CHECKING:  # pragma: no cover
    from ...providers.base import SigningCapability
    from ..bridge.executor import BridgeExecutor
    from ..bridge.models import BridgeResult, ChainDescriptor, TransferRequest

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Where a retry loop stands: attempt index, budget and next delay."""

    attempt: int = 0
    max_retries: int = 0
    delay_ms: Optional[int] = None

    @classmethod
    def after(cls, error: ClassifiedError, attempt: int, max_attempts: Optional[int] = None) -> "RetryPolicy":
        budget = error.max_retries if error.can_auto_retry else 0
        if max_attempts is not None:
            budget = min(budget, max(max_attempts - 1, 0))
        return cls(
            attempt=attempt,
            max_retries=budget,
            delay_ms=error.for_attempt(attempt).suggested_delay_ms,
        )

    @property
    def should_retry(self) -> bool:
        return self.attempt < self.max_retries

    @property
    def delay_seconds(self) -> float:
        return (self.delay_ms or 0) / 1000


@dataclass
class RetryOutcome:
    result: "BridgeResult"
    attempts: int
    errors: List[ClassifiedError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.result.success


async def execute_with_retry(
    executor: "BridgeExecutor",
    request: "TransferRequest",
    source: "ChainDescriptor",
    destination: "ChainDescriptor",
    recipient: str,
    signer: "SigningCapability",
    *,
    max_attempts: Optional[int] = None,
    cancel_event: Optional[asyncio.Event] = None,
    sleep: Sleep = asyncio.sleep,
) -> RetryOutcome:
    """
    Bridge one item, retrying retryable failures.

    Kinds that need a user action (wallet rejection, missing approval) are
    returned immediately, and so is any failure that already broadcast a
    transaction. Cancellation is checked between attempts.
    """
    errors: List[ClassifiedError] = []
    attempt = 0

    while True:
        result = await executor.execute(request, source, destination, recipient, signer)
        if result.success or result.error is None:
            return RetryOutcome(result=result, attempts=attempt + 1, errors=errors)

        errors.append(result.error)
        if result.transaction_hash:
            logger.warning(
                f"Not retrying token {request.token_id}: transaction {result.transaction_hash} was already broadcast"
            )
            return RetryOutcome(result=result, attempts=attempt + 1, errors=errors)

        policy = RetryPolicy.after(result.error, attempt, max_attempts)
        if not policy.should_retry:
            return RetryOutcome(result=result, attempts=attempt + 1, errors=errors)

        logger.info(
            f"Retrying token {request.token_id} after {result.error.kind.value} "
            f"(attempt {attempt + 2}, waiting {policy.delay_seconds:.1f}s)"
        )

        if cancel_event is not None and cancel_event.is_set():
            return RetryOutcome(result=result, attempts=attempt + 1, errors=errors, cancelled=True)
        await sleep(policy.delay_seconds)
        if cancel_event is not None and cancel_event.is_set():
            return RetryOutcome(result=result, attempts=attempt + 1, errors=errors, cancelled=True)

        attempt += 1
