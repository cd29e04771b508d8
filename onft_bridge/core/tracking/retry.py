"""
Manual retry of failed or stuck in-flight messages.

A retry re-bridges the token with a new transaction. The new message has a
new GUID and must be tracked as a fresh stream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Optional

from ...config import settings
from ..recovery.errors import classify_error
from .models import MessageState, MessageStatusSnapshot, TrackedMessage, utcnow

if TYPE_CHECKING:  # pragma: no cover
    from ...providers.base import SigningCapability
    from ..bridge.executor import BridgeExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryResult:
    success: bool
    retry_count: int
    transaction_hash: Optional[str] = None
    guid: Optional[str] = None
    error: Optional[str] = None
    message: Optional[TrackedMessage] = None


class MessageRetryService:
    def __init__(
        self,
        executor: "BridgeExecutor",
        *,
        max_retries: Optional[int] = None,
        stuck_after: Optional[timedelta] = None,
    ):
        self._executor = executor
        self.max_retries = settings.max_message_retries if max_retries is None else max_retries
        self.stuck_after = stuck_after or timedelta(minutes=settings.stuck_message_minutes)

    def is_stuck(
        self,
        snapshot: MessageStatusSnapshot,
        submitted_at: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> bool:
        """Pending (or timed out) for longer than the stuck threshold."""
        if snapshot.state not in (MessageState.PENDING, MessageState.TIMED_OUT):
            return False
        if submitted_at is None:
            return False
        return (now or utcnow()) - submitted_at > self.stuck_after

    def can_retry(
        self,
        snapshot: MessageStatusSnapshot,
        submitted_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        if snapshot.state == MessageState.FAILED:
            return True
        if self.is_stuck(snapshot, submitted_at, now):
            return True
        if snapshot.error:
            return classify_error(snapshot.error).retryable
        return False

    def retry_reason(
        self,
        snapshot: MessageStatusSnapshot,
        submitted_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> str:
        if snapshot.state == MessageState.FAILED:
            return "Message delivery failed"
        if self.is_stuck(snapshot, submitted_at, now):
            minutes = int(((now or utcnow()) - submitted_at).total_seconds() // 60)
            return f"Message stuck in transit ({minutes} minutes)"
        if snapshot.error:
            return f"Error: {snapshot.error}"
        return "Message needs retry"

    def recovery_suggestions(
        self,
        snapshot: MessageStatusSnapshot,
        submitted_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> List[str]:
        suggestions: List[str] = []

        if snapshot.state == MessageState.FAILED:
            suggestions += [
                "The message delivery failed on the destination chain",
                "Try retrying the bridge transaction",
                "Check that the destination contract is properly configured",
                "Verify peer configuration between chains",
            ]

        if self.is_stuck(snapshot, submitted_at, now):
            suggestions += [
                "Message has been in transit for an extended period",
                "This may indicate network congestion or configuration issues",
                "Try retrying the bridge transaction",
                "Check LayerZero Scan for detailed message status",
            ]

        if snapshot.error:
            suggestions += list(classify_error(snapshot.error).recovery)

        if not suggestions:
            suggestions = [
                "Check LayerZero Scan for detailed message information",
                "Verify your wallet connection and network",
            ]
        return suggestions

    async def retry_message(self, message: TrackedMessage, signer: "SigningCapability") -> RetryResult:
        """Re-bridge the token of ``message``. Never raises."""
        if message.retry_count >= self.max_retries:
            return RetryResult(
                success=False,
                retry_count=message.retry_count,
                error=f"Maximum retry limit ({self.max_retries}) reached",
            )

        logger.info(f"Retrying message {message.guid} (retry {message.retry_count + 1}/{self.max_retries})")
        result = await self._executor.execute(
            message.request,
            message.source,
            message.destination,
            message.recipient,
            signer,
        )
        retry_count = message.retry_count + 1

        if result.success and result.message_guid:
            follow_up = replace(
                message,
                guid=result.message_guid,
                submitted_at=utcnow(),
                retry_count=retry_count,
                last_snapshot=None,
            )
            return RetryResult(
                success=True,
                retry_count=retry_count,
                transaction_hash=result.transaction_hash,
                guid=result.message_guid,
                message=follow_up,
            )

        if result.success:
            error = "Retry transaction mined but no message GUID was emitted"
        elif result.error is not None:
            error = result.error.user_message or result.error.message
        else:
            error = "Bridge retry failed"
        return RetryResult(
            success=False,
            retry_count=retry_count,
            transaction_hash=result.transaction_hash,
            error=error,
        )
