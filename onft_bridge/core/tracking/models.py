"""Message tracking models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from ..bridge.models import ChainDescriptor, TransferRequest


class MessageState(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (MessageState.DELIVERED, MessageState.FAILED, MessageState.TIMED_OUT)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MessageStatus:
    """Status reported by the messaging protocol for one GUID."""

    state: MessageState
    destination_tx_hash: Optional[str] = None
    raw_status: Optional[str] = None


@dataclass(frozen=True)
class MessageStatusSnapshot:
    guid: str
    state: MessageState
    last_checked_at: datetime = field(default_factory=utcnow)
    destination_tx_hash: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guid": self.guid,
            "state": self.state.value,
            "lastCheckedAt": self.last_checked_at.isoformat(),
            "destinationTxHash": self.destination_tx_hash,
            "error": self.error,
        }


@dataclass
class TrackedMessage:
    """An in-flight message the retry service can re-bridge."""

    guid: str
    request: TransferRequest
    source: ChainDescriptor
    destination: ChainDescriptor
    recipient: str
    submitted_at: datetime = field(default_factory=utcnow)
    retry_count: int = 0
    last_snapshot: Optional[MessageStatusSnapshot] = None
