"""Cross-chain message status tracking."""

from .models import MessageState, MessageStatus, MessageStatusSnapshot, TrackedMessage

__all__ = ["MessageState", "MessageStatus", "MessageStatusSnapshot", "TrackedMessage"]
