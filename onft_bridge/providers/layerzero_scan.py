"""Async client for the LayerZero Scan message API."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.tracking.models import MessageState, MessageStatus

DELIVERED_STATUSES = {"DELIVERED"}
FAILED_STATUSES = {"FAILED", "BLOCKED", "PAYLOAD_STORED"}


def map_scan_status(name: Optional[str]) -> MessageState:
    """Map a Scan status name (INFLIGHT, CONFIRMING, DELIVERED...) to a MessageState."""
    normalized = (name or "").upper()
    if normalized in DELIVERED_STATUSES:
        return MessageState.DELIVERED
    if normalized in FAILED_STATUSES:
        return MessageState.FAILED
    return MessageState.PENDING


class LayerZeroScanClient:
    """Thin wrapper around ``GET /messages/guid/{guid}``."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.layerzero_scan_base_url).rstrip("/")
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._transport = transport

    async def get_message(self, guid: str) -> Optional[Dict[str, Any]]:
        """Return the first indexed message for ``guid``, or None when not indexed yet."""
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        ) as client:
            response = await client.get(f"/messages/guid/{guid}", headers={"accept": "application/json"})
            if response.status_code == 404:
                return None
            response.raise_for_status()
            body = response.json()

        messages = body.get("data") or []
        return messages[0] if messages else None

    async def get_message_status(self, guid: str) -> MessageStatus:
        message = await self.get_message(guid)
        if message is None:
            return MessageStatus(state=MessageState.PENDING)

        status_name = (message.get("status") or {}).get("name")
        destination_tx = ((message.get("destination") or {}).get("tx") or {}).get("txHash")
        return MessageStatus(
            state=map_scan_status(status_name),
            destination_tx_hash=destination_tx,
            raw_status=status_name,
        )
