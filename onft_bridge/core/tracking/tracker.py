"""
Message Status Tracker

Polls the messaging protocol for one GUID and exposes the result as a
bounded, restartable async stream of snapshots.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, AsyncIterator, Callable, Optional

from ...config import settings
from ..bridge.models import ChainDescriptor
from ..recovery.errors import classify_error
from .models import MessageState, MessageStatusSnapshot, utcnow

if TYPE_CHECKING:  # pragma: no cover
    from ...providers.base import MessageStatusSource

logger = logging.getLogger(__name__)


class MessageStatusStream:
    """
    Async iterable of snapshots for one message.

    Each ``async for`` starts a fresh polling pass. The pass ends after a
    Delivered or Failed snapshot, after a final TimedOut snapshot once the
    polling budget is spent, or silently when the cancel event is set.
    """

    def __init__(
        self,
        tracker: "MessageStatusTracker",
        guid: str,
        source: ChainDescriptor,
        destination: ChainDescriptor,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self._tracker = tracker
        self.guid = guid
        self.source = source
        self.destination = destination
        self.cancel_event = cancel_event

    def __aiter__(self) -> AsyncIterator[MessageStatusSnapshot]:
        return self._tracker._poll(self.guid, self.cancel_event)

    async def wait(self) -> Optional[MessageStatusSnapshot]:
        """Drain the stream and return the last snapshot."""
        last = None
        async for snapshot in self:
            last = snapshot
        return last


class MessageStatusTracker:
    def __init__(
        self,
        status_source: "MessageStatusSource",
        *,
        poll_interval_seconds: Optional[float] = None,
        max_poll_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = status_source
        self.poll_interval = poll_interval_seconds or settings.status_poll_interval_seconds
        self.max_poll_seconds = max_poll_seconds or settings.status_max_poll_seconds
        self._clock = clock

    def track(
        self,
        guid: str,
        source: ChainDescriptor,
        destination: ChainDescriptor,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> MessageStatusStream:
        return MessageStatusStream(self, guid, source, destination, cancel_event)

    async def poll_once(self, guid: str) -> MessageStatusSnapshot:
        """Single status lookup. Lookup failures become a Pending snapshot with ``error`` set."""
        try:
            status = await self._source.get_message_status(guid)
        except Exception as e:
            classified = classify_error(e)
            logger.warning(f"Status poll for {guid} failed ({classified.kind.value}): {classified.message}")
            return MessageStatusSnapshot(
                guid=guid,
                state=MessageState.PENDING,
                last_checked_at=utcnow(),
                error=classified.message,
            )
        return MessageStatusSnapshot(
            guid=guid,
            state=status.state,
            last_checked_at=utcnow(),
            destination_tx_hash=status.destination_tx_hash,
        )

    async def _poll(
        self,
        guid: str,
        cancel_event: Optional[asyncio.Event],
    ) -> AsyncIterator[MessageStatusSnapshot]:
        started = self._clock()
        budget = self.max_poll_seconds

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return

            try:
                snapshot = await self._bounded_poll(guid, cancel_event, budget)
            except asyncio.TimeoutError:
                logger.info(f"Status lookup for {guid} outlasted the {self.max_poll_seconds}s tracking budget")
                yield self._timed_out(guid)
                return
            if snapshot is None:
                return

            yield snapshot
            if snapshot.state.is_terminal:
                return

            remaining = self.max_poll_seconds - (self._clock() - started)
            if remaining <= 0:
                logger.info(f"Stopped tracking {guid} after {self.max_poll_seconds}s without a final status")
                yield self._timed_out(guid)
                return

            delay = min(self.poll_interval, remaining)
            if await self._wait(cancel_event, delay):
                return
            budget = remaining - delay

    async def _bounded_poll(
        self,
        guid: str,
        cancel_event: Optional[asyncio.Event],
        budget: float,
    ) -> Optional[MessageStatusSnapshot]:
        """
        ``poll_once`` limited to ``budget`` seconds and raced against the cancel event.

        Returns None when the cancel event fires first and raises
        ``asyncio.TimeoutError`` when the budget runs out. The losing lookup
        is cancelled either way.
        """
        if budget <= 0:
            raise asyncio.TimeoutError()

        lookup = asyncio.ensure_future(self.poll_once(guid))
        waiters = {lookup}
        cancelled = None
        if cancel_event is not None:
            cancelled = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancelled)

        try:
            done, _ = await asyncio.wait(waiters, timeout=budget, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()

        if cancelled is not None and cancelled in done:
            return None
        if lookup in done:
            return lookup.result()
        raise asyncio.TimeoutError()

    @staticmethod
    def _timed_out(guid: str) -> MessageStatusSnapshot:
        return MessageStatusSnapshot(guid=guid, state=MessageState.TIMED_OUT, last_checked_at=utcnow())

    @staticmethod
    async def _wait(cancel_event: Optional[asyncio.Event], delay: float) -> bool:
        """Sleep for ``delay``; return True if cancelled meanwhile."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
