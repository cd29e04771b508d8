"""
Nonce management for the bridge signer.

Reserves nonces per (chain, address) so that approvals and sends prepared
back to back never collide, and hands unused nonces back when a
transaction fails before broadcast.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol, Set


class NonceSource(Protocol):
    async def get_transaction_count(self, chain_id: int, address: str) -> int: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NonceState:
    """Tracks nonce state for an address on a chain."""
    address: str
    chain_id: int
    confirmed_nonce: int                        # Last confirmed on-chain
    pending_nonce: int                          # Next available for use
    reserved_nonces: Set[int] = field(default_factory=set)
    last_updated: datetime = field(default_factory=_now)


class NonceManager:
    """
    Hands out nonces for a signer.

    Features:
    - Tracks pending nonces to avoid conflicts
    - Syncs with the pending on-chain count before each reservation
    - Releases nonces of transactions that never reached the network
    """

    def __init__(self, source: NonceSource):
        self._source = source
        self._states: Dict[str, NonceState] = {}  # key: "{chain_id}:{address}"
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_key(self, chain_id: int, address: str) -> str:
        return f"{chain_id}:{address.lower()}"

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def get_next_nonce(self, address: str, chain_id: int, sync: bool = True) -> int:
        """
        Reserve and return the next available nonce for an address.

        Args:
            address: The wallet address
            chain_id: The chain ID
            sync: Whether to sync with on-chain state first
        """
        key = self._get_key(chain_id, address)

        async with self._get_lock(key):
            if key not in self._states or sync:
                on_chain_nonce = await self._source.get_transaction_count(chain_id, address)

                if key not in self._states:
                    self._states[key] = NonceState(
                        address=address.lower(),
                        chain_id=chain_id,
                        confirmed_nonce=on_chain_nonce,
                        pending_nonce=on_chain_nonce,
                    )
                else:
                    # Never move pending backwards
                    state = self._states[key]
                    state.confirmed_nonce = on_chain_nonce
                    state.reserved_nonces = {n for n in state.reserved_nonces if n >= on_chain_nonce}
                    if on_chain_nonce > state.pending_nonce:
                        state.pending_nonce = on_chain_nonce
                    state.last_updated = _now()

            state = self._states[key]

            nonce = state.pending_nonce
            while nonce in state.reserved_nonces:
                nonce += 1

            state.reserved_nonces.add(nonce)
            state.pending_nonce = nonce + 1

            return nonce

    async def release_nonce(self, address: str, chain_id: int, nonce: int) -> None:
        """Release a reserved nonce (transaction failed before broadcast)."""
        key = self._get_key(chain_id, address)

        async with self._get_lock(key):
            state = self._states.get(key)
            if state is None:
                return
            state.reserved_nonces.discard(nonce)

            # If we released the highest nonce, we can reduce pending
            if nonce == state.pending_nonce - 1:
                while state.pending_nonce > state.confirmed_nonce:
                    if state.pending_nonce - 1 not in state.reserved_nonces:
                        state.pending_nonce -= 1
                    else:
                        break

    async def confirm_nonce(self, address: str, chain_id: int, nonce: int) -> None:
        """Mark a nonce as confirmed (transaction included in block)."""
        key = self._get_key(chain_id, address)

        async with self._get_lock(key):
            state = self._states.get(key)
            if state is None:
                return
            state.reserved_nonces.discard(nonce)
            if nonce >= state.confirmed_nonce:
                state.confirmed_nonce = nonce + 1

    def get_state(self, address: str, chain_id: int) -> Optional[NonceState]:
        """Get the current nonce state for an address."""
        return self._states.get(self._get_key(chain_id, address))
