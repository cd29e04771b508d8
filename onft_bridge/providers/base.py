"""Capability interfaces the bridge core depends on."""

from typing import Optional, Protocol, runtime_checkable

from ..core.bridge.models import ChainPair, SendParam
from ..core.execution.models import MessageSubmission, TransactionReceipt, TransactionRequest
from ..core.gas.models import FeeQuote
from ..core.tracking.models import MessageStatus


@runtime_checkable
class SigningCapability(Protocol):
    """Wallet able to sign and broadcast transactions"""

    @property
    def address(self) -> str: ...

    async def sign_and_send(self, tx: TransactionRequest) -> TransactionReceipt:
        """Sign, broadcast and return the mined receipt"""
        ...


class ChainQuery(Protocol):
    """Read access to a chain"""

    async def get_gas_price(self, chain_id: int) -> int: ...

    async def get_transaction_receipt(self, chain_id: int, tx_hash: str) -> Optional[TransactionReceipt]: ...

    async def call(self, chain_id: int, to: str, data: str, from_address: Optional[str] = None) -> str: ...


class MessageStatusSource(Protocol):
    async def get_message_status(self, guid: str) -> MessageStatus: ...


class MessagingProtocol(MessageStatusSource, Protocol):
    """Cross-chain messaging protocol plus the NFT reads the bridge needs"""

    async def quote_fee(self, bridge_address: str, chains: ChainPair, send_param: SendParam) -> FeeQuote: ...

    async def submit_message(
        self,
        signer: SigningCapability,
        bridge_address: str,
        chains: ChainPair,
        send_param: SendParam,
        fee: FeeQuote,
    ) -> MessageSubmission: ...

    async def owner_of(self, chain_id: int, contract: str, token_id: int) -> str: ...

    async def get_approved(self, chain_id: int, contract: str, token_id: int) -> str: ...

    async def is_approved_for_all(self, chain_id: int, contract: str, owner: str, operator: str) -> bool: ...

    async def peer(self, chain_id: int, bridge_address: str, endpoint_id: int) -> Optional[str]:
        """Peer address configured for ``endpoint_id``, or None when unset"""
        ...

    def build_send_param(self, chains: ChainPair, recipient: str, token_id: int) -> SendParam: ...

    def build_approve(self, chain_id: int, contract: str, spender: str, token_id: int) -> TransactionRequest: ...

    def build_set_approval_for_all(
        self, chain_id: int, contract: str, operator: str, approved: bool = True
    ) -> TransactionRequest: ...
