"""
Shared fakes for the bridge tests.

The fakes implement the capability protocols (signing, chain query,
messaging) in memory so the core can be exercised without a chain.
"""

from typing import Any, Dict, List, Optional

import pytest

from onft_bridge.core.bridge.chain_registry import all_chains, get_chain
from onft_bridge.core.bridge.executor import BridgeExecutor
from onft_bridge.core.bridge.models import ContractType, SendParam
from onft_bridge.core.execution.models import (
    MessageSubmission,
    TransactionReceipt,
    TransactionRequest,
)
from onft_bridge.core.gas.estimator import GasEstimator
from onft_bridge.core.gas.models import FeeQuote
from onft_bridge.core.tracking.models import MessageState, MessageStatus


SIGNER_ADDRESS = "0x1111111111111111111111111111111111111111"
PEER_ADDRESS = "0x5555555555555555555555555555555555555555"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class FakeSigner:
    """Records every transaction and returns a mined receipt."""

    def __init__(self, address: str = SIGNER_ADDRESS, status: int = 1):
        self.address = address
        self.status = status
        self.sent: List[TransactionRequest] = []
        self.fail_with: Optional[BaseException] = None

    async def sign_and_send(self, tx: TransactionRequest) -> TransactionReceipt:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(tx)
        return TransactionReceipt(
            transaction_hash=f"0x{len(self.sent):064x}",
            status=self.status,
            block_number=100 + len(self.sent),
            gas_used=100_000,
            effective_gas_price=10**9,
        )


class FakeChain:
    """ChainQuery with a fixed 1 gwei gas price."""

    def __init__(self, gas_price: int = 10**9):
        self.gas_price = gas_price
        self.error: Optional[BaseException] = None
        self.logs: List[Dict[str, Any]] = []
        self.log_queries: List[Dict[str, Any]] = []

    def has_chain(self, chain_id: int) -> bool:
        return True

    async def get_gas_price(self, chain_id: int) -> int:
        if self.error is not None:
            raise self.error
        return self.gas_price

    async def get_transaction_receipt(self, chain_id: int, tx_hash: str):
        return None

    async def call(self, chain_id: int, to: str, data: str, from_address: Optional[str] = None) -> str:
        return "0x"

    async def get_block_number(self, chain_id: int) -> int:
        return 1_000

    async def get_logs(self, chain_id: int, address: str, topics, from_block=0, to_block="latest"):
        self.log_queries.append({"chain_id": chain_id, "address": address, "topics": topics})
        return self.logs

    async def close(self) -> None:
        pass


class FakeProtocol:
    """
    MessagingProtocol backed by dictionaries.

    ``quote_errors`` / ``submit_errors`` map token ids to the exception the
    call should raise. ``statuses`` is consumed one per status poll; the last
    entry repeats.
    """

    def __init__(self):
        self.owner = SIGNER_ADDRESS
        self.peer_address: Optional[str] = PEER_ADDRESS
        self.approved = ZERO_ADDRESS
        self.approved_for_all = False
        self.native_fee = 10**15
        self.destination_fee = 4 * 10**14
        self.quote_errors: Dict[int, BaseException] = {}
        self.submit_errors: Dict[int, BaseException] = {}
        self.statuses: List[Any] = [MessageStatus(state=MessageState.DELIVERED)]
        self.status_calls = 0
        self.sent_log: List[TransactionRequest] = []
        self.contract_type = ContractType.ONFT

    async def owner_of(self, chain_id: int, contract: str, token_id: int) -> str:
        return self.owner

    async def get_approved(self, chain_id: int, contract: str, token_id: int) -> str:
        return self.approved

    async def is_approved_for_all(self, chain_id: int, contract: str, owner: str, operator: str) -> bool:
        if self.approved_for_all:
            return True
        return any(
            tx.description == "setApprovalForAll" and tx.to.lower() == contract.lower()
            for tx in self.sent_log
        )

    async def peer(self, chain_id: int, bridge_address: str, endpoint_id: int) -> Optional[str]:
        return self.peer_address

    async def detect_contract_type(self, chain_id: int, contract: str) -> ContractType:
        return self.contract_type

    async def get_available_destinations(self, bridge_address: str, source):
        if self.peer_address is None:
            return []
        return [
            chain for chain in all_chains()
            if chain.chain_id != source.chain_id and chain.is_testnet == source.is_testnet
        ]

    def build_send_param(self, chains, recipient: str, token_id: int) -> SendParam:
        return SendParam(
            dst_eid=chains.destination.endpoint_id,
            to=bytes.fromhex(recipient[2:]).rjust(32, b"\x00"),
            token_id=token_id,
        )

    async def quote_fee(self, bridge_address: str, chains, send_param: SendParam) -> FeeQuote:
        if send_param.token_id in self.quote_errors:
            raise self.quote_errors[send_param.token_id]
        return FeeQuote(native_fee=self.native_fee, destination_execution_fee=self.destination_fee)

    async def submit_message(self, signer, bridge_address: str, chains, send_param: SendParam, fee: FeeQuote):
        if send_param.token_id in self.submit_errors:
            raise self.submit_errors[send_param.token_id]
        receipt = await signer.sign_and_send(
            TransactionRequest(
                chain_id=chains.source.chain_id,
                to=bridge_address,
                data="0x",
                value=fee.native_fee,
                description="send",
            )
        )
        return MessageSubmission(receipt=receipt, guid=f"0x{send_param.token_id:064x}")

    async def get_message_status(self, guid: str) -> MessageStatus:
        index = min(self.status_calls, len(self.statuses) - 1)
        self.status_calls += 1
        status = self.statuses[index]
        if isinstance(status, BaseException):
            raise status
        return status

    def build_approve(self, chain_id: int, contract: str, spender: str, token_id: int) -> TransactionRequest:
        return TransactionRequest(chain_id=chain_id, to=contract, data="0x", description="approve")

    def build_set_approval_for_all(self, chain_id: int, contract: str, operator: str, approved: bool = True):
        return TransactionRequest(chain_id=chain_id, to=contract, data="0x", description="setApprovalForAll")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def source_chain():
    return get_chain("sepolia")


@pytest.fixture
def destination_chain():
    return get_chain("base-sepolia")


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def protocol(signer: FakeSigner) -> FakeProtocol:
    fake = FakeProtocol()
    fake.sent_log = signer.sent
    return fake


@pytest.fixture
def estimator(chain: FakeChain, protocol: FakeProtocol) -> GasEstimator:
    return GasEstimator(chain, protocol, send_gas_limit=500_000, default_currency="ETH")


@pytest.fixture
def executor(protocol: FakeProtocol, estimator: GasEstimator) -> BridgeExecutor:
    return BridgeExecutor(protocol, estimator, auto_approve=True)
