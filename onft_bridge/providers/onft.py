"""
ONFT721 (LayerZero V2) protocol client.

Encodes the ONFT and ERC721 calls the bridge needs with eth-abi and runs
them over the JSON-RPC client. Message status lookups are delegated to
LayerZero Scan.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from eth_abi import decode, encode
from eth_utils import (
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
    to_checksum_address,
)

from ..config import settings
from ..core.bridge.chain_registry import all_chains
from ..core.bridge.models import ChainDescriptor, ChainPair, ContractType, SendParam
from ..core.execution.models import MessageSubmission, TransactionReceipt, TransactionRequest
from ..core.gas.models import FeeQuote
from ..core.tracking.models import MessageStatus
from .base import SigningCapability
from .layerzero_scan import LayerZeroScanClient
from .rpc import JsonRpcClient, RpcError

logger = logging.getLogger(__name__)

SEND_PARAM_TYPE = "(uint32,bytes32,uint256,bytes,bytes,bytes)"
MESSAGING_FEE_TYPE = "(uint256,uint256)"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = b"\x00" * 32

# Executor options (type 3)
OPTIONS_TYPE_3 = 3
EXECUTOR_WORKER_ID = 1
OPTION_TYPE_LZRECEIVE = 1


def _selector(signature: str) -> str:
    return "0x" + function_signature_to_4byte_selector(signature).hex()


QUOTE_SEND_SELECTOR = _selector(f"quoteSend({SEND_PARAM_TYPE},bool)")
SEND_SELECTOR = _selector(f"send({SEND_PARAM_TYPE},{MESSAGING_FEE_TYPE},address)")
PEERS_SELECTOR = _selector("peers(uint32)")
OWNER_OF_SELECTOR = _selector("ownerOf(uint256)")
GET_APPROVED_SELECTOR = _selector("getApproved(uint256)")
IS_APPROVED_FOR_ALL_SELECTOR = _selector("isApprovedForAll(address,address)")
APPROVE_SELECTOR = _selector("approve(address,uint256)")
SET_APPROVAL_FOR_ALL_SELECTOR = _selector("setApprovalForAll(address,bool)")
INNER_TOKEN_SELECTOR = _selector("innerToken()")
NAME_SELECTOR = _selector("name()")
SYMBOL_SELECTOR = _selector("symbol()")

# Any endpoint id answers peers() on an ONFT; Ethereum mainnet is used for detection
DETECTION_ENDPOINT_ID = 30101

ONFT_SENT_TOPIC = "0x" + event_signature_to_log_topic("ONFTSent(bytes32,uint32,address,uint256)").hex()
ONFT_RECEIVED_TOPIC = "0x" + event_signature_to_log_topic("ONFTReceived(bytes32,uint32,address,uint256)").hex()


def address_to_bytes32(address: str) -> bytes:
    """Left-pad a 20-byte EVM address to 32 bytes."""
    raw = bytes.fromhex(address.lower().replace("0x", ""))
    if len(raw) != 20:
        raise ValueError(f"Invalid EVM address: {address}")
    return raw.rjust(32, b"\x00")


def bytes32_to_address(value: bytes) -> Optional[str]:
    if value == ZERO_BYTES32:
        return None
    return to_checksum_address(value[-20:])


def build_lz_receive_option(gas: int, value: int = 0) -> bytes:
    """Type-3 executor option forwarding ``gas`` (and ``value``) to lzReceive."""
    option = gas.to_bytes(16, "big")
    if value:
        option += value.to_bytes(16, "big")
    size = 1 + len(option)
    return (
        OPTIONS_TYPE_3.to_bytes(2, "big")
        + EXECUTOR_WORKER_ID.to_bytes(1, "big")
        + size.to_bytes(2, "big")
        + OPTION_TYPE_LZRECEIVE.to_bytes(1, "big")
        + option
    )


def _calldata(selector: str, types: Sequence[str], values: Sequence[Any]) -> str:
    return selector + encode(list(types), list(values)).hex()


def _decode(types: List[str], result: str, context: str) -> tuple:
    payload = bytes.fromhex((result or "0x")[2:])
    if not payload:
        raise ValueError(f"Empty eth_call result for {context} (contract not deployed?)")
    return decode(types, payload)


def extract_guid(receipt: TransactionReceipt, bridge_address: Optional[str] = None) -> Optional[str]:
    """Pull the message GUID from the ONFTSent event in a receipt."""
    for log in receipt.logs:
        topics = log.get("topics") or []
        if not topics or str(topics[0]).lower() != ONFT_SENT_TOPIC:
            continue
        if bridge_address and str(log.get("address", "")).lower() != bridge_address.lower():
            continue
        if len(topics) > 1:
            return str(topics[1]).lower()
    return None


class OnftProtocolClient:
    """Implements ``MessagingProtocol`` for ONFT721 V2 contracts."""

    def __init__(
        self,
        rpc: JsonRpcClient,
        scan: Optional[LayerZeroScanClient] = None,
        lz_receive_gas: Optional[int] = None,
    ):
        self._rpc = rpc
        self._scan = scan or LayerZeroScanClient()
        self._lz_receive_gas = lz_receive_gas or settings.lz_receive_gas_limit

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def owner_of(self, chain_id: int, contract: str, token_id: int) -> str:
        data = _calldata(OWNER_OF_SELECTOR, ["uint256"], [token_id])
        (owner,) = _decode(["address"], await self._rpc.call(chain_id, contract, data), "ownerOf")
        return to_checksum_address(owner)

    async def get_approved(self, chain_id: int, contract: str, token_id: int) -> str:
        data = _calldata(GET_APPROVED_SELECTOR, ["uint256"], [token_id])
        (approved,) = _decode(["address"], await self._rpc.call(chain_id, contract, data), "getApproved")
        return to_checksum_address(approved)

    async def is_approved_for_all(self, chain_id: int, contract: str, owner: str, operator: str) -> bool:
        data = _calldata(IS_APPROVED_FOR_ALL_SELECTOR, ["address", "address"], [owner, operator])
        (approved,) = _decode(["bool"], await self._rpc.call(chain_id, contract, data), "isApprovedForAll")
        return bool(approved)

    async def peer(self, chain_id: int, bridge_address: str, endpoint_id: int) -> Optional[str]:
        data = _calldata(PEERS_SELECTOR, ["uint32"], [endpoint_id])
        (peer,) = _decode(["bytes32"], await self._rpc.call(chain_id, bridge_address, data), "peers")
        return bytes32_to_address(peer)

    async def _answers(self, chain_id: int, contract: str, data: str) -> bool:
        """True when the call returns data."""
        try:
            result = await self._rpc.call(chain_id, contract, data)
        except RpcError:
            return False
        return bool(result) and result != "0x"

    async def detect_contract_type(self, chain_id: int, contract: str) -> ContractType:
        """
        Classify ``contract`` by the calls it answers.

        ``innerToken()`` marks an ONFT adapter, ``peers(uint32)`` a native
        ONFT, and ``name()`` plus ``symbol()`` a plain ERC721. A JSON-RPC
        error (usually a revert) counts as a missing function; transport
        failures propagate.
        """
        if await self._answers(chain_id, contract, INNER_TOKEN_SELECTOR):
            return ContractType.ADAPTER
        peers_call = _calldata(PEERS_SELECTOR, ["uint32"], [DETECTION_ENDPOINT_ID])
        if await self._answers(chain_id, contract, peers_call):
            return ContractType.ONFT
        if await self._answers(chain_id, contract, NAME_SELECTOR) and await self._answers(
            chain_id, contract, SYMBOL_SELECTOR
        ):
            return ContractType.ERC721
        return ContractType.UNKNOWN

    async def get_available_destinations(
        self, bridge_address: str, source: ChainDescriptor
    ) -> List[ChainDescriptor]:
        """Known chains for which ``bridge_address`` on ``source`` has a peer configured."""
        destinations = []
        for chain in all_chains():
            if chain.chain_id == source.chain_id or chain.is_testnet != source.is_testnet:
                continue
            try:
                peer = await self.peer(source.chain_id, bridge_address, chain.endpoint_id)
            except (RpcError, ValueError) as e:
                logger.debug(f"No peer lookup for eid {chain.endpoint_id} on {bridge_address}: {e}")
                continue
            if peer is not None:
                destinations.append(chain)
        return destinations

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    def build_send_param(self, chains: ChainPair, recipient: str, token_id: int) -> SendParam:
        return SendParam(
            dst_eid=chains.destination.endpoint_id,
            to=address_to_bytes32(recipient),
            token_id=token_id,
            extra_options=build_lz_receive_option(self._lz_receive_gas),
        )

    async def quote_fee(self, bridge_address: str, chains: ChainPair, send_param: SendParam) -> FeeQuote:
        data = _calldata(QUOTE_SEND_SELECTOR, [SEND_PARAM_TYPE, "bool"], [send_param.as_tuple(), False])
        result = await self._rpc.call(chains.source.chain_id, bridge_address, data)
        ((native_fee, lz_token_fee),) = _decode([MESSAGING_FEE_TYPE], result, "quoteSend")

        destination_fee = 0
        if self._rpc.has_chain(chains.destination.chain_id):
            try:
                dst_gas_price = await self._rpc.get_gas_price(chains.destination.chain_id)
                destination_fee = min(native_fee, dst_gas_price * self._lz_receive_gas)
            except Exception as e:
                # Split only; the quoted total stays authoritative
                logger.warning(f"Destination gas price unavailable for chain {chains.destination.chain_id}: {e}")

        return FeeQuote(
            native_fee=native_fee,
            lz_token_fee=lz_token_fee,
            destination_execution_fee=destination_fee,
        )

    async def submit_message(
        self,
        signer: SigningCapability,
        bridge_address: str,
        chains: ChainPair,
        send_param: SendParam,
        fee: FeeQuote,
    ) -> MessageSubmission:
        data = _calldata(
            SEND_SELECTOR,
            [SEND_PARAM_TYPE, MESSAGING_FEE_TYPE, "address"],
            [send_param.as_tuple(), (fee.native_fee, 0), signer.address],
        )
        tx = TransactionRequest(
            chain_id=chains.source.chain_id,
            to=bridge_address,
            data=data,
            value=fee.native_fee,
            description=f"ONFT send of token {send_param.token_id} to eid {send_param.dst_eid}",
        )
        receipt = await signer.sign_and_send(tx)
        return MessageSubmission(receipt=receipt, guid=extract_guid(receipt, bridge_address))

    async def get_message_status(self, guid: str) -> MessageStatus:
        return await self._scan.get_message_status(guid)

    # ------------------------------------------------------------------
    # Approval transactions
    # ------------------------------------------------------------------

    def build_approve(self, chain_id: int, contract: str, spender: str, token_id: int) -> TransactionRequest:
        return TransactionRequest(
            chain_id=chain_id,
            to=contract,
            data=_calldata(APPROVE_SELECTOR, ["address", "uint256"], [spender, token_id]),
            description=f"approve token {token_id} for {spender}",
        )

    def build_set_approval_for_all(
        self, chain_id: int, contract: str, operator: str, approved: bool = True
    ) -> TransactionRequest:
        return TransactionRequest(
            chain_id=chain_id,
            to=contract,
            data=_calldata(SET_APPROVAL_FOR_ALL_SELECTOR, ["address", "bool"], [operator, approved]),
            description=f"setApprovalForAll({operator}, {approved})",
        )
