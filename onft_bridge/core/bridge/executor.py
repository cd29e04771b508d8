"""Single-item bridge executor."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Optional

from ...config import settings
from ..gas.estimator import GasEstimator
from ..recovery.errors import (
    ApprovalRequiredError,
    InvalidTransferError,
    NotTokenOwnerError,
    PeerNotConfiguredError,
    TransactionRevertedError,
    classify_error,
)
from .chain_registry import layerzero_scan_url
from .models import BridgeResult, ChainDescriptor, ChainPair, TransferRequest

if TYPE_CHECKING:  # pragma: no cover
    from ...providers.base import MessagingProtocol, SigningCapability

_EVM_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")
_TOKEN_ID_RE = re.compile(r"[0-9]+")
MAX_UINT256 = 2**256 - 1


def is_evm_address(value: Optional[str]) -> bool:
    return bool(value) and bool(_EVM_ADDRESS_RE.fullmatch(value))


def validate_request(request: TransferRequest, recipient: str) -> int:
    """Check addresses and the token id; return the token id as an int."""
    checks = (
        ("recipient", recipient),
        ("nft contract", request.nft_contract_address),
        ("bridge contract", request.bridge_contract_address),
    )
    for label, value in checks:
        if not is_evm_address(value):
            raise InvalidTransferError(f"Invalid {label} address: {value!r}")

    if request.is_adapter and not is_evm_address(request.original_collection_address):
        raise InvalidTransferError(
            f"Invalid collection address: {request.original_collection_address!r}"
        )

    token_id = str(request.token_id).strip()
    if not _TOKEN_ID_RE.fullmatch(token_id) or int(token_id) > MAX_UINT256:
        raise InvalidTransferError(f"Invalid token id: {request.token_id!r}")
    return int(token_id)


class BridgeExecutor:
    """
    Bridges one NFT.

    Validates the request, checks ownership, peer configuration and (in
    adapter mode) approval, quotes fresh fees and submits ``send``. Never
    raises: every failure comes back classified in ``BridgeResult.error``.
    """

    def __init__(
        self,
        protocol: "MessagingProtocol",
        estimator: GasEstimator,
        *,
        auto_approve: Optional[bool] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._protocol = protocol
        self._estimator = estimator
        self._auto_approve = settings.auto_approve_adapter if auto_approve is None else auto_approve
        self._logger = logger or logging.getLogger(__name__)

    async def execute(
        self,
        request: TransferRequest,
        source: ChainDescriptor,
        destination: ChainDescriptor,
        recipient: str,
        signer: "SigningCapability",
    ) -> BridgeResult:
        destination_contract: Optional[str] = None
        try:
            token_id = validate_request(request, recipient)
            chains = ChainPair(source=source, destination=destination)

            await self._check_ownership(request, token_id, source, signer)
            destination_contract = await self._check_peer(request, source, destination)
            if request.is_adapter:
                await self._ensure_approval(request, token_id, source, signer)

            quoted = await self._estimator.quote(request, chains, recipient=recipient)

            self._logger.info(
                f"Bridging token {request.token_id} from {source.name} to {destination.name} "
                f"(fee {quoted.fee.native_fee} wei)"
            )
            submission = await self._protocol.submit_message(
                signer,
                request.bridge_contract_address,
                chains,
                quoted.send_param,
                quoted.fee,
            )

            receipt = submission.receipt
            if not receipt.succeeded:
                raise TransactionRevertedError(
                    f"Bridge transaction {receipt.transaction_hash} reverted",
                    tx_hash=receipt.transaction_hash,
                )
            if not submission.guid:
                self._logger.warning(
                    f"No ONFTSent event in {receipt.transaction_hash}; message cannot be tracked"
                )

            return BridgeResult(
                success=True,
                token_id=request.token_id,
                transaction_hash=receipt.transaction_hash,
                message_guid=submission.guid,
                gas_breakdown=GasEstimator.breakdown_from_receipt(
                    receipt, quoted.breakdown, source.native_decimals
                ),
                destination_contract_address=destination_contract,
                scan_url=layerzero_scan_url(receipt.transaction_hash, source),
            )

        except Exception as e:
            classified = classify_error(e)
            self._logger.warning(
                f"Bridge of token {request.token_id} failed ({classified.kind.value}): {classified.message}"
            )
            tx_hash = getattr(e, "tx_hash", None)
            return BridgeResult(
                success=False,
                token_id=request.token_id,
                transaction_hash=tx_hash,
                destination_contract_address=destination_contract,
                error=classified,
                scan_url=layerzero_scan_url(tx_hash, source) if tx_hash else None,
            )

    async def _check_ownership(
        self,
        request: TransferRequest,
        token_id: int,
        source: ChainDescriptor,
        signer: "SigningCapability",
    ) -> None:
        owner = await self._protocol.owner_of(
            source.chain_id, request.ownership_contract_address, token_id
        )
        if owner.lower() != signer.address.lower():
            raise NotTokenOwnerError(
                f"Token {request.token_id} is owned by {owner}, not {signer.address}"
            )

    async def _check_peer(
        self,
        request: TransferRequest,
        source: ChainDescriptor,
        destination: ChainDescriptor,
    ) -> str:
        peer = await self._protocol.peer(
            source.chain_id, request.bridge_contract_address, destination.endpoint_id
        )
        if not peer:
            raise PeerNotConfiguredError(
                f"No peer set on {request.bridge_contract_address} for {destination.name} "
                f"(eid {destination.endpoint_id})"
            )
        return peer

    async def _ensure_approval(
        self,
        request: TransferRequest,
        token_id: int,
        source: ChainDescriptor,
        signer: "SigningCapability",
    ) -> None:
        collection = request.ownership_contract_address
        bridge = request.bridge_contract_address

        approved = await self._protocol.get_approved(source.chain_id, collection, token_id)
        if approved.lower() == bridge.lower():
            return
        if await self._protocol.is_approved_for_all(source.chain_id, collection, signer.address, bridge):
            return

        if not self._auto_approve:
            raise ApprovalRequiredError(
                f"Adapter {bridge} is not approved for token {request.token_id} on {collection}"
            )

        self._logger.info(f"Approving adapter {bridge} for token {request.token_id}")
        receipt = await signer.sign_and_send(
            self._protocol.build_approve(source.chain_id, collection, bridge, token_id)
        )
        if not receipt.succeeded:
            raise TransactionRevertedError(
                f"Approval transaction {receipt.transaction_hash} reverted",
                tx_hash=receipt.transaction_hash,
            )
