import json
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..core.bridge.chain_registry import UnknownChainError, get_chain
from ..core.bridge.executor import is_evm_address
from ..core.bridge.models import TransferRequest
from ..core.bridge.service import BridgeService, get_bridge_service
from ..core.gas.models import CurrencyMismatchError, GasBreakdown
from ..core.recovery.errors import QuoteUnavailableError, classify_error

router = APIRouter(prefix="/bridge")


class EstimateRequest(BaseModel):
    sourceChain: str = Field(..., description="Source chain id or alias")
    destinationChain: str = Field(..., description="Destination chain id or alias")
    tokenId: str = Field(..., pattern=r"^[0-9]+$", description="Token id as a decimal string")
    nftContractAddress: str = Field(..., description="ONFT contract (or wrapped NFT in adapter mode)")
    bridgeContractAddress: str = Field(..., description="Contract whose send() is called")
    originalCollectionAddress: Optional[str] = Field(default=None, description="Existing collection, adapter mode only")
    recipient: Optional[str] = Field(default=None, description="Recipient on the destination chain")

    def to_transfer(self) -> TransferRequest:
        return TransferRequest.create(
            self.tokenId,
            self.nftContractAddress,
            self.bridgeContractAddress,
            original_collection_address=self.originalCollectionAddress,
        )


class GasBreakdownModel(BaseModel):
    sourceChainGas: Decimal = Field(..., ge=0)
    protocolFee: Decimal = Field(..., ge=0)
    destinationExecutionGas: Decimal = Field(..., ge=0)
    currency: str = "ETH"

    def to_breakdown(self) -> GasBreakdown:
        return GasBreakdown(
            source_chain_gas=self.sourceChainGas,
            protocol_fee=self.protocolFee,
            destination_execution_gas=self.destinationExecutionGas,
            currency=self.currency,
        )


class AggregateRequest(BaseModel):
    breakdowns: List[GasBreakdownModel] = Field(default_factory=list)


class ClassifyRequest(BaseModel):
    message: Optional[str] = Field(default=None, description="Error message text")
    code: Optional[Any] = Field(default=None, description="Provider or JSON-RPC error code")
    data: Optional[str] = Field(default=None, description="Revert data (hex)")
    attempt: int = Field(default=0, ge=0)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude={"attempt"})


def _chain(value: str):
    try:
        return get_chain(value)
    except UnknownChainError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/estimate")
async def estimate_gas(
    request: EstimateRequest,
    service: BridgeService = Depends(get_bridge_service),
) -> Dict[str, Any]:
    source = _chain(request.sourceChain)
    destination = _chain(request.destinationChain)
    try:
        breakdown = await service.estimate_gas(
            request.to_transfer(), source, destination, recipient=request.recipient
        )
    except QuoteUnavailableError as exc:
        raise HTTPException(status_code=502, detail=exc.classified.to_dict())
    return {"success": True, "gasBreakdown": breakdown.to_dict()}


@router.post("/gas/aggregate")
async def aggregate_gas(
    request: AggregateRequest,
    service: BridgeService = Depends(get_bridge_service),
) -> Dict[str, Any]:
    try:
        total = service.aggregate_gas(b.to_breakdown() for b in request.breakdowns)
    except CurrencyMismatchError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"success": True, "gasBreakdown": total.to_dict()}


@router.post("/errors/classify")
async def classify(request: ClassifyRequest) -> Dict[str, Any]:
    classified = classify_error(request.to_payload(), attempt=request.attempt)
    return {"success": True, "error": classified.to_dict()}


@router.get("/messages/{guid}/status")
async def message_status(
    guid: str,
    service: BridgeService = Depends(get_bridge_service),
) -> Dict[str, Any]:
    snapshot = await service.get_message_status(guid)
    return {"success": True, "status": snapshot.to_dict()}


@router.get("/messages/{guid}/stream")
async def message_status_stream(
    guid: str,
    source: str = Query(..., description="Source chain id or alias"),
    destination: str = Query(..., description="Destination chain id or alias"),
    destinationContract: Optional[str] = Query(
        default=None, description="Destination ONFT; delivery is then read from its ONFTReceived logs"
    ),
    pollInterval: Optional[float] = Query(default=None, gt=0),
    maxPollSeconds: Optional[float] = Query(default=None, gt=0),
    service: BridgeService = Depends(get_bridge_service),
) -> StreamingResponse:
    """Server-Sent Events stream of status snapshots until a final state."""
    source_chain = _chain(source)
    destination_chain = _chain(destination)
    if destinationContract is not None and not is_evm_address(destinationContract):
        raise HTTPException(status_code=400, detail=f"Invalid destination contract: {destinationContract}")

    stream = service.track_message(
        guid,
        source_chain,
        destination_chain,
        destination_contract=destinationContract,
        poll_interval_seconds=pollInterval,
        max_poll_seconds=maxPollSeconds,
    )

    async def events() -> AsyncIterator[str]:
        async for snapshot in stream:
            yield f"event: status\ndata: {json.dumps(snapshot.to_dict())}\n\n"
        yield "event: end\ndata: {}\n\n"

    return StreamingResponse(events(), media_type="text/event-stream",
                             headers={"Cache-Control": "no-cache"})


def _contract(address: str) -> str:
    if not is_evm_address(address):
        raise HTTPException(status_code=400, detail=f"Invalid contract address: {address}")
    return address


@router.get("/contracts/{chain}/{address}/type")
async def contract_type(
    chain: str,
    address: str,
    service: BridgeService = Depends(get_bridge_service),
) -> Dict[str, Any]:
    """Whether a contract is an ONFT, an ONFT adapter or a plain ERC721."""
    chain_descriptor = _chain(chain)
    detected = await service.detect_contract_type(_contract(address), chain_descriptor)
    return {"success": True, "contractType": detected.value}


@router.get("/contracts/{chain}/{address}/destinations")
async def available_destinations(
    chain: str,
    address: str,
    service: BridgeService = Depends(get_bridge_service),
) -> Dict[str, Any]:
    """Chains the bridge contract has a peer configured for."""
    source = _chain(chain)
    destinations = await service.get_available_destinations(_contract(address), source)
    return {
        "success": True,
        "destinations": [
            {"chainId": d.chain_id, "name": d.name, "endpointId": d.endpoint_id}
            for d in destinations
        ],
    }
