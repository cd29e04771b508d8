from typing import Any, Dict

from fastapi import APIRouter

from ..config import settings
from ..core.bridge.chain_registry import CHAIN_METADATA

router = APIRouter()


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """Health check reporting which chains have an RPC endpoint configured"""

    rpc_chains = sorted(settings.resolved_rpc_urls())
    chains = {
        meta["name"]: {
            "chainId": chain_id,
            "endpointId": meta["endpoint_id"],
            "rpc": chain_id in rpc_chains,
        }
        for chain_id, meta in CHAIN_METADATA.items()
    }

    return {
        "status": "healthy" if rpc_chains else "degraded",
        "chains": chains,
        "layerzeroScan": settings.layerzero_scan_base_url,
        "signerConfigured": settings.has_signer_key,
    }
