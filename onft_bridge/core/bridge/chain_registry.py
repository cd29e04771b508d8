"""Chain metadata and LayerZero V2 endpoint ids."""

from typing import Any, Dict, List, Optional, Union

from ...config import settings
from .models import ChainDescriptor, ChainPair

CHAIN_METADATA: Dict[int, Dict[str, Any]] = {
    1: {
        'name': 'Ethereum',
        'aliases': ['ethereum', 'eth', 'mainnet'],
        'endpoint_id': 30101,
        'native_symbol': 'ETH',
        'native_decimals': 18,
    },
    42161: {
        'name': 'Arbitrum',
        'aliases': ['arbitrum', 'arb'],
        'endpoint_id': 30110,
        'native_symbol': 'ETH',
        'native_decimals': 18,
    },
    10: {
        'name': 'Optimism',
        'aliases': ['optimism', 'op'],
        'endpoint_id': 30111,
        'native_symbol': 'ETH',
        'native_decimals': 18,
    },
    137: {
        'name': 'Polygon',
        'aliases': ['polygon', 'matic'],
        'endpoint_id': 30109,
        'native_symbol': 'POL',
        'native_decimals': 18,
    },
    8453: {
        'name': 'Base',
        'aliases': ['base'],
        'endpoint_id': 30184,
        'native_symbol': 'ETH',
        'native_decimals': 18,
    },
    43114: {
        'name': 'Avalanche',
        'aliases': ['avalanche', 'avax'],
        'endpoint_id': 30106,
        'native_symbol': 'AVAX',
        'native_decimals': 18,
    },
    56: {
        'name': 'BNB Chain',
        'aliases': ['bsc', 'bnb', 'binance'],
        'endpoint_id': 30102,
        'native_symbol': 'BNB',
        'native_decimals': 18,
    },
    11155111: {
        'name': 'Sepolia',
        'aliases': ['sepolia', 'eth-sepolia'],
        'endpoint_id': 40161,
        'native_symbol': 'ETH',
        'native_decimals': 18,
    },
    84532: {
        'name': 'Base Sepolia',
        'aliases': ['base-sepolia', 'base sepolia'],
        'endpoint_id': 40245,
        'native_symbol': 'ETH',
        'native_decimals': 18,
    },
}

CHAIN_ALIAS_TO_ID: Dict[str, int] = {
    alias: chain_id
    for chain_id, meta in CHAIN_METADATA.items()
    for alias in meta['aliases']
}


class UnknownChainError(ValueError):
    """Raised for chains without a known LayerZero endpoint id."""


def get_chain(chain: Union[int, str]) -> ChainDescriptor:
    """Look up a chain by id, numeric string or alias."""
    chain_id = resolve_chain_id(chain)
    if chain_id is None:
        raise UnknownChainError(f"Unsupported chain: {chain}")
    meta = CHAIN_METADATA[chain_id]
    return ChainDescriptor(
        chain_id=chain_id,
        endpoint_id=meta['endpoint_id'],
        name=meta['name'],
        native_symbol=meta['native_symbol'],
        native_decimals=meta['native_decimals'],
    )


def resolve_chain_id(chain: Union[int, str]) -> Optional[int]:
    if isinstance(chain, int):
        return chain if chain in CHAIN_METADATA else None
    text = str(chain).strip().lower()
    if text.isascii() and text.isdigit():
        return resolve_chain_id(int(text))
    return CHAIN_ALIAS_TO_ID.get(text)


def get_chain_by_endpoint(endpoint_id: int) -> Optional[ChainDescriptor]:
    for chain_id, meta in CHAIN_METADATA.items():
        if meta['endpoint_id'] == endpoint_id:
            return get_chain(chain_id)
    return None


def get_chain_pair(source: Union[int, str], destination: Union[int, str]) -> ChainPair:
    return ChainPair(source=get_chain(source), destination=get_chain(destination))


def all_chains() -> List[ChainDescriptor]:
    return [get_chain(chain_id) for chain_id in CHAIN_METADATA]


def layerzero_scan_url(tx_hash: str, chain: Optional[ChainDescriptor] = None) -> str:
    """LayerZero Scan page for a source transaction; testnet chains use the testnet explorer."""
    base = settings.layerzero_scan_explorer_url
    if chain is not None and chain.is_testnet:
        base = settings.layerzero_scan_testnet_explorer_url
    return f"{base.rstrip('/')}/tx/{tx_hash}"
