import os

from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

# Alchemy network slugs for the chains we bridge between.
ALCHEMY_NETWORKS: Dict[int, str] = {
    1: "eth-mainnet",
    10: "opt-mainnet",
    137: "polygon-mainnet",
    42161: "arb-mainnet",
    8453: "base-mainnet",
    11155111: "eth-sepolia",
    84532: "base-sepolia",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the legacy deployer key variable when no signer key is set."""

        super().model_post_init(__context)

        if not self.signer_private_key:
            fallback = os.getenv("PRIVATE_KEY") or os.getenv("DEPLOYER_PRIVATE_KEY")
            if fallback:
                object.__setattr__(self, "signer_private_key", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="auto",
        description="Log renderer: json, console, or auto (console when the level is DEBUG)",
    )
    library_log_level: str = Field(default="WARNING", description="Level for httpx, httpcore and uvicorn.access")

    # RPC
    alchemy_api_key: str = Field(default="", description="Alchemy API key used to build default RPC URLs")
    rpc_urls: Dict[int, str] = Field(
        default_factory=dict,
        description="Explicit JSON-RPC URL per chain id; overrides the Alchemy defaults",
    )
    request_timeout_seconds: int = Field(default=30, description="HTTP timeout for RPC and scan requests")

    # LayerZero
    layerzero_scan_base_url: str = Field(
        default="https://scan.layerzero-api.com/v1",
        description="LayerZero Scan API base URL used for message status lookups",
    )
    layerzero_scan_explorer_url: str = Field(
        default="https://layerzeroscan.com",
        description="LayerZero Scan explorer linked from mainnet bridge results",
    )
    layerzero_scan_testnet_explorer_url: str = Field(
        default="https://testnet.layerzeroscan.com",
        description="LayerZero Scan explorer linked from testnet bridge results",
    )
    delivery_log_lookback_blocks: int = Field(
        default=10_000,
        ge=0,
        description="Destination blocks searched for ONFTReceived when tracking starts",
    )
    lz_receive_gas_limit: int = Field(
        default=200_000,
        description="Gas forwarded to lzReceive on the destination chain (executor option)",
    )

    # Fees
    default_currency: str = Field(default="ETH", description="Currency unit used for empty gas aggregates")
    bridge_send_gas_limit: int = Field(
        default=500_000,
        description="Gas units assumed for the source-chain send() when estimating",
    )
    gas_limit_multiplier: float = Field(default=1.2, description="Safety margin applied to estimated gas limits")

    # Bridging behaviour
    auto_approve_adapter: bool = Field(
        default=True,
        description="Submit the adapter approval automatically when it is missing",
    )
    batch_approvals: bool = Field(
        default=True,
        description="Grant setApprovalForAll once per collection before a batch run",
    )
    confirmation_timeout_seconds: int = Field(default=300, description="Max wait for a transaction receipt")
    receipt_poll_interval_seconds: float = Field(default=2.0, description="Receipt polling interval")

    # Retry / backoff
    backoff_ceiling_ms: int = Field(default=30_000, ge=0, description="Upper bound for suggested retry delays")

    # Message tracking
    status_poll_interval_seconds: float = Field(default=5.0, gt=0, description="Delay between status polls")
    status_max_poll_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Polling stops with a TimedOut snapshot after this long",
    )
    stuck_message_minutes: int = Field(default=10, description="In-flight age after which a message is stuck")
    max_message_retries: int = Field(default=3, description="Retry budget for a failed in-flight message")

    # Signing
    signer_private_key: str = Field(
        default="",
        description="Hex private key used by the CLI signer",
        validation_alias=AliasChoices("signer_private_key", "SIGNER_PRIVATE_KEY", "BRIDGE_PRIVATE_KEY"),
    )

    @property
    def has_alchemy_key(self) -> bool:
        return bool(self.alchemy_api_key)

    @property
    def has_signer_key(self) -> bool:
        return bool(self.signer_private_key)

    def resolve_rpc_url(self, chain_id: int) -> Optional[str]:
        """Return the RPC URL for a chain, preferring explicit overrides."""
        explicit = self.rpc_urls.get(chain_id)
        if explicit:
            return explicit
        network = ALCHEMY_NETWORKS.get(chain_id)
        if network and self.has_alchemy_key:
            return f"https://{network}.g.alchemy.com/v2/{self.alchemy_api_key}"
        return None

    def resolved_rpc_urls(self) -> Dict[int, str]:
        chain_ids = set(self.rpc_urls) | set(ALCHEMY_NETWORKS)
        urls: Dict[int, str] = {}
        for chain_id in chain_ids:
            url = self.resolve_rpc_url(chain_id)
            if url:
                urls[chain_id] = url
        return urls


# Global settings instance
settings = Settings()
