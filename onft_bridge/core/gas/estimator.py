"""
Gas/Fee Estimator

Produces the three-part cost of bridging one NFT: source-chain gas for the
send transaction, the messaging protocol fee and the destination execution
gas prepaid through the protocol. Quotes are never cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import reduce
from typing import TYPE_CHECKING, Iterable, Optional

from ...config import settings
from ..bridge.models import ChainPair, SendParam, TransferRequest
from ..recovery.errors import QuoteUnavailableError
from .models import FeeQuote, GasBreakdown, from_wei

if TYPE_CHECKING:  # pragma: no cover
    from ...providers.base import ChainQuery, MessagingProtocol
    from ..execution.models import TransactionReceipt

logger = logging.getLogger(__name__)

# quoteSend does not care who receives; any well-formed address will do
PLACEHOLDER_RECIPIENT = "0x000000000000000000000000000000000000dEaD"


@dataclass(frozen=True)
class QuotedFee:
    """A fresh quote plus the SendParam it was computed for."""

    send_param: SendParam
    fee: FeeQuote
    gas_price_wei: int
    breakdown: GasBreakdown


class GasEstimator:
    def __init__(
        self,
        chain: "ChainQuery",
        protocol: "MessagingProtocol",
        send_gas_limit: Optional[int] = None,
        default_currency: Optional[str] = None,
    ):
        self._chain = chain
        self._protocol = protocol
        self._send_gas_limit = send_gas_limit or settings.bridge_send_gas_limit
        self.default_currency = default_currency or settings.default_currency

    async def quote(
        self,
        request: TransferRequest,
        chains: ChainPair,
        *,
        recipient: Optional[str] = None,
    ) -> QuotedFee:
        """Fetch a fresh fee quote. Raises QuoteUnavailableError on any failure."""
        try:
            send_param = self._protocol.build_send_param(
                chains, recipient or PLACEHOLDER_RECIPIENT, int(request.token_id)
            )
            fee = await self._protocol.quote_fee(request.bridge_contract_address, chains, send_param)
            gas_price = await self._chain.get_gas_price(chains.source.chain_id)
        except Exception as e:
            logger.warning(f"Fee quote failed for token {request.token_id}: {e!r}")
            raise QuoteUnavailableError(e) from e

        decimals = chains.source.native_decimals
        breakdown = GasBreakdown(
            source_chain_gas=from_wei(gas_price * self._send_gas_limit, decimals),
            protocol_fee=from_wei(fee.protocol_fee, decimals),
            destination_execution_gas=from_wei(fee.destination_execution_fee, decimals),
            currency=chains.source.native_symbol,
        )
        return QuotedFee(send_param=send_param, fee=fee, gas_price_wei=gas_price, breakdown=breakdown)

    async def estimate(
        self,
        request: TransferRequest,
        chains: ChainPair,
        *,
        recipient: Optional[str] = None,
    ) -> GasBreakdown:
        return (await self.quote(request, chains, recipient=recipient)).breakdown

    def aggregate(self, breakdowns: Iterable[GasBreakdown]) -> GasBreakdown:
        return aggregate_breakdowns(breakdowns, self.default_currency)

    @staticmethod
    def breakdown_from_receipt(
        receipt: "TransactionReceipt",
        quoted: GasBreakdown,
        native_decimals: int = 18,
    ) -> GasBreakdown:
        """Replace the estimated source gas with what the mined transaction paid."""
        if not receipt.fee_wei:
            return quoted
        return GasBreakdown(
            source_chain_gas=from_wei(receipt.fee_wei, native_decimals),
            protocol_fee=quoted.protocol_fee,
            destination_execution_gas=quoted.destination_execution_gas,
            currency=quoted.currency,
        )


def aggregate_breakdowns(breakdowns: Iterable[GasBreakdown], default_currency: Optional[str] = None) -> GasBreakdown:
    """Field-wise sum; an empty input yields the zero breakdown."""
    items = list(breakdowns)
    if not items:
        return GasBreakdown.zero(default_currency or settings.default_currency)
    return reduce(lambda acc, item: acc + item, items[1:], items[0])
