"""
Tests for gas breakdowns, aggregation and fee quoting.
"""

import asyncio
from decimal import Decimal

import pytest

from onft_bridge.core.bridge.models import ChainPair, TransferRequest
from onft_bridge.core.execution.models import TransactionReceipt
from onft_bridge.core.gas.estimator import GasEstimator, aggregate_breakdowns
from onft_bridge.core.gas.models import CurrencyMismatchError, FeeQuote, GasBreakdown, from_wei
from onft_bridge.core.recovery.errors import ErrorKind, QuoteUnavailableError, classify_error


NFT = "0x2222222222222222222222222222222222222222"


def gb(source, protocol, destination, currency="ETH") -> GasBreakdown:
    return GasBreakdown(Decimal(str(source)), Decimal(str(protocol)), Decimal(str(destination)), currency)


# =============================================================================
# GasBreakdown
# =============================================================================

class TestGasBreakdown:
    def test_negative_component_rejected(self):
        with pytest.raises(ValueError):
            gb(-1, 0, 0)

    def test_coerces_numbers_to_decimal(self):
        breakdown = GasBreakdown(1, "0.5", 0, "ETH")

        assert breakdown.protocol_fee == Decimal("0.5")
        assert isinstance(breakdown.source_chain_gas, Decimal)

    def test_total_cost(self):
        assert gb("0.1", "0.2", "0.3").total_cost == Decimal("0.6")

    def test_currency_mismatch(self):
        with pytest.raises(CurrencyMismatchError):
            gb(1, 0, 0, "ETH") + gb(1, 0, 0, "POL")

    def test_currency_mismatch_is_value_error(self):
        assert issubclass(CurrencyMismatchError, ValueError)

    def test_to_dict(self):
        data = gb("0.001", "0.002", 0).to_dict()

        assert data["totalCost"] == "0.003"
        assert data["currency"] == "ETH"

    def test_from_wei(self):
        assert from_wei(10**18) == Decimal(1)
        assert from_wei(5 * 10**14) == Decimal("0.0005")
        assert from_wei(10**6, decimals=6) == Decimal(1)


# =============================================================================
# Aggregation properties
# =============================================================================

SAMPLES = [
    gb(10, 5, 0),
    gb(3, 0, 7),
    gb("0.000123", "0.5", "1.25"),
    gb(0, 0, 0),
]


class TestAggregate:
    def test_sums_per_component(self):
        total = aggregate_breakdowns([gb(10, 5, 0), gb(3, 0, 7)])

        assert total == gb(13, 5, 7)

    def test_empty_is_zero(self):
        assert aggregate_breakdowns([], "ETH") == GasBreakdown.zero("ETH")

    @pytest.mark.parametrize("a", SAMPLES)
    @pytest.mark.parametrize("b", SAMPLES)
    def test_commutative(self, a, b):
        assert aggregate_breakdowns([a, b]) == aggregate_breakdowns([b, a])

    @pytest.mark.parametrize("a", SAMPLES[:2])
    @pytest.mark.parametrize("b", SAMPLES[1:3])
    @pytest.mark.parametrize("c", SAMPLES[2:])
    def test_associative(self, a, b, c):
        left = aggregate_breakdowns([a, aggregate_breakdowns([b, c])])
        right = aggregate_breakdowns([aggregate_breakdowns([a, b]), c])

        assert left == right

    def test_estimator_uses_default_currency(self, estimator):
        assert estimator.aggregate([]).currency == "ETH"


# =============================================================================
# Estimator
# =============================================================================

class TestEstimate:
    @pytest.mark.asyncio
    async def test_three_components(self, estimator, source_chain, destination_chain):
        request = TransferRequest.create("7", NFT, NFT)

        breakdown = await estimator.estimate(request, ChainPair(source_chain, destination_chain))

        # 1 gwei * 500k gas, 1e15 fee of which 4e14 destination execution
        assert breakdown.source_chain_gas == Decimal("0.0005")
        assert breakdown.protocol_fee == Decimal("0.0006")
        assert breakdown.destination_execution_gas == Decimal("0.0004")
        assert breakdown.currency == source_chain.native_symbol

    @pytest.mark.asyncio
    async def test_requotes_every_call(self, estimator, protocol, source_chain, destination_chain):
        request = TransferRequest.create("7", NFT, NFT)
        chains = ChainPair(source_chain, destination_chain)

        first = await estimator.estimate(request, chains)
        protocol.native_fee = 2 * 10**15
        second = await estimator.estimate(request, chains)

        assert second.protocol_fee > first.protocol_fee

    @pytest.mark.asyncio
    async def test_quote_timeout_is_retryable(self, estimator, protocol, source_chain, destination_chain):
        protocol.quote_errors[7] = asyncio.TimeoutError()
        request = TransferRequest.create("7", NFT, NFT)

        with pytest.raises(QuoteUnavailableError) as exc_info:
            await estimator.estimate(request, ChainPair(source_chain, destination_chain))

        classified = classify_error(exc_info.value)
        assert classified.kind == ErrorKind.NETWORK_TIMEOUT
        assert classified.retryable is True
        assert classified.suggested_delay_ms > 0

    @pytest.mark.asyncio
    async def test_gas_price_failure_is_quote_unavailable(self, estimator, chain, source_chain, destination_chain):
        chain.error = ConnectionError("connection refused")
        request = TransferRequest.create("7", NFT, NFT)

        with pytest.raises(QuoteUnavailableError) as exc_info:
            await estimator.estimate(request, ChainPair(source_chain, destination_chain))

        assert exc_info.value.classified.kind == ErrorKind.RPC_UNAVAILABLE

    def test_breakdown_from_receipt(self):
        quoted = gb("0.0005", "0.0006", "0.0004")
        receipt = TransactionReceipt(transaction_hash="0x1", status=1, gas_used=100_000, effective_gas_price=10**9)

        actual = GasEstimator.breakdown_from_receipt(receipt, quoted)

        assert actual.source_chain_gas == Decimal("0.0001")
        assert actual.protocol_fee == quoted.protocol_fee

    def test_fee_quote_protocol_part(self):
        assert FeeQuote(native_fee=100, destination_execution_fee=30).protocol_fee == 70
        assert FeeQuote(native_fee=10, destination_execution_fee=30).protocol_fee == 0
