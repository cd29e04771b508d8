"""
Gas and fee models.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Union

Number = Union[Decimal, int, str]

WEI_PER_ETH = 10 ** 18


class CurrencyMismatchError(ValueError):
    """Raised when adding gas breakdowns denominated in different currencies."""


def from_wei(amount_wei: int, decimals: int = 18) -> Decimal:
    """Convert an integer base-unit amount into whole native units."""
    return Decimal(int(amount_wei)) / (Decimal(10) ** decimals)


@dataclass(frozen=True)
class GasBreakdown:
    """Cost of one bridge operation, in whole native units."""

    source_chain_gas: Decimal
    protocol_fee: Decimal
    destination_execution_gas: Decimal
    currency: str

    def __post_init__(self):
        for name in ("source_chain_gas", "protocol_fee", "destination_execution_gas"):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                value = Decimal(str(value))
                object.__setattr__(self, name, value)
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

    @classmethod
    def zero(cls, currency: str) -> "GasBreakdown":
        return cls(Decimal(0), Decimal(0), Decimal(0), currency)

    @property
    def total_cost(self) -> Decimal:
        return self.source_chain_gas + self.protocol_fee + self.destination_execution_gas

    def __add__(self, other: "GasBreakdown") -> "GasBreakdown":
        if not isinstance(other, GasBreakdown):
            return NotImplemented
        if other.currency != self.currency:
            raise CurrencyMismatchError(
                f"Cannot add {other.currency} breakdown to {self.currency} breakdown"
            )
        return GasBreakdown(
            source_chain_gas=self.source_chain_gas + other.source_chain_gas,
            protocol_fee=self.protocol_fee + other.protocol_fee,
            destination_execution_gas=self.destination_execution_gas + other.destination_execution_gas,
            currency=self.currency,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceChainGas": str(self.source_chain_gas),
            "protocolFee": str(self.protocol_fee),
            "destinationExecutionGas": str(self.destination_execution_gas),
            "totalCost": str(self.total_cost),
            "currency": self.currency,
        }


@dataclass(frozen=True)
class FeeQuote:
    """Messaging fee returned by quoteSend, split into its parts (wei)."""

    native_fee: int
    lz_token_fee: int = 0
    destination_execution_fee: int = 0

    @property
    def protocol_fee(self) -> int:
        return max(self.native_fee - self.destination_execution_fee, 0)
