"""Gas and fee estimation."""

from .models import CurrencyMismatchError, FeeQuote, GasBreakdown

__all__ = ["CurrencyMismatchError", "FeeQuote", "GasBreakdown", "GasEstimator"]


def __getattr__(name: str):  # pragma: no cover - simple thunk
    if name == "GasEstimator":
        from .estimator import GasEstimator as _GasEstimator

        return _GasEstimator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
