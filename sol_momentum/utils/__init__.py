"""Utilities: Precision helpers, math functions, state store."""

from sol_momentum.utils.precision import fmt_usd, format_size, to_raw_amount
from sol_momentum.utils.math_helpers import sma, population_std, zscore, rsi
from sol_momentum.utils.state_store import StateStore

__all__ = [
    "fmt_usd",
    "format_size",
    "to_raw_amount",
    "sma",
    "population_std",
    "zscore",
    "rsi",
    "StateStore",
]
