"""Execution: Jupiter swaps and Hyperliquid perp shorts."""

from sol_momentum.execution.router import SwapExecutor
from sol_momentum.execution.perps import PerpExecutor
from sol_momentum.execution.orders import SwapResult, ShortResult

__all__ = ["SwapExecutor", "PerpExecutor", "SwapResult", "ShortResult"]
