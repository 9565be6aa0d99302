"""
Execution result structures (SwapResult, ShortResult).
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class SwapResult:
    """
    Outcome of a Jupiter swap.

    Buys fill output_amount (raw token units) and price; sells fill
    usdc_received. On failure only error is meaningful.
    """

    success: bool
    output_amount: str = "0"  # Raw token units received (buy)
    price: float = 0.0  # USDC per token implied by the quote (buy)
    usdc_received: float = 0.0  # USDC out (sell)
    tx_id: str = ""
    simulated: bool = False
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "SwapResult":
        return cls(success=False, error=error)


@dataclass
class ShortResult:
    """Outcome of a perp short open/close."""

    success: bool
    position_id: str = ""
    market: str = ""
    size_usdc: float = 0.0
    leverage: int = 1
    entry_price: float = 0.0
    base_amount: float = 0.0
    tx_id: str = ""
    simulated: bool = False
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "ShortResult":
        return cls(success=False, error=error)
