"""
Precision helpers.

Converts between UI amounts and on-chain raw units (USDC has 6 decimals),
rounds perp sizes to lot precision, and formats numbers for logs/alerts.
"""

import math

USDC_DECIMALS = 6


def to_raw_amount(amount: float, decimals: int = USDC_DECIMALS) -> int:
    """
    Convert a UI amount to integer base units, rounding down.

    Args:
        amount: Human-readable amount (e.g. 12.5 USDC)
        decimals: Token decimals

    Returns:
        Raw amount in smallest units
    """
    if amount < 0:
        raise ValueError(f"amount must be >= 0, got {amount}")
    return int(math.floor(amount * 10 ** decimals))


def from_raw_amount(raw, decimals: int = USDC_DECIMALS) -> float:
    """Convert raw base units (int or numeric string) to a UI amount."""
    return int(raw) / 10 ** decimals


def format_size(sz: float, sz_decimals: int) -> str:
    """
    Format size per lot precision.

    Args:
        sz: Size (quantity)
        sz_decimals: Asset szDecimals

    Returns:
        Formatted size string
    """
    q = 10 ** sz_decimals
    rounded = math.floor(sz * q) / q

    if sz_decimals > 0:
        return f"{rounded:.{sz_decimals}f}".rstrip("0").rstrip(".")
    else:
        return str(int(rounded))


def fmt_usd(n: float) -> str:
    """Format a USD amount, e.g. $12.50."""
    return f"${float(n):.2f}"


def fmt_price(px: float) -> str:
    """Format a token price with enough precision for sub-cent tokens."""
    if px >= 1:
        return f"${px:.4f}"
    return f"${px:.6g}" if px > 0 else "$0"
