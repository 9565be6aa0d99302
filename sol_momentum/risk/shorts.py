"""
Short position risk: PnL, SL/TP bounds and close decisions for perp shorts.

A short profits when price falls, so its bounds are mirrored:
take_profit < entry_price < stop_loss.
"""

from datetime import datetime
from typing import Optional, Tuple

from sol_momentum.core.config import Config
from sol_momentum.portfolio.models import ShortPosition
from sol_momentum.risk.engine import TIME_STOP, CloseDecision

SHORT_STOP_LOSS = "SHORT_STOP_LOSS"
SHORT_TAKE_PROFIT = "SHORT_TAKE_PROFIT"


def short_pnl(position: ShortPosition, current_price: float) -> Tuple[float, float]:
    """
    Unrealized PnL of a short.

    Args:
        position: Open short
        current_price: Current mark price

    Returns:
        (pnl in USDC, pnl percent)
    """
    price_diff = position.entry_price - current_price
    pnl = price_diff / position.entry_price * position.usdc_spent
    pnl_percent = price_diff / position.entry_price * 100
    return pnl, pnl_percent


def short_sltp(config: Config, entry_price: float) -> Tuple[float, float]:
    """Returns (stop_loss, take_profit) for a new short."""
    stop_loss = entry_price * (1 + config.shorts.stop_loss_pct / 100)
    take_profit = entry_price * (1 - config.shorts.take_profit_pct / 100)
    return stop_loss, take_profit


def check_short_position(
    config: Config,
    position: ShortPosition,
    current_price: float,
    now: Optional[datetime] = None,
) -> CloseDecision:
    """SL/TP check for a short, then the time stop (non-positive PnL only)."""
    if current_price >= position.stop_loss:
        return CloseDecision(True, SHORT_STOP_LOSS)
    if current_price <= position.take_profit:
        return CloseDecision(True, SHORT_TAKE_PROFIT)

    if position.age_hours(now) > config.risk.time_stop_hours:
        pnl, _ = short_pnl(position, current_price)
        if pnl <= 0:
            return CloseDecision(True, TIME_STOP)
    return CloseDecision(False)
