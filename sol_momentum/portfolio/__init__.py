"""Portfolio: position models and the injectable store."""

from sol_momentum.portfolio.models import (
    ClosedTrade,
    GridFill,
    GridPortfolio,
    GridTokenState,
    PortfolioState,
    Position,
    ShortPosition,
    Signal,
)
from sol_momentum.portfolio.store import PortfolioStore

__all__ = [
    "ClosedTrade",
    "GridFill",
    "GridPortfolio",
    "GridTokenState",
    "PortfolioState",
    "PortfolioStore",
    "Position",
    "ShortPosition",
    "Signal",
]
