"""
Kill Switch

Portfolio-wide circuit breaker. Trips when total realized PnL falls to the
configured threshold (percent of initial capital). Once tripped it is a
one-way latch: every later open attempt is denied until the process is
restarted against a state document that has been reset by an operator.
"""

import logging
from typing import TYPE_CHECKING

from sol_momentum.core.config import Config

if TYPE_CHECKING:
    from sol_momentum.portfolio.store import PortfolioStore

logger = logging.getLogger(__name__)


class KillSwitch:
    """Circuit breaker for portfolio drawdown."""

    def __init__(self, config: Config, store: "PortfolioStore"):
        self.config = config
        self.store = store

    @property
    def triggered(self) -> bool:
        return self.store.state.kill_switch_triggered

    def check(self) -> bool:
        """
        Check if the kill switch should trigger, tripping it if so.

        Returns:
            True if trading must halt
        """
        if self.triggered:
            return True

        pnl_percent = self.store.state.pnl_percent
        if pnl_percent <= self.config.risk.kill_switch_pct:
            self.trigger(
                f"(PnL {pnl_percent:.1f}% <= {self.config.risk.kill_switch_pct:.1f}%)"
            )
            return True
        return False

    def trigger(self, reason: str):
        """Trigger kill switch."""
        logger.error(f"[KillSwitch] TRIGGERED: {reason}")
        self.store.trigger_kill_switch(reason)
