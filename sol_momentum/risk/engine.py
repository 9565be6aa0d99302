"""
Risk Engine

Gates new entries (kill switch, position count, dust floor), sizes positions
from signal confidence, sets stop-loss / take-profit bounds and decides when
an open long should be closed.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from sol_momentum.core.config import Config
from sol_momentum.monitoring.alerts import AlertSink
from sol_momentum.monitoring.kill_switch import KillSwitch
from sol_momentum.portfolio.models import Position, Signal
from sol_momentum.portfolio.store import PortfolioStore
from sol_momentum.utils.precision import fmt_usd

logger = logging.getLogger(__name__)

STOP_LOSS = "STOP_LOSS"
TAKE_PROFIT = "TAKE_PROFIT"
TIME_STOP = "TIME_STOP_24H"


class OpenCheck:
    """Result of the entry gate."""

    def __init__(self, allowed: bool, reason: str = "", max_size: float = 0.0):
        self.allowed = allowed
        self.reason = reason
        self.max_size = max_size  # USDC, only meaningful when allowed

    def __repr__(self):
        return f"OpenCheck(allowed={self.allowed}, reason={self.reason!r}, max_size={self.max_size})"


class CloseDecision:
    """Whether an open position should be closed, and why."""

    def __init__(self, should_close: bool, reason: str = ""):
        self.should_close = should_close
        self.reason = reason

    def __bool__(self):
        return self.should_close

    def __repr__(self):
        return f"CloseDecision(should_close={self.should_close}, reason={self.reason!r})"


class RiskManager:
    """
    Position-level risk management.

    Check order for new entries (first failure wins):
    1. Kill switch already set
    2. Total PnL at/below kill switch threshold (trips the latch)
    3. Max open positions reached
    4. Capital below dust floor
    """

    def __init__(
        self,
        config: Config,
        store: PortfolioStore,
        alerts: AlertSink,
        kill_switch: Optional[KillSwitch] = None,
    ):
        """
        Initialize risk manager.

        Args:
            config: System configuration
            store: Portfolio store (capital, positions)
            alerts: Alert sink for portfolio snapshots
            kill_switch: Drawdown circuit breaker (built from store if omitted)
        """
        self.config = config
        self.store = store
        self.alerts = alerts
        self.kill_switch = kill_switch or KillSwitch(config, store)

    def can_open_position(self) -> OpenCheck:
        """
        Entry gate.

        Returns:
            OpenCheck with max_size = min(max_position_size, capital) when allowed
        """
        state = self.store.state

        if state.kill_switch_triggered:
            return OpenCheck(False, "Kill switch active")

        if self.kill_switch.check():
            return OpenCheck(False, f"Kill switch triggered: {state.pnl_percent:.1f}% loss")

        if len(state.positions) >= self.config.risk.max_positions:
            return OpenCheck(False, f"Max positions ({self.config.risk.max_positions}) reached")

        if state.capital_usdc < self.config.risk.min_capital_usdc:
            return OpenCheck(False, f"Insufficient capital: {fmt_usd(state.capital_usdc)}")

        max_size = min(self.config.risk.max_position_size, state.capital_usdc)
        return OpenCheck(True, max_size=max_size)

    def calculate_position_size(self, signal: Signal) -> float:
        """
        Size a position from signal confidence.

        Scales linearly from 50% of max size (score 0) to 100% (score 100).
        Callers must reject results below risk.min_trade_usdc.

        Args:
            signal: Scored signal

        Returns:
            USDC notional (0 if the gate denies)
        """
        check = self.can_open_position()
        if not check.allowed:
            return 0.0

        confidence = 0.5 + (signal.score / 100) * 0.5
        return min(check.max_size, round(check.max_size * confidence, 2))

    def calculate_sltp(self, entry_price: float, strategy: str = "momentum") -> Tuple[float, float]:
        """
        Stop-loss and take-profit prices for a long.

        Returns:
            (stop_loss, take_profit)
        """
        risk = self.config.risk
        if strategy == "meanReversion":
            return entry_price * risk.mean_reversion_sl_mult, entry_price * risk.mean_reversion_tp_mult

        stop_loss = entry_price * (1 + risk.stop_loss_pct / 100)
        take_profit = entry_price * (1 + risk.take_profit_pct / 100)
        return stop_loss, take_profit

    def check_position(self, position: Position, current_price: float) -> CloseDecision:
        """SL/TP check for an open long. Stop-loss wins ties."""
        if current_price <= position.stop_loss:
            return CloseDecision(True, STOP_LOSS)
        if current_price >= position.take_profit:
            return CloseDecision(True, TAKE_PROFIT)
        return CloseDecision(False)

    def check_time_stop(
        self,
        position: Position,
        current_price: float,
        now: Optional[datetime] = None,
    ) -> CloseDecision:
        """Force-close a stale long whose unrealized PnL is not positive."""
        if position.age_hours(now) <= self.config.risk.time_stop_hours:
            return CloseDecision(False)
        if current_price - position.entry_price <= 0:
            return CloseDecision(True, TIME_STOP)
        return CloseDecision(False)

    def has_position(self, mint: str) -> bool:
        return self.store.has_position(mint)

    def portfolio_check(self) -> dict:
        """Read-only portfolio snapshot; emits a PORTFOLIO_UPDATE alert."""
        snapshot = self.store.snapshot()
        self.alerts.write(
            "PORTFOLIO_UPDATE",
            f"Capital: {fmt_usd(snapshot['capital'])} | Positions: {snapshot['open_positions']} | "
            f"PnL: {fmt_usd(snapshot['total_pnl'])} ({snapshot['pnl_percent']:.1f}%)",
            snapshot,
        )
        return snapshot
