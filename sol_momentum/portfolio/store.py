"""
Portfolio Store

Owns capital, open positions, closed-trade history, the kill-switch flag and
the grid book. All mutation goes through named operations that also write the
state document synchronously. Cycles that read-check-spend hold `lock` for
that section and re-validate their gates after acquiring it.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sol_momentum.core.config import Config
from sol_momentum.monitoring.alerts import AlertSink
from sol_momentum.portfolio.models import (
    AnyPosition,
    ClosedTrade,
    GridFill,
    GridTokenState,
    PortfolioState,
    utc_now_iso,
)
from sol_momentum.utils.precision import fmt_usd
from sol_momentum.utils.state_store import StateStore

logger = logging.getLogger(__name__)


class PortfolioStore:
    """
    Injectable portfolio state owner.

    Persistence failures never abort a cycle: they are logged, surfaced as an
    ERROR alert, and `dirty` stays set so the next mutation retries the write.
    """

    def __init__(
        self,
        config: Config,
        state_store: StateStore,
        alerts: AlertSink,
        state_file: str = "state.json",
    ):
        self.config = config
        self.state_store = state_store
        self.alerts = alerts
        self.state_file = state_file
        self.lock = asyncio.Lock()
        self.dirty = False
        self.save_failures = 0
        self._state: Optional[PortfolioState] = None

    # ------------------------
    # Load / save
    # ------------------------

    def load(self) -> PortfolioState:
        """Load state from disk, or create (and persist) a fresh default."""
        raw = self.state_store.load_document(self.state_file)
        state = None
        if raw is not None:
            try:
                state = PortfolioState.from_dict(raw)
                logger.info(
                    f"[Portfolio] Loaded state: {len(state.positions)} open positions, "
                    f"PnL: {fmt_usd(state.total_pnl)}"
                )
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.error(f"[Portfolio] Error loading state, starting fresh: {e}")

        if state is None:
            state = PortfolioState.fresh(self.config.capital.starting)
            logger.info("[Portfolio] Initialized fresh state")
            self._state = state
            self.save()
        self._state = state
        return state

    @property
    def state(self) -> PortfolioState:
        if self._state is None:
            return self.load()
        return self._state

    def save(self) -> bool:
        """Write the full document. Returns False (and keeps `dirty`) on failure."""
        try:
            self.state_store.save_document(self.state_file, self.state.to_dict())
        except (OSError, TypeError, ValueError) as e:
            self.dirty = True
            self.save_failures += 1
            logger.error(f"[Portfolio] Failed to save state: {e}")
            self.alerts.write(
                "ERROR",
                f"State save failed ({self.save_failures}x): {e}",
                {"unsaved": True},
            )
            return False
        if self.dirty:
            logger.info("[Portfolio] State write recovered")
        self.dirty = False
        return True

    # ------------------------
    # Queries
    # ------------------------

    def has_position(self, mint: str) -> bool:
        return any(p.mint == mint for p in self.state.positions)

    def open_positions(self) -> List[AnyPosition]:
        """Snapshot copy of open positions (safe to iterate across awaits)."""
        return list(self.state.positions)

    def get_position(self, position_id: str) -> Optional[AnyPosition]:
        return next((p for p in self.state.positions if p.id == position_id), None)

    # ------------------------
    # Position lifecycle
    # ------------------------

    def open_position(self, position: AnyPosition):
        """Record a new open position and deduct its notional from capital."""
        state = self.state
        state.positions.append(position)
        state.trade_count += 1
        state.capital_usdc = round(state.capital_usdc - position.usdc_spent, 4)
        self.save()

    def close_position(
        self,
        position_id: str,
        exit_price: float,
        usdc_received: float,
        reason: str,
    ) -> Optional[ClosedTrade]:
        """
        Close an open position (OPEN -> CLOSED).

        Realized PnL = usdc_received - usdc_spent. Capital and total PnL are
        credited in the same write as the history append.

        Returns:
            The closed trade, or None if the id is not open
        """
        state = self.state
        idx = next((i for i, p in enumerate(state.positions) if p.id == position_id), None)
        if idx is None:
            return None

        pos = state.positions.pop(idx)
        pnl = usdc_received - pos.usdc_spent
        pnl_percent = (pnl / pos.usdc_spent * 100) if pos.usdc_spent else 0.0

        closed = ClosedTrade(
            position=pos.to_dict(),
            exit_price=exit_price,
            usdc_received=usdc_received,
            pnl=round(pnl, 4),
            pnl_percent=round(pnl_percent, 2),
            closed_at=utc_now_iso(),
            reason=reason,
        )
        state.closed_trades.append(closed)
        state.total_pnl = round(state.total_pnl + pnl, 4)
        state.capital_usdc = round(state.capital_usdc + usdc_received, 4)
        self.save()

        sign = "+" if pnl >= 0 else "-"
        self.alerts.write(
            "TRADE_CLOSE",
            f"Closed {pos.token}: {sign}{fmt_usd(abs(pnl))} ({pnl_percent:.1f}%) [{reason}]",
            closed.to_dict(),
        )
        return closed

    def trigger_kill_switch(self, reason: str = ""):
        """Set the kill-switch latch. Never cleared in-process."""
        state = self.state
        if state.kill_switch_triggered:
            return
        state.kill_switch_triggered = True
        self.save()
        self.alerts.write(
            "KILL_SWITCH",
            f"KILL SWITCH TRIGGERED - stopping all new entries {reason}".strip(),
            {"total_pnl": state.total_pnl, "pnl_percent": state.pnl_percent},
        )

    # ------------------------
    # Grid book
    # ------------------------

    @property
    def grid(self):
        return self.state.grid

    def add_grid(self, token_state: GridTokenState, reserved: float):
        """Register a new grid and reserve its capital."""
        grid = self.grid
        grid.tokens[token_state.mint] = token_state
        grid.capital_allocated = round(grid.capital_allocated + reserved, 4)
        self.save()

    def observe_grid_price(self, mint: str, price: float) -> float:
        """
        Remember the latest price for a grid.

        Returns:
            The previously observed price
        """
        token_state = self.grid.tokens[mint]
        prev = token_state.last_price
        token_state.last_price = price
        token_state.last_check = utc_now_iso()
        self.save()
        return prev

    def record_grid_buy(self, mint: str, fill: GridFill):
        grid = self.grid
        grid.tokens[mint].filled_buys.append(fill)
        grid.capital_allocated = round(grid.capital_allocated + fill.usdc_spent, 4)
        self.save()

    def record_grid_sell(self, mint: str, fill: GridFill, usdc_received: float) -> float:
        """
        Resolve a filled buy. Its capital is released and immediately
        re-reserved for the next buy at that level.

        Returns:
            Realized PnL of the round trip
        """
        grid = self.grid
        token_state = grid.tokens[mint]
        token_state.filled_buys.remove(fill)
        pnl = usdc_received - fill.usdc_spent

        token_state.pnl = round(token_state.pnl + pnl, 4)
        token_state.trades += 1
        grid.total_pnl = round(grid.total_pnl + pnl, 4)
        grid.total_trades += 1

        grid.capital_allocated = max(0.0, grid.capital_allocated - fill.usdc_spent)
        grid.capital_allocated = round(grid.capital_allocated + token_state.capital_per_level, 4)
        self.save()
        return pnl

    def deactivate_grid(self, mint: str) -> bool:
        token_state = self.grid.tokens.get(mint)
        if token_state is None:
            return False
        token_state.active = False
        self.save()
        return True

    # ------------------------
    # Reporting
    # ------------------------

    def snapshot(self) -> dict:
        """Read-only summary of the portfolio."""
        state = self.state
        return {
            "capital": state.capital_usdc,
            "open_positions": len(state.positions),
            "total_pnl": state.total_pnl,
            "pnl_percent": state.pnl_percent,
            "closed_trades": len(state.closed_trades),
            "kill_switch": state.kill_switch_triggered,
            "as_of": datetime.now(timezone.utc).isoformat(),
        }
