"""
Grid Engine

Runs a capital-bounded grid per selected token, independent of the
momentum / mean-reversion pool:
- Buy when price crosses down through a level
- Sell each fill once price reaches the next level above its buy level

The topmost level is never bought (there is no level above it to sell at),
so every recorded fill carries a sell level.
"""

import logging
from typing import List, Optional, Tuple

from sol_momentum.core.config import Config
from sol_momentum.monitoring.alerts import AlertSink
from sol_momentum.portfolio.models import GridFill, GridTokenState, utc_now_iso
from sol_momentum.portfolio.store import PortfolioStore
from sol_momentum.utils.precision import fmt_price, fmt_usd

logger = logging.getLogger(__name__)


def calculate_grid_levels(base_price: float, spread_pct: float, levels: int) -> List[float]:
    """
    Symmetric price ladder around a center price.

    Args:
        base_price: Center price
        spread_pct: Distance between adjacent levels (percent of base)
        levels: Number of levels above AND below the center

    Returns:
        2 * levels + 1 prices, sorted ascending
    """
    step = spread_pct / 100
    grid_levels = [base_price]
    for i in range(1, levels + 1):
        grid_levels.append(base_price * (1 + step * i))
        grid_levels.append(base_price * (1 - step * i))
    return sorted(grid_levels)


def find_grid_level(price: float, grid_levels: List[float]) -> Tuple[Optional[float], Optional[float]]:
    """
    Highest level at or below price, and the level right above it.

    Returns:
        (buy_level, sell_level); either may be None
    """
    buy_level = None
    sell_level = None
    for i, level in enumerate(grid_levels):
        if level <= price:
            buy_level = level
            sell_level = grid_levels[i + 1] if i + 1 < len(grid_levels) else None
    return buy_level, sell_level


class GridEngine:
    """Grid strategy over the store's grid book."""

    def __init__(self, config: Config, store: PortfolioStore, data_loader, executor, alerts: AlertSink):
        """
        Initialize grid engine.

        Args:
            config: System configuration
            store: Portfolio store (owns the grid book)
            data_loader: MarketDataLoader for price lookups
            executor: SwapExecutor for buys and sells
            alerts: Alert sink
        """
        self.config = config
        self.store = store
        self.data_loader = data_loader
        self.executor = executor
        self.alerts = alerts

    @property
    def available_capital(self) -> float:
        return self.config.grid.max_capital - self.store.grid.capital_allocated

    # ------------------------
    # Setup / selection
    # ------------------------

    def setup_grid(self, mint: str, symbol: str, current_price: float) -> Optional[GridTokenState]:
        """
        Create a grid centred on the current price if the pool can fund it.

        The full buy-side notional is reserved immediately.
        """
        cfg = self.config.grid
        grid_levels = calculate_grid_levels(current_price, cfg.spread_pct, cfg.levels)
        needed = cfg.capital_per_level * cfg.levels

        if self.available_capital < needed:
            logger.info(
                f"[Grid] Not enough capital for {symbol} grid. "
                f"Need {fmt_usd(needed)}, available: {fmt_usd(self.available_capital)}"
            )
            return None

        token_state = GridTokenState(
            token=symbol,
            mint=mint,
            base_price=current_price,
            grid_levels=grid_levels,
            capital_per_level=cfg.capital_per_level,
            last_price=current_price,
            last_check=utc_now_iso(),
        )
        self.store.add_grid(token_state, needed)

        self.alerts.write(
            "GRID_SETUP",
            f"Grid set up for {symbol} @ {fmt_price(current_price)} | {len(grid_levels)} levels | "
            f"{cfg.spread_pct}% spread | {fmt_usd(cfg.capital_per_level)}/level",
            {"mint": mint, "levels": grid_levels, "capital_allocated": needed},
        )
        return token_state

    def is_good_grid_candidate(self, token: dict) -> bool:
        """Liquid, calm and actively traded."""
        cfg = self.config.grid
        return (
            (token.get("liquidity") or 0) >= cfg.min_liquidity
            and abs(token.get("price_change_24h") or 0) <= cfg.max_volatility_24h
            and (token.get("volume_24h") or 0) >= cfg.min_volume_24h
        )

    async def grid_scan_loop(self, candidates: List[dict]) -> List[GridTokenState]:
        """
        Set up grids for the most liquid qualifying candidates.

        Never re-grids a mint already in the book (active or not).
        """
        grid = self.store.grid
        slots = self.config.grid.max_tokens - len(grid.active_tokens())
        if slots <= 0:
            return []

        picks = sorted(
            (t for t in candidates if self.is_good_grid_candidate(t) and t["mint"] not in grid.tokens),
            key=lambda t: t.get("liquidity") or 0,
            reverse=True,
        )[:slots]

        created = []
        async with self.store.lock:
            for token in picks:
                token_state = self.setup_grid(token["mint"], token.get("token", ""), token["price"])
                if token_state is not None:
                    created.append(token_state)
        return created

    def remove_grid(self, mint: str) -> bool:
        """Deactivate a grid. Filled buys are kept and stay exposed."""
        token_state = self.store.grid.tokens.get(mint)
        if token_state is None:
            return False
        self.store.deactivate_grid(mint)
        logger.info(
            f"[Grid] Deactivated grid for {token_state.token}. "
            f"{len(token_state.filled_buys)} open positions remain."
        )
        return True

    # ------------------------
    # Tick
    # ------------------------

    async def check_grid(self, mint: str):
        """Sell scan then buy scan for one grid."""
        token_state = self.store.grid.tokens.get(mint)
        if token_state is None or not token_state.active:
            return

        quote = await self.data_loader.get_token_price(mint)
        if not quote.is_ok:
            return
        current_price = quote.value["price"]

        async with self.store.lock:
            prev_price = self.store.observe_grid_price(mint, current_price)
            await self._sell_scan(token_state, current_price)
            await self._buy_scan(token_state, prev_price, current_price)

    async def _sell_scan(self, token_state: GridTokenState, current_price: float):
        for fill in list(token_state.filled_buys):
            if fill.sell_level is None or current_price < fill.sell_level:
                continue

            logger.info(
                f"[Grid] SELL trigger: {token_state.token} @ {fmt_price(current_price)} "
                f"(target: {fmt_price(fill.sell_level)})"
            )
            result = await self.executor.sell(token_state.mint, fill.amount, token_state.token)
            if not result.success:
                logger.warning(f"[Grid] Sell failed for {token_state.token}: {result.error}")
                continue

            usdc_received = result.usdc_received or fill.usdc_spent * (current_price / fill.level)
            pnl = self.store.record_grid_sell(token_state.mint, fill, usdc_received)

            self.alerts.write(
                "GRID_SELL",
                f"Grid SELL {token_state.token}: {fmt_usd(usdc_received)} ({'+' if pnl >= 0 else '-'}"
                f"{fmt_usd(abs(pnl))}) | Grid PnL: {fmt_usd(token_state.pnl)}",
                {"mint": token_state.mint, "level": fill.sell_level, "pnl": pnl, "tx_id": result.tx_id},
            )

    async def _buy_scan(self, token_state: GridTokenState, prev_price: float, current_price: float):
        cfg = self.config.grid
        buy_level, sell_level = find_grid_level(current_price, token_state.grid_levels)
        if buy_level is None or sell_level is None:
            return

        # Only a downward cross through the level this tick
        if not (prev_price > buy_level and current_price <= buy_level * (1 + cfg.trigger_tolerance)):
            return

        if any(abs(f.level - buy_level) / buy_level < cfg.duplicate_tolerance for f in token_state.filled_buys):
            return

        if self.available_capital < token_state.capital_per_level:
            logger.info(f"[Grid] Skip buy {token_state.token} @ {fmt_price(buy_level)}: no grid capital")
            return

        logger.info(
            f"[Grid] BUY trigger: {token_state.token} @ {fmt_price(current_price)} "
            f"(level: {fmt_price(buy_level)})"
        )
        result = await self.executor.buy(token_state.mint, token_state.capital_per_level, token_state.token)
        if not result.success:
            logger.warning(f"[Grid] Buy failed for {token_state.token}: {result.error}")
            return

        fill = GridFill(
            level=buy_level,
            sell_level=sell_level,
            amount=result.output_amount,
            usdc_spent=token_state.capital_per_level,
            bought_at=utc_now_iso(),
            tx_id=result.tx_id,
        )
        self.store.record_grid_buy(token_state.mint, fill)

        self.alerts.write(
            "GRID_BUY",
            f"Grid BUY {token_state.token}: {fmt_usd(token_state.capital_per_level)} @ "
            f"{fmt_price(current_price)} | Sell target: {fmt_price(sell_level)}",
            {"mint": token_state.mint, "level": buy_level, "sell_level": sell_level, "tx_id": result.tx_id},
        )

    async def grid_loop(self):
        """Check every active grid; one grid's failure never stops the others."""
        for token_state in self.store.grid.active_tokens():
            try:
                await self.check_grid(token_state.mint)
            except Exception as e:
                logger.exception(f"[Grid] Check failed for {token_state.token}")
                self.alerts.write("ERROR", f"Grid check error for {token_state.token}: {e}")

    def get_grid_status(self) -> dict:
        grid = self.store.grid
        active = grid.active_tokens()
        return {
            "active_grids": len(active),
            "total_pnl": grid.total_pnl,
            "total_trades": grid.total_trades,
            "capital_allocated": grid.capital_allocated,
            "grids": [
                {
                    "token": t.token,
                    "base_price": t.base_price,
                    "last_price": t.last_price,
                    "open_buys": len(t.filled_buys),
                    "pnl": t.pnl,
                    "trades": t.trades,
                }
                for t in active
            ],
        }
