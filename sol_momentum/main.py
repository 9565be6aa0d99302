"""
Main entry point for the Solana momentum bot.

Orchestrates all components:
Scheduler → Data → Signals → Trend → Risk → Execution → Portfolio Store,
plus the position review, grid and heartbeat cycles.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
import uuid
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from sol_momentum.core.config import Config
from sol_momentum.core.scheduler import Scheduler
from sol_momentum.data.loader import MarketDataLoader
from sol_momentum.execution.perps import PerpExecutor
from sol_momentum.execution.router import SwapExecutor
from sol_momentum.grid.engine import GridEngine
from sol_momentum.monitoring.alerts import AlertSink
from sol_momentum.monitoring.kill_switch import KillSwitch
from sol_momentum.monitoring.logs import setup_logging
from sol_momentum.portfolio.models import Position, ShortPosition, Signal, utc_now_iso
from sol_momentum.portfolio.store import PortfolioStore
from sol_momentum.risk.engine import RiskManager
from sol_momentum.risk.shorts import check_short_position, short_pnl, short_sltp
from sol_momentum.signals.engine import SignalEngine
from sol_momentum.signals.trend import DOWNTREND, TrendFilter, TrendReading
from sol_momentum.utils.precision import fmt_price, fmt_usd
from sol_momentum.utils.state_store import StateStore

logger = logging.getLogger(__name__)


def new_position_id() -> str:
    return f"pos-{uuid.uuid4().hex[:12]}"


class TradingBot:
    """
    Main orchestrator.

    Every cycle is wrapped so an unexpected error is alerted and the next
    scheduled cycle still runs. Cycles that spend or release capital do so
    under store.lock and re-check the risk gate after acquiring it.
    """

    def __init__(
        self,
        config: Config,
        state_store: Optional[StateStore] = None,
        data_loader: Optional[MarketDataLoader] = None,
        swap_executor: Optional[SwapExecutor] = None,
        perp_executor: Optional[PerpExecutor] = None,
        sleep=asyncio.sleep,
    ):
        """
        Initialize trading bot.

        Args:
            config: System configuration
            state_store: Persistence backend (files resolved against the cwd if omitted)
            data_loader: Market data collaborator
            swap_executor: Jupiter swap collaborator
            perp_executor: Perp short collaborator
            sleep: Awaitable used for inter-trade delays
        """
        self.config = config
        self.sleep = sleep

        self.state_store = state_store or StateStore(".")
        self.alerts = AlertSink(self.state_store, config.monitoring.alerts_file)
        self.store = PortfolioStore(config, self.state_store, self.alerts, config.monitoring.state_file)
        self.store.load()

        self.data_loader = data_loader or MarketDataLoader(config)
        self.swaps = swap_executor or SwapExecutor(config, self.alerts)
        self.perps = perp_executor or PerpExecutor(config, self.alerts)

        self.kill_switch = KillSwitch(config, self.store)
        self.risk = RiskManager(config, self.store, self.alerts, self.kill_switch)
        self.signals = SignalEngine(config, self.alerts)
        self.trend = TrendFilter(config, self.data_loader, self.alerts)
        self.grid = GridEngine(config, self.store, self.data_loader, self.swaps, self.alerts)

        self.scheduler = Scheduler()
        logger.info("[Init] All components initialized")

    # ------------------------
    # Scan cycle
    # ------------------------

    async def scan_cycle(self):
        """Discover candidates, score them and open the best positions."""
        try:
            # The grid pool is independent of the long gate
            check = self.risk.can_open_position()
            if not check.allowed and not self.config.grid.enabled:
                logger.info(f"[Scan] Skipping: {check.reason}")
                return

            scan = await self.data_loader.scan_tokens()
            if not scan.is_ok:
                if scan.error:
                    logger.warning(f"[Scan] No candidates: {scan.error}")
                return
            candidates = scan.value

            if self.config.grid.enabled:
                try:
                    await self.grid.grid_scan_loop(candidates)
                except Exception as e:
                    logger.exception("[Scan] Grid scan error")
                    self.alerts.write("ERROR", f"Grid scan error: {e}")

            if not check.allowed:
                logger.info(f"[Scan] Skipping entries: {check.reason}")
                return

            signals = self.signals.detect_signals(candidates)

            trend = TrendReading()
            if self.config.shorts.enabled:
                trend = await self.trend.get_market_trend()
            downtrend = self.config.shorts.enabled and trend.trend == DOWNTREND

            for sig in signals[: self.config.signal.max_signals_per_scan]:
                if downtrend and sig.strategy == "meanReversion":
                    logger.info(f"[Scan] Skipping mean reversion long for {sig.token}: downtrend")
                    continue

                opened = await self._open_long(sig)
                if opened is None:
                    break
                if opened:
                    await self.sleep(self.config.execution.trade_delay_seconds)

            if downtrend:
                await self._open_shorts()
        except Exception as e:
            logger.exception("[Scan] Cycle failed")
            self.alerts.write("ERROR", f"Scan loop error: {e}")

    async def _open_long(self, sig: Signal) -> Optional[bool]:
        """
        Gate, size, buy and record one signal.

        Returns:
            True if opened, False if skipped, None if the gate is closed
        """
        async with self.store.lock:
            check = self.risk.can_open_position()
            if not check.allowed:
                logger.info(f"[Scan] Stopping entries: {check.reason}")
                return None

            if self.risk.has_position(sig.mint):
                return False

            size = self.risk.calculate_position_size(sig)
            if size < self.config.risk.min_trade_usdc:
                return False

            logger.info(
                f"[Scan] Opening position: {sig.token} ({sig.strategy}, score: {sig.score}, size: {fmt_usd(size)})"
            )
            result = await self.swaps.buy(sig.mint, size, sig.token)
            if not result.success:
                return False

            stop_loss, take_profit = self.risk.calculate_sltp(sig.price, sig.strategy)
            position = Position(
                id=new_position_id(),
                token=sig.token,
                mint=sig.mint,
                entry_price=sig.price,
                amount=result.output_amount,
                usdc_spent=size,
                opened_at=utc_now_iso(),
                stop_loss=stop_loss,
                take_profit=take_profit,
                strategy=sig.strategy,
                signal_score=sig.score,
                signal_reasons=list(sig.reasons),
                tx_id=result.tx_id,
                simulated=result.simulated,
            )
            self.store.open_position(position)

        self.alerts.write(
            "TRADE_OPEN",
            f"Opened {sig.token}: {fmt_usd(size)} @ {fmt_price(sig.price)} | "
            f"SL: {fmt_price(stop_loss)} | TP: {fmt_price(take_profit)}",
            position.to_dict(),
        )
        return True

    async def _open_shorts(self):
        """Open perp shorts on configured markets while the regime is down."""
        shorts_cfg = self.config.shorts
        for market in shorts_cfg.markets:
            async with self.store.lock:
                open_shorts = [p for p in self.store.open_positions() if p.is_short]
                if len(open_shorts) >= shorts_cfg.max_shorts:
                    break
                if any(getattr(s, "market", "") == market for s in open_shorts):
                    continue

                check = self.risk.can_open_position()
                if not check.allowed:
                    logger.info(f"[Scan] No shorts: {check.reason}")
                    break

                size = min(shorts_cfg.position_size, shorts_cfg.max_short_size, self.store.state.capital_usdc)
                if size < self.config.risk.min_trade_usdc:
                    break

                logger.info(f"[Scan] Downtrend detected, opening short: {market} {fmt_usd(size)}")
                result = await self.perps.open_short(market, size, shorts_cfg.leverage)
                if not result.success:
                    continue

                stop_loss, take_profit = short_sltp(self.config, result.entry_price)
                position = ShortPosition(
                    id=result.position_id or new_position_id(),
                    token=market,
                    mint=market,
                    entry_price=result.entry_price,
                    amount=str(result.base_amount),
                    usdc_spent=size,
                    opened_at=utc_now_iso(),
                    stop_loss=stop_loss,
                    take_profit=take_profit,
                    tx_id=result.tx_id,
                    simulated=result.simulated,
                    market=market,
                    base_amount=result.base_amount,
                    leverage=result.leverage,
                )
                self.store.open_position(position)

            self.alerts.write(
                "TRADE_OPEN",
                f"Opened SHORT {market}: {fmt_usd(size)} @ {fmt_price(result.entry_price)} | "
                f"SL: {fmt_price(stop_loss)} | TP: {fmt_price(take_profit)}",
                position.to_dict(),
            )
            await self.sleep(self.config.execution.trade_delay_seconds)

    # ------------------------
    # Position cycle
    # ------------------------

    async def position_cycle(self):
        """Re-price open positions and close those that hit an exit."""
        for pos in self.store.open_positions():
            try:
                if pos.is_short:
                    await self._review_short(pos)
                else:
                    await self._review_long(pos)
            except Exception as e:
                logger.exception(f"[Position] Review failed for {pos.token}")
                self.alerts.write("ERROR", f"Position loop error for {pos.token}: {e}")
            await self.sleep(self.config.execution.review_delay_seconds)

    async def _review_long(self, pos: Position):
        quote = await self.data_loader.get_token_price(pos.mint)
        if not quote.is_ok:
            return
        current_price = quote.value["price"]

        decision = self.risk.check_position(pos, current_price)
        if not decision.should_close:
            decision = self.risk.check_time_stop(pos, current_price)

        if not decision.should_close:
            change = (current_price - pos.entry_price) / pos.entry_price * 100
            logger.info(f"[Position] {pos.token}: {fmt_price(current_price)} ({change:.1f}%)")
            return

        logger.info(
            f"[Position] Closing {pos.token}: {decision.reason} @ {fmt_price(current_price)} "
            f"(entry: {fmt_price(pos.entry_price)})"
        )
        async with self.store.lock:
            if self.store.get_position(pos.id) is None:
                return
            result = await self.swaps.sell(pos.mint, pos.amount, pos.token)
            if not result.success:
                return
            usdc_received = result.usdc_received or pos.usdc_spent * (current_price / pos.entry_price)
            self.store.close_position(pos.id, current_price, usdc_received, decision.reason)

    async def _review_short(self, pos: ShortPosition):
        quote = await self.perps.mark_price(pos.market)
        if not quote.is_ok:
            return
        current_price = quote.value
        pnl, pnl_percent = short_pnl(pos, current_price)

        decision = check_short_position(self.config, pos, current_price)
        if not decision.should_close:
            logger.info(f"[Position] SHORT {pos.market}: {fmt_price(current_price)} ({pnl_percent:+.1f}%)")
            return

        logger.info(
            f"[Position] Closing short {pos.market}: {decision.reason} @ {fmt_price(current_price)} "
            f"(entry: {fmt_price(pos.entry_price)}, PnL: {pnl_percent:.1f}%)"
        )
        async with self.store.lock:
            if self.store.get_position(pos.id) is None:
                return
            result = await self.perps.close_short(pos.market, pos.base_amount)
            if not result.success:
                return
            self.store.close_position(pos.id, current_price, pos.usdc_spent + pnl, decision.reason)

    # ------------------------
    # Grid / heartbeat
    # ------------------------

    async def grid_cycle(self):
        try:
            await self.grid.grid_loop()
        except Exception as e:
            logger.exception("[Grid] Cycle failed")
            self.alerts.write("ERROR", f"Grid loop error: {e}")

    async def heartbeat(self) -> dict:
        """Portfolio snapshot, grid status and liveness alert."""
        try:
            if self.store.dirty:
                self.store.save()

            summary = self.risk.portfolio_check()
            if self.config.grid.enabled:
                grid_status = self.grid.get_grid_status()
                summary["grid"] = grid_status
                if grid_status["active_grids"] > 0:
                    self.alerts.write(
                        "GRID_STATUS",
                        f"Grids: {grid_status['active_grids']} active | PnL: {fmt_usd(grid_status['total_pnl'])} | "
                        f"Trades: {grid_status['total_trades']} | Capital: {fmt_usd(grid_status['capital_allocated'])}",
                        grid_status,
                    )
            self.alerts.write("HEARTBEAT", f"Bot alive | Mode: {self.config.mode}", summary)
            return summary
        except Exception as e:
            logger.exception("[Heartbeat] Failed")
            self.alerts.write("ERROR", f"Heartbeat error: {e}")
            return {}

    def status(self) -> dict:
        """Read-only snapshot for --status (no alerts)."""
        summary = self.store.snapshot()
        summary["positions"] = [p.to_dict() for p in self.store.open_positions()]
        summary["grid"] = self.grid.get_grid_status()
        return summary

    # ------------------------
    # Lifecycle
    # ------------------------

    def schedule(self):
        intervals = self.config.intervals
        self.scheduler.add_job("scan", intervals.scan_seconds, self.scan_cycle, run_immediately=True)
        self.scheduler.add_job("positions", intervals.position_check_seconds, self.position_cycle)
        if self.config.grid.enabled:
            self.scheduler.add_job("grid", intervals.grid_check_seconds, self.grid_cycle)
        self.scheduler.add_job("heartbeat", intervals.heartbeat_seconds, self.heartbeat)

    async def run(self):
        """Run until SIGINT/SIGTERM, then persist state and close clients."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.scheduler.stop)
            except NotImplementedError:
                pass  # Windows: KeyboardInterrupt ends the loop instead

        self.schedule()
        await self.heartbeat()
        try:
            await self.scheduler.run_forever()
        finally:
            await self.shutdown()

    async def shutdown(self):
        logger.info("[Main] Shutting down...")
        self.scheduler.stop()
        self.store.save()
        await self.data_loader.close()
        await self.swaps.close()
        logger.info("[Main] State saved. Goodbye!")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Solana momentum / mean-reversion trading bot")
    parser.add_argument("--config", type=str, default="", help="Path to YAML config file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Simulate all trades")
    mode.add_argument("--live", action="store_true", help="Sign and submit real transactions")
    parser.add_argument("--status", action="store_true", help="Print portfolio status and exit")
    args = parser.parse_args()

    # Load .env if present (before Config) to populate env overrides
    load_dotenv(dotenv_path=Path.cwd() / ".env")

    config = Config.from_yaml(args.config) if args.config else Config()
    if args.dry_run:
        config.mode = "dry-run"
    elif args.live:
        config.mode = "live"

    errors = config.validate()
    if errors:
        print("[ERROR] Configuration validation failed:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)

    setup_logging(config.monitoring.log_level, config.monitoring.log_dir)
    bot = TradingBot(config)

    if args.status:
        print(json.dumps(bot.status(), indent=2))
        return

    print("=" * 60)
    print("  SOLANA MOMENTUM BOT (Momentum + Mean Reversion)")
    print(f"  Mode: {config.mode.upper()}")
    print(f"  Capital: {fmt_usd(config.capital.starting)} USDC")
    print(f"  Max position: {fmt_usd(config.risk.max_position_size)} | Max positions: {config.risk.max_positions}")
    print(f"  SL: {config.risk.stop_loss_pct}% | TP: +{config.risk.take_profit_pct}%")
    print(f"  Kill switch: {config.risk.kill_switch_pct}%")
    if config.shorts.enabled:
        print(f"  Perp shorts: ENABLED | Leverage: {config.shorts.leverage}x | Max shorts: {config.shorts.max_shorts}")
    if config.grid.enabled:
        print(f"  Grid: ENABLED | {config.grid.levels} levels | {config.grid.spread_pct}% spread")
    print(f"  Time stop: {config.risk.time_stop_hours:.0f}h")
    print("=" * 60)

    try:
        asyncio.run(bot.run())
    except KeyboardInterrupt:
        print("\n[Main] Shutdown signal received")


if __name__ == "__main__":
    main()
