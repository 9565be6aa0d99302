"""
Cycle-level tests for the trading bot with mocked data and execution.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from sol_momentum.core.results import FetchResult
from sol_momentum.execution.orders import ShortResult, SwapResult
from sol_momentum.main import TradingBot
from sol_momentum.portfolio.store import PortfolioStore
from sol_momentum.signals.trend import DOWNTREND, TrendReading
from sol_momentum.utils.state_store import StateStore
from tests.conftest import make_position, make_signal, read_alert_types


def breakout(mint="MintB"):
    return {
        "token": "BRK",
        "mint": mint,
        "price": 1.0,
        "liquidity": 6_000_000,
        "volume_24h": 2_000_000,
        "volume_6h": 600_000,
        "volume_1h": 300_000,
        "price_change_24h": 15,
        "price_change_6h": 10,
        "price_change_1h": 6,
        "txns_24h": {"buys": 80, "sells": 20},
    }


def quiet(mint="MintQ"):
    return {
        "token": "QQQ",
        "mint": mint,
        "price": 2.0,
        "liquidity": 1_500_000,
        "volume_24h": 300_000,
        "volume_6h": 0,
        "volume_1h": 0,
        "price_change_24h": 0,
        "price_change_6h": 0,
        "price_change_1h": 0,
        "txns_24h": {"buys": 0, "sells": 0},
    }


def quote(price):
    return FetchResult.ok({"token": "BRK", "price": price})


@pytest.fixture
def loader():
    loader = MagicMock()
    loader.scan_tokens = AsyncMock(return_value=FetchResult.ok([breakout()]))
    loader.get_token_price = AsyncMock(return_value=quote(1.0))
    loader.get_candle_closes = AsyncMock(return_value=FetchResult.failed("unused"))
    loader.close = AsyncMock()
    return loader


@pytest.fixture
def swaps():
    swaps = MagicMock()
    swaps.buy = AsyncMock(return_value=SwapResult(
        success=True, output_amount="48000000", price=1.0, tx_id="dry-run-1", simulated=True
    ))
    swaps.sell = AsyncMock(return_value=SwapResult(success=True, usdc_received=38.4, tx_id="dry-run-2", simulated=True))
    swaps.close = AsyncMock()
    return swaps


@pytest.fixture
def perps():
    perps = MagicMock()
    perps.open_short = AsyncMock(return_value=ShortResult(
        success=True,
        position_id="perp-short-1",
        market="SOL-PERP",
        size_usdc=25.0,
        leverage=1,
        entry_price=100.0,
        base_amount=0.25,
        tx_id="dry-run-perp-1",
        simulated=True,
    ))
    perps.close_short = AsyncMock(return_value=ShortResult(success=True, market="SOL-PERP", base_amount=0.25))
    perps.mark_price = AsyncMock(return_value=FetchResult.ok(100.0))
    return perps


@pytest.fixture
def bot(config, tmp_path, loader, swaps, perps):
    config.monitoring.state_file = "state.json"
    config.monitoring.alerts_file = "alerts.log"
    return TradingBot(
        config,
        state_store=StateStore(str(tmp_path)),
        data_loader=loader,
        swap_executor=swaps,
        perp_executor=perps,
        sleep=AsyncMock(),
    )


@pytest.mark.asyncio
async def test_scan_opens_position(bot, swaps):
    await bot.scan_cycle()

    # Score 92 -> 50 * (0.5 + 0.46)
    swaps.buy.assert_awaited_once_with("MintB", 48.0, "BRK")
    positions = bot.store.open_positions()
    assert len(positions) == 1
    pos = positions[0]
    assert pos.entry_price == 1.0
    assert pos.stop_loss == pytest.approx(0.85)
    assert pos.take_profit == pytest.approx(1.3)
    assert pos.simulated is True
    assert bot.store.state.capital_usdc == pytest.approx(52.0)
    assert "TRADE_OPEN" in read_alert_types(bot.alerts)
    bot.sleep.assert_awaited()


@pytest.mark.asyncio
async def test_scan_does_not_reopen_held_mint(bot, swaps):
    await bot.scan_cycle()
    await bot.scan_cycle()
    assert swaps.buy.await_count == 1
    assert len(bot.store.open_positions()) == 1


@pytest.mark.asyncio
async def test_failed_buy_records_nothing(bot, swaps):
    swaps.buy.return_value = SwapResult.failure("no route")
    await bot.scan_cycle()
    assert bot.store.open_positions() == []
    assert bot.store.state.capital_usdc == 100.0


@pytest.mark.asyncio
async def test_scan_skipped_when_gate_closed(bot, loader):
    bot.store.state.total_pnl = -20.0
    await bot.scan_cycle()
    loader.scan_tokens.assert_not_awaited()
    assert bot.store.state.kill_switch_triggered


@pytest.mark.asyncio
async def test_grid_scan_runs_when_gate_closed(bot, config, loader, swaps):
    config.grid.enabled = True
    calm = quiet("MintG")
    calm.update(liquidity=3_000_000, volume_24h=1_000_000)
    loader.scan_tokens.return_value = FetchResult.ok([breakout(), calm])
    bot.store.state.total_pnl = -20.0

    await bot.scan_cycle()

    assert "MintG" in bot.store.grid.tokens
    assert "GRID_SETUP" in read_alert_types(bot.alerts)
    swaps.buy.assert_not_awaited()
    assert bot.store.open_positions() == []


@pytest.mark.asyncio
async def test_concurrent_opens_size_against_remaining_capital(bot, swaps):
    bot.store.state.capital_usdc = 60.0

    async def slow_buy(mint, size, token):
        await asyncio.sleep(0.01)
        return SwapResult(success=True, output_amount="1000000", price=1.0, simulated=True)

    swaps.buy.side_effect = slow_buy
    results = await asyncio.gather(
        bot._open_long(make_signal(mint="MintA", token="AAA")),
        bot._open_long(make_signal(mint="MintC", token="CCC")),
    )

    assert results == [True, True]
    # 60 * 0.9, then (60 - 45) * 0.9
    sizes = [c.args[1] for c in swaps.buy.await_args_list]
    assert sizes == [pytest.approx(45.0), pytest.approx(13.5)]
    assert bot.store.state.capital_usdc == pytest.approx(1.5)
    assert bot.store.state.capital_usdc >= 0


@pytest.mark.asyncio
async def test_scan_survives_failed_fetch(bot, loader, swaps):
    loader.scan_tokens.return_value = FetchResult.failed("DexScreener down")
    await bot.scan_cycle()
    swaps.buy.assert_not_awaited()


@pytest.mark.asyncio
async def test_position_cycle_stop_loss_round_trip(bot, loader, swaps):
    await bot.scan_cycle()
    pos = bot.store.open_positions()[0]

    loader.get_token_price.return_value = quote(0.8)
    await bot.position_cycle()

    swaps.sell.assert_awaited_once_with("MintB", "48000000", "BRK")
    assert bot.store.open_positions() == []
    trade = bot.store.state.closed_trades[0]
    assert trade.id == pos.id
    assert trade.reason == "STOP_LOSS"
    assert trade.pnl == pytest.approx(-9.6)
    assert bot.store.state.capital_usdc == pytest.approx(90.4)
    assert bot.store.state.total_pnl == pytest.approx(-9.6)


@pytest.mark.asyncio
async def test_position_cycle_holds_inside_bounds(bot, loader, swaps):
    await bot.scan_cycle()
    loader.get_token_price.return_value = quote(1.05)
    await bot.position_cycle()
    swaps.sell.assert_not_awaited()
    assert len(bot.store.open_positions()) == 1


@pytest.mark.asyncio
async def test_failed_sell_keeps_position_open(bot, loader, swaps):
    await bot.scan_cycle()
    swaps.sell.return_value = SwapResult.failure("slippage")
    loader.get_token_price.return_value = quote(0.5)
    await bot.position_cycle()
    assert len(bot.store.open_positions()) == 1


@pytest.mark.asyncio
async def test_position_review_error_does_not_skip_others(bot, loader, swaps):
    bot.store.open_position(make_position(position_id="pos-a", mint="MintA"))
    bot.store.open_position(make_position(position_id="pos-b", mint="MintB"))

    async def price(mint):
        if mint == "MintA":
            raise RuntimeError("bad payload")
        return quote(0.8)

    loader.get_token_price.side_effect = price
    await bot.position_cycle()

    swaps.sell.assert_awaited_once_with("MintB", "45000000", "AAA")
    assert [p.id for p in bot.store.open_positions()] == ["pos-a"]
    assert bot.store.state.closed_trades[0].id == "pos-b"
    assert "ERROR" in read_alert_types(bot.alerts)


@pytest.mark.asyncio
async def test_downtrend_opens_short_without_signals(bot, config, loader, perps):
    config.shorts.enabled = True
    loader.scan_tokens.return_value = FetchResult.ok([quiet()])
    bot.trend.get_market_trend = AsyncMock(return_value=TrendReading(trend=DOWNTREND))

    await bot.scan_cycle()

    perps.open_short.assert_awaited_once_with("SOL-PERP", 25.0, 1)
    short = bot.store.open_positions()[0]
    assert short.is_short
    assert short.strategy == "perpShort"
    assert short.stop_loss == pytest.approx(108.0)
    assert short.take_profit == pytest.approx(90.0)
    assert bot.store.state.capital_usdc == pytest.approx(75.0)

    # One short per market
    await bot.scan_cycle()
    assert perps.open_short.await_count == 1


@pytest.mark.asyncio
async def test_downtrend_skips_mean_reversion_longs(bot, config, loader, swaps):
    config.shorts.enabled = True
    config.shorts.markets = []
    dip = breakout("MintD")
    dip.update(price_change_1h=1, price_change_6h=-9, price_change_24h=-12)
    loader.scan_tokens.return_value = FetchResult.ok([dip])
    bot.trend.get_market_trend = AsyncMock(return_value=TrendReading(trend=DOWNTREND))

    await bot.scan_cycle()
    swaps.buy.assert_not_awaited()


@pytest.mark.asyncio
async def test_trend_not_consulted_when_shorts_disabled(bot, loader):
    bot.trend.get_market_trend = AsyncMock()
    await bot.scan_cycle()
    bot.trend.get_market_trend.assert_not_awaited()


@pytest.mark.asyncio
async def test_short_take_profit(bot, config, loader, perps):
    config.shorts.enabled = True
    loader.scan_tokens.return_value = FetchResult.ok([quiet()])
    bot.trend.get_market_trend = AsyncMock(return_value=TrendReading(trend=DOWNTREND))
    await bot.scan_cycle()

    perps.mark_price.return_value = FetchResult.ok(89.0)
    await bot.position_cycle()

    perps.close_short.assert_awaited_once_with("SOL-PERP", 0.25)
    trade = bot.store.state.closed_trades[0]
    assert trade.reason == "SHORT_TAKE_PROFIT"
    # 25 * (100 - 89) / 100
    assert trade.pnl == pytest.approx(2.75)
    assert bot.store.state.capital_usdc == pytest.approx(102.75)


@pytest.mark.asyncio
async def test_persistence_failure_does_not_abort_cycle(bot, swaps, monkeypatch):
    real_save = bot.state_store.save_document
    disk_full = [True]

    def flaky_save(*args, **kwargs):
        if disk_full[0]:
            raise OSError("disk full")
        return real_save(*args, **kwargs)

    monkeypatch.setattr(bot.state_store, "save_document", flaky_save)
    await bot.scan_cycle()

    assert len(bot.store.open_positions()) == 1
    assert bot.store.dirty
    assert "ERROR" in read_alert_types(bot.alerts)

    # Heartbeat retries the write
    disk_full[0] = False
    await bot.heartbeat()
    assert not bot.store.dirty

    reloaded = PortfolioStore(bot.config, bot.state_store, bot.alerts, "state.json")
    assert len(reloaded.load().positions) == 1


@pytest.mark.asyncio
async def test_heartbeat_reports_snapshot(bot, config):
    config.grid.enabled = True
    bot.grid.setup_grid("G", "G", 100.0)

    summary = await bot.heartbeat()
    assert summary["capital"] == 100.0
    assert summary["grid"]["active_grids"] == 1
    types = read_alert_types(bot.alerts)
    assert "HEARTBEAT" in types
    assert "GRID_STATUS" in types
    assert "PORTFOLIO_UPDATE" in types


@pytest.mark.asyncio
async def test_scan_cycle_error_is_alerted(bot, loader):
    loader.scan_tokens.side_effect = RuntimeError("unexpected")
    await bot.scan_cycle()
    assert "ERROR" in read_alert_types(bot.alerts)


def test_schedule_registers_cycles(bot, config):
    bot.schedule()
    assert set(bot.scheduler.jobs) == {"scan", "positions", "heartbeat"}
    assert bot.scheduler.jobs["scan"].run_immediately


def test_status(bot):
    status = bot.status()
    assert status["capital"] == 100.0
    assert status["positions"] == []
    assert status["grid"]["active_grids"] == 0
