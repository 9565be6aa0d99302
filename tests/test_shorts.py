"""
Tests for perp short PnL and exit decisions.
"""

from datetime import datetime, timedelta, timezone

import pytest

from sol_momentum.portfolio.models import ShortPosition
from sol_momentum.risk.engine import TIME_STOP
from sol_momentum.risk.shorts import (
    SHORT_STOP_LOSS,
    SHORT_TAKE_PROFIT,
    check_short_position,
    short_pnl,
    short_sltp,
)


def make_short(entry=100.0, spent=50.0, hours_old=0.0):
    opened_at = datetime.now(timezone.utc) - timedelta(hours=hours_old)
    return ShortPosition(
        id="short-1",
        token="SOL-PERP",
        mint="SOL-PERP",
        entry_price=entry,
        amount="0.5",
        usdc_spent=spent,
        opened_at=opened_at.isoformat(),
        stop_loss=entry * 1.08,
        take_profit=entry * 0.90,
        market="SOL-PERP",
        base_amount=0.5,
    )


def test_short_pnl_price_down_is_profit():
    pnl, pnl_percent = short_pnl(make_short(entry=100.0, spent=50.0), 90.0)
    assert pnl == pytest.approx(5.0)
    assert pnl_percent == pytest.approx(10.0)


def test_short_pnl_price_up_is_loss():
    pnl, pnl_percent = short_pnl(make_short(entry=100.0, spent=50.0), 104.0)
    assert pnl == pytest.approx(-2.0)
    assert pnl_percent == pytest.approx(-4.0)


@pytest.mark.parametrize("entry", [0.5, 23.7, 150.0, 3000.0])
def test_short_sltp_is_mirrored(config, entry):
    stop_loss, take_profit = short_sltp(config, entry)
    assert take_profit < entry < stop_loss
    assert stop_loss == pytest.approx(entry * 1.08)
    assert take_profit == pytest.approx(entry * 0.90)


def test_short_marked_as_short():
    assert make_short().is_short is True
    assert make_short().strategy == "perpShort"


def test_check_short_position(config):
    pos = make_short(entry=100.0)
    assert check_short_position(config, pos, 109.0).reason == SHORT_STOP_LOSS
    assert check_short_position(config, pos, 89.0).reason == SHORT_TAKE_PROFIT
    assert not check_short_position(config, pos, 97.0)


def test_short_time_stop(config):
    stale = make_short(entry=100.0, hours_old=30)
    assert check_short_position(config, stale, 101.0).reason == TIME_STOP
    # A profitable stale short stays open
    assert not check_short_position(config, stale, 95.0)
