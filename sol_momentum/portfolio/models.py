"""
Portfolio data structures (positions, closed trades, grid state).

All records serialize to plain dicts so the whole portfolio persists as a
single JSON document.
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Union

Strategy = Literal["momentum", "meanReversion", "perpShort"]

SHORT_STRATEGY = "perpShort"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_ts(ts: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _known(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class Signal:
    """Scored candidate. Produced fresh each scan; never persisted."""

    token: str
    mint: str
    price: float
    score: int  # 0..100
    strategy: Strategy = "momentum"
    reasons: List[str] = field(default_factory=list)


@dataclass
class Position:
    """
    Open long position.

    Invariant: stop_loss < entry_price < take_profit.
    """

    id: str
    token: str
    mint: str
    entry_price: float
    amount: str  # Raw token units as returned by the swap
    usdc_spent: float
    opened_at: str
    stop_loss: float
    take_profit: float
    strategy: str = "momentum"
    signal_score: int = 0
    signal_reasons: List[str] = field(default_factory=list)
    tx_id: str = ""
    simulated: bool = False

    @property
    def is_short(self) -> bool:
        return False

    def age_hours(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - parse_ts(self.opened_at)).total_seconds() / 3600

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        return cls(**_known(cls, data))


@dataclass
class ShortPosition(Position):
    """
    Perp short. Price falling is profit.

    Invariant: take_profit < entry_price < stop_loss.
    """

    strategy: str = SHORT_STRATEGY
    market: str = ""
    base_amount: float = 0.0
    leverage: int = 1

    @property
    def is_short(self) -> bool:
        return True


AnyPosition = Union[Position, ShortPosition]


def position_from_dict(data: dict) -> AnyPosition:
    if data.get("strategy") == SHORT_STRATEGY:
        return ShortPosition.from_dict(data)
    return Position.from_dict(data)


@dataclass
class ClosedTrade:
    """A position plus its exit. Append-only history."""

    position: dict
    exit_price: float
    usdc_received: float
    pnl: float
    pnl_percent: float
    closed_at: str
    reason: str

    @property
    def id(self) -> str:
        return self.position.get("id", "")

    @property
    def token(self) -> str:
        return self.position.get("token", "")

    def to_dict(self) -> dict:
        # Flattened: position fields + exit fields
        out = dict(self.position)
        out.update(
            exit_price=self.exit_price,
            usdc_received=self.usdc_received,
            pnl=self.pnl,
            pnl_percent=self.pnl_percent,
            closed_at=self.closed_at,
            reason=self.reason,
        )
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "ClosedTrade":
        exit_keys = ("exit_price", "usdc_received", "pnl", "pnl_percent", "closed_at", "reason")
        position = {k: v for k, v in data.items() if k not in exit_keys}
        return cls(
            position=position,
            exit_price=float(data.get("exit_price", 0.0)),
            usdc_received=float(data.get("usdc_received", 0.0)),
            pnl=float(data.get("pnl", 0.0)),
            pnl_percent=float(data.get("pnl_percent", 0.0)),
            closed_at=data.get("closed_at", ""),
            reason=data.get("reason", ""),
        )


@dataclass
class GridFill:
    """A grid buy waiting for its sell level."""

    level: float
    sell_level: Optional[float]  # None only for legacy top-level fills
    amount: str
    usdc_spent: float
    bought_at: str
    tx_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "GridFill":
        return cls(**_known(cls, data))


@dataclass
class GridTokenState:
    """Per-token grid. grid_levels is sorted ascending and symmetric around base_price."""

    token: str
    mint: str
    base_price: float
    grid_levels: List[float]
    capital_per_level: float
    filled_buys: List[GridFill] = field(default_factory=list)
    last_price: float = 0.0
    last_check: str = ""
    active: bool = True
    pnl: float = 0.0
    trades: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "GridTokenState":
        kw = _known(cls, data)
        kw["filled_buys"] = [GridFill.from_dict(b) for b in data.get("filled_buys", [])]
        return cls(**kw)


@dataclass
class GridPortfolio:
    tokens: Dict[str, GridTokenState] = field(default_factory=dict)
    total_pnl: float = 0.0
    total_trades: int = 0
    capital_allocated: float = 0.0

    def active_tokens(self) -> List[GridTokenState]:
        return [t for t in self.tokens.values() if t.active]

    def to_dict(self) -> dict:
        return {
            "tokens": {m: t.to_dict() for m, t in self.tokens.items()},
            "total_pnl": self.total_pnl,
            "total_trades": self.total_trades,
            "capital_allocated": self.capital_allocated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GridPortfolio":
        return cls(
            tokens={m: GridTokenState.from_dict(t) for m, t in (data.get("tokens") or {}).items()},
            total_pnl=float(data.get("total_pnl", 0.0)),
            total_trades=int(data.get("total_trades", 0)),
            capital_allocated=float(data.get("capital_allocated", 0.0)),
        )


@dataclass
class PortfolioState:
    """
    Single source of truth for capital and positions.

    kill_switch_triggered is a one-way latch within a process lifetime.
    """

    capital_usdc: float
    initial_capital: float
    started_at: str = field(default_factory=utc_now_iso)
    positions: List[AnyPosition] = field(default_factory=list)
    closed_trades: List[ClosedTrade] = field(default_factory=list)
    total_pnl: float = 0.0
    trade_count: int = 0
    kill_switch_triggered: bool = False
    grid: GridPortfolio = field(default_factory=GridPortfolio)

    @classmethod
    def fresh(cls, starting_capital: float) -> "PortfolioState":
        return cls(capital_usdc=starting_capital, initial_capital=starting_capital)

    @property
    def pnl_percent(self) -> float:
        if self.initial_capital <= 0:
            return 0.0
        return self.total_pnl / self.initial_capital * 100

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at,
            "capital_usdc": self.capital_usdc,
            "initial_capital": self.initial_capital,
            "positions": [p.to_dict() for p in self.positions],
            "closed_trades": [t.to_dict() for t in self.closed_trades],
            "total_pnl": self.total_pnl,
            "trade_count": self.trade_count,
            "kill_switch_triggered": self.kill_switch_triggered,
            "grid": self.grid.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PortfolioState":
        return cls(
            started_at=data.get("started_at") or utc_now_iso(),
            capital_usdc=float(data["capital_usdc"]),
            initial_capital=float(data["initial_capital"]),
            positions=[position_from_dict(p) for p in data.get("positions", [])],
            closed_trades=[ClosedTrade.from_dict(t) for t in data.get("closed_trades", [])],
            total_pnl=float(data.get("total_pnl", 0.0)),
            trade_count=int(data.get("trade_count", 0)),
            kill_switch_triggered=bool(data.get("kill_switch_triggered", False)),
            grid=GridPortfolio.from_dict(data.get("grid") or {}),
        )
