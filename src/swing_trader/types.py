"""Shared domain types for the signal-and-risk engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

Side = Literal["BUY", "SELL", "HOLD"]
PositionSide = Literal["BUY", "SELL"]
CloseReason = Literal["take_profit", "stop_loss", "manual", "manual_stop"]


@dataclass(slots=True)
class Candle:
    """OHLCV bucket. Only the newest candle of a series is ever mutated."""

    open_time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True, slots=True)
class IndicatorSnapshot:
    """Indicator values derived from one candle series at one point in time."""

    price: float
    previous_close: float
    sma_long: float
    rsi: float
    macd: float
    macd_signal: float
    atr: float
    adx: float
    plus_di: float
    minus_di: float
    volume_ratio: float
    is_swing_high: bool
    is_swing_low: bool
    major_support: float
    major_resistance: float
    recent_swing_low: float | None
    recent_swing_high: float | None
    candle_count: int


@dataclass(frozen=True, slots=True)
class TradeLevels:
    """Protective exit levels for a prospective trade."""

    stop_loss: float
    take_profit: float
    risk_reward_ratio: float


@dataclass(frozen=True, slots=True)
class TradeSignal:
    """Recommendation produced by the decision engine."""

    instrument: str
    side: Side
    confidence: float
    rationale: tuple[str, ...]
    price: float
    proposed_stop_loss: float | None = None
    proposed_take_profit: float | None = None
    risk_reward_ratio: float = 0.0
    buy_votes: int = 0
    sell_votes: int = 0

    @property
    def is_actionable(self) -> bool:
        return (
            self.side != "HOLD"
            and self.proposed_stop_loss is not None
            and self.proposed_take_profit is not None
        )


@dataclass(slots=True)
class Position:
    """Open position state."""

    id: str
    instrument: str
    side: PositionSide
    entry_price: float
    quantity: float
    investment: float
    opened_at: datetime
    stop_loss: float
    take_profit: float
    unrealized_pnl: float = 0.0
    confidence: float = 0.0
    rationale: tuple[str, ...] = ()


@dataclass(slots=True)
class ClosedTrade:
    """Position converted on exit. Never mutated after creation."""

    id: str
    instrument: str
    side: PositionSide
    entry_price: float
    quantity: float
    investment: float
    opened_at: datetime
    stop_loss: float
    take_profit: float
    exit_price: float
    exit_time: datetime
    realized_pnl: float
    close_reason: CloseReason
    confidence: float = 0.0
    rationale: tuple[str, ...] = ()


@dataclass(slots=True)
class RiskState:
    """Mutable risk bookkeeping used to gate new entries."""

    trading_day: str
    daily_loss: float = 0.0
    last_trade_at: datetime | None = None
    open_position_count: int = 0
    open_risk: dict[str, float] = field(default_factory=dict)

    @property
    def total_risk_exposure(self) -> float:
        """Summed account risk of open positions, in percent of balance."""
        return sum(self.open_risk.values())


@dataclass(slots=True)
class Statistics:
    """Aggregate trading statistics, updated incrementally on every close."""

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_pnl: float = 0.0
    today_pnl: float = 0.0
    account_balance: float = 0.0
    unrealized_pnl: float = 0.0

    @property
    def closed_trades(self) -> int:
        return self.winning_trades + self.losing_trades

    @property
    def win_rate(self) -> float:
        """Winning share of closed trades, in percent."""
        closed = self.closed_trades
        if closed == 0:
            return 0.0
        return self.winning_trades / closed * 100.0


@dataclass(slots=True)
class RiskCheckResult:
    """Result of entry guard checks."""

    allowed: bool
    reasons: list[str] = field(default_factory=list)


@dataclass(slots=True)
class EvaluationResult:
    """Outcome of one evaluate-and-trade run for an instrument."""

    instrument: str
    status: str
    signal: TradeSignal | None = None
    position: Position | None = None
    reasons: list[str] = field(default_factory=list)
