"""Deterministic multi-factor trade decision."""

from __future__ import annotations

from dataclasses import dataclass, field

from swing_trader.config import TradingSettings
from swing_trader.risk.levels import compute_levels
from swing_trader.types import IndicatorSnapshot, Side, TradeSignal

# Confidence points contributed by each factor when it votes. Sums to 100.
FACTOR_WEIGHTS: dict[str, float] = {
    "trend": 15.0,
    "rsi": 20.0,
    "macd": 15.0,
    "volume": 10.0,
    "swing": 10.0,
    "support": 15.0,
    "adx": 15.0,
}

# Reduced weights for the weaker tier of a factor.
RSI_MILD_WEIGHT = 10.0
MACD_DIRECTION_ONLY_WEIGHT = 5.0

RSI_OVERSOLD = 30.0
RSI_OVERBOUGHT = 70.0
RSI_MILD_LOW = 40.0
RSI_MILD_HIGH = 60.0
TREND_BAND = 0.001
VOLUME_SURGE_RATIO = 1.5
LEVEL_PROXIMITY = 0.01
ADX_TRENDING = 25.0

MAX_RATIONALE = 3


@dataclass(slots=True)
class _Tally:
    buy_votes: int = 0
    sell_votes: int = 0
    confidence: float = 0.0
    reasons: list[str] = field(default_factory=list)

    def vote(self, side: Side, weight: float, reason: str) -> None:
        if side == "BUY":
            self.buy_votes += 1
        elif side == "SELL":
            self.sell_votes += 1
        self.confidence += weight
        self.reasons.append(reason)


def decide(
    instrument: str,
    current_price: float,
    snapshot: IndicatorSnapshot,
    settings: TradingSettings | None = None,
) -> TradeSignal:
    """Score seven independent factors and return BUY, SELL or HOLD.

    Each voting factor adds one vote to its side and its weight to a shared
    confidence score. A side wins only with strictly more votes than the other
    side, at least ``min_signal_votes`` votes and ``min_confidence`` confidence;
    equal vote counts always resolve to HOLD.
    """
    settings = settings or TradingSettings()
    tally = _Tally()

    _score_trend(tally, current_price, snapshot)
    _score_rsi(tally, snapshot)
    _score_macd(tally, snapshot)
    _score_volume(tally, current_price, snapshot)
    _score_swing(tally, snapshot)
    _score_levels(tally, current_price, snapshot)
    _score_adx(tally, snapshot)

    confidence = min(tally.confidence, 100.0)
    side: Side = "HOLD"
    if (
        tally.buy_votes > tally.sell_votes
        and tally.buy_votes >= settings.min_signal_votes
        and confidence >= settings.min_confidence
    ):
        side = "BUY"
    elif (
        tally.sell_votes > tally.buy_votes
        and tally.sell_votes >= settings.min_signal_votes
        and confidence >= settings.min_confidence
    ):
        side = "SELL"

    rationale = tuple(tally.reasons[:MAX_RATIONALE])
    levels = compute_levels(side, current_price, snapshot, settings.min_risk_reward_ratio)
    if levels is None:
        return TradeSignal(
            instrument=instrument,
            side="HOLD",
            confidence=confidence,
            rationale=rationale,
            price=current_price,
            buy_votes=tally.buy_votes,
            sell_votes=tally.sell_votes,
        )

    return TradeSignal(
        instrument=instrument,
        side=side,
        confidence=confidence,
        rationale=rationale,
        price=current_price,
        proposed_stop_loss=levels.stop_loss,
        proposed_take_profit=levels.take_profit,
        risk_reward_ratio=levels.risk_reward_ratio,
        buy_votes=tally.buy_votes,
        sell_votes=tally.sell_votes,
    )


def _score_trend(tally: _Tally, price: float, snapshot: IndicatorSnapshot) -> None:
    average = snapshot.sma_long
    if average <= 0:
        return
    if price > average * (1.0 + TREND_BAND):
        tally.vote("BUY", FACTOR_WEIGHTS["trend"], "price above long average")
    elif price < average * (1.0 - TREND_BAND):
        tally.vote("SELL", FACTOR_WEIGHTS["trend"], "price below long average")


def _score_rsi(tally: _Tally, snapshot: IndicatorSnapshot) -> None:
    value = snapshot.rsi
    if value < RSI_OVERSOLD:
        tally.vote("BUY", FACTOR_WEIGHTS["rsi"], "RSI oversold")
    elif value > RSI_OVERBOUGHT:
        tally.vote("SELL", FACTOR_WEIGHTS["rsi"], "RSI overbought")
    elif value < RSI_MILD_LOW:
        tally.vote("BUY", RSI_MILD_WEIGHT, "RSI weak")
    elif value > RSI_MILD_HIGH:
        tally.vote("SELL", RSI_MILD_WEIGHT, "RSI stretched")


def _score_macd(tally: _Tally, snapshot: IndicatorSnapshot) -> None:
    line, signal = snapshot.macd, snapshot.macd_signal
    if line > signal and line > 0:
        tally.vote("BUY", FACTOR_WEIGHTS["macd"], "MACD bullish")
    elif line < signal and line < 0:
        tally.vote("SELL", FACTOR_WEIGHTS["macd"], "MACD bearish")
    elif line > signal:
        tally.vote("BUY", MACD_DIRECTION_ONLY_WEIGHT, "MACD turning up")
    elif line < signal:
        tally.vote("SELL", MACD_DIRECTION_ONLY_WEIGHT, "MACD turning down")


def _score_volume(tally: _Tally, price: float, snapshot: IndicatorSnapshot) -> None:
    if snapshot.volume_ratio < VOLUME_SURGE_RATIO:
        return
    if price > snapshot.previous_close:
        tally.vote("BUY", FACTOR_WEIGHTS["volume"], "volume surge on up move")
    elif price < snapshot.previous_close:
        tally.vote("SELL", FACTOR_WEIGHTS["volume"], "volume surge on down move")


def _score_swing(tally: _Tally, snapshot: IndicatorSnapshot) -> None:
    if snapshot.is_swing_low:
        tally.vote("BUY", FACTOR_WEIGHTS["swing"], "swing low formed")
    elif snapshot.is_swing_high:
        tally.vote("SELL", FACTOR_WEIGHTS["swing"], "swing high formed")


def _score_levels(tally: _Tally, price: float, snapshot: IndicatorSnapshot) -> None:
    support, resistance = snapshot.major_support, snapshot.major_resistance
    if support <= 0 or resistance <= support or price <= 0:
        return
    to_support = (price - support) / price
    to_resistance = (resistance - price) / price
    near_support = 0 <= to_support <= LEVEL_PROXIMITY
    near_resistance = 0 <= to_resistance <= LEVEL_PROXIMITY
    if near_support and (not near_resistance or to_support < to_resistance):
        tally.vote("BUY", FACTOR_WEIGHTS["support"], "near major support")
    elif near_resistance and (not near_support or to_resistance < to_support):
        tally.vote("SELL", FACTOR_WEIGHTS["support"], "near major resistance")


def _score_adx(tally: _Tally, snapshot: IndicatorSnapshot) -> None:
    if snapshot.adx < ADX_TRENDING:
        return
    if snapshot.plus_di > snapshot.minus_di:
        tally.vote("BUY", FACTOR_WEIGHTS["adx"], "strong trend up (ADX)")
    elif snapshot.minus_di > snapshot.plus_di:
        tally.vote("SELL", FACTOR_WEIGHTS["adx"], "strong trend down (ADX)")
