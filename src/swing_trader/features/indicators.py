"""Indicator computation over bounded candle windows.

Every public function is total: short or empty input, or a non-positive
period, yields the documented neutral value (RSI 50, ATR 0, ADX 0, ...)
instead of an exception.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

import numpy as np
import pandas as pd  # type: ignore[import-untyped]

from swing_trader.errors import DataInsufficientError
from swing_trader.types import Candle, IndicatorSnapshot

T = TypeVar("T")

CandleInput = Sequence[Candle] | pd.DataFrame


@dataclass(frozen=True, slots=True)
class MacdResult:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True, slots=True)
class AdxResult:
    adx: float
    plus_di: float
    minus_di: float


def _neutral_on_insufficient(default: T) -> Callable[[Callable[..., T]], Callable[..., T]]:
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: object, **kwargs: object) -> T:
            try:
                return func(*args, **kwargs)
            except DataInsufficientError:
                return default

        return wrapper

    return decorator


def _require(available: int, needed: int) -> None:
    if available < needed:
        raise DataInsufficientError(f"need {needed} points, have {available}")


def _require_period(*periods: int) -> None:
    if min(periods) <= 0:
        raise DataInsufficientError(f"periods must be positive, got {periods}")


def _as_series(values: Sequence[float] | pd.Series) -> pd.Series:
    return pd.Series(list(values), dtype=float)


def _frame(candles: CandleInput) -> pd.DataFrame:
    if isinstance(candles, pd.DataFrame):
        return candles.reset_index(drop=True)
    return pd.DataFrame(
        {
            "high": [c.high for c in candles],
            "low": [c.low for c in candles],
            "close": [c.close for c in candles],
            "volume": [c.volume for c in candles],
        }
    )


def _ema_series(series: pd.Series, period: int) -> pd.Series:
    return series.ewm(span=period, adjust=False).mean()


def _wilder(values: Sequence[float] | np.ndarray, period: int) -> list[float]:
    """Wilder smoothing as a fold seeded with the simple mean of the first ``period`` values."""
    _require_period(period)
    _require(len(values), period)
    smoothed = [float(np.mean(values[:period]))]
    for value in values[period:]:
        smoothed.append((smoothed[-1] * (period - 1) + float(value)) / period)
    return smoothed


def _true_range(frame: pd.DataFrame) -> np.ndarray:
    high = frame["high"].astype(float)
    low = frame["low"].astype(float)
    prev_close = frame["close"].astype(float).shift(1)
    tr_components = pd.concat(
        [
            (high - low).abs(),
            (high - prev_close).abs(),
            (low - prev_close).abs(),
        ],
        axis=1,
    )
    return tr_components.max(axis=1).iloc[1:].to_numpy(dtype=float)


def sma(values: Sequence[float], period: int) -> float:
    """Mean of the last ``period`` values (all values when fewer exist)."""
    series = _as_series(values)
    if series.empty or period <= 0:
        return 0.0
    return float(series.iloc[-period:].mean())


def ema(values: Sequence[float], period: int) -> float:
    """Exponential moving average seeded with the first value, alpha = 2/(period+1)."""
    series = _as_series(values)
    if series.empty or period <= 0:
        return 0.0
    return float(_ema_series(series, period).iloc[-1])


@_neutral_on_insufficient(50.0)
def rsi(closes: Sequence[float], period: int = 14) -> float:
    """RSI from simple average gain/loss over the last ``period`` deltas."""
    _require_period(period)
    series = _as_series(closes)
    _require(len(series), period + 1)
    deltas = series.diff().iloc[-period:]
    avg_gain = float(deltas.clip(lower=0.0).sum()) / period
    avg_loss = float((-deltas.clip(upper=0.0)).sum()) / period
    if avg_loss == 0:
        # No movement at all reads as neutral, pure gains as saturated.
        return 50.0 if avg_gain == 0 else 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


@_neutral_on_insufficient(MacdResult(0.0, 0.0, 0.0))
def macd(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MacdResult:
    """MACD line ema(fast) - ema(slow) and its signal line.

    The signal line is an EMA over the MACD series with every value before index
    ``slow`` replaced by zero, so early signal values are pulled toward zero.
    """
    _require_period(fast, slow, signal)
    series = _as_series(closes)
    _require(len(series), 1)
    macd_line = _ema_series(series, fast) - _ema_series(series, slow)
    masked = macd_line.where(macd_line.index >= slow, 0.0)
    signal_line = _ema_series(masked, signal)
    macd_value = float(macd_line.iloc[-1])
    signal_value = float(signal_line.iloc[-1])
    return MacdResult(macd_value, signal_value, macd_value - signal_value)


@_neutral_on_insufficient(0.0)
def atr(candles: CandleInput, period: int = 14) -> float:
    """Wilder-smoothed average true range; 0 with fewer than ``period + 1`` candles."""
    _require_period(period)
    frame = _frame(candles)
    _require(len(frame), period + 1)
    return _wilder(_true_range(frame), period)[-1]


@_neutral_on_insufficient(AdxResult(0.0, 0.0, 0.0))
def directional_index(candles: CandleInput, period: int = 14) -> AdxResult:
    """ADX with the latest +DI/-DI."""
    _require_period(period)
    frame = _frame(candles)
    _require(len(frame), period + 1)
    high = frame["high"].to_numpy(dtype=float)
    low = frame["low"].to_numpy(dtype=float)

    up_move = high[1:] - high[:-1]
    down_move = low[:-1] - low[1:]
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    smoothed_tr = _wilder(_true_range(frame), period)
    smoothed_plus = _wilder(plus_dm, period)
    smoothed_minus = _wilder(minus_dm, period)

    plus_di: list[float] = []
    minus_di: list[float] = []
    dx: list[float] = []
    for tr_value, plus_value, minus_value in zip(smoothed_tr, smoothed_plus, smoothed_minus):
        p = 100.0 * plus_value / tr_value if tr_value > 0 else 0.0
        m = 100.0 * minus_value / tr_value if tr_value > 0 else 0.0
        plus_di.append(p)
        minus_di.append(m)
        dx.append(100.0 * abs(p - m) / (p + m) if (p + m) > 0 else 0.0)

    if len(dx) >= period:
        adx_value = _wilder(dx, period)[-1]
    else:
        adx_value = float(np.mean(dx))
    return AdxResult(adx=adx_value, plus_di=plus_di[-1], minus_di=minus_di[-1])


def adx(candles: CandleInput, period: int = 14) -> float:
    """Average directional index; 0 on insufficient data."""
    return directional_index(candles, period).adx


def is_swing_high(prices: Sequence[float], lookback: int = 5) -> bool:
    """True if the latest price is strictly above both preceding ``lookback`` windows.

    The left window is the older of the two, the right window the one directly
    before the latest price.
    """
    values = list(prices)
    if lookback <= 0 or len(values) < lookback * 2 + 1:
        return False
    current = values[-1]
    left = values[-2 * lookback - 1 : -lookback - 1]
    right = values[-lookback - 1 : -1]
    return current > max(left) and current > max(right)


def is_swing_low(prices: Sequence[float], lookback: int = 5) -> bool:
    """Mirror of ``is_swing_high``."""
    values = list(prices)
    if lookback <= 0 or len(values) < lookback * 2 + 1:
        return False
    current = values[-1]
    left = values[-2 * lookback - 1 : -lookback - 1]
    right = values[-lookback - 1 : -1]
    return current < min(left) and current < min(right)


def support_resistance(prices: Sequence[float], window: int = 50) -> tuple[float, float]:
    """(min, max) over the trailing window; (0, 0) for empty input."""
    values = list(prices)[-window:] if window > 0 else []
    if not values:
        return 0.0, 0.0
    return float(min(values)), float(max(values))


def volume_ratio(volumes: Sequence[float], window: int = 50) -> float:
    """Latest volume over the trailing average; 1.0 when volume is unknown."""
    series = _as_series(volumes)
    if series.empty or window <= 0:
        return 1.0
    average = float(series.iloc[-window:].mean())
    if average <= 0:
        return 1.0
    return float(series.iloc[-1]) / average


def recent_swing_low(candles: Sequence[Candle], lookback: int = 20) -> float | None:
    if lookback <= 0 or len(candles) < lookback:
        return None
    lows = [c.low for c in candles[-lookback:] if c.low > 0]
    return min(lows) if lows else None


def recent_swing_high(candles: Sequence[Candle], lookback: int = 20) -> float | None:
    if lookback <= 0 or len(candles) < lookback:
        return None
    highs = [c.high for c in candles[-lookback:] if c.high > 0]
    return max(highs) if highs else None


def compute_snapshot(
    candles: Sequence[Candle],
    *,
    trend_window: int = 50,
    level_window: int = 50,
    swing_lookback: int = 5,
    swing_level_lookback: int = 20,
) -> IndicatorSnapshot:
    """Compute the full indicator snapshot used by the decision and level rules."""
    window = tuple(candles)
    closes = [c.close for c in window]
    volumes = [c.volume for c in window]
    price = closes[-1] if closes else 0.0
    previous_close = closes[-2] if len(closes) >= 2 else price

    macd_result = macd(closes)
    adx_result = directional_index(window)
    support, resistance = support_resistance(closes, level_window)

    return IndicatorSnapshot(
        price=price,
        previous_close=previous_close,
        sma_long=sma(closes, trend_window),
        rsi=rsi(closes),
        macd=macd_result.macd,
        macd_signal=macd_result.signal,
        atr=atr(window),
        adx=adx_result.adx,
        plus_di=adx_result.plus_di,
        minus_di=adx_result.minus_di,
        volume_ratio=volume_ratio(volumes, trend_window),
        is_swing_high=is_swing_high(closes, swing_lookback),
        is_swing_low=is_swing_low(closes, swing_lookback),
        major_support=support,
        major_resistance=resistance,
        recent_swing_low=recent_swing_low(window, swing_level_lookback),
        recent_swing_high=recent_swing_high(window, swing_level_lookback),
        candle_count=len(window),
    )
