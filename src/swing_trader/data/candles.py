"""Tick-to-candle aggregation with a bounded per-instrument history."""

from __future__ import annotations

import math
import numbers
from collections import deque
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone

import pandas as pd  # type: ignore[import-untyped]

from swing_trader.errors import InvalidPriceError
from swing_trader.types import Candle
from swing_trader.utils.logging import get_logger

FRAME_COLUMNS = ["open_time", "open", "high", "low", "close", "volume"]

# Cosmetic spread for a lone first candle in display frames only.
_DISPLAY_SPREAD = 0.001


def validate_price(instrument: str, price: object) -> float:
    """Return ``price`` as float or raise ``InvalidPriceError``."""
    if isinstance(price, bool) or not isinstance(price, numbers.Real):
        raise InvalidPriceError(instrument, price)
    value = float(price)
    if not math.isfinite(value) or value <= 0:
        raise InvalidPriceError(instrument, price)
    return value


def _as_utc(timestamp: datetime | None) -> datetime:
    if timestamp is None:
        return datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


class CandleAggregator:
    """Converts ticks into OHLCV candles, keeping at most ``max_candles`` per instrument."""

    def __init__(
        self,
        *,
        interval_seconds: int = 60,
        max_candles: int = 50,
        new_candle_move_pct: float = 0.5,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds_must_be_positive")
        if max_candles <= 0:
            raise ValueError("max_candles_must_be_positive")
        self._interval_seconds = interval_seconds
        self._max_candles = max_candles
        self._move_threshold = new_candle_move_pct / 100.0
        self._series: dict[str, deque[Candle]] = {}
        self._logger = get_logger("swing_trader.data.candles")

    @property
    def max_candles(self) -> int:
        return self._max_candles

    def update(
        self,
        instrument: str,
        price: float,
        timestamp: datetime | None = None,
        volume: float = 0.0,
    ) -> Candle:
        """Apply one tick and return a copy of the active candle."""
        value = validate_price(instrument, price)
        ts = _as_utc(timestamp)
        tick_volume = float(volume) if volume and volume > 0 else 0.0
        series = self._series.setdefault(instrument, deque(maxlen=self._max_candles))

        if not series:
            candle = Candle(
                open_time=ts,
                open=value,
                high=value,
                low=value,
                close=value,
                volume=tick_volume,
            )
            series.append(candle)
            return replace(candle)

        active = series[-1]
        age = (ts - active.open_time).total_seconds()
        moved = abs(value - active.open) / active.open if active.open > 0 else 0.0

        if age > self._interval_seconds or moved > self._move_threshold:
            candle = Candle(
                open_time=ts,
                open=active.close,
                high=max(active.close, value),
                low=min(active.close, value),
                close=value,
                volume=tick_volume,
            )
            series.append(candle)
            self._logger.debug(
                "candle_opened",
                instrument=instrument,
                open=candle.open,
                close=candle.close,
                reason="interval" if age > self._interval_seconds else "price_move",
                series_length=len(series),
            )
            return replace(candle)

        active.high = max(active.high, value)
        active.low = min(active.low, value)
        active.close = value
        active.volume += tick_volume
        return replace(active)

    def seed(self, instrument: str, candles: Iterable[Candle]) -> int:
        """Preload historical candles, keeping the most recent ``max_candles``."""
        series: deque[Candle] = deque(
            (replace(c, open_time=_as_utc(c.open_time)) for c in candles),
            maxlen=self._max_candles,
        )
        self._series[instrument] = series
        self._logger.info("series_seeded", instrument=instrument, candles=len(series))
        return len(series)

    def get_series(self, instrument: str) -> tuple[Candle, ...]:
        """Ordered copies of the instrument's candles, oldest first."""
        series = self._series.get(instrument)
        if not series:
            return ()
        return tuple(replace(c) for c in series)

    def last_price(self, instrument: str) -> float | None:
        series = self._series.get(instrument)
        if not series:
            return None
        return series[-1].close

    def instruments(self) -> list[str]:
        return [name for name, series in self._series.items() if series]

    def clear(self, instrument: str) -> None:
        self._series.pop(instrument, None)

    def to_frame(self, instrument: str, *, display: bool = False) -> pd.DataFrame:
        """Series as an OHLCV dataframe.

        With ``display=True`` a lone first candle gets a symmetric +/-0.1% high/low
        spread so charts have something to draw. Display frames are never fed to
        indicators.
        """
        candles = self.get_series(instrument)
        df = pd.DataFrame(
            [
                {
                    "open_time": c.open_time,
                    "open": c.open,
                    "high": c.high,
                    "low": c.low,
                    "close": c.close,
                    "volume": c.volume,
                }
                for c in candles
            ],
            columns=FRAME_COLUMNS,
        )
        if display and len(df) == 1:
            df.loc[0, "high"] = float(df.loc[0, "high"]) * (1.0 + _DISPLAY_SPREAD)
            df.loc[0, "low"] = float(df.loc[0, "low"]) * (1.0 - _DISPLAY_SPREAD)
        return df
