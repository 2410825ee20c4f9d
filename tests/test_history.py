from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pandas as pd
import pytest

from swing_trader.data.history import frame_to_candles, load_ticks_csv, normalize_ohlcv


def _build_ohlcv(rows: int, start_price: float, drift: float) -> pd.DataFrame:
    start = datetime(2024, 1, 1, tzinfo=UTC)
    times = [start + timedelta(minutes=i) for i in range(rows)]
    closes = [start_price + i * drift for i in range(rows)]
    return pd.DataFrame(
        {
            "open_time": times,
            "open": closes,
            "high": [c + 1 for c in closes],
            "low": [c - 1 for c in closes],
            "close": closes,
            "volume": [10.0 for _ in range(rows)],
        }
    )


def test_normalize_sorts_and_drops_bad_rows() -> None:
    df = _build_ohlcv(rows=5, start_price=100.0, drift=1.0)
    df["close"] = df["close"].astype(object)
    df.loc[2, "close"] = "oops"
    df = df.iloc[::-1]
    normalized = normalize_ohlcv(df)
    assert len(normalized) == 4
    assert normalized["open_time"].is_monotonic_increasing
    candles = frame_to_candles(normalized)
    assert [c.close for c in candles] == [100.0, 101.0, 103.0, 104.0]
    assert candles[0].open_time.tzinfo is not None


def test_normalize_adds_missing_volume_and_rejects_missing_columns() -> None:
    df = _build_ohlcv(rows=3, start_price=100.0, drift=1.0).drop(columns=["volume"])
    assert (normalize_ohlcv(df)["volume"] == 0.0).all()

    with pytest.raises(ValueError, match="missing_ohlcv_columns"):
        normalize_ohlcv(df.drop(columns=["close"]))


def test_load_ticks_keeps_malformed_prices(tmp_path: Path) -> None:
    path = tmp_path / "ticks.csv"
    path.write_text(
        "instrument,price,timestamp\n"
        "BTC,100.5,2024-01-01T00:00:00Z\n"
        "BTC,abc,2024-01-01T00:00:05Z\n"
        "ETH,50,2024-01-01T00:00:06Z\n",
        encoding="utf-8",
    )
    ticks = load_ticks_csv(path)
    assert [t.instrument for t in ticks] == ["BTC", "BTC", "ETH"]
    assert ticks[0].price == 100.5
    assert math.isnan(ticks[1].price)
    assert ticks[2].volume == 0.0
    assert ticks[0].timestamp.tzinfo is not None
