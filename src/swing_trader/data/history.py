"""Historical data loading helpers for seeding and replay."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import pandas as pd  # type: ignore[import-untyped]

from swing_trader.types import Candle

_REQUIRED_COLUMNS = [
    "open_time",
    "open",
    "high",
    "low",
    "close",
    "volume",
]

_TICK_COLUMNS = ["instrument", "price", "timestamp"]


@dataclass(slots=True)
class Tick:
    """One price observation delivered by a feed."""

    instrument: str
    price: float
    timestamp: datetime
    volume: float = 0.0


def load_ohlcv_csv(path: Path) -> pd.DataFrame:
    """Load OHLCV data from CSV and normalize schema."""
    df = pd.read_csv(path)
    return normalize_ohlcv(df)


def normalize_ohlcv(df: pd.DataFrame) -> pd.DataFrame:
    """Validate/normalize dataframe to the expected OHLCV shape."""
    frame = df.copy()
    if "volume" not in frame.columns:
        frame["volume"] = 0.0
    missing = [col for col in _REQUIRED_COLUMNS if col not in frame.columns]
    if missing:
        raise ValueError(f"missing_ohlcv_columns: {','.join(missing)}")

    normalized = frame[_REQUIRED_COLUMNS].copy()
    normalized["open_time"] = pd.to_datetime(normalized["open_time"], utc=True)
    numeric_cols = ["open", "high", "low", "close", "volume"]
    for col in numeric_cols:
        normalized[col] = pd.to_numeric(normalized[col], errors="coerce")

    normalized = normalized.dropna(subset=numeric_cols + ["open_time"])
    normalized = normalized[normalized["close"] > 0]
    normalized = normalized.sort_values("open_time").reset_index(drop=True)
    if normalized.empty:
        raise ValueError("normalized_ohlcv_empty")
    return normalized


def frame_to_candles(df: pd.DataFrame) -> list[Candle]:
    """Convert a normalized OHLCV frame into candles, oldest first."""
    return [
        Candle(
            open_time=row.open_time.to_pydatetime(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]


def load_ticks_csv(path: Path) -> list[Tick]:
    """Load a tick file with ``instrument,price,timestamp[,volume]`` columns.

    Rows are kept in file order; ticks for one instrument must already be in
    arrival order. Malformed prices are kept as NaN so the engine can reject them.
    """
    df = pd.read_csv(path)
    missing = [col for col in _TICK_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"missing_tick_columns: {','.join(missing)}")

    df["price"] = pd.to_numeric(df["price"], errors="coerce")
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    if "volume" in df.columns:
        df["volume"] = pd.to_numeric(df["volume"], errors="coerce").fillna(0.0)
    else:
        df["volume"] = 0.0

    return [
        Tick(
            instrument=str(row.instrument),
            price=float(row.price),
            timestamp=row.timestamp.to_pydatetime(),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]
