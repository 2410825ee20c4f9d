"""Error taxonomy for the trading engine."""

from __future__ import annotations


class SwingTraderError(Exception):
    """Base error."""


class DataInsufficientError(SwingTraderError):
    """Fewer candles than an indicator needs. Never escapes the indicator library."""


class InvalidPriceError(SwingTraderError, ValueError):
    """Raised for non-positive, non-finite or non-numeric prices."""

    def __init__(self, instrument: str, price: object) -> None:
        super().__init__(f"invalid_price: {instrument}={price!r}")
        self.instrument = instrument
        self.price = price


class PersistenceError(SwingTraderError):
    """Raised by trade stores when a write or read fails."""


class ConfigurationError(SwingTraderError, ValueError):
    """A single settings field failed validation."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"invalid_setting: {field}: {reason}")
        self.field = field
        self.reason = reason
