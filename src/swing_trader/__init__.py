"""Swing Trader - rule-based signal and risk engine."""

__version__ = "0.1.0"
