"""Hard risk control rules gating new entries."""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime

from swing_trader.config import TradingSettings
from swing_trader.risk.levels import trade_risk_pct
from swing_trader.types import RiskCheckResult, RiskState

_MIN_INVESTMENT_SCALE = 0.1


class RiskEngine:
    """Rule-based entry guards plus the risk bookkeeping they read.

    Callers pass ``now`` explicitly so the rules stay deterministic under test.
    """

    def __init__(self, settings: TradingSettings, now: datetime) -> None:
        self._settings = settings
        self._state = RiskState(trading_day=now.date().isoformat())

    @property
    def state(self) -> RiskState:
        return self._state

    @property
    def settings(self) -> TradingSettings:
        return self._settings

    def update_settings(self, settings: TradingSettings) -> None:
        self._settings = settings

    def check_entry(
        self,
        instrument: str,
        open_instruments: Collection[str],
        now: datetime,
    ) -> RiskCheckResult:
        """Validate the guard rails for a new position on ``instrument``."""
        self.roll_day_if_needed(now)
        reasons: list[str] = []

        if instrument in open_instruments:
            reasons.append("position_already_open")
        if len(open_instruments) >= self._settings.max_concurrent_positions:
            reasons.append("max_concurrent_positions_reached")
        if self._state.daily_loss >= self._settings.max_daily_loss:
            reasons.append("daily_loss_limit_reached")
        if self._state.total_risk_exposure >= self._settings.max_total_risk_pct:
            reasons.append("total_risk_limit_reached")
        if self.cooldown_remaining(now) > 0:
            reasons.append("cooldown_active")

        return RiskCheckResult(allowed=not reasons, reasons=reasons)

    def check_trade_risk(self, entry: float, stop: float) -> RiskCheckResult:
        """Reject entries whose stop sits further than ``max_trade_risk_pct`` away."""
        risk_pct = trade_risk_pct(entry, stop)
        if risk_pct > self._settings.max_trade_risk_pct:
            return RiskCheckResult(allowed=False, reasons=["trade_risk_too_high"])
        return RiskCheckResult(allowed=True)

    def cooldown_remaining(self, now: datetime) -> float:
        """Seconds left before another trade is allowed; 0 when none is pending."""
        last = self._state.last_trade_at
        if last is None:
            return 0.0
        elapsed = (now - last).total_seconds()
        return max(0.0, self._settings.cooldown_seconds - elapsed)

    def compute_investment(self, confidence: float) -> float:
        """Capital committed to one trade, optionally scaled by signal confidence."""
        base = self._settings.max_investment_per_trade
        if not self._settings.scale_investment_by_confidence:
            return base
        scale = max(_MIN_INVESTMENT_SCALE, min(1.0, confidence / 100.0))
        return base * scale

    def compute_quantity(self, investment: float, entry: float) -> float:
        """Quantity such that ``quantity * entry == investment``."""
        if investment <= 0 or entry <= 0:
            return 0.0
        return investment / entry

    def risk_contribution(self, investment: float, balance: float, entry: float, stop: float) -> float:
        """Account risk of one position: stop distance weighted by its share of the balance."""
        risk_pct = trade_risk_pct(entry, stop)
        if balance <= 0:
            return risk_pct
        return investment / balance * risk_pct

    def track_position(self, instrument: str, exposure_pct: float) -> None:
        """Count an open position and its risk contribution without touching the cooldown."""
        if instrument not in self._state.open_risk:
            self._state.open_position_count += 1
        self._state.open_risk[instrument] = max(0.0, exposure_pct)

    def record_open(self, now: datetime, instrument: str | None = None, exposure_pct: float = 0.0) -> None:
        self.roll_day_if_needed(now)
        self._state.last_trade_at = now
        if instrument is None:
            self._state.open_position_count += 1
        else:
            self.track_position(instrument, exposure_pct)

    def record_close(self, realized_pnl: float, now: datetime, instrument: str | None = None) -> None:
        self.roll_day_if_needed(now)
        self._state.open_position_count = max(0, self._state.open_position_count - 1)
        if instrument is not None:
            self._state.open_risk.pop(instrument, None)
        if realized_pnl < 0:
            self._state.daily_loss += -realized_pnl

    def roll_day_if_needed(self, now: datetime) -> bool:
        """Reset the daily loss accumulator on UTC day change. Returns True on rollover."""
        today = now.date().isoformat()
        if today == self._state.trading_day:
            return False
        self._state.trading_day = today
        self._state.daily_loss = 0.0
        return True

    def reset_daily(self, now: datetime) -> None:
        self._state.trading_day = now.date().isoformat()
        self._state.daily_loss = 0.0
