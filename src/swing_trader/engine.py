"""Trade lifecycle manager tying aggregation, decision, risk and the position book together."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from swing_trader.config import (
    Settings,
    SettingsUpdateResult,
    TradingSettings,
    merge_settings_update,
)
from swing_trader.data.candles import CandleAggregator, validate_price
from swing_trader.errors import InvalidPriceError, PersistenceError
from swing_trader.exec.paper import PaperExecutor, exit_reason
from swing_trader.features.indicators import compute_snapshot
from swing_trader.journal.store import TradeStore
from swing_trader.observer import LoggingObserver, TradeObserver
from swing_trader.risk.rules import RiskEngine
from swing_trader.strategy.decision import decide
from swing_trader.types import (
    Candle,
    ClosedTrade,
    CloseReason,
    EvaluationResult,
    Position,
    PositionSide,
    RiskCheckResult,
    Statistics,
    TradeSignal,
)
from swing_trader.utils.logging import get_logger, log_risk_event, log_trade_signal


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TradingEngine:
    """Owns the candle series, open positions and statistics for every instrument.

    All mutation happens synchronously inside ``update_tick`` and
    ``evaluate_and_trade``. The store and observer are called after in-memory
    state has changed; their failures are logged and never roll that state back.
    """

    def __init__(
        self,
        settings: TradingSettings | None = None,
        *,
        store: TradeStore | None = None,
        observer: TradeObserver | None = None,
        clock: Callable[[], datetime] | None = None,
        aggregator: CandleAggregator | None = None,
        initial_balance: float = 1_000.0,
        closed_history_limit: int = 500,
        position_sync_seconds: float = 60.0,
    ) -> None:
        self._settings = settings or TradingSettings()
        self._store = store
        self._observer: TradeObserver = observer or LoggingObserver()
        self._clock = clock or _utc_now
        self._aggregator = aggregator or CandleAggregator()
        self._book = PaperExecutor(
            initial_balance=initial_balance,
            closed_history_limit=closed_history_limit,
        )
        self._risk = RiskEngine(self._settings, self._clock())
        self._trading = False
        self._position_sync_seconds = position_sync_seconds
        self._position_synced_at: dict[str, datetime] = {}
        self._logger = get_logger("swing_trader.engine")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: TradeStore | None = None,
        observer: TradeObserver | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> TradingEngine:
        """Build an engine from environment settings."""
        aggregator = CandleAggregator(
            interval_seconds=settings.candle_interval_seconds,
            max_candles=settings.max_candles,
            new_candle_move_pct=settings.new_candle_move_pct,
        )
        return cls(
            settings.trading_settings(),
            store=store,
            observer=observer,
            clock=clock,
            aggregator=aggregator,
            initial_balance=settings.initial_balance,
            closed_history_limit=settings.closed_history_limit,
            position_sync_seconds=settings.position_sync_seconds,
        )

    @property
    def settings(self) -> TradingSettings:
        return self._settings

    @property
    def is_trading(self) -> bool:
        return self._trading

    @property
    def aggregator(self) -> CandleAggregator:
        return self._aggregator

    # ==================== ingestion ====================

    def update_tick(
        self,
        instrument: str,
        price: float,
        timestamp: datetime | None = None,
        volume: float = 0.0,
    ) -> bool:
        """Apply one price tick. Malformed prices are discarded with a warning."""
        try:
            value = validate_price(instrument, price)
        except InvalidPriceError as exc:
            self._logger.warning("tick_discarded", instrument=instrument, error=str(exc))
            return False
        self._aggregator.update(instrument, value, timestamp or self._clock(), volume)
        self.on_price_update(instrument, value)
        return True

    def seed_history(self, instrument: str, candles: Iterable[Candle]) -> int:
        """Preload historical candles for an instrument."""
        return self._aggregator.seed(instrument, candles)

    def on_price_update(self, instrument: str, price: float) -> ClosedTrade | None:
        """Mark the instrument's position and close it on a take-profit or stop-loss cross."""
        try:
            value = validate_price(instrument, price)
        except InvalidPriceError:
            return None
        position = self._book.mark_to_market(instrument, value)
        if position is None:
            return None
        reason = exit_reason(position, value)
        if reason is None:
            self._sync_position(position)
            return None
        return self.close(instrument, reason, price=value)

    # ==================== decision ====================

    def evaluate(self, instrument: str) -> TradeSignal | None:
        """Run the decision engine on the current series; None without price data."""
        candles = self._aggregator.get_series(instrument)
        if not candles:
            return None
        snapshot = compute_snapshot(candles)
        return decide(instrument, candles[-1].close, snapshot, self._settings)

    def evaluate_and_trade(self, instrument: str) -> EvaluationResult:
        """Decide for one instrument and open a position when the gates allow it."""
        if not self._trading:
            return EvaluationResult(instrument=instrument, status="not_trading")
        return self._act_on(instrument, self.evaluate(instrument))

    def evaluate_all(self) -> list[EvaluationResult]:
        """Evaluate every known instrument, acting on the strongest signals first.

        Actionable signals are ranked by confidence, then risk-reward ratio.
        """
        instruments = self._aggregator.instruments()
        if not self._trading:
            return [EvaluationResult(instrument=i, status="not_trading") for i in instruments]

        signals = [(instrument, self.evaluate(instrument)) for instrument in instruments]
        ranked = sorted(
            signals,
            key=lambda item: (
                item[1] is not None and item[1].is_actionable,
                item[1].confidence if item[1] else 0.0,
                item[1].risk_reward_ratio if item[1] else 0.0,
            ),
            reverse=True,
        )
        return [self._act_on(instrument, signal) for instrument, signal in ranked]

    def _act_on(self, instrument: str, signal: TradeSignal | None) -> EvaluationResult:
        if signal is None:
            return EvaluationResult(instrument=instrument, status="no_price")
        if not signal.is_actionable or signal.proposed_stop_loss is None:
            return EvaluationResult(instrument=instrument, status="hold", signal=signal)

        log_trade_signal(
            self._logger,
            instrument=instrument,
            side=signal.side,
            confidence=signal.confidence,
            rationale=list(signal.rationale),
            risk_reward_ratio=round(signal.risk_reward_ratio, 4),
        )

        guard = self.check_entry(instrument)
        if not guard.allowed:
            log_risk_event(
                self._logger,
                event_type="entry_blocked",
                action="skip",
                instrument=instrument,
                reasons=guard.reasons,
            )
            return EvaluationResult(
                instrument=instrument,
                status="risk_blocked",
                signal=signal,
                reasons=guard.reasons,
            )

        trade_risk = self._risk.check_trade_risk(signal.price, signal.proposed_stop_loss)
        if not trade_risk.allowed:
            log_risk_event(
                self._logger,
                event_type="trade_risk_too_high",
                action="skip",
                instrument=instrument,
                entry=signal.price,
                stop_loss=signal.proposed_stop_loss,
            )
            return EvaluationResult(
                instrument=instrument,
                status="risk_too_high",
                signal=signal,
                reasons=trade_risk.reasons,
            )

        position = self.open(instrument, signal)
        return EvaluationResult(
            instrument=instrument,
            status="opened",
            signal=signal,
            position=position,
        )

    # ==================== lifecycle ====================

    def check_entry(self, instrument: str) -> RiskCheckResult:
        """Entry guards with the reasons that block a new position."""
        now = self._clock()
        self._roll_day(now)
        return self._risk.check_entry(instrument, self._book.open_instruments, now)

    def can_open(self, instrument: str) -> bool:
        return self.check_entry(instrument).allowed

    def open(self, instrument: str, signal: TradeSignal) -> Position:
        """Open a position for an actionable signal at the signal price."""
        if signal.instrument != instrument:
            raise ValueError("instrument_mismatch")
        stop_loss, take_profit = signal.proposed_stop_loss, signal.proposed_take_profit
        if signal.side == "HOLD" or stop_loss is None or take_profit is None:
            raise ValueError("signal_not_actionable")

        now = self._clock()
        self._roll_day(now)
        side: PositionSide = "BUY" if signal.side == "BUY" else "SELL"
        investment = self._risk.compute_investment(signal.confidence)
        quantity = self._risk.compute_quantity(investment, signal.price)
        exposure = self._risk.risk_contribution(
            investment, self._book.get_statistics().account_balance, signal.price, stop_loss
        )

        position = self._book.open_position(
            instrument=instrument,
            side=side,
            entry_price=signal.price,
            quantity=quantity,
            investment=investment,
            stop_loss=stop_loss,
            take_profit=take_profit,
            opened_at=now,
            confidence=signal.confidence,
            rationale=signal.rationale,
        )
        self._risk.record_open(now, instrument, exposure)
        self._position_synced_at[instrument] = now

        self._persist("save_position", position)
        self._persist("save_statistics", self._book.get_statistics())
        self._notify("on_trade_opened", position)
        return position

    def close(
        self,
        instrument: str,
        reason: CloseReason = "manual",
        price: float | None = None,
    ) -> ClosedTrade | None:
        """Close the instrument's position at ``price`` (default: last known price)."""
        position = self._book.get_position(instrument)
        if position is None:
            return None
        if price is None:
            last = self._aggregator.last_price(instrument)
            exit_price = last if last is not None else position.entry_price
        else:
            exit_price = validate_price(instrument, price)

        now = self._clock()
        self._roll_day(now)
        trade = self._book.close_position(instrument, reason, exit_price=exit_price, closed_at=now)
        self._risk.record_close(trade.realized_pnl, now, instrument)
        self._position_synced_at.pop(instrument, None)

        self._persist("delete_position", trade.id)
        self._persist("append_closed_trade", trade)
        self._persist("save_statistics", self._book.get_statistics())
        self._notify("on_trade_closed", trade)

        if self._risk.state.daily_loss >= self._settings.max_daily_loss:
            log_risk_event(
                self._logger,
                event_type="daily_loss_limit_reached",
                action="block_new_entries",
                daily_loss=round(self._risk.state.daily_loss, 6),
            )
        return trade

    def start_trading(self) -> bool:
        """Enable automatic entries. Returns False if already active."""
        if self._trading:
            return False
        self._trading = True
        self._notify("on_log", "info", "trading_started", settings=self._settings.model_dump(mode="json"))
        return True

    def stop_trading(self) -> list[ClosedTrade]:
        """Disable entries and close every open position at its last known price."""
        was_trading = self._trading
        self._trading = False
        closed = [
            trade
            for instrument in self._book.open_instruments
            if (trade := self.close(instrument, "manual_stop")) is not None
        ]
        if was_trading or closed:
            self._notify("on_log", "info", "trading_stopped", closed_positions=len(closed))
        return closed

    # ==================== queries / commands ====================

    def get_open_positions(self) -> list[Position]:
        return self._book.get_positions()

    def get_closed_history(self, limit: int = 50) -> list[ClosedTrade]:
        return self._book.get_closed_history(limit)

    def get_statistics(self) -> Statistics:
        return self._book.get_statistics()

    def update_settings(self, partial: Mapping[str, Any]) -> SettingsUpdateResult:
        """Merge a partial settings update field by field."""
        result = merge_settings_update(self._settings, partial)
        for error in result.rejected:
            self._logger.warning("setting_rejected", field=error.field, reason=error.reason)
        if result.ignored:
            self._logger.debug("settings_ignored", fields=result.ignored)
        self._settings = result.settings
        self._risk.update_settings(result.settings)
        if result.applied:
            self._persist("save_settings", result.settings.model_dump(mode="json"))
        return result

    def reset_daily_stats(self) -> None:
        """Clear the daily loss accumulator and today's P&L."""
        self._risk.reset_daily(self._clock())
        self._book.reset_today()
        self._persist("save_statistics", self._book.get_statistics())

    def restore(self) -> None:
        """Reload settings, statistics, open positions and recent closed trades from the store.

        Restored positions count toward the concurrency and total-risk gates but
        do not restart the cooldown.
        """
        if self._store is None:
            return
        try:
            saved_settings = self._store.load_settings()
            saved_stats = self._store.load_statistics()
            saved_positions = self._store.load_positions()
            saved_trades = self._store.load_closed_trades(self._book.closed_history_limit)
        except PersistenceError as exc:
            self._logger.warning("restore_failed", error=str(exc))
            return
        if saved_settings:
            self.update_settings(saved_settings)
        if saved_stats is not None:
            self._book.restore_statistics(saved_stats)

        now = self._clock()
        balance = self._book.get_statistics().account_balance
        restored = self._book.restore_positions(saved_positions)
        for position in restored:
            exposure = self._risk.risk_contribution(
                position.investment, balance, position.entry_price, position.stop_loss
            )
            self._risk.track_position(position.instrument, exposure)
            self._position_synced_at[position.instrument] = now
        self._book.restore_closed_history(saved_trades)

        self._logger.info(
            "state_restored",
            settings=saved_settings is not None,
            statistics=saved_stats is not None,
            positions=len(restored),
            closed_trades=len(saved_trades),
        )

    def export_state(self) -> dict[str, Any]:
        """Plain-data snapshot of settings, risk state, positions and history."""
        return {
            "trading": self._trading,
            "settings": self._settings.model_dump(mode="json"),
            "risk_state": asdict(self._risk.state),
            **self._book.export(),
        }

    # ==================== internals ====================

    def _roll_day(self, now: datetime) -> None:
        if self._risk.roll_day_if_needed(now):
            self._book.reset_today()
            self._logger.info("trading_day_rolled", trading_day=self._risk.state.trading_day)

    def _sync_position(self, position: Position) -> None:
        now = self._clock()
        last = self._position_synced_at.get(position.instrument)
        if last is not None and (now - last).total_seconds() < self._position_sync_seconds:
            return
        self._position_synced_at[position.instrument] = now
        self._persist("update_position", position)

    def _persist(self, operation: str, *args: object) -> None:
        if self._store is None:
            return
        try:
            getattr(self._store, operation)(*args)
        except Exception as exc:  # noqa: BLE001 - persistence is fire-and-forget.
            self._logger.error("persistence_failed", operation=operation, error=str(exc))

    def _notify(self, callback: str, *args: Any, **kwargs: Any) -> None:
        try:
            getattr(self._observer, callback)(*args, **kwargs)
        except Exception as exc:  # noqa: BLE001 - observers must not break trading.
            self._logger.error("observer_failed", callback=callback, error=str(exc))
