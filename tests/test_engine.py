from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from swing_trader.config import TradingSettings
from swing_trader.engine import TradingEngine
from swing_trader.errors import PersistenceError
from swing_trader.journal.store import InMemoryTradeStore
from swing_trader.types import Candle, ClosedTrade, Position, Statistics, TradeSignal


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class _RecordingObserver:
    def __init__(self) -> None:
        self.opened: list[Position] = []
        self.closed: list[ClosedTrade] = []
        self.logs: list[str] = []

    def on_trade_opened(self, position: Position) -> None:
        self.opened.append(position)

    def on_trade_closed(self, trade: ClosedTrade) -> None:
        self.closed.append(trade)

    def on_log(self, level: str, event: str, **fields: Any) -> None:
        self.logs.append(event)


class _FailingStore(InMemoryTradeStore):
    def save_position(self, position: Position) -> None:
        raise PersistenceError("disk full")

    def append_closed_trade(self, trade: ClosedTrade) -> None:
        raise PersistenceError("disk full")

    def save_statistics(self, stats: Statistics) -> None:
        raise PersistenceError("disk full")


def _signal(
    instrument: str,
    side: str,
    price: float,
    stop: float,
    target: float,
    confidence: float = 70.0,
) -> TradeSignal:
    return TradeSignal(
        instrument=instrument,
        side=side,  # type: ignore[arg-type]
        confidence=confidence,
        rationale=("test",),
        price=price,
        proposed_stop_loss=stop,
        proposed_take_profit=target,
        risk_reward_ratio=abs(target - price) / abs(price - stop),
    )


def _fixed_decide(confidence: dict[str, float] | None = None, stop_offset: float = 5.0) -> Any:
    def _decide(instrument: str, current_price: float, snapshot: object, settings: object = None) -> TradeSignal:
        conf = (confidence or {}).get(instrument, 70.0)
        return _signal(
            instrument,
            "BUY",
            current_price,
            current_price - stop_offset,
            current_price + stop_offset * 2,
            confidence=conf,
        )

    return _decide


def _engine(clock: _Clock, **kwargs: Any) -> TradingEngine:
    kwargs.setdefault("observer", _RecordingObserver())
    kwargs.setdefault("store", InMemoryTradeStore())
    settings = kwargs.pop("settings", TradingSettings(max_investment_per_trade=50.0))
    return TradingEngine(settings, clock=clock, **kwargs)


def test_open_sets_quantity_and_blocks_reentry() -> None:
    clock = _Clock()
    engine = _engine(clock)
    engine.update_tick("BTC", 100.0)

    position = engine.open("BTC", _signal("BTC", "BUY", 100.0, 95.0, 110.0))
    assert position.quantity == pytest.approx(0.5)
    assert position.quantity * position.entry_price == pytest.approx(position.investment)
    assert engine.get_statistics().total_trades == 1

    assert not engine.can_open("BTC")
    reasons = engine.check_entry("BTC").reasons
    assert "position_already_open" in reasons
    assert "cooldown_active" in reasons
    assert not engine.can_open("ETH")

    clock.advance(minutes=31)
    assert engine.can_open("ETH")
    assert not engine.can_open("BTC")

    with pytest.raises(RuntimeError):
        engine.open("BTC", _signal("BTC", "BUY", 100.0, 95.0, 110.0))


def test_open_rejects_hold_signal() -> None:
    engine = _engine(_Clock())
    hold = TradeSignal(instrument="BTC", side="HOLD", confidence=0.0, rationale=(), price=100.0)
    with pytest.raises(ValueError):
        engine.open("BTC", hold)
    assert engine.get_open_positions() == []


def test_open_rejects_non_positive_target() -> None:
    engine = _engine(_Clock())
    engine.update_tick("ETH", 100.0)
    with pytest.raises(ValueError, match="levels_must_be_positive"):
        engine.open("ETH", _signal("ETH", "SELL", 100.0, 201.0, -51.5))
    assert engine.get_open_positions() == []
    assert engine.get_statistics().total_trades == 0


def test_take_profit_closes_buy_position() -> None:
    observer = _RecordingObserver()
    store = InMemoryTradeStore()
    engine = _engine(_Clock(), observer=observer, store=store)
    engine.update_tick("BTC", 100.0)
    engine.open("BTC", _signal("BTC", "BUY", 100.0, 95.0, 110.0))

    engine.update_tick("BTC", 104.0)
    assert engine.get_open_positions()[0].unrealized_pnl == pytest.approx(2.0)
    assert engine.get_statistics().unrealized_pnl == pytest.approx(2.0)

    engine.update_tick("BTC", 111.0)
    assert engine.get_open_positions() == []
    history = engine.get_closed_history()
    assert len(history) == 1
    trade = history[0]
    assert trade.close_reason == "take_profit"
    assert trade.realized_pnl == pytest.approx((111.0 - 100.0) * 0.5)

    stats = engine.get_statistics()
    assert stats.winning_trades == 1
    assert stats.losing_trades == 0
    assert stats.total_pnl == pytest.approx(5.5)
    assert stats.account_balance == pytest.approx(1_005.5)
    assert stats.win_rate == pytest.approx(100.0)

    assert [p.instrument for p in observer.opened] == ["BTC"]
    assert [t.instrument for t in observer.closed] == ["BTC"]
    assert store.positions == {}
    assert len(store.closed_trades) == 1


def test_stop_loss_closes_sell_position_and_feeds_breaker() -> None:
    clock = _Clock()
    settings = TradingSettings(max_investment_per_trade=50.0, max_daily_loss=2.0)
    engine = _engine(clock, settings=settings)
    engine.update_tick("ETH", 100.0)
    engine.open("ETH", _signal("ETH", "SELL", 100.0, 105.0, 90.0))

    engine.update_tick("ETH", 106.0)
    trade = engine.get_closed_history()[0]
    assert trade.close_reason == "stop_loss"
    assert trade.realized_pnl == pytest.approx((100.0 - 106.0) * 0.5)
    assert engine.get_statistics().losing_trades == 1

    clock.advance(hours=1)
    assert engine.check_entry("BTC").reasons == ["daily_loss_limit_reached"]

    clock.advance(days=1)
    assert engine.can_open("BTC")
    assert engine.get_statistics().today_pnl == 0.0


@pytest.mark.parametrize("bad", [0.0, -5.0, float("nan"), "abc", None])
def test_invalid_tick_is_discarded(bad: object) -> None:
    engine = _engine(_Clock())
    engine.update_tick("BTC", 100.0)
    engine.open("BTC", _signal("BTC", "BUY", 100.0, 95.0, 110.0))

    assert engine.update_tick("BTC", bad) is False  # type: ignore[arg-type]
    assert engine.on_price_update("BTC", bad) is None  # type: ignore[arg-type]
    assert len(engine.aggregator.get_series("BTC")) == 1
    position = engine.get_open_positions()[0]
    assert position.unrealized_pnl == 0.0


def test_stop_trading_closes_everything_once() -> None:
    engine = _engine(_Clock())
    for instrument, price in (("BTC", 100.0), ("ETH", 50.0), ("SOL", 20.0)):
        engine.update_tick(instrument, price)
        engine.open(instrument, _signal(instrument, "BUY", price, price * 0.8, price * 1.5))
    engine.update_tick("BTC", 102.0)
    engine.update_tick("ETH", 49.0)
    assert engine.start_trading()

    closed = engine.stop_trading()
    assert {t.instrument: t.exit_price for t in closed} == {"BTC": 102.0, "ETH": 49.0, "SOL": 20.0}
    assert all(t.close_reason == "manual_stop" for t in closed)
    assert engine.get_open_positions() == []
    stats = engine.get_statistics()
    assert stats.total_trades == 3
    assert stats.winning_trades == 1
    assert stats.losing_trades == 2
    assert stats.total_pnl == pytest.approx(1.0 - 1.0 + 0.0)

    assert engine.stop_trading() == []
    assert engine.get_statistics() == stats
    assert not engine.is_trading


def test_evaluate_requires_trading_and_price() -> None:
    engine = _engine(_Clock())
    assert engine.evaluate_and_trade("BTC").status == "not_trading"
    assert engine.start_trading()
    assert not engine.start_trading()
    assert engine.evaluate_and_trade("BTC").status == "no_price"


def test_flat_history_holds() -> None:
    engine = _engine(_Clock())
    start = datetime(2024, 3, 1, tzinfo=UTC)
    candles = [
        Candle(open_time=start + timedelta(minutes=i), open=100.0, high=100.0, low=100.0, close=100.0)
        for i in range(60)
    ]
    assert engine.seed_history("BTC", candles) == 50
    engine.start_trading()
    result = engine.evaluate_and_trade("BTC")
    assert result.status == "hold"
    assert result.signal is not None
    assert result.signal.side == "HOLD"
    assert engine.get_open_positions() == []


def test_evaluate_and_trade_opens_then_gates(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("swing_trader.engine.decide", _fixed_decide())
    clock = _Clock()
    engine = _engine(clock)
    engine.start_trading()
    engine.update_tick("BTC", 100.0)
    engine.update_tick("ETH", 40.0)

    opened = engine.evaluate_and_trade("BTC")
    assert opened.status == "opened"
    assert opened.position is not None
    assert opened.position.stop_loss < opened.position.entry_price < opened.position.take_profit

    again = engine.evaluate_and_trade("BTC")
    assert again.status == "risk_blocked"
    assert "position_already_open" in again.reasons

    other = engine.evaluate_and_trade("ETH")
    assert other.status == "risk_blocked"
    assert other.reasons == ["cooldown_active"]

    clock.advance(minutes=31)
    assert engine.evaluate_and_trade("ETH").status == "risk_too_high"


def test_evaluate_all_ranks_by_confidence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "swing_trader.engine.decide",
        _fixed_decide(confidence={"AAA": 60.0, "BBB": 80.0}, stop_offset=2.0),
    )
    engine = _engine(_Clock())
    engine.update_tick("AAA", 100.0)
    engine.update_tick("BBB", 100.0)
    engine.start_trading()

    results = engine.evaluate_all()
    assert [r.instrument for r in results] == ["BBB", "AAA"]
    assert results[0].status == "opened"
    assert results[1].status == "risk_blocked"


def test_persistence_failure_does_not_roll_back() -> None:
    engine = _engine(_Clock(), store=_FailingStore())
    engine.update_tick("BTC", 100.0)
    engine.open("BTC", _signal("BTC", "BUY", 100.0, 95.0, 110.0))
    assert len(engine.get_open_positions()) == 1

    trade = engine.close("BTC", "manual", price=101.0)
    assert trade is not None
    assert trade.realized_pnl == pytest.approx(0.5)
    assert engine.get_open_positions() == []
    assert engine.get_statistics().total_pnl == pytest.approx(0.5)


def test_close_without_position_is_noop() -> None:
    engine = _engine(_Clock())
    assert engine.close("BTC") is None


def test_closed_history_newest_first() -> None:
    clock = _Clock()
    engine = _engine(clock)
    for price in (100.0, 200.0, 300.0):
        engine.update_tick("BTC", price)
        engine.open("BTC", _signal("BTC", "BUY", price, price - 10, price + 20))
        engine.close("BTC")
        clock.advance(hours=1)
    history = engine.get_closed_history(limit=2)
    assert [t.entry_price for t in history] == [300.0, 200.0]
    assert engine.get_closed_history(limit=0) == []


def test_update_settings_per_field() -> None:
    store = InMemoryTradeStore()
    engine = _engine(_Clock(), store=store)
    result = engine.update_settings({"max_investment_per_trade": -1, "max_concurrent_positions": 2, "colour": "red"})
    assert engine.settings.max_investment_per_trade == 50.0
    assert engine.settings.max_concurrent_positions == 2
    assert [e.field for e in result.rejected] == ["max_investment_per_trade"]
    assert result.ignored == ["colour"]
    assert store.settings is not None
    assert store.settings["max_concurrent_positions"] == 2


def test_restore_and_export_state() -> None:
    store = InMemoryTradeStore()
    store.settings = {"max_daily_loss": 42.0}
    store.statistics = Statistics(total_trades=4, winning_trades=3, losing_trades=1, total_pnl=12.0, account_balance=1_012.0)
    engine = _engine(_Clock(), store=store)
    engine.restore()
    assert engine.settings.max_daily_loss == 42.0
    assert engine.get_statistics().total_trades == 4

    engine.update_tick("BTC", 100.0)
    engine.open("BTC", _signal("BTC", "BUY", 100.0, 95.0, 110.0))
    state = engine.export_state()
    assert state["settings"]["max_daily_loss"] == 42.0
    assert len(state["positions"]) == 1
    assert state["statistics"]["total_trades"] == 5
    assert state["risk_state"]["open_position_count"] == 1


def test_reset_daily_stats() -> None:
    settings = TradingSettings(max_investment_per_trade=50.0, max_daily_loss=1.0)
    clock = _Clock()
    engine = _engine(clock, settings=settings)
    engine.update_tick("BTC", 100.0)
    engine.open("BTC", _signal("BTC", "BUY", 100.0, 95.0, 110.0))
    engine.close("BTC", price=96.0)
    clock.advance(hours=1)
    assert "daily_loss_limit_reached" in engine.check_entry("BTC").reasons

    engine.reset_daily_stats()
    assert engine.can_open("BTC")
    assert engine.get_statistics().today_pnl == 0.0
    assert engine.get_statistics().total_pnl == pytest.approx(-2.0)


def test_restart_restores_positions_and_history() -> None:
    clock = _Clock()
    store = InMemoryTradeStore()
    first = _engine(clock, store=store)
    first.update_tick("ETH", 50.0)
    first.open("ETH", _signal("ETH", "BUY", 50.0, 45.0, 60.0))
    first.close("ETH", price=52.0)
    clock.advance(minutes=31)
    first.update_tick("BTC", 100.0)
    first.open("BTC", _signal("BTC", "BUY", 100.0, 95.0, 110.0))

    second = _engine(clock, store=store)
    second.restore()
    positions = second.get_open_positions()
    assert [(p.instrument, p.stop_loss, p.take_profit) for p in positions] == [("BTC", 95.0, 110.0)]
    assert [t.instrument for t in second.get_closed_history()] == ["ETH"]
    assert second.get_statistics().total_trades == 2
    assert second.check_entry("BTC").reasons == ["position_already_open"]
    assert second.export_state()["risk_state"]["open_position_count"] == 1

    second.update_tick("BTC", 111.0)
    assert second.get_open_positions() == []
    assert second.get_closed_history()[0].close_reason == "take_profit"
    assert store.positions == {}

    second.restore()
    assert [t.instrument for t in second.get_closed_history()] == ["BTC", "ETH"]


def test_total_risk_gate_releases_on_close() -> None:
    clock = _Clock()
    settings = TradingSettings(max_investment_per_trade=50.0, max_total_risk_pct=0.5)
    engine = _engine(clock, settings=settings)
    engine.update_tick("BTC", 100.0)
    engine.open("BTC", _signal("BTC", "BUY", 100.0, 90.0, 120.0))

    clock.advance(minutes=31)
    assert engine.check_entry("ETH").reasons == ["total_risk_limit_reached"]

    engine.close("BTC", price=101.0)
    assert engine.can_open("ETH")


class _CountingStore(InMemoryTradeStore):
    def __init__(self) -> None:
        super().__init__()
        self.updates = 0

    def update_position(self, position: Position) -> None:
        self.updates += 1
        super().update_position(position)


def test_position_updates_are_throttled() -> None:
    clock = _Clock()
    store = _CountingStore()
    engine = _engine(clock, store=store, position_sync_seconds=60.0)
    engine.update_tick("BTC", 100.0)
    position = engine.open("BTC", _signal("BTC", "BUY", 100.0, 95.0, 110.0))

    engine.update_tick("BTC", 101.0)
    clock.advance(seconds=30)
    engine.update_tick("BTC", 102.0)
    assert store.updates == 0

    clock.advance(seconds=31)
    engine.update_tick("BTC", 103.0)
    engine.update_tick("BTC", 104.0)
    assert store.updates == 1
    assert store.positions[position.id].unrealized_pnl == pytest.approx(1.5)
    assert engine.get_open_positions()[0].unrealized_pnl == pytest.approx(2.0)
