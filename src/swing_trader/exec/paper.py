"""Paper position book: open positions, closed history and running statistics."""

from __future__ import annotations

import uuid
from collections import deque
from collections.abc import Iterable
from dataclasses import asdict, replace
from datetime import datetime
from typing import Any

from swing_trader.types import (
    ClosedTrade,
    CloseReason,
    Position,
    PositionSide,
    Statistics,
)


def calculate_pnl(side: PositionSide, entry_price: float, exit_price: float, quantity: float) -> float:
    """Side-dependent P&L shared by marking and closing."""
    if side == "BUY":
        return (exit_price - entry_price) * quantity
    return (entry_price - exit_price) * quantity


def exit_reason(position: Position, price: float) -> CloseReason | None:
    """Which protective level ``price`` has crossed, take-profit checked first."""
    if position.side == "BUY":
        if price >= position.take_profit:
            return "take_profit"
        if price <= position.stop_loss:
            return "stop_loss"
        return None
    if price <= position.take_profit:
        return "take_profit"
    if price >= position.stop_loss:
        return "stop_loss"
    return None


class PaperExecutor:
    """Simulated fills at the requested price, at most one position per instrument."""

    def __init__(self, *, initial_balance: float = 1_000.0, closed_history_limit: int = 500) -> None:
        self._positions: dict[str, Position] = {}
        self._closed: deque[ClosedTrade] = deque(maxlen=closed_history_limit)
        self._stats = Statistics(account_balance=initial_balance)

    @property
    def open_instruments(self) -> list[str]:
        return list(self._positions)

    def get_position(self, instrument: str) -> Position | None:
        return self._positions.get(instrument)

    def open_position(
        self,
        *,
        instrument: str,
        side: PositionSide,
        entry_price: float,
        quantity: float,
        investment: float,
        stop_loss: float,
        take_profit: float,
        opened_at: datetime,
        confidence: float = 0.0,
        rationale: tuple[str, ...] = (),
    ) -> Position:
        """Open a position at ``entry_price``."""
        if instrument in self._positions:
            raise RuntimeError("position_already_open")
        if quantity <= 0 or entry_price <= 0:
            raise ValueError("quantity_must_be_positive")
        if stop_loss <= 0 or take_profit <= 0:
            raise ValueError("levels_must_be_positive")
        if side == "BUY" and not stop_loss < entry_price < take_profit:
            raise ValueError("levels_out_of_order")
        if side == "SELL" and not take_profit < entry_price < stop_loss:
            raise ValueError("levels_out_of_order")

        position = Position(
            id=uuid.uuid4().hex,
            instrument=instrument,
            side=side,
            entry_price=float(entry_price),
            quantity=float(quantity),
            investment=float(investment),
            opened_at=opened_at,
            stop_loss=float(stop_loss),
            take_profit=float(take_profit),
            confidence=confidence,
            rationale=rationale,
        )
        self._positions[instrument] = position
        self._stats.total_trades += 1
        return replace(position)

    def close_position(
        self,
        instrument: str,
        reason: CloseReason,
        *,
        exit_price: float,
        closed_at: datetime,
    ) -> ClosedTrade:
        """Close the instrument's position and realize P&L."""
        active = self._positions.pop(instrument, None)
        if active is None:
            raise RuntimeError("no_open_position")

        pnl = calculate_pnl(active.side, active.entry_price, exit_price, active.quantity)
        trade = ClosedTrade(
            id=active.id,
            instrument=active.instrument,
            side=active.side,
            entry_price=active.entry_price,
            quantity=active.quantity,
            investment=active.investment,
            opened_at=active.opened_at,
            stop_loss=active.stop_loss,
            take_profit=active.take_profit,
            exit_price=float(exit_price),
            exit_time=closed_at,
            realized_pnl=float(pnl),
            close_reason=reason,
            confidence=active.confidence,
            rationale=active.rationale,
        )
        self._closed.append(trade)

        self._stats.total_pnl += pnl
        self._stats.today_pnl += pnl
        self._stats.account_balance += pnl
        if pnl > 0:
            self._stats.winning_trades += 1
        else:
            self._stats.losing_trades += 1
        return replace(trade)

    def mark_to_market(self, instrument: str, last_price: float) -> Position | None:
        """Update unrealized P&L for the instrument's position, if any."""
        position = self._positions.get(instrument)
        if position is None:
            return None
        position.unrealized_pnl = calculate_pnl(
            position.side, position.entry_price, last_price, position.quantity
        )
        return replace(position)

    def get_positions(self) -> list[Position]:
        return [replace(p) for p in self._positions.values()]

    def get_closed_history(self, limit: int = 50) -> list[ClosedTrade]:
        """Most recent closed trades, newest first."""
        if limit <= 0:
            return []
        recent = list(self._closed)[-limit:]
        return [replace(t) for t in reversed(recent)]

    def get_statistics(self) -> Statistics:
        stats = replace(self._stats)
        stats.unrealized_pnl = sum(p.unrealized_pnl for p in self._positions.values())
        return stats

    def restore_statistics(self, stats: Statistics) -> None:
        self._stats = replace(stats, unrealized_pnl=0.0)

    @property
    def closed_history_limit(self) -> int:
        return self._closed.maxlen or 0

    def restore_positions(self, positions: Iterable[Position]) -> list[Position]:
        """Re-adopt positions from a previous run without counting them as new trades.

        Positions for an instrument that is already open are skipped.
        """
        restored: list[Position] = []
        for position in positions:
            if position.instrument in self._positions:
                continue
            self._positions[position.instrument] = replace(position)
            restored.append(replace(position))
        return restored

    def restore_closed_history(self, trades: Iterable[ClosedTrade]) -> None:
        """Prepend older closed trades, oldest first, keeping the retention bound."""
        known = {t.id for t in self._closed}
        merged = [replace(t) for t in trades if t.id not in known] + list(self._closed)
        self._closed.clear()
        self._closed.extend(merged)

    def reset_today(self) -> None:
        self._stats.today_pnl = 0.0

    def export(self) -> dict[str, Any]:
        """Plain-data snapshot of the book."""
        return {
            "positions": [asdict(p) for p in self._positions.values()],
            "closed_trades": [asdict(t) for t in self._closed],
            "statistics": asdict(self.get_statistics()),
        }
