"""Observer interface notified of trade lifecycle events."""

from __future__ import annotations

from typing import Any, Protocol

import structlog

from swing_trader.types import ClosedTrade, Position
from swing_trader.utils.logging import get_logger, log_order_execution


class TradeObserver(Protocol):
    def on_trade_opened(self, position: Position) -> None: ...

    def on_trade_closed(self, trade: ClosedTrade) -> None: ...

    def on_log(self, level: str, event: str, **fields: Any) -> None: ...


class LoggingObserver:
    """Default observer that writes every notification to the structured log."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or get_logger("swing_trader.observer")

    def on_trade_opened(self, position: Position) -> None:
        log_order_execution(
            self._logger,
            instrument=position.instrument,
            side=position.side,
            quantity=position.quantity,
            price=position.entry_price,
            position_id=position.id,
            status="opened",
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
        )

    def on_trade_closed(self, trade: ClosedTrade) -> None:
        log_order_execution(
            self._logger,
            instrument=trade.instrument,
            side=trade.side,
            quantity=trade.quantity,
            price=trade.exit_price,
            position_id=trade.id,
            status="closed",
            reason=trade.close_reason,
            realized_pnl=round(trade.realized_pnl, 6),
        )

    def on_log(self, level: str, event: str, **fields: Any) -> None:
        method = getattr(self._logger, level.lower(), self._logger.info)
        method(event, **fields)
