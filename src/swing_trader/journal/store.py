"""Trade persistence collaborators: a JSON/JSONL file store and an in-memory store."""

from __future__ import annotations

import json
from dataclasses import asdict, fields
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, TypeVar

from swing_trader.errors import PersistenceError
from swing_trader.types import ClosedTrade, Position, Statistics

RecordT = TypeVar("RecordT", Position, ClosedTrade)

_STAT_FIELDS = (
    "total_trades",
    "winning_trades",
    "losing_trades",
    "total_pnl",
    "today_pnl",
    "account_balance",
)


class TradeStore(Protocol):
    """Persistence operations the engine issues. Failures raise ``PersistenceError``."""

    def save_position(self, position: Position) -> None: ...

    def update_position(self, position: Position) -> None: ...

    def delete_position(self, position_id: str) -> None: ...

    def load_positions(self) -> list[Position]: ...

    def append_closed_trade(self, trade: ClosedTrade) -> None: ...

    def load_closed_trades(self, limit: int) -> list[ClosedTrade]: ...

    def load_statistics(self) -> Statistics | None: ...

    def save_statistics(self, stats: Statistics) -> None: ...

    def load_settings(self) -> dict[str, Any] | None: ...

    def save_settings(self, settings: dict[str, Any]) -> None: ...


def _json_default(value: object) -> object:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return list(value)
    raise TypeError(f"not_json_serializable: {type(value).__name__}")


def _dumps(payload: object, *, indent: int | None = None) -> str:
    return json.dumps(payload, ensure_ascii=True, indent=indent, default=_json_default)


def _record_from_payload(cls: type[RecordT], payload: dict[str, Any], *time_fields: str) -> RecordT:
    known = {f.name for f in fields(cls)}
    data = {k: v for k, v in payload.items() if k in known}
    try:
        for name in time_fields:
            data[name] = datetime.fromisoformat(data[name])
        data["rationale"] = tuple(data.get("rationale") or ())
        return cls(**data)
    except (KeyError, TypeError, ValueError) as exc:
        raise PersistenceError(f"malformed_record: {cls.__name__}: {exc}") from exc


def _statistics_payload(stats: Statistics) -> dict[str, Any]:
    return {name: getattr(stats, name) for name in _STAT_FIELDS}


class JsonlTradeStore:
    """File-backed store.

    Open positions live in ``positions.json`` keyed by id, closed trades are
    appended to ``trades.jsonl``, statistics and settings are JSON documents.
    """

    def __init__(self, journal_dir: Path) -> None:
        self._journal_dir = journal_dir
        self._journal_dir.mkdir(parents=True, exist_ok=True)
        self._positions_file = journal_dir / "positions.json"
        self._trades_file = journal_dir / "trades.jsonl"
        self._stats_file = journal_dir / "statistics.json"
        self._settings_file = journal_dir / "settings.json"

    def save_position(self, position: Position) -> None:
        positions = self._position_payloads()
        positions[position.id] = asdict(position)
        self._write_json(self._positions_file, positions)

    def update_position(self, position: Position) -> None:
        self.save_position(position)

    def delete_position(self, position_id: str) -> None:
        positions = self._position_payloads()
        if positions.pop(position_id, None) is not None:
            self._write_json(self._positions_file, positions)

    def load_positions(self) -> list[Position]:
        """Open positions saved by a previous run."""
        return [
            _record_from_payload(Position, payload, "opened_at")
            for payload in self._position_payloads().values()
        ]

    def _position_payloads(self) -> dict[str, dict[str, Any]]:
        payload = self._read_json(self._positions_file)
        return payload if isinstance(payload, dict) else {}

    def append_closed_trade(self, trade: ClosedTrade) -> None:
        """Append one closed trade line to the trade log."""
        try:
            line = _dumps(asdict(trade))
            with self._trades_file.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"append_closed_trade_failed: {exc}") from exc

    def load_closed_trades(self, limit: int) -> list[ClosedTrade]:
        """Load the most recent closed trades, oldest first."""
        if limit <= 0 or not self._trades_file.exists():
            return []
        try:
            lines = self._trades_file.read_text(encoding="utf-8").splitlines()
            rows = [json.loads(line) for line in lines if line.strip()]
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"load_closed_trades_failed: {exc}") from exc
        return [
            _record_from_payload(ClosedTrade, row, "opened_at", "exit_time")
            for row in rows[-limit:]
        ]

    def load_statistics(self) -> Statistics | None:
        payload = self._read_json(self._stats_file)
        if not isinstance(payload, dict):
            return None
        known = {k: v for k, v in payload.items() if k in _STAT_FIELDS}
        return Statistics(**known)

    def save_statistics(self, stats: Statistics) -> None:
        self._write_json(self._stats_file, _statistics_payload(stats))

    def load_settings(self) -> dict[str, Any] | None:
        payload = self._read_json(self._settings_file)
        return payload if isinstance(payload, dict) else None

    def save_settings(self, settings: dict[str, Any]) -> None:
        self._write_json(self._settings_file, settings)

    def _read_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"read_failed: {path.name}: {exc}") from exc

    def _write_json(self, path: Path, payload: object) -> None:
        try:
            path.write_text(_dumps(payload, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"write_failed: {path.name}: {exc}") from exc


class InMemoryTradeStore:
    """Dict-backed store for tests and ephemeral runs."""

    def __init__(self) -> None:
        self.positions: dict[str, Position] = {}
        self.closed_trades: list[ClosedTrade] = []
        self.statistics: Statistics | None = None
        self.settings: dict[str, Any] | None = None

    def save_position(self, position: Position) -> None:
        self.positions[position.id] = position

    def update_position(self, position: Position) -> None:
        self.positions[position.id] = position

    def delete_position(self, position_id: str) -> None:
        self.positions.pop(position_id, None)

    def load_positions(self) -> list[Position]:
        return list(self.positions.values())

    def append_closed_trade(self, trade: ClosedTrade) -> None:
        self.closed_trades.append(trade)

    def load_closed_trades(self, limit: int) -> list[ClosedTrade]:
        if limit <= 0:
            return []
        return self.closed_trades[-limit:]

    def load_statistics(self) -> Statistics | None:
        return self.statistics

    def save_statistics(self, stats: Statistics) -> None:
        self.statistics = stats

    def load_settings(self) -> dict[str, Any] | None:
        return dict(self.settings) if self.settings is not None else None

    def save_settings(self, settings: dict[str, Any]) -> None:
        self.settings = dict(settings)
