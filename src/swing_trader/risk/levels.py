"""Stop-loss / take-profit derivation with a risk-reward floor."""

from __future__ import annotations

from swing_trader.types import IndicatorSnapshot, Side, TradeLevels

LEVEL_BUFFER = 0.005
ATR_TARGET_MULTIPLE = 2.0
RISK_TARGET_MULTIPLE = 2.0
MISSING_LEVEL_OFFSET = 0.05
FALLBACK_ATR_STOP_MULTIPLE = 2.0


def compute_levels(
    side: Side,
    entry_price: float,
    snapshot: IndicatorSnapshot,
    min_risk_reward: float = 1.5,
) -> TradeLevels | None:
    """Derive stop-loss and take-profit for a prospective entry.

    BUY: stop 0.5% below the lower of recent swing low and major support; take
    profit is the highest of (nearer of swing high / resistance + 0.5%,
    entry + 2 ATR, entry + 2 x risk). SELL mirrors this. If the resulting
    reward/risk is below ``min_risk_reward`` the target is moved so the ratio
    meets the floor exactly. Returns None for HOLD, a non-positive entry, or a
    SELL whose floored target would not be a positive price.
    """
    if side == "HOLD" or entry_price <= 0:
        return None
    if side == "BUY":
        return _buy_levels(entry_price, snapshot, min_risk_reward)
    return _sell_levels(entry_price, snapshot, min_risk_reward)


def trade_risk_pct(entry_price: float, stop_loss: float) -> float:
    """Stop distance as a percentage of entry."""
    if entry_price <= 0 or stop_loss <= 0:
        return 0.0
    return abs(entry_price - stop_loss) / entry_price * 100.0


def _buy_levels(entry: float, snapshot: IndicatorSnapshot, min_rr: float) -> TradeLevels | None:
    swing_low = _positive(snapshot.recent_swing_low) or entry * (1.0 - MISSING_LEVEL_OFFSET)
    support = _positive(snapshot.major_support) or entry * (1.0 - MISSING_LEVEL_OFFSET)
    stop_loss = min(swing_low, support) * (1.0 - LEVEL_BUFFER)
    if stop_loss >= entry:
        stop_loss = _fallback_stop("BUY", entry, snapshot.atr)

    swing_high = _positive(snapshot.recent_swing_high) or entry * (1.0 + MISSING_LEVEL_OFFSET)
    resistance = _positive(snapshot.major_resistance) or entry * (1.0 + MISSING_LEVEL_OFFSET)
    risk = entry - stop_loss
    candidates = [
        min(swing_high, resistance) * (1.0 + LEVEL_BUFFER),
        entry + snapshot.atr * ATR_TARGET_MULTIPLE,
        entry + risk * RISK_TARGET_MULTIPLE,
    ]
    take_profit = max(candidates)
    return _apply_floor("BUY", entry, stop_loss, take_profit, min_rr)


def _sell_levels(entry: float, snapshot: IndicatorSnapshot, min_rr: float) -> TradeLevels | None:
    swing_high = _positive(snapshot.recent_swing_high) or entry * (1.0 + MISSING_LEVEL_OFFSET)
    resistance = _positive(snapshot.major_resistance) or entry * (1.0 + MISSING_LEVEL_OFFSET)
    stop_loss = max(swing_high, resistance) * (1.0 + LEVEL_BUFFER)
    if stop_loss <= entry:
        stop_loss = _fallback_stop("SELL", entry, snapshot.atr)

    swing_low = _positive(snapshot.recent_swing_low) or entry * (1.0 - MISSING_LEVEL_OFFSET)
    support = _positive(snapshot.major_support) or entry * (1.0 - MISSING_LEVEL_OFFSET)
    risk = stop_loss - entry
    candidates = [
        max(swing_low, support) * (1.0 - LEVEL_BUFFER),
        entry - snapshot.atr * ATR_TARGET_MULTIPLE,
        entry - risk * RISK_TARGET_MULTIPLE,
    ]
    positive = [c for c in candidates if c > 0]
    take_profit = min(positive) if positive else entry * (1.0 - MISSING_LEVEL_OFFSET)
    return _apply_floor("SELL", entry, stop_loss, take_profit, min_rr)


def _apply_floor(
    side: Side,
    entry: float,
    stop_loss: float,
    take_profit: float,
    min_rr: float,
) -> TradeLevels | None:
    risk = abs(entry - stop_loss)
    reward = abs(take_profit - entry)
    ratio = reward / risk if risk > 0 else 0.0
    wrong_side = take_profit <= entry if side == "BUY" else take_profit >= entry
    if ratio < min_rr or wrong_side:
        take_profit = entry + risk * min_rr if side == "BUY" else entry - risk * min_rr
        ratio = min_rr
    if take_profit <= 0:
        return None
    return TradeLevels(stop_loss=stop_loss, take_profit=take_profit, risk_reward_ratio=ratio)


def _fallback_stop(side: Side, entry: float, atr_value: float) -> float:
    if atr_value > 0 and atr_value * FALLBACK_ATR_STOP_MULTIPLE < entry:
        offset = atr_value * FALLBACK_ATR_STOP_MULTIPLE
    else:
        offset = entry * MISSING_LEVEL_OFFSET
    return entry - offset if side == "BUY" else entry + offset


def _positive(value: float | None) -> float | None:
    if value is None or value <= 0:
        return None
    return value
