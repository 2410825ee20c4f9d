from __future__ import annotations

import pytest
from pydantic import ValidationError

from swing_trader.config import (
    Settings,
    TradeFrequency,
    TradingSettings,
    merge_settings_update,
)
from swing_trader.errors import ConfigurationError


def test_valid_fields_are_applied() -> None:
    result = merge_settings_update(
        TradingSettings(),
        {"max_investment_per_trade": 75, "trade_frequency_tier": "aggressive"},
    )
    assert result.settings.max_investment_per_trade == 75.0
    assert result.settings.trade_frequency_tier is TradeFrequency.AGGRESSIVE
    assert result.settings.cooldown_seconds == 900
    assert result.applied == ["max_investment_per_trade", "trade_frequency_tier"]
    assert result.rejected == []


def test_invalid_field_keeps_prior_value() -> None:
    current = TradingSettings(max_investment_per_trade=40.0)
    result = merge_settings_update(
        current,
        {
            "max_investment_per_trade": -5,
            "min_risk_reward_ratio": 0.5,
            "max_concurrent_positions": 3,
        },
    )
    assert result.settings.max_investment_per_trade == 40.0
    assert result.settings.min_risk_reward_ratio == 1.5
    assert result.settings.max_concurrent_positions == 3
    assert [err.field for err in result.rejected] == [
        "max_investment_per_trade",
        "min_risk_reward_ratio",
    ]
    assert all(isinstance(err, ConfigurationError) for err in result.rejected)


def test_unknown_fields_are_ignored() -> None:
    result = merge_settings_update(TradingSettings(), {"leverage": 100, "max_daily_loss": 20})
    assert result.ignored == ["leverage"]
    assert result.settings.max_daily_loss == 20.0
    assert not hasattr(result.settings, "leverage")


def test_trading_settings_are_immutable() -> None:
    settings = TradingSettings()
    with pytest.raises(ValidationError):
        settings.max_daily_loss = 1.0  # type: ignore[misc]


def test_env_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: object) -> None:
    monkeypatch.setenv("SWING_MAX_CANDLES", "80")
    monkeypatch.setenv("SWING_TRADE_FREQUENCY_TIER", "conservative")
    monkeypatch.setenv("SWING_JOURNAL_DIR", str(tmp_path))
    settings = Settings()
    assert settings.max_candles == 80
    trading = settings.trading_settings()
    assert trading.cooldown_seconds == 3600
    assert str(settings.journal_dir) == str(tmp_path)


def test_total_risk_setting_bounds() -> None:
    assert TradingSettings().max_total_risk_pct == 10.0
    result = merge_settings_update(TradingSettings(), {"max_total_risk_pct": 0})
    assert [e.field for e in result.rejected] == ["max_total_risk_pct"]
    assert result.settings.max_total_risk_pct == 10.0
    assert Settings().position_sync_seconds == 60.0
