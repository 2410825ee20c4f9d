"""配置加载模块 - 从环境变量和 .env 文件加载配置。"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from swing_trader.errors import ConfigurationError


class LogFormat(str, Enum):
    """日志格式枚举。"""

    JSON = "json"
    CONSOLE = "console"


class TradeFrequency(str, Enum):
    """交易频率档位，决定两笔交易之间的冷却时间。"""

    CONSERVATIVE = "conservative"  # 1 小时
    MODERATE = "moderate"  # 30 分钟
    AGGRESSIVE = "aggressive"  # 15 分钟


COOLDOWN_SECONDS: dict[TradeFrequency, int] = {
    TradeFrequency.CONSERVATIVE: 3600,
    TradeFrequency.MODERATE: 1800,
    TradeFrequency.AGGRESSIVE: 900,
}


class TradingSettings(BaseModel):
    """运行时可调整的交易参数。

    每个字段独立校验；``merge_settings_update`` 按字段合并部分更新。
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    max_investment_per_trade: float = Field(
        default=50.0,
        gt=0.0,
        description="单笔投入金额（货币单位）",
    )
    min_risk_reward_ratio: float = Field(
        default=1.5,
        ge=1.0,
        description="最低盈亏比",
    )
    max_concurrent_positions: int = Field(
        default=6,
        ge=1,
        description="最大同时持仓数",
    )
    trade_frequency_tier: TradeFrequency = Field(
        default=TradeFrequency.MODERATE,
        description="交易频率档位",
    )
    max_daily_loss: float = Field(
        default=100.0,
        gt=0.0,
        description="日内最大亏损（触发熔断）",
    )

    # ==================== 信号阈值 ====================
    min_signal_votes: int = Field(
        default=3,
        ge=1,
        le=7,
        description="开仓所需最少同向因子票数",
    )
    min_confidence: float = Field(
        default=50.0,
        ge=0.0,
        le=100.0,
        description="开仓所需最低置信度",
    )
    max_trade_risk_pct: float = Field(
        default=10.0,
        gt=0.0,
        le=100.0,
        description="单笔止损距离上限（入场价百分比）",
    )
    max_total_risk_pct: float = Field(
        default=10.0,
        gt=0.0,
        le=100.0,
        description="所有持仓合计风险上限（账户余额百分比）",
    )
    scale_investment_by_confidence: bool = Field(
        default=False,
        description="按置信度在 10%-100% 之间缩放投入金额",
    )

    @property
    def cooldown_seconds(self) -> int:
        """当前档位对应的冷却时间（秒）。"""
        return COOLDOWN_SECONDS[self.trade_frequency_tier]


@dataclass(slots=True)
class SettingsUpdateResult:
    """部分更新的结果：新配置、已应用字段、被拒绝字段、被忽略字段。"""

    settings: TradingSettings
    applied: list[str] = field(default_factory=list)
    rejected: list[ConfigurationError] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)


def merge_settings_update(
    current: TradingSettings, partial: Mapping[str, Any]
) -> SettingsUpdateResult:
    """按字段合并部分配置更新。

    未知字段被忽略；非法字段被拒绝并保留原值；同一字段后写覆盖先写。
    """
    values = current.model_dump()
    result = SettingsUpdateResult(settings=current)
    known = TradingSettings.model_fields

    for key, value in partial.items():
        if key not in known:
            result.ignored.append(key)
            continue
        candidate = {**values, key: value}
        try:
            validated = TradingSettings.model_validate(candidate)
        except ValidationError as exc:
            result.rejected.append(ConfigurationError(key, exc.errors()[0]["msg"]))
            continue
        values = validated.model_dump()
        if key not in result.applied:
            result.applied.append(key)

    result.settings = TradingSettings.model_validate(values)
    return result


class Settings(BaseSettings):
    """系统配置设置。

    从环境变量（前缀 ``SWING_``）和 .env 文件加载配置。
    """

    model_config = SettingsConfigDict(
        env_prefix="SWING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== K 线聚合 ====================
    candle_interval_seconds: int = Field(
        default=60,
        ge=1,
        description="K 线时间宽度（秒）",
    )
    max_candles: int = Field(
        default=50,
        ge=2,
        le=5000,
        description="每个品种保留的最大 K 线数量",
    )
    new_candle_move_pct: float = Field(
        default=0.5,
        gt=0.0,
        le=50.0,
        description="价格偏离当前 K 线开盘价超过该百分比时开新 K 线",
    )

    # ==================== 账户与历史 ====================
    initial_balance: float = Field(
        default=1_000.0,
        ge=0.0,
        description="模拟账户初始余额",
    )
    closed_history_limit: int = Field(
        default=500,
        ge=1,
        description="内存中保留的已平仓记录数",
    )
    position_sync_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="持仓浮动盈亏写入存储的最小间隔（秒）",
    )

    # ==================== 交易参数默认值 ====================
    max_investment_per_trade: float = Field(default=50.0, gt=0.0)
    min_risk_reward_ratio: float = Field(default=1.5, ge=1.0)
    max_concurrent_positions: int = Field(default=6, ge=1)
    trade_frequency_tier: TradeFrequency = Field(default=TradeFrequency.MODERATE)
    max_daily_loss: float = Field(default=100.0, gt=0.0)
    min_signal_votes: int = Field(default=3, ge=1, le=7)
    min_confidence: float = Field(default=50.0, ge=0.0, le=100.0)
    max_trade_risk_pct: float = Field(default=10.0, gt=0.0, le=100.0)
    max_total_risk_pct: float = Field(default=10.0, gt=0.0, le=100.0)
    scale_investment_by_confidence: bool = Field(default=False)

    # ==================== 日志配置 ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="日志级别",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="日志输出格式",
    )

    # ==================== 数据存储 ====================
    journal_dir: Path = Field(
        default=Path("data/journal"),
        description="交易记录存储目录",
    )

    @field_validator("journal_dir", mode="before")
    @classmethod
    def parse_journal_dir(cls, v: str | Path) -> Path:
        """将字符串转换为 Path 对象。"""
        return Path(v) if isinstance(v, str) else v

    def ensure_directories(self) -> None:
        """确保必要的目录存在。"""
        self.journal_dir.mkdir(parents=True, exist_ok=True)

    def trading_settings(self) -> TradingSettings:
        """由环境配置构造初始交易参数。"""
        return TradingSettings(
            max_investment_per_trade=self.max_investment_per_trade,
            min_risk_reward_ratio=self.min_risk_reward_ratio,
            max_concurrent_positions=self.max_concurrent_positions,
            trade_frequency_tier=self.trade_frequency_tier,
            max_daily_loss=self.max_daily_loss,
            min_signal_votes=self.min_signal_votes,
            min_confidence=self.min_confidence,
            max_trade_risk_pct=self.max_trade_risk_pct,
            max_total_risk_pct=self.max_total_risk_pct,
            scale_investment_by_confidence=self.scale_investment_by_confidence,
        )


# 全局配置实例（延迟初始化）
_settings: Settings | None = None


def get_settings() -> Settings:
    """获取全局配置实例。"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """重新加载配置。"""
    global _settings
    _settings = Settings()
    return _settings
