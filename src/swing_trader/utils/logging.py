"""structlog 日志初始化与交易事件辅助函数。"""

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import Processor

from swing_trader.config import LogFormat, Settings, get_settings


def setup_logging(settings: Settings | None = None, *, stream: TextIO | None = None) -> None:
    """按 ``log_level`` / ``log_format`` 初始化日志；重复调用会覆盖上一次配置。"""
    settings = settings or get_settings()
    target = stream or sys.stdout
    logging.basicConfig(
        format="%(message)s",
        stream=target,
        level=getattr(logging, settings.log_level),
        force=True,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if settings.log_format == LogFormat.JSON:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=target.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """按组件名获取日志记录器，可附带固定上下文（如 ``instrument``）。"""
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger


def log_trade_signal(
    logger: structlog.stdlib.BoundLogger,
    *,
    instrument: str,
    side: str,
    confidence: float,
    **kwargs: Any,
) -> None:
    """记录交易信号。"""
    logger.info(
        "trade_signal",
        instrument=instrument,
        side=side,
        confidence=round(confidence, 2),
        **kwargs,
    )


def log_order_execution(
    logger: structlog.stdlib.BoundLogger,
    *,
    instrument: str,
    side: str,
    quantity: float,
    price: float | None = None,
    position_id: str | None = None,
    status: str = "opened",
    **kwargs: Any,
) -> None:
    """记录开仓/平仓。"""
    logger.info(
        "order_execution",
        instrument=instrument,
        side=side,
        quantity=quantity,
        price=price,
        position_id=position_id,
        status=status,
        **kwargs,
    )


def log_risk_event(
    logger: structlog.stdlib.BoundLogger,
    *,
    event_type: str,
    action: str,
    **kwargs: Any,
) -> None:
    """记录风控事件。"""
    logger.warning(
        "risk_event",
        event_type=event_type,
        action=action,
        **kwargs,
    )
