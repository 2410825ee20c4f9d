"""CLI 入口模块 - Swing Trader 命令行接口。"""

import json
import sys
from pathlib import Path

import click

from swing_trader import __version__
from swing_trader.config import get_settings
from swing_trader.data.history import frame_to_candles, load_ohlcv_csv, load_ticks_csv
from swing_trader.engine import TradingEngine
from swing_trader.journal.store import JsonlTradeStore
from swing_trader.utils.logging import get_logger, setup_logging


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="显示版本号")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Swing Trader - 规则驱动的信号与风控引擎。

    将价格 tick 聚合为 K 线，计算技术指标，多因子打分，并管理持仓生命周期。
    """
    if version:
        click.echo(f"swing-trader version {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("ticks_csv", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--history",
    "history_csv",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="用于预热的历史 OHLCV 文件",
)
@click.option(
    "--instrument",
    "-s",
    default=None,
    help="历史文件对应的品种（与 --history 一起使用）",
)
@click.option(
    "--journal/--no-journal",
    default=False,
    help="是否将持仓与统计写入 journal 目录",
)
@click.option(
    "--export",
    "export_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="结束后导出完整状态到 JSON 文件",
)
def replay(
    ticks_csv: Path,
    history_csv: Path | None,
    instrument: str | None,
    journal: bool,
    export_path: Path | None,
) -> None:
    """回放 tick 文件驱动引擎。

    每个 tick：更新 K 线 → 检查止盈止损 → 决策 → 风控 → 开仓
    结束时平掉全部持仓并打印统计。
    """
    settings = get_settings()
    setup_logging(settings)
    logger = get_logger("swing_trader.main", command="replay")

    if history_csv is not None and not instrument:
        raise click.UsageError("--instrument is required with --history")

    store = None
    if journal:
        # 确保目录存在
        settings.ensure_directories()
        store = JsonlTradeStore(settings.journal_dir)

    ticks = load_ticks_csv(ticks_csv)
    clock_state = {"now": ticks[0].timestamp if ticks else None}
    engine = TradingEngine.from_settings(
        settings,
        store=store,
        clock=(lambda: clock_state["now"]) if ticks else None,
    )
    engine.restore()

    if history_csv is not None and instrument:
        candles = frame_to_candles(load_ohlcv_csv(history_csv))
        engine.seed_history(instrument, candles)

    logger.info("starting_replay", ticks=len(ticks), source=str(ticks_csv), journal=journal)
    engine.start_trading()

    opened = 0
    try:
        for tick in ticks:
            clock_state["now"] = tick.timestamp
            if not engine.update_tick(tick.instrument, tick.price, tick.timestamp, tick.volume):
                continue
            result = engine.evaluate_and_trade(tick.instrument)
            if result.status == "opened":
                opened += 1
    except KeyboardInterrupt:
        logger.info("replay_interrupted", message="User interrupted")
    finally:
        closed = engine.stop_trading()

    stats = engine.get_statistics()
    logger.info(
        "replay_completed",
        opened=opened,
        closed_at_stop=len(closed),
        total_pnl=round(stats.total_pnl, 6),
    )

    click.echo("=" * 50)
    click.echo("Swing Trader - Replay Summary")
    click.echo("=" * 50)
    click.echo(f"   Ticks: {len(ticks)}")
    click.echo(f"   Trades: {stats.total_trades}")
    click.echo(f"   Wins / Losses: {stats.winning_trades} / {stats.losing_trades}")
    click.echo(f"   Win rate: {stats.win_rate:.1f}%")
    click.echo(f"   Total PnL: {stats.total_pnl:.4f}")
    click.echo(f"   Balance: {stats.account_balance:.4f}")
    click.echo("=" * 50)

    if export_path is not None:
        payload = json.dumps(engine.export_state(), ensure_ascii=True, indent=2, default=str)
        export_path.write_text(payload, encoding="utf-8")
        click.echo(f"State exported to {export_path}")


@cli.command()
def status() -> None:
    """显示系统配置摘要。"""
    settings = get_settings()
    setup_logging(settings)
    trading = settings.trading_settings()

    click.echo("=" * 50)
    click.echo("Swing Trader - Status")
    click.echo("=" * 50)
    click.echo()

    # K 线聚合
    click.echo("[Candles]")
    click.echo(f"   Interval: {settings.candle_interval_seconds}s")
    click.echo(f"   Max candles: {settings.max_candles}")
    click.echo(f"   New candle move: {settings.new_candle_move_pct}%")
    click.echo()

    # 风控参数
    click.echo("[Risk Parameters]")
    click.echo(f"   Investment per trade: {trading.max_investment_per_trade}")
    click.echo(f"   Min risk-reward: {trading.min_risk_reward_ratio}")
    click.echo(f"   Max concurrent positions: {trading.max_concurrent_positions}")
    click.echo(
        f"   Frequency: {trading.trade_frequency_tier.value} "
        f"(cooldown {trading.cooldown_seconds}s)"
    )
    click.echo(f"   Max daily loss: {trading.max_daily_loss}")
    click.echo(f"   Max trade risk: {trading.max_trade_risk_pct}%")
    click.echo(f"   Max total risk: {trading.max_total_risk_pct}%")
    click.echo()

    # 信号阈值
    click.echo("[Signal Thresholds]")
    click.echo(f"   Min votes: {trading.min_signal_votes}")
    click.echo(f"   Min confidence: {trading.min_confidence}")
    click.echo()

    # 日志配置
    click.echo("[Logging]")
    click.echo(f"   Log level: {settings.log_level}")
    click.echo(f"   Log format: {settings.log_format.value}")
    click.echo(f"   Journal dir: {settings.journal_dir}")
    click.echo()
    click.echo("=" * 50)


@cli.command()
def check() -> None:
    """检查系统依赖和配置。"""
    setup_logging(get_settings())
    logger = get_logger("swing_trader.main", command="check")

    click.echo("Checking system dependencies...")
    click.echo()

    all_ok = True

    # 检查必要的包
    packages = [
        ("pydantic", "Configuration validation"),
        ("pydantic_settings", "Environment settings"),
        ("pandas", "Data processing"),
        ("numpy", "Numerical computing"),
        ("structlog", "Structured logging"),
        ("click", "CLI framework"),
    ]

    for pkg_name, desc in packages:
        try:
            __import__(pkg_name)
            click.echo(f"  [OK] {pkg_name} - {desc}")
        except ImportError:
            click.echo(f"  [MISSING] {pkg_name} - {desc}")
            all_ok = False

    click.echo()

    # 检查配置文件
    env_file = Path(".env")
    if env_file.exists():
        click.echo("  [OK] .env configuration file exists")
    else:
        click.echo("  [WARN] .env file not found (using defaults)")

    click.echo()

    if all_ok:
        click.echo("[OK] All dependency checks passed")
    else:
        click.echo("[ERROR] Some dependencies missing. Run: pip install -e .")
        sys.exit(1)

    logger.info("dependency_check_completed", all_ok=all_ok)


# 支持 python -m swing_trader.main 调用
if __name__ == "__main__":
    cli()
