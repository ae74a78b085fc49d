"""CLI 入口模块 - Pair Trader 命令行接口。"""

import asyncio
import sys
from datetime import datetime

import click

from pair_trader import __version__
from pair_trader.bot import TradingBot
from pair_trader.config import Settings, get_settings
from pair_trader.utils.logging import get_logger, setup_logging


@click.group(invoke_without_command=True)
@click.option("--version", "-v", is_flag=True, help="显示版本号")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """Pair Trader - 加密货币交易对监控与自动交易系统。

    周期性拉取行情、计算技术指标并写入存储，再按 RSI 信号与风控规则开仓。
    """
    if version:
        click.echo(f"pair-trader version {__version__}")
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _prepare(settings: Settings) -> None:
    """确保目录存在并验证配置，缺失时退出。"""
    logger = get_logger("pair_trader.main")
    settings.ensure_directories()

    missing = settings.validate_for_run()
    if missing:
        logger.error(
            "missing_required_config",
            missing_keys=missing,
            hint="请在 .env 文件中配置至少一个启用的交易对",
        )
        sys.exit(1)


@cli.command()
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="试运行模式，不提交订单",
)
def once(dry_run: bool) -> None:
    """执行单次循环。

    每个交易对拉取一次行情 → 计算指标并存储 → 执行一次交易决策
    """
    setup_logging()
    logger = get_logger("pair_trader.main")
    settings = get_settings()
    _prepare(settings)

    logger.info(
        "starting_single_run",
        pairs=[p.name for p in settings.enabled_pairs],
        dry_run=dry_run,
        timestamp=datetime.now().isoformat(),
    )

    try:
        bot = TradingBot(settings, dry_run=dry_run)
        results = asyncio.run(bot.run_once())
        for result in results:
            logger.info(
                "run_completed",
                pair=result.pair,
                status=result.status,
                elapsed_ms=round(result.elapsed_ms, 2),
                orders=len(result.orders),
                warnings=result.warnings,
            )

    except KeyboardInterrupt:
        logger.info("run_interrupted", message="User interrupted")
        sys.exit(0)
    except Exception as e:
        logger.exception("run_failed", error=str(e))
        sys.exit(1)


@cli.command()
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="试运行模式，不提交订单",
)
def loop(dry_run: bool) -> None:
    """持续运行监控与交易决策。

    每个交易对按 monitoring.update_interval_sec 独立刷新行情，
    交易决策按 decision_interval_sec 周期执行。
    使用 Ctrl+C 停止，停止时平掉所有持仓。
    """
    setup_logging()
    logger = get_logger("pair_trader.main")
    settings = get_settings()
    _prepare(settings)

    logger.info(
        "starting_loop",
        pairs=[p.name for p in settings.enabled_pairs],
        update_interval_sec=settings.monitoring.update_interval_sec,
        decision_interval_sec=settings.decision_interval_sec,
        dry_run=dry_run,
    )

    bot = TradingBot(settings, dry_run=dry_run)
    try:
        asyncio.run(bot.run_forever())
    except KeyboardInterrupt:
        # asyncio.run 已取消 run_forever，其 finally 中完成停止与平仓
        logger.info("loop_stopped", message="User stopped loop")
        sys.exit(0)
    except Exception as e:
        logger.exception("loop_failed", error=str(e))
        sys.exit(1)


@cli.command()
def status() -> None:
    """显示系统状态和配置摘要。"""
    setup_logging()
    settings = get_settings()

    click.echo("=" * 50)
    click.echo("Pair Trader - Status")
    click.echo("=" * 50)
    click.echo()

    # 交易对
    click.echo("[Trading Pairs]")
    for pair in settings.pairs:
        marker = "[ON]" if pair.enabled else "[OFF]"
        click.echo(f"   {marker} {pair.name} ({pair.symbol})")
    click.echo()

    # API 配置状态
    click.echo("[API Configuration]")
    binance_status = "[OK] Configured" if settings.binance_api_key else "[--] Not configured (public data only)"
    click.echo(f"   Binance API: {binance_status}")
    click.echo(f"   Binance Testnet: {'Yes' if settings.binance_testnet else 'No'}")
    click.echo()

    # 监控参数
    monitoring = settings.monitoring
    click.echo("[Monitoring]")
    click.echo(f"   Update interval: {monitoring.update_interval_sec}s")
    click.echo(f"   Decision interval: {settings.decision_interval_sec}s")
    click.echo(f"   EMA periods: {', '.join(str(p) for p in monitoring.ema_periods)}")
    click.echo(f"   RSI: period {monitoring.rsi_period}, oversold {monitoring.rsi_oversold}")
    click.echo(f"   History length: {monitoring.max_period}")
    click.echo()

    # 风控参数
    click.echo("[Risk Parameters]")
    click.echo(f"   Max position: {settings.risk.max_position_percentage * 100:.2f}% of capital")
    click.echo(f"   Stop loss: {settings.risk.stop_loss_percentage * 100:.2f}%")
    click.echo(f"   Take profit: {settings.risk.target_daily_return * 100:.2f}%")
    click.echo(f"   Min liquidity: {settings.limits.min_liquidity}")
    click.echo(f"   Max volatility: {settings.limits.max_volatility}")
    click.echo(f"   Permission policy: {settings.permission_policy.value}")
    click.echo()

    # 日志配置
    click.echo("[Logging]")
    click.echo(f"   Log level: {settings.log_level}")
    click.echo(f"   Log format: {settings.log_format.value}")
    click.echo(f"   Journal dir: {settings.journal_dir}")
    click.echo()

    # 验证状态
    missing = settings.validate_for_run()
    if missing:
        click.echo("[ERROR] Configuration incomplete, missing:")
        for key in missing:
            click.echo(f"   - {key}")
    else:
        click.echo("[OK] Configuration complete")

    click.echo()
    click.echo("=" * 50)


@cli.command()
def check() -> None:
    """检查系统依赖和配置。"""
    setup_logging()
    logger = get_logger("pair_trader.main")

    click.echo("Checking system dependencies...")
    click.echo()

    all_ok = True

    # 检查必要的包
    packages = [
        ("pydantic", "Configuration validation"),
        ("pydantic_settings", "Environment settings"),
        ("pandas", "Data processing"),
        ("binance", "Binance market data"),
        ("structlog", "Structured logging"),
        ("click", "CLI framework"),
        ("tenacity", "Retry mechanism"),
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
    from pathlib import Path

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

    logger.info("dependency_check_completed", all_ok=all_ok)


# 支持 python -m pair_trader.main 调用
if __name__ == "__main__":
    cli()
