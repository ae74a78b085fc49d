"""配置加载模块 - 从环境变量和 .env 文件加载配置。

嵌套字段使用双下划线分隔，例如 ``RISK__STOP_LOSS_PERCENTAGE=0.005``；
列表字段（如 ``PAIRS``、``MONITORING__EMA_PERIODS``）使用 JSON 字符串。
"""

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogFormat(str, Enum):
    """日志格式枚举。"""

    JSON = "json"
    CONSOLE = "console"


class PermissionPolicyName(str, Enum):
    """交易许可策略枚举。"""

    DAILY_LIMITS = "daily_limits"  # 日内交易次数 + 回撤限制
    ALWAYS_ALLOW = "always_allow"  # 无限制（仅用于测试/研究）


class TradingPair(BaseModel):
    """交易对配置，加载后不可变。"""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="交易对名称，例如 SOL/USDC")
    base: str = Field(description="基础资产，例如 SOL")
    quote: str = Field(description="计价资产，例如 USDC")
    enabled: bool = Field(default=True, description="是否启用监控")

    @property
    def symbol(self) -> str:
        """交易所交易代码。"""
        return f"{self.base}{self.quote}".upper()


class TradingLimits(BaseModel):
    """交易限制。"""

    model_config = ConfigDict(frozen=True)

    max_position_size: float = Field(default=1_000.0, gt=0, description="单笔最大仓位（计价资产）")
    max_daily_trades: int = Field(default=10, ge=1, description="每日最大交易次数")
    max_drawdown: float = Field(default=0.1, gt=0, le=1.0, description="最大回撤（比例）")
    stop_loss: float = Field(default=0.005, gt=0, le=1.0, description="止损比例")
    take_profit: float = Field(default=0.01, gt=0, le=1.0, description="止盈比例")
    min_liquidity: float = Field(default=100_000.0, ge=0, description="最小流动性")
    max_volatility: float = Field(default=5.0, ge=0, description="最大波动率（价格标准差）")
    max_spread: float = Field(default=1.0, ge=0, description="最大买卖价差（百分比）")


class RiskConfig(BaseModel):
    """风控参数，注入一次后不可修改。"""

    model_config = ConfigDict(frozen=True)

    max_position_percentage: float = Field(
        default=0.01,
        gt=0,
        le=1.0,
        description="单笔最大仓位（可用资金比例）",
    )
    max_leverage: float = Field(default=3.3, ge=1.0, description="最大杠杆（仓位计算暂未使用）")
    target_daily_return: float = Field(default=0.01, gt=0, description="止盈比例")
    stop_loss_percentage: float = Field(default=0.005, gt=0, lt=1.0, description="止损比例")
    daily_loss_limit: float = Field(default=0.02, gt=0, le=1.0, description="日内最大亏损比例")


class AlertThresholds(BaseModel):
    """告警阈值。"""

    model_config = ConfigDict(frozen=True)

    price_change: float = Field(default=5.0, ge=0, description="24h 价格变动告警阈值（百分比）")
    volume_spike: float = Field(default=200.0, ge=0, description="成交量放大倍数")
    low_liquidity: float = Field(default=500.0, ge=0, description="低流动性告警阈值")


class MonitoringConfig(BaseModel):
    """行情监控与指标参数。"""

    model_config = ConfigDict(frozen=True)

    update_interval_sec: float = Field(default=10.0, gt=0, description="单个交易对拉取间隔（秒）")
    ema_periods: tuple[int, ...] = Field(default=(9, 21), min_length=1, description="EMA 周期列表")
    rsi_period: int = Field(default=14, ge=2, description="RSI 周期")
    rsi_overbought: float = Field(default=70.0, ge=0, le=100, description="RSI 超买阈值")
    rsi_oversold: float = Field(default=30.0, ge=0, le=100, description="RSI 超卖阈值")
    bb_period: int = Field(default=20, ge=2, description="布林带周期")
    bb_std_dev: float = Field(default=2.0, gt=0, description="布林带标准差倍数")
    atr_period: int = Field(default=14, ge=2, description="ATR 周期")
    liquidity_threshold: float = Field(default=1_000.0, ge=0, description="流动性参考阈值")
    volume_threshold: float = Field(default=10_000.0, ge=0, description="成交量基准")
    alert_thresholds: AlertThresholds = Field(default_factory=AlertThresholds)
    alert_window_hours: float = Field(default=24.0, gt=0, description="活跃告警回看窗口（小时）")
    debug: bool = Field(default=False, description="输出调试日志")

    @field_validator("ema_periods")
    @classmethod
    def check_ema_periods(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        """EMA 周期必须为正。"""
        if any(p < 1 for p in v):
            raise ValueError("ema_periods_must_be_positive")
        return v

    @property
    def max_period(self) -> int:
        """滚动历史的最大长度。"""
        return max(*self.ema_periods, self.bb_period * 2)


def _default_pairs() -> list[TradingPair]:
    return [TradingPair(name="SOL/USDC", base="SOL", quote="USDC", enabled=True)]


class Settings(BaseSettings):
    """系统配置设置。

    从环境变量和 .env 文件加载配置，构造后不可修改。
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ==================== Binance API ====================
    binance_api_key: str = Field(default="", description="Binance API Key")
    binance_api_secret: str = Field(default="", description="Binance API Secret")
    binance_testnet: bool = Field(default=True, description="是否使用 Binance 测试网")
    order_book_depth: int = Field(default=20, ge=5, le=1000, description="流动性计算深度")

    # ==================== 交易对 ====================
    pairs: list[TradingPair] = Field(default_factory=_default_pairs, description="交易对列表")

    # ==================== 交易与风控 ====================
    limits: TradingLimits = Field(default_factory=TradingLimits)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    permission_policy: PermissionPolicyName = Field(
        default=PermissionPolicyName.DAILY_LIMITS,
        description="交易许可策略",
    )

    # ==================== 行情监控 ====================
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    # ==================== 运行参数 ====================
    decision_interval_sec: float = Field(default=60.0, gt=0, description="交易决策循环间隔（秒）")
    shutdown_grace_sec: float = Field(default=5.0, ge=0, description="停止时等待进行中任务的时间")
    initial_equity: float = Field(default=1_000.0, gt=0, description="纸交易初始资金")
    slippage_bps: float = Field(default=2.0, ge=0, description="纸交易滑点（基点）")

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
        description="行情/告警/订单存储目录",
    )

    @field_validator("journal_dir", mode="before")
    @classmethod
    def parse_journal_dir(cls, v: str | Path) -> Path:
        """将字符串转换为 Path 对象。"""
        return Path(v) if isinstance(v, str) else v

    @model_validator(mode="after")
    def check_unique_pairs(self) -> "Settings":
        """交易对名称必须唯一。"""
        names = [p.name for p in self.pairs]
        if len(names) != len(set(names)):
            raise ValueError("duplicate_trading_pair_names")
        return self

    def ensure_directories(self) -> None:
        """确保必要的目录存在。"""
        self.journal_dir.mkdir(parents=True, exist_ok=True)

    @property
    def enabled_pairs(self) -> list[TradingPair]:
        """启用的交易对。"""
        return [p for p in self.pairs if p.enabled]

    def validate_for_run(self) -> list[str]:
        """验证运行所需配置，返回缺失项列表。

        行情接口为公开接口，API Key 可为空。
        """
        missing = []
        if not self.enabled_pairs:
            missing.append("PAIRS")
        return missing


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
