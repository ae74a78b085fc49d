"""Hard risk control rules: suitability, sizing, stops and trading permission."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from pair_trader.config import PermissionPolicyName, RiskConfig, Settings, TradingLimits
from pair_trader.exec.venue import BalanceSource
from pair_trader.journal.store import PersistentStore
from pair_trader.market.monitor import current_key
from pair_trader.market.schemas import MarketSnapshot
from pair_trader.types import PermissionDecision, Side


class RiskEngine:
    """Rule-based risk controls over a fixed risk configuration."""

    def __init__(self, risk: RiskConfig, limits: TradingLimits) -> None:
        self._risk = risk
        self._limits = limits

    @property
    def risk(self) -> RiskConfig:
        return self._risk

    def is_market_suitable(self, snapshot: MarketSnapshot) -> bool:
        """Liquidity floor and volatility ceiling must both hold."""
        return (
            snapshot.liquidity >= self._limits.min_liquidity
            and snapshot.volatility <= self._limits.max_volatility
        )

    def compute_position_size(self, available_capital: float, confidence: float) -> float:
        """Conservative size: capital * max position percentage, scaled by confidence.

        The result is additionally capped by the absolute ``max_position_size`` limit.
        """
        if available_capital <= 0 or confidence <= 0:
            return 0.0
        max_position = available_capital * self._risk.max_position_percentage
        size = max_position * min(confidence, 1.0)
        return max(0.0, float(min(size, self._limits.max_position_size)))

    def build_stop_loss(self, price: float, direction: Side) -> float:
        pct = self._risk.stop_loss_percentage
        if direction == "buy":
            return price * (1 - pct)
        return price * (1 + pct)

    def build_take_profit(self, price: float, direction: Side) -> float:
        pct = self._risk.target_daily_return
        if direction == "buy":
            return price * (1 + pct)
        return price * (1 - pct)


class TradingPermissionPolicy(Protocol):
    """Gate deciding whether any new trade may be opened right now."""

    def check(self) -> PermissionDecision:
        """Return whether trading is currently allowed."""

    def record_trade(self) -> None:
        """Account for one submitted trade."""


class AlwaysAllowPolicy:
    """Pass-through gate. Provides no daily-count or drawdown protection."""

    def check(self) -> PermissionDecision:
        return PermissionDecision(allowed=True)

    def record_trade(self) -> None:
        return None


class DailyLimitsPolicy:
    """Stateful gate over daily trade count, peak drawdown and daily loss.

    Equity is realized capital from the balance source plus the unrealized
    PnL of open ``orders:*`` records marked at each pair's last stored
    price. The day boundary is UTC. Day-start and peak equity survive
    restarts through ``state_file``; the day's trade count is recounted from
    the store the first time each day is seen.
    """

    def __init__(
        self,
        *,
        max_daily_trades: int,
        max_drawdown: float,
        daily_loss_limit: float,
        balance: BalanceSource,
        store: PersistentStore | None = None,
        state_file: Path | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._max_daily_trades = max_daily_trades
        self._max_drawdown = max_drawdown
        self._daily_loss_limit = daily_loss_limit
        self._balance = balance
        self._store = store
        self._state_file = state_file
        self._clock = clock

        self._day: date | None = None
        self._trades_today: int | None = None
        self._day_start_equity: float | None = None
        self._peak_equity: float | None = None
        self._load_state()

    @property
    def trades_today(self) -> int:
        return self._trades_today or 0

    def check(self) -> PermissionDecision:
        equity = self._equity()
        self._roll_day_if_needed(equity)
        if self._peak_equity is None or equity > self._peak_equity:
            self._peak_equity = equity
        self._persist()

        reasons: list[str] = []
        if equity <= 0:
            reasons.append("no_available_capital")
        if self.trades_today >= self._max_daily_trades:
            reasons.append("max_daily_trades_reached")

        if self._peak_equity > 0:
            drawdown = (self._peak_equity - equity) / self._peak_equity
            if drawdown >= self._max_drawdown:
                reasons.append("max_drawdown_reached")

        start = self._day_start_equity or 0.0
        if start > 0:
            daily_loss = (start - equity) / start
            if daily_loss >= self._daily_loss_limit:
                reasons.append("daily_loss_limit_reached")

        return PermissionDecision(allowed=not reasons, reasons=reasons)

    def record_trade(self) -> None:
        self._roll_day_if_needed(self._equity())
        self._trades_today = self.trades_today + 1

    def _equity(self) -> float:
        equity = float(self._balance.available_capital())
        if self._store is None:
            return equity
        open_orders = self._store.query_by_prefix(
            "orders:", lambda _key, value: value.get("status") == "open"
        )
        for record in open_orders.values():
            snapshot = self._store.get(current_key(str(record.get("pair"))))
            if not snapshot:
                continue
            equity += unrealized_pnl(record, float(snapshot["price"]))
        return equity

    def _roll_day_if_needed(self, equity: float) -> None:
        today = self._clock().date()
        if self._day != today:
            self._day = today
            self._trades_today = None
            self._day_start_equity = equity
        if self._trades_today is None:
            self._trades_today = self._count_trades(today)

    def _count_trades(self, day: date) -> int:
        if self._store is None:
            return 0

        def opened_on_day(_key: str, value: Any) -> bool:
            timestamp = value.get("timestamp")
            if not isinstance(timestamp, (int, float)):
                return False
            return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).date() == day

        return len(self._store.query_by_prefix("orders:", opened_on_day))

    def _load_state(self) -> None:
        if self._state_file is None or not self._state_file.exists():
            return
        raw = json.loads(self._state_file.read_text(encoding="utf-8"))
        if raw.get("day"):
            self._day = date.fromisoformat(raw["day"])
        if raw.get("day_start_equity") is not None:
            self._day_start_equity = float(raw["day_start_equity"])
        if raw.get("peak_equity") is not None:
            self._peak_equity = float(raw["peak_equity"])

    def _persist(self) -> None:
        if self._state_file is None:
            return
        payload = {
            "day": self._day.isoformat() if self._day else None,
            "day_start_equity": self._day_start_equity,
            "peak_equity": self._peak_equity,
        }
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        self._state_file.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")


def unrealized_pnl(record: dict[str, Any], price: float) -> float:
    """PnL of an open order record marked at ``price``; size is a quote notional."""
    entry = float(record["entry_price"])
    size = float(record["size"])
    if entry <= 0:
        return 0.0
    if record.get("side") == "sell":
        return size * (1.0 - price / entry)
    return size * (price / entry - 1.0)


def build_permission_policy(
    settings: Settings,
    balance: BalanceSource,
    store: PersistentStore | None = None,
) -> TradingPermissionPolicy:
    """Construct the configured permission policy."""
    if settings.permission_policy == PermissionPolicyName.ALWAYS_ALLOW:
        return AlwaysAllowPolicy()
    return DailyLimitsPolicy(
        max_daily_trades=settings.limits.max_daily_trades,
        max_drawdown=settings.limits.max_drawdown,
        daily_loss_limit=settings.risk.daily_loss_limit,
        balance=balance,
        store=store,
        state_file=settings.journal_dir / "risk_state.json",
    )
