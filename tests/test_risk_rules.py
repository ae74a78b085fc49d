from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from pair_trader.config import (
    PermissionPolicyName,
    RiskConfig,
    Settings,
    TradingLimits,
)
from pair_trader.journal.store import JournalStore
from pair_trader.market.schemas import BollingerBands, IndicatorBundle, MarketSnapshot
from pair_trader.risk.rules import (
    AlwaysAllowPolicy,
    DailyLimitsPolicy,
    RiskEngine,
    build_permission_policy,
    unrealized_pnl,
)


class _FakeBalance:
    def __init__(self, capital: float) -> None:
        self.capital = capital

    def available_capital(self) -> float:
        return self.capital


class _FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


def _snapshot(liquidity: float, volatility: float) -> MarketSnapshot:
    return MarketSnapshot(
        pair="SOL/USDC",
        price=100.0,
        timestamp=0,
        volume_24h=1_000.0,
        liquidity=liquidity,
        price_change_24h=0.0,
        volatility=volatility,
        indicators=IndicatorBundle(
            bollinger=BollingerBands(upper=100.0, middle=100.0, lower=100.0),
        ),
    )


def test_position_size_scales_with_confidence() -> None:
    engine = RiskEngine(RiskConfig(), TradingLimits())
    half = engine.compute_position_size(1_000.0, 0.4)
    full = engine.compute_position_size(1_000.0, 0.8)

    assert full == pytest.approx(8.0)
    assert full == pytest.approx(half * 2)
    assert engine.compute_position_size(1_000.0, 5.0) <= 1_000.0 * 0.01


def test_position_size_edge_cases() -> None:
    engine = RiskEngine(RiskConfig(), TradingLimits(max_position_size=3.0))
    assert engine.compute_position_size(0.0, 0.8) == 0.0
    assert engine.compute_position_size(1_000.0, 0.0) == 0.0
    assert engine.compute_position_size(1_000.0, 0.8) == 3.0


def test_stops_bracket_entry() -> None:
    engine = RiskEngine(RiskConfig(), TradingLimits())
    price = 150.0

    assert engine.build_stop_loss(price, "buy") < price < engine.build_take_profit(price, "buy")
    assert engine.build_take_profit(price, "sell") < price < engine.build_stop_loss(price, "sell")
    assert engine.build_stop_loss(price, "buy") == pytest.approx(149.25)
    assert engine.build_take_profit(price, "buy") == pytest.approx(151.5)


def test_market_suitability() -> None:
    engine = RiskEngine(RiskConfig(), TradingLimits(min_liquidity=1_000.0, max_volatility=5.0))
    assert engine.is_market_suitable(_snapshot(liquidity=1_000.0, volatility=5.0))
    assert not engine.is_market_suitable(_snapshot(liquidity=999.0, volatility=1.0))
    assert not engine.is_market_suitable(_snapshot(liquidity=5_000.0, volatility=5.1))


def test_always_allow_policy() -> None:
    policy = AlwaysAllowPolicy()
    policy.record_trade()
    assert policy.check().allowed


def test_daily_trade_count_resets_next_day() -> None:
    clock = _FakeClock()
    policy = DailyLimitsPolicy(
        max_daily_trades=2,
        max_drawdown=0.1,
        daily_loss_limit=0.02,
        balance=_FakeBalance(1_000.0),
        clock=clock,
    )
    assert policy.check().allowed
    policy.record_trade()
    policy.record_trade()

    decision = policy.check()
    assert not decision.allowed
    assert decision.reasons == ["max_daily_trades_reached"]

    clock.now += timedelta(days=1)
    assert policy.check().allowed
    assert policy.trades_today == 0


def test_drawdown_and_daily_loss_block() -> None:
    balance = _FakeBalance(1_000.0)
    policy = DailyLimitsPolicy(
        max_daily_trades=10,
        max_drawdown=0.5,
        daily_loss_limit=0.02,
        balance=balance,
        clock=_FakeClock(),
    )
    assert policy.check().allowed

    balance.capital = 970.0
    assert policy.check().reasons == ["daily_loss_limit_reached"]

    balance.capital = 400.0
    assert policy.check().reasons == ["max_drawdown_reached", "daily_loss_limit_reached"]


def test_no_capital_blocks() -> None:
    policy = DailyLimitsPolicy(
        max_daily_trades=10,
        max_drawdown=0.1,
        daily_loss_limit=0.02,
        balance=_FakeBalance(0.0),
        clock=_FakeClock(),
    )
    assert "no_available_capital" in policy.check().reasons


def test_build_permission_policy(tmp_path: object) -> None:
    balance = _FakeBalance(1_000.0)
    default = Settings(_env_file=None, journal_dir=tmp_path)
    permissive = Settings(
        _env_file=None,
        journal_dir=tmp_path,
        permission_policy=PermissionPolicyName.ALWAYS_ALLOW,
    )
    assert isinstance(build_permission_policy(default, balance), DailyLimitsPolicy)
    assert isinstance(build_permission_policy(permissive, balance), AlwaysAllowPolicy)


def _policy(
    balance: _FakeBalance,
    store: JournalStore,
    tmp_path: Path,
    clock: _FakeClock,
    **limits: float,
) -> DailyLimitsPolicy:
    return DailyLimitsPolicy(
        max_daily_trades=int(limits.get("max_daily_trades", 10)),
        max_drawdown=limits.get("max_drawdown", 0.1),
        daily_loss_limit=limits.get("daily_loss_limit", 0.5),
        balance=balance,
        store=store,
        state_file=tmp_path / "risk_state.json",
        clock=clock,
    )


def _open_order(store: JournalStore, order_id: str, clock: _FakeClock, **fields: object) -> None:
    record = {
        "id": order_id,
        "pair": "SOL/USDC",
        "side": "buy",
        "size": 500.0,
        "entry_price": 100.0,
        "timestamp": int(clock.now.timestamp() * 1000),
        "status": "open",
        **fields,
    }
    store.set(f"orders:{order_id}", record)


def test_trade_count_survives_restart(tmp_path: Path) -> None:
    clock = _FakeClock()
    balance = _FakeBalance(1_000.0)
    store = JournalStore(tmp_path)

    first = _policy(balance, store, tmp_path, clock, max_daily_trades=2)
    assert first.check().allowed
    _open_order(store, "a", clock)
    first.record_trade()

    yesterday = _FakeClock()
    yesterday.now = clock.now - timedelta(days=1)
    _open_order(store, "old", yesterday, status="closed")

    second = _policy(balance, JournalStore(tmp_path), tmp_path, clock, max_daily_trades=2)
    assert second.check().allowed
    assert second.trades_today == 1
    _open_order(store, "b", clock)
    second.record_trade()

    third = _policy(balance, JournalStore(tmp_path), tmp_path, clock, max_daily_trades=2)
    assert third.check().reasons == ["max_daily_trades_reached"]


def test_peak_and_day_start_equity_survive_restart(tmp_path: Path) -> None:
    clock = _FakeClock()
    balance = _FakeBalance(1_000.0)
    store = JournalStore(tmp_path)
    assert _policy(balance, store, tmp_path, clock, daily_loss_limit=0.05).check().allowed

    balance.capital = 880.0
    restarted = _policy(balance, store, tmp_path, clock, daily_loss_limit=0.05)
    assert restarted.check().reasons == ["max_drawdown_reached", "daily_loss_limit_reached"]


def test_open_positions_are_marked_to_market(tmp_path: Path) -> None:
    clock = _FakeClock()
    store = JournalStore(tmp_path)
    policy = _policy(_FakeBalance(1_000.0), store, tmp_path, clock)
    _open_order(store, "a", clock)
    store.set("market:SOL/USDC:current", {"price": 100.0})
    assert policy.check().allowed

    # 500 notional long from 100 marked at 70: equity 1000 - 150 = 850.
    store.set("market:SOL/USDC:current", {"price": 70.0})
    assert policy.check().reasons == ["max_drawdown_reached"]


def test_unrealized_pnl_by_side() -> None:
    long = {"side": "buy", "size": 100.0, "entry_price": 50.0}
    short = {"side": "sell", "size": 100.0, "entry_price": 50.0}
    assert unrealized_pnl(long, 55.0) == pytest.approx(10.0)
    assert unrealized_pnl(short, 55.0) == pytest.approx(-10.0)
