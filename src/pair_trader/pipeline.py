"""Decision engine: gates, signal, sizing, stops and order submission."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import asdict
from time import perf_counter

from pair_trader.exec.venue import BalanceSource, ExecutionVenue
from pair_trader.journal.store import PersistentStore
from pair_trader.market.monitor import now_ms
from pair_trader.market.schemas import Alert, MarketSnapshot
from pair_trader.risk.rules import RiskEngine, TradingPermissionPolicy
from pair_trader.strategy.signals import SignalStrategy
from pair_trader.types import CycleResult, HistorySnapshot, OrderParams, PositionRecord
from pair_trader.utils.logging import (
    get_logger,
    log_order_execution,
    log_risk_event,
    log_trade_signal,
)


def order_key(order_id: str) -> str:
    return f"orders:{order_id}"


class DecisionEngine:
    """Per-pair evaluation with terminal outcomes only.

    Nothing is carried between cycles except the permission policy's own
    counters and the persisted order records. A submission failure is
    re-raised to the caller and leaves no order record behind.
    """

    def __init__(
        self,
        *,
        risk_engine: RiskEngine,
        strategy: SignalStrategy,
        permission: TradingPermissionPolicy,
        venue: ExecutionVenue,
        balance: BalanceSource,
        store: PersistentStore,
        dry_run: bool = False,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._risk_engine = risk_engine
        self._strategy = strategy
        self._permission = permission
        self._venue = venue
        self._balance = balance
        self._store = store
        self._dry_run = dry_run
        self._clock = clock
        self._logger = get_logger("pair_trader.pipeline")

    def evaluate(
        self,
        pair: str,
        snapshot: MarketSnapshot,
        alerts: Sequence[Alert],
        history: HistorySnapshot,
    ) -> CycleResult:
        """Run one decision cycle for ``pair``."""
        started = perf_counter()
        result = CycleResult(pair=pair, status="unknown")

        if not self._risk_engine.is_market_suitable(snapshot):
            self._logger.info(
                "market_unsuitable",
                pair=pair,
                liquidity=snapshot.liquidity,
                volatility=snapshot.volatility,
            )
            return _finish(result, started, status="unsuitable")

        permission = self._permission.check()
        if not permission.allowed:
            log_risk_event(
                self._logger,
                event_type="permission_denied",
                action="skip_pair",
                pair=pair,
                reasons=permission.reasons,
            )
            result.warnings.extend(permission.reasons)
            return _finish(result, started, status="permission_denied")

        signal = self._strategy.evaluate(snapshot, history)
        result.signal = asdict(signal)
        if not signal.should_trade:
            return _finish(result, started, status="no_signal")

        log_trade_signal(
            self._logger,
            pair=pair,
            direction=signal.direction,
            confidence=signal.confidence,
            rsi=snapshot.indicators.rsi,
            active_alerts=len(alerts),
        )

        size = self._risk_engine.compute_position_size(
            self._balance.available_capital(), signal.confidence
        )
        if size <= 0:
            result.warnings.append("size_zero_after_risk_controls")
            return _finish(result, started, status="size_zero")

        price = snapshot.price
        order = OrderParams(
            pair=pair,
            side=signal.direction,
            size=size,
            price=price,
            stop_loss=self._risk_engine.build_stop_loss(price, signal.direction),
            take_profit=self._risk_engine.build_take_profit(price, signal.direction),
        )

        if self._dry_run:
            result.orders.append({**asdict(order), "status": "dry_run"})
            log_order_execution(
                self._logger,
                pair=pair,
                side=order.side,
                size=order.size,
                price=order.price,
                status="dry_run",
            )
            return _finish(result, started, status="opened_dry_run")

        try:
            order_id = self._venue.submit_order(order)
        except Exception as exc:
            self._logger.error("order_submission_failed", pair=pair, error=str(exc))
            raise

        record = PositionRecord(
            id=order_id,
            pair=pair,
            side=order.side,
            size=order.size,
            entry_price=order.price,
            stop_loss=order.stop_loss,
            take_profit=order.take_profit,
            timestamp=self._clock(),
            status="open",
        )
        self._store.set(order_key(order_id), asdict(record))
        self._permission.record_trade()
        log_order_execution(
            self._logger,
            pair=pair,
            side=order.side,
            size=order.size,
            price=order.price,
            order_id=order_id,
            status="open",
            stop_loss=order.stop_loss,
            take_profit=order.take_profit,
        )
        result.orders.append(asdict(record))
        return _finish(result, started, status="opened")


def _finish(result: CycleResult, started: float, *, status: str) -> CycleResult:
    result.status = status
    result.elapsed_ms = (perf_counter() - started) * 1000
    return result
