"""Trading bot lifecycle: monitor startup, decision loop, shutdown."""

from __future__ import annotations

import asyncio
from typing import Any

from pair_trader.config import Settings
from pair_trader.data.binance import BinanceMarketData
from pair_trader.data.provider import MarketDataProvider
from pair_trader.exec.paper import PaperVenue
from pair_trader.exec.venue import BalanceSource, ExecutionVenue, PositionNotFoundError
from pair_trader.journal.store import JournalStore, PersistentStore
from pair_trader.market.monitor import MarketMonitor, now_ms
from pair_trader.pipeline import DecisionEngine, order_key
from pair_trader.risk.rules import RiskEngine, TradingPermissionPolicy, build_permission_policy
from pair_trader.strategy.signals import RsiOversoldStrategy, SignalStrategy
from pair_trader.types import CycleResult
from pair_trader.utils.logging import get_logger, log_order_execution

_SHUTDOWN_REASON = "bot_shutdown"
_VENUE_UNKNOWN_REASON = "venue_unknown"


class TradingBot:
    """Wires the monitor and decision engine and owns their lifecycle."""

    def __init__(
        self,
        settings: Settings,
        *,
        provider: MarketDataProvider | None = None,
        store: PersistentStore | None = None,
        venue: ExecutionVenue | None = None,
        balance: BalanceSource | None = None,
        strategy: SignalStrategy | None = None,
        permission: TradingPermissionPolicy | None = None,
        dry_run: bool = False,
    ) -> None:
        self._settings = settings
        self._logger = get_logger("pair_trader.bot")
        self._store = store or JournalStore(settings.journal_dir)

        if venue is None:
            venue = PaperVenue(
                settings.journal_dir,
                slippage_bps=settings.slippage_bps,
                initial_equity=settings.initial_equity,
            )
        # A venue without a separate balance source must report its own capital.
        self._venue = venue
        self._balance: BalanceSource = balance or venue  # type: ignore[assignment]

        self._provider = provider or BinanceMarketData(settings)
        self._monitor = MarketMonitor(settings, self._provider, self._store)
        self._engine = DecisionEngine(
            risk_engine=RiskEngine(settings.risk, settings.limits),
            strategy=strategy or RsiOversoldStrategy(oversold=settings.monitoring.rsi_oversold),
            permission=permission
            or build_permission_policy(settings, self._balance, self._store),
            venue=self._venue,
            balance=self._balance,
            store=self._store,
            dry_run=dry_run,
        )

        self._stop_event = asyncio.Event()
        self._decision_task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def monitor(self) -> MarketMonitor:
        return self._monitor

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start monitoring then the decision loop; failures leave nothing running."""
        self._logger.info(
            "bot_starting",
            pairs=[p.name for p in self._settings.enabled_pairs],
            permission_policy=self._settings.permission_policy.value,
        )
        self._stop_event = asyncio.Event()
        try:
            await self._monitor.start(self._settings.enabled_pairs)
            self._decision_task = asyncio.create_task(
                self._decision_loop(), name="decision-loop"
            )
        except Exception as exc:
            self._logger.error("bot_start_failed", error=str(exc))
            await self._monitor.stop(grace_sec=0.0)
            raise
        self._running = True
        self._logger.info("bot_started")

    async def run_forever(self) -> None:
        """Start and block until ``stop`` is requested, then shut down."""
        await self.start()
        try:
            await self._stop_event.wait()
        finally:
            await self.stop()

    def request_stop(self) -> None:
        self._stop_event.set()

    async def stop(self) -> None:
        """Stop ticks and the decision loop, then close every open position."""
        self._logger.info("bot_stopping")
        self._stop_event.set()
        self._running = False

        if self._decision_task is not None:
            task = self._decision_task
            self._decision_task = None
            _, pending = await asyncio.wait([task], timeout=self._settings.shutdown_grace_sec)
            for t in pending:
                t.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._monitor.stop()
        closed = self.close_all_positions()
        self._logger.info("bot_stopped", closed_positions=closed)

    async def run_once(self) -> list[CycleResult]:
        """One fetch tick per enabled pair followed by one decision pass."""
        self._stop_event = asyncio.Event()
        await asyncio.to_thread(self._provider.ping)
        for pair in self._settings.enabled_pairs:
            self._monitor.history.ensure(pair.name)
            await self._monitor.run_tick(pair)
        return await self.run_decision_cycle()

    async def run_decision_cycle(self) -> list[CycleResult]:
        """Evaluate every enabled pair sequentially from its last persisted snapshot."""
        results: list[CycleResult] = []
        for pair in self._settings.enabled_pairs:
            if self._stop_event.is_set():
                break
            try:
                snapshot = self._monitor.get_latest_snapshot(pair.name)
                if snapshot is None:
                    continue
                alerts = self._monitor.get_active_alerts(pair.name)
                history = self._monitor.history_snapshot(pair.name)
                result = self._engine.evaluate(pair.name, snapshot, alerts, history)
                self._logger.info(
                    "decision_completed",
                    pair=pair.name,
                    status=result.status,
                    elapsed_ms=round(result.elapsed_ms, 2),
                    orders=len(result.orders),
                )
                results.append(result)
            except Exception as exc:  # noqa: BLE001 - one pair must not halt the cycle.
                self._logger.exception("decision_failed", pair=pair.name, error=str(exc))
                results.append(CycleResult(pair=pair.name, status="failed", warnings=[str(exc)]))
        return results

    def close_all_positions(self) -> int:
        """Close every open order record; individual failures are logged and skipped."""
        try:
            open_orders = self._store.query_by_prefix(
                "orders:", lambda _key, value: value.get("status") == "open"
            )
        except Exception as exc:  # noqa: BLE001 - shutdown must complete.
            self._logger.exception("open_positions_read_failed", error=str(exc))
            return 0

        closed = 0
        for key, record in open_orders.items():
            order_id = str(record.get("id") or key.split(":", 1)[1])
            try:
                exit_price = self._exit_price(record)
                try:
                    fill = self._venue.close_position(
                        order_id, exit_price=exit_price, reason=_SHUTDOWN_REASON
                    )
                except PositionNotFoundError:
                    # Nothing left to close at the venue; retire the record.
                    self._logger.warning("position_unknown_to_venue", order_id=order_id)
                    self._mark_closed(order_id, record, _VENUE_UNKNOWN_REASON)
                    continue
                self._mark_closed(order_id, record, _SHUTDOWN_REASON)
                log_order_execution(
                    self._logger,
                    pair=str(record.get("pair")),
                    side=str(fill.get("side")),
                    size=float(record.get("size", 0.0)),
                    price=exit_price,
                    order_id=order_id,
                    status="closed",
                    reason=_SHUTDOWN_REASON,
                )
                closed += 1
            except Exception as exc:  # noqa: BLE001 - keep closing the rest.
                self._logger.exception("position_close_failed", order_id=order_id, error=str(exc))
        return closed

    async def _decision_loop(self) -> None:
        interval = self._settings.decision_interval_sec
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass
            await self.run_decision_cycle()

    def _mark_closed(self, order_id: str, record: dict[str, Any], reason: str) -> None:
        self._store.set(
            order_key(order_id),
            {**record, "status": "closed", "close_time": now_ms(), "close_reason": reason},
        )

    def _exit_price(self, record: dict[str, Any]) -> float:
        snapshot = self._monitor.get_latest_snapshot(str(record.get("pair")))
        if snapshot is not None:
            return snapshot.price
        return float(record["entry_price"])
