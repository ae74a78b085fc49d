"""Per-pair market monitor: fetch, history, indicators, persistence, alerts."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable

from pair_trader.config import Settings, TradingPair
from pair_trader.data.provider import MarketDataError, MarketDataProvider
from pair_trader.features.indicators import compute_indicators
from pair_trader.journal.store import PersistentStore
from pair_trader.market.alerts import AlertEvaluator
from pair_trader.market.history import RollingHistory
from pair_trader.market.schemas import Alert, MarketQuote, MarketSnapshot
from pair_trader.types import HistorySnapshot, PriceSample
from pair_trader.utils.logging import get_logger, log_alerts

_HOUR_MS = 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def current_key(pair: str) -> str:
    return f"market:{pair}:current"


def history_key(pair: str, timestamp: int) -> str:
    return f"market:{pair}:history:{timestamp}"


def alerts_key(pair: str, timestamp: int) -> str:
    return f"alerts:{pair}:{timestamp}"


class MarketMonitor:
    """Owns one cancellable periodic task per enabled pair.

    Ticks for the same pair never overlap: each pair's loop awaits its own
    tick before sleeping, and a per-pair lock rejects a concurrent manual
    tick. A failing tick is logged and abandoned without touching other pairs.
    """

    def __init__(
        self,
        settings: Settings,
        provider: MarketDataProvider,
        store: PersistentStore,
        *,
        history: RollingHistory | None = None,
        evaluator: AlertEvaluator | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._settings = settings
        self._monitoring = settings.monitoring
        self._provider = provider
        self._store = store
        self._history = history or RollingHistory(max_period=self._monitoring.max_period)
        self._evaluator = evaluator or AlertEvaluator()
        self._clock = clock
        self._logger = get_logger("pair_trader.market.monitor")

        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._stop_event = asyncio.Event()
        self._last_update: dict[str, int] = {}
        self._running = False

    @property
    def history(self) -> RollingHistory:
        return self._history

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tasks(self) -> dict[str, asyncio.Task[None]]:
        return dict(self._tasks)

    @property
    def last_update(self) -> dict[str, int]:
        return dict(self._last_update)

    async def start(self, pairs: Iterable[TradingPair]) -> None:
        """Ping the provider, run one initial tick per pair and schedule the rest.

        Any failure here stops whatever was already scheduled and re-raises.
        """
        self._logger.info("market_monitor_starting")
        self._stop_event = asyncio.Event()
        try:
            await asyncio.to_thread(self._provider.ping)
            for pair in pairs:
                if not pair.enabled:
                    continue
                if pair.name in self._tasks:
                    raise RuntimeError(f"pair_already_monitored: {pair.name}")
                self._logger.info("pair_monitoring_init", pair=pair.name)
                self._history.ensure(pair.name)
                await self.run_tick(pair)
                self._tasks[pair.name] = asyncio.create_task(
                    self._run_pair(pair), name=f"monitor:{pair.name}"
                )
        except Exception as exc:
            self._logger.error("market_monitor_start_failed", error=str(exc))
            await self.stop(grace_sec=0.0)
            raise

        self._running = True
        self._logger.info("market_monitor_started", pairs=list(self._tasks))

    async def stop(self, grace_sec: float | None = None) -> None:
        """Stop scheduling, let in-flight ticks finish within the grace period, cancel the rest."""
        grace = self._settings.shutdown_grace_sec if grace_sec is None else grace_sec
        self._logger.info("market_monitor_stopping")
        self._stop_event.set()
        self._running = False

        tasks = list(self._tasks.values())
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=grace)
            for task in pending:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._logger.info("market_monitor_stopped")

    async def run_tick(self, pair: TradingPair) -> MarketSnapshot | None:
        """Run one fetch/update cycle; returns the stored snapshot or None if abandoned."""
        if self._stop_event.is_set():
            return None

        lock = self._locks.setdefault(pair.name, asyncio.Lock())
        if lock.locked():
            self._logger.debug("tick_skipped_in_flight", pair=pair.name)
            return None

        async with lock:
            try:
                quote = await asyncio.to_thread(self._provider.fetch, pair)
            except MarketDataError as exc:
                self._logger.warning("market_data_fetch_failed", pair=pair.name, error=str(exc))
                return None
            except Exception as exc:  # noqa: BLE001 - one pair must not take down the others.
                self._logger.exception("market_data_fetch_error", pair=pair.name, error=str(exc))
                return None

            if self._stop_event.is_set():
                self._logger.debug("tick_abandoned_on_stop", pair=pair.name)
                return None

            try:
                return self._process(pair, quote)
            except Exception as exc:  # noqa: BLE001 - abandon this cycle only.
                self._logger.exception("tick_failed", pair=pair.name, error=str(exc))
                return None

    def get_latest_snapshot(self, pair_name: str) -> MarketSnapshot | None:
        """Last persisted snapshot for a pair, or None if absent/unreadable."""
        try:
            payload = self._store.get(current_key(pair_name))
            if payload is None:
                return None
            return MarketSnapshot.model_validate(payload)
        except Exception as exc:  # noqa: BLE001 - stale or missing data means skip.
            self._logger.warning("snapshot_read_failed", pair=pair_name, error=str(exc))
            return None

    def get_active_alerts(self, pair_name: str, now: int | None = None) -> list[Alert]:
        """Alerts for a pair raised within the trailing alert window."""
        since = (self._clock() if now is None else now) - int(
            self._monitoring.alert_window_hours * _HOUR_MS
        )
        try:
            batches = self._store.query_by_prefix(f"alerts:{pair_name}:")
        except Exception as exc:  # noqa: BLE001 - alerts are advisory.
            self._logger.warning("alerts_read_failed", pair=pair_name, error=str(exc))
            return []

        alerts: list[Alert] = []
        for batch in batches.values():
            for raw in batch:
                alert = Alert.model_validate(raw)
                if alert.timestamp >= since:
                    alerts.append(alert)
        return alerts

    def history_snapshot(self, pair_name: str) -> HistorySnapshot:
        return self._history.snapshot(pair_name)

    async def _run_pair(self, pair: TradingPair) -> None:
        interval = self._monitoring.update_interval_sec
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass
            await self.run_tick(pair)

    def _process(self, pair: TradingPair, quote: MarketQuote) -> MarketSnapshot:
        timestamp = self._clock()
        # No high/low feed: the quote price stands in for both.
        history = self._history.update(
            pair.name,
            PriceSample(
                price=quote.price,
                high=quote.price,
                low=quote.price,
                volume=quote.volume_24h,
            ),
        )
        bundle, volatility = compute_indicators(history, self._monitoring)
        snapshot = MarketSnapshot(
            pair=pair.name,
            price=quote.price,
            timestamp=timestamp,
            volume_24h=quote.volume_24h,
            liquidity=quote.liquidity,
            price_change_24h=quote.price_change_24h,
            spread_pct=quote.spread_pct,
            volatility=volatility,
            indicators=bundle,
        )

        payload = snapshot.model_dump(mode="json")
        self._store.set(current_key(pair.name), payload)
        self._store.set(history_key(pair.name, timestamp), payload)
        self._last_update[pair.name] = timestamp
        if self._monitoring.debug:
            self._logger.debug(
                "market_data_stored",
                pair=pair.name,
                price=snapshot.price,
                volume=snapshot.volume_24h,
                rsi=bundle.rsi,
                volatility=volatility,
            )

        alerts = self._evaluator.evaluate(pair.name, snapshot, self._monitoring, timestamp=timestamp)
        if alerts:
            self._store.set(
                alerts_key(pair.name, timestamp),
                [alert.model_dump(mode="json") for alert in alerts],
            )
            log_alerts(
                self._logger,
                pair=pair.name,
                alert_types=[alert.type.value for alert in alerts],
            )
        return snapshot
