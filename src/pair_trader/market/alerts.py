"""Threshold alerts over enriched market snapshots."""

from __future__ import annotations

from pair_trader.config import MonitoringConfig
from pair_trader.market.schemas import Alert, AlertType, MarketSnapshot


class AlertEvaluator:
    """Stateless comparator; each condition is checked independently."""

    def evaluate(
        self,
        pair: str,
        snapshot: MarketSnapshot,
        monitoring: MonitoringConfig,
        *,
        timestamp: int | None = None,
    ) -> list[Alert]:
        """Return zero or more alerts for ``snapshot``.

        All alerts carry the evaluation timestamp, which defaults to the
        snapshot timestamp.
        """
        thresholds = monitoring.alert_thresholds
        now = snapshot.timestamp if timestamp is None else timestamp
        alerts: list[Alert] = []

        if abs(snapshot.price_change_24h) > thresholds.price_change:
            alerts.append(
                Alert.build(
                    AlertType.PRICE_CHANGE,
                    f"{pair} price changed by {snapshot.price_change_24h:.2f}% in 24h",
                    now,
                )
            )

        if snapshot.volume_24h > monitoring.volume_threshold * thresholds.volume_spike:
            alerts.append(
                Alert.build(
                    AlertType.VOLUME_SPIKE,
                    f"Unusual volume for {pair}: ${snapshot.volume_24h:.2f}",
                    now,
                )
            )

        if snapshot.liquidity < thresholds.low_liquidity:
            alerts.append(
                Alert.build(
                    AlertType.LOW_LIQUIDITY,
                    f"Low liquidity warning for {pair}: ${snapshot.liquidity:.2f}",
                    now,
                )
            )

        return alerts
