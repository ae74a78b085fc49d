"""Market data, indicator and alert schemas."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MarketQuote(BaseModel):
    """Raw provider output for one pair, before enrichment."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    price: float = Field(gt=0)
    best_bid: float = Field(ge=0)
    best_ask: float = Field(ge=0)
    volume_24h: float = Field(ge=0)
    liquidity: float = Field(ge=0)
    price_change_24h: float

    @property
    def spread_pct(self) -> float:
        """Bid/ask spread as a percentage of the ask."""
        if self.best_ask <= 0:
            return 0.0
        return (self.best_ask - self.best_bid) / self.best_ask * 100


class BollingerBands(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    upper: float
    middle: float
    lower: float


class IndicatorBundle(BaseModel):
    """Indicators derived from one pair's rolling history."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    ema: dict[int, float] = Field(default_factory=dict)
    rsi: float = Field(default=50.0, ge=0.0, le=100.0)
    bollinger: BollingerBands
    atr: float = Field(default=0.0, ge=0.0)
    supports: list[float] = Field(default_factory=list)
    resistances: list[float] = Field(default_factory=list)


class MarketSnapshot(BaseModel):
    """Enriched per-cycle snapshot, persisted under ``market:{pair}:current``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    pair: str
    price: float = Field(gt=0)
    timestamp: int = Field(ge=0, description="Wall-clock milliseconds")
    volume_24h: float = Field(ge=0)
    liquidity: float = Field(ge=0)
    price_change_24h: float
    spread_pct: float = 0.0
    volatility: float = Field(default=0.0, ge=0.0)
    indicators: IndicatorBundle


class AlertType(str, Enum):
    PRICE_CHANGE = "PRICE_CHANGE"
    VOLUME_SPIKE = "VOLUME_SPIKE"
    LOW_LIQUIDITY = "LOW_LIQUIDITY"


class AlertSeverity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


_SEVERITY_BY_TYPE: dict[AlertType, AlertSeverity] = {
    AlertType.PRICE_CHANGE: AlertSeverity.HIGH,
    AlertType.VOLUME_SPIKE: AlertSeverity.MEDIUM,
    AlertType.LOW_LIQUIDITY: AlertSeverity.HIGH,
}


def severity_for(alert_type: AlertType) -> AlertSeverity:
    """Fixed severity per alert type."""
    severity = _SEVERITY_BY_TYPE.get(AlertType(alert_type))
    if severity is None:
        raise ValueError(f"unknown_alert_type: {alert_type}")
    return severity


class Alert(BaseModel):
    """Append-only alert record."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: int = Field(ge=0)

    @classmethod
    def build(cls, alert_type: AlertType, message: str, timestamp: int) -> "Alert":
        """Construct an alert with the severity fixed for its type."""
        return cls(
            type=alert_type,
            severity=severity_for(alert_type),
            message=message,
            timestamp=timestamp,
        )
