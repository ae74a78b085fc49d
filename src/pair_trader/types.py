"""Shared domain types for the monitor / decision pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Side = Literal["buy", "sell"]
OrderType = Literal["MARKET", "LIMIT"]


@dataclass(slots=True, frozen=True)
class PriceSample:
    """One history sample appended per fetch cycle."""

    price: float
    high: float
    low: float
    volume: float


@dataclass(slots=True, frozen=True)
class HistorySnapshot:
    """Immutable copy of one pair's rolling history, oldest first."""

    prices: tuple[float, ...] = ()
    highs: tuple[float, ...] = ()
    lows: tuple[float, ...] = ()
    volumes: tuple[float, ...] = ()

    def __len__(self) -> int:
        return len(self.prices)


@dataclass(slots=True)
class TradeSignal:
    """Strategy output consumed by the decision engine."""

    should_trade: bool
    direction: Side
    confidence: float
    reasons: list[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class OrderParams:
    """Order specification handed to the execution venue."""

    pair: str
    side: Side
    size: float
    price: float
    stop_loss: float
    take_profit: float
    type: OrderType = "LIMIT"


@dataclass(slots=True)
class PositionRecord:
    """Persisted order / position record stored under ``orders:{id}``."""

    id: str
    pair: str
    side: Side
    size: float
    entry_price: float
    stop_loss: float
    take_profit: float
    timestamp: int
    status: Literal["open", "closed"] = "open"
    close_time: int | None = None
    close_reason: str | None = None


@dataclass(slots=True)
class PermissionDecision:
    """Result of the trading-permission gate."""

    allowed: bool
    reasons: list[str] = field(default_factory=list)


@dataclass(slots=True)
class CycleResult:
    """Outcome of one decision cycle for one pair."""

    pair: str
    status: str
    signal: dict[str, object] | None = None
    orders: list[dict[str, object]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
