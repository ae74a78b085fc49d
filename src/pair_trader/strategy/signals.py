"""Signal strategies consumed by the decision engine."""

from __future__ import annotations

from typing import Protocol

from pair_trader.market.schemas import MarketSnapshot
from pair_trader.types import HistorySnapshot, TradeSignal


class SignalStrategy(Protocol):
    """Strategy interface: snapshot + history in, trade signal out."""

    def evaluate(self, snapshot: MarketSnapshot, history: HistorySnapshot) -> TradeSignal:
        """Return whether to trade, in which direction, and with what confidence."""


class RsiOversoldStrategy:
    """Reference rule: trade only when RSI is oversold.

    Direction is buy below ``buy_below`` and sell otherwise; confidence is a
    fixed constant.
    """

    def __init__(
        self,
        *,
        oversold: float = 30.0,
        buy_below: float = 40.0,
        confidence: float = 0.8,
    ) -> None:
        if not 0.0 <= confidence <= 1.0:
            raise ValueError("confidence_out_of_range")
        self._oversold = oversold
        self._buy_below = buy_below
        self._confidence = confidence

    def evaluate(self, snapshot: MarketSnapshot, history: HistorySnapshot) -> TradeSignal:
        rsi = snapshot.indicators.rsi
        should_trade = rsi < self._oversold
        reasons = ["rsi_oversold"] if should_trade else []
        return TradeSignal(
            should_trade=should_trade,
            direction="buy" if rsi < self._buy_below else "sell",
            confidence=self._confidence,
            reasons=reasons,
        )
