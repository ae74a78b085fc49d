"""Market data provider interface."""

from __future__ import annotations

from typing import Protocol

from pair_trader.config import TradingPair
from pair_trader.market.schemas import MarketQuote


class MarketDataError(Exception):
    """Raised when a quote cannot be fetched for this cycle."""


class MarketDataProvider(Protocol):
    """Blocking source of per-pair quotes."""

    def ping(self) -> None:
        """Raise ``MarketDataError`` if the provider is unreachable."""

    def fetch(self, pair: TradingPair) -> MarketQuote:
        """Return the current quote or raise ``MarketDataError``."""
