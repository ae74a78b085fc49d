"""Binance spot market data client."""

from __future__ import annotations

from typing import Any

from binance.client import Client  # type: ignore[import-untyped]
from binance.exceptions import (  # type: ignore[import-untyped]
    BinanceAPIException,
    BinanceRequestException,
)
from requests.exceptions import RequestException  # type: ignore[import-untyped]
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pair_trader.config import Settings, TradingPair
from pair_trader.data.provider import MarketDataError
from pair_trader.market.schemas import MarketQuote
from pair_trader.utils.logging import get_logger

_TRANSPORT_ERRORS = (BinanceAPIException, BinanceRequestException, RequestException)


class BinanceMarketData:
    """Read-only client for 24h ticker and order-book depth."""

    def __init__(self, settings: Settings, *, client: Any | None = None) -> None:
        self._settings = settings
        self._logger = get_logger("pair_trader.data.binance")
        self._client = client

    @retry(
        retry=retry_if_exception_type(MarketDataError),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def ping(self) -> None:
        """Check connectivity; retried a few times before giving up."""
        try:
            self._get_client().ping()
        except _TRANSPORT_ERRORS as exc:
            self._logger.warning("binance_ping_failed", error=str(exc))
            raise MarketDataError(str(exc)) from exc

    def fetch(self, pair: TradingPair) -> MarketQuote:
        """Fetch ticker + depth for one pair and normalize into a quote."""
        try:
            client = self._get_client()
            ticker: dict[str, Any] = client.get_ticker(symbol=pair.symbol)
            book: dict[str, Any] = client.get_order_book(
                symbol=pair.symbol, limit=self._settings.order_book_depth
            )
        except _TRANSPORT_ERRORS as exc:
            raise MarketDataError(f"{pair.name}: {exc}") from exc

        try:
            return MarketQuote(
                price=float(ticker["lastPrice"]),
                best_bid=float(ticker["bidPrice"]),
                best_ask=float(ticker["askPrice"]),
                volume_24h=float(ticker["quoteVolume"]),
                liquidity=_depth_notional(book),
                price_change_24h=float(ticker["priceChangePercent"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise MarketDataError(f"{pair.name}: malformed_ticker: {exc}") from exc

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                self._client = Client(
                    api_key=self._settings.binance_api_key or None,
                    api_secret=self._settings.binance_api_secret or None,
                    testnet=self._settings.binance_testnet,
                )
            except _TRANSPORT_ERRORS as exc:
                raise MarketDataError(f"client_init_failed: {exc}") from exc
        return self._client


def _depth_notional(book: dict[str, Any]) -> float:
    """Sum of price * quantity over both sides of the book."""
    total = 0.0
    for side in ("bids", "asks"):
        for level in book.get(side) or []:
            total += float(level[0]) * float(level[1])
    return total
