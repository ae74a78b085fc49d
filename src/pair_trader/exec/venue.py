"""Execution venue and balance interfaces."""

from __future__ import annotations

from typing import Any, Protocol

from pair_trader.types import OrderParams


class OrderSubmissionError(Exception):
    """Raised when the venue rejects or fails to accept an order."""


class PositionNotFoundError(Exception):
    """Raised when closing an order id the venue does not know."""


class BalanceSource(Protocol):
    def available_capital(self) -> float:
        """Capital available for sizing, in quote currency."""


class ExecutionVenue(Protocol):
    def submit_order(self, order: OrderParams) -> str:
        """Submit an order and return its identifier."""

    def close_position(self, order_id: str, *, exit_price: float, reason: str) -> dict[str, Any]:
        """Close one open position and return the fill record."""
