"""Paper execution venue with persistent local state."""

from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pair_trader.exec.venue import OrderSubmissionError, PositionNotFoundError
from pair_trader.types import OrderParams, Side


@dataclass(slots=True)
class PaperPosition:
    id: str
    pair: str
    side: Side
    size: float
    entry_price: float
    stop_loss: float
    take_profit: float
    opened_at: str


@dataclass(slots=True)
class _PaperState:
    equity: float
    initial_equity: float
    positions: dict[str, PaperPosition] = field(default_factory=dict)


class PaperVenue:
    """Simulated venue: fills at the order price with configured slippage.

    ``size`` is a quote-currency notional; realized PnL is the relative move
    between entry and exit fills applied to that notional.
    """

    def __init__(
        self,
        journal_dir: Path,
        *,
        slippage_bps: float = 2.0,
        initial_equity: float = 1_000.0,
    ) -> None:
        self._slippage_bps = slippage_bps
        journal_dir.mkdir(parents=True, exist_ok=True)
        self._state_file = journal_dir / "paper_state.json"
        self._state = self._load_state(initial_equity)

    @property
    def equity(self) -> float:
        return self._state.equity

    @property
    def open_positions(self) -> list[PaperPosition]:
        return list(self._state.positions.values())

    @property
    def committed_notional(self) -> float:
        """Notional currently held in open positions."""
        return sum(p.size for p in self._state.positions.values())

    def available_capital(self) -> float:
        return self._state.equity

    def submit_order(self, order: OrderParams) -> str:
        """Fill an order immediately and return its id."""
        if order.size <= 0:
            raise OrderSubmissionError("size_must_be_positive")
        if order.price <= 0:
            raise OrderSubmissionError("price_must_be_positive")
        if order.size > self._state.equity - self.committed_notional:
            raise OrderSubmissionError("insufficient_equity")

        slip = self._slippage_bps / 10_000.0
        fill_price = order.price * (1.0 + slip if order.side == "buy" else 1.0 - slip)
        order_id = uuid.uuid4().hex
        self._state.positions[order_id] = PaperPosition(
            id=order_id,
            pair=order.pair,
            side=order.side,
            size=float(order.size),
            entry_price=float(fill_price),
            stop_loss=float(order.stop_loss),
            take_profit=float(order.take_profit),
            opened_at=datetime.now(timezone.utc).isoformat(),
        )
        self._persist()
        return order_id

    def close_position(self, order_id: str, *, exit_price: float, reason: str) -> dict[str, Any]:
        """Close one position and realize PnL."""
        position = self._state.positions.get(order_id)
        if position is None:
            raise PositionNotFoundError(order_id)
        if exit_price <= 0:
            raise ValueError("exit_price_must_be_positive")

        slip = self._slippage_bps / 10_000.0
        if position.side == "buy":
            fill_price = exit_price * (1.0 - slip)
            pnl = position.size * (fill_price / position.entry_price - 1.0)
        else:
            fill_price = exit_price * (1.0 + slip)
            pnl = position.size * (1.0 - fill_price / position.entry_price)

        self._state.equity += pnl
        del self._state.positions[order_id]
        self._persist()
        return {
            "action": "close",
            "order_id": order_id,
            "pair": position.pair,
            "side": "sell" if position.side == "buy" else "buy",
            "size": position.size,
            "price": float(fill_price),
            "reason": reason,
            "realized_pnl": float(pnl),
            "status": "filled",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def _load_state(self, initial_equity: float) -> _PaperState:
        if not self._state_file.exists():
            return _PaperState(equity=initial_equity, initial_equity=initial_equity)

        raw = json.loads(self._state_file.read_text(encoding="utf-8"))
        positions_payload = raw.get("positions") or {}
        positions = {
            key: PaperPosition(**payload)
            for key, payload in positions_payload.items()
            if isinstance(payload, dict)
        }
        return _PaperState(
            equity=float(raw.get("equity", initial_equity)),
            initial_equity=float(raw.get("initial_equity", initial_equity)),
            positions=positions,
        )

    def _persist(self) -> None:
        payload: dict[str, Any] = {
            "equity": self._state.equity,
            "initial_equity": self._state.initial_equity,
            "positions": {key: asdict(pos) for key, pos in self._state.positions.items()},
        }
        serialized = json.dumps(payload, ensure_ascii=True, indent=2)
        self._state_file.write_text(serialized, encoding="utf-8")
