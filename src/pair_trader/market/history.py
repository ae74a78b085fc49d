"""Bounded per-pair rolling price history."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field

from pair_trader.types import HistorySnapshot, PriceSample


@dataclass(slots=True)
class _PairBuffers:
    prices: deque[float]
    highs: deque[float]
    lows: deque[float]
    volumes: deque[float]


@dataclass
class RollingHistory:
    """Four parallel ring buffers per pair, newest last.

    Appending to a full buffer evicts its oldest sample, so every sequence
    stays at most ``max_period`` long and all four keep the same length.
    Readers only ever receive immutable snapshots.
    """

    max_period: int
    _buffers: dict[str, _PairBuffers] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_period < 1:
            raise ValueError("max_period_must_be_positive")

    def ensure(self, pair: str) -> None:
        """Register an empty history for ``pair`` if none exists."""
        with self._lock:
            self._get_or_create(pair)

    def update(self, pair: str, sample: PriceSample) -> HistorySnapshot:
        """Append one sample and return the resulting snapshot."""
        with self._lock:
            buffers = self._get_or_create(pair)
            buffers.prices.append(float(sample.price))
            buffers.highs.append(float(sample.high))
            buffers.lows.append(float(sample.low))
            buffers.volumes.append(float(sample.volume))
            return self._snapshot(buffers)

    def snapshot(self, pair: str) -> HistorySnapshot:
        """Immutable copy of the current history; empty if the pair is unknown."""
        with self._lock:
            buffers = self._buffers.get(pair)
            if buffers is None:
                return HistorySnapshot()
            return self._snapshot(buffers)

    def pairs(self) -> list[str]:
        with self._lock:
            return list(self._buffers)

    def _get_or_create(self, pair: str) -> _PairBuffers:
        buffers = self._buffers.get(pair)
        if buffers is None:
            buffers = _PairBuffers(
                prices=deque(maxlen=self.max_period),
                highs=deque(maxlen=self.max_period),
                lows=deque(maxlen=self.max_period),
                volumes=deque(maxlen=self.max_period),
            )
            self._buffers[pair] = buffers
        return buffers

    @staticmethod
    def _snapshot(buffers: _PairBuffers) -> HistorySnapshot:
        return HistorySnapshot(
            prices=tuple(buffers.prices),
            highs=tuple(buffers.highs),
            lows=tuple(buffers.lows),
            volumes=tuple(buffers.volumes),
        )
