"""Indicator computation over a rolling price history.

Every function here is pure: same input sequence, same output. Insufficient
history is never an error; each indicator has an explicit fallback value.
"""

from __future__ import annotations

from collections.abc import Sequence

import pandas as pd  # type: ignore[import-untyped]

from pair_trader.config import MonitoringConfig
from pair_trader.market.schemas import BollingerBands, IndicatorBundle
from pair_trader.types import HistorySnapshot


def ema(prices: Sequence[float], period: int) -> float:
    """Full-history recursive EMA seeded with the first price.

    With fewer than ``period`` prices the last price is returned as-is.
    """
    _require_prices(prices)
    if len(prices) < period:
        return float(prices[-1])
    return float(_series(prices).ewm(span=period, adjust=False).mean().iloc[-1])


def rsi(prices: Sequence[float], period: int) -> float:
    """Wilder RSI seeded with simple averages of the first ``period`` deltas.

    Returns 50 with fewer than ``period + 1`` prices. When the average loss is
    exactly zero the result is 100, or 50 if the average gain is zero too.
    """
    if len(prices) < period + 1:
        return 50.0

    deltas = _series(prices).diff().iloc[1:]
    gains = deltas.clip(lower=0.0)
    losses = (-deltas).clip(lower=0.0)

    avg_gain = float(gains.iloc[:period].sum()) / period
    avg_loss = float(losses.iloc[:period].sum()) / period
    for gain, loss in zip(gains.iloc[period:], losses.iloc[period:]):
        avg_gain = (avg_gain * (period - 1) + float(gain)) / period
        avg_loss = (avg_loss * (period - 1) + float(loss)) / period

    if avg_loss == 0.0:
        return 100.0 if avg_gain > 0.0 else 50.0

    rs = avg_gain / avg_loss
    value = 100.0 - 100.0 / (1.0 + rs)
    return max(0.0, min(100.0, value))


def bollinger_bands(prices: Sequence[float], period: int, std_dev: float) -> BollingerBands:
    """Mean +/- ``std_dev`` population standard deviations over the last ``period`` prices."""
    _require_prices(prices)
    if len(prices) < period:
        last = float(prices[-1])
        return BollingerBands(upper=last, middle=last, lower=last)

    window = _series(prices[-period:])
    middle = float(window.mean())
    deviation = float(window.std(ddof=0))
    return BollingerBands(
        upper=middle + std_dev * deviation,
        middle=middle,
        lower=middle - std_dev * deviation,
    )


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int,
) -> float:
    """Average true range, Wilder-smoothed from the first true range.

    The divisor is always ``period``, even while fewer than ``period`` true
    ranges have accumulated.
    """
    if len(highs) < 2:
        return 0.0

    high = _series(highs)
    low = _series(lows)
    prev_close = _series(closes).shift(1)
    tr_components = pd.concat(
        [
            (high - low).abs(),
            (high - prev_close).abs(),
            (low - prev_close).abs(),
        ],
        axis=1,
    )
    true_ranges = tr_components.max(axis=1)

    value = float(true_ranges.iloc[0])
    for tr in true_ranges.iloc[1:]:
        value = (value * (period - 1) + float(tr)) / period
    return value


def volatility(prices: Sequence[float], period: int = 20) -> float:
    """Population standard deviation of the last ``period`` prices, 0 if too short."""
    if len(prices) < period:
        return 0.0
    return float(_series(prices[-period:]).std(ddof=0))


def support_resistance(
    prices: Sequence[float], window: int = 20
) -> tuple[list[float], list[float]]:
    """Detect strict local minima (supports) and maxima (resistances).

    A price at index ``i`` is a support when it is strictly below every price
    in the ``window`` samples on each side; resistance mirrors that.
    """
    supports: list[float] = []
    resistances: list[float] = []
    values = [float(p) for p in prices]

    for i in range(window, len(values) - window):
        current = values[i]
        left = values[i - window : i]
        right = values[i + 1 : i + window + 1]

        if current < min(left) and current < min(right):
            supports.append(current)
        if current > max(left) and current > max(right):
            resistances.append(current)

    return supports, resistances


def compute_indicators(
    history: HistorySnapshot, monitoring: MonitoringConfig
) -> tuple[IndicatorBundle, float]:
    """Compute the indicator bundle and volatility from one history snapshot."""
    if len(history) == 0:
        raise ValueError("history_empty")

    prices = history.prices
    supports, resistances = support_resistance(prices, monitoring.bb_period)
    bundle = IndicatorBundle(
        ema={period: ema(prices, period) for period in monitoring.ema_periods},
        rsi=rsi(prices, monitoring.rsi_period),
        bollinger=bollinger_bands(prices, monitoring.bb_period, monitoring.bb_std_dev),
        atr=atr(history.highs, history.lows, prices, monitoring.atr_period),
        supports=supports,
        resistances=resistances,
    )
    return bundle, volatility(prices, monitoring.bb_period)


def _series(values: Sequence[float]) -> pd.Series:
    return pd.Series(list(values), dtype=float)


def _require_prices(prices: Sequence[float]) -> None:
    if len(prices) == 0:
        raise ValueError("prices_empty")
