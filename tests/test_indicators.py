from __future__ import annotations

import pytest

from pair_trader.config import MonitoringConfig
from pair_trader.features.indicators import (
    atr,
    bollinger_bands,
    compute_indicators,
    ema,
    rsi,
    support_resistance,
    volatility,
)
from pair_trader.types import HistorySnapshot


def test_ema_uses_full_history_recursion() -> None:
    prices = [float(p) for p in range(1, 11)]
    assert ema(prices, 5) == pytest.approx(8.052, abs=1e-3)


def test_ema_short_history_returns_last_price() -> None:
    assert ema([3.0, 4.5, 7.25], 5) == 7.25


def test_ema_rejects_empty_prices() -> None:
    with pytest.raises(ValueError):
        ema([], 5)


def test_rsi_short_history_is_neutral() -> None:
    assert rsi([1.0] * 14, 14) == 50.0


def test_rsi_wilder_reference_sequence() -> None:
    prices = [45, 46, 47, 44, 43, 44, 45, 46, 47, 48, 49, 48, 47, 46, 45, 44, 43, 42, 41, 40]
    assert rsi([float(p) for p in prices], 14) == pytest.approx(35.908, abs=1e-2)


def test_rsi_zero_average_loss() -> None:
    rising = [float(p) for p in range(1, 21)]
    flat = [10.0] * 20
    assert rsi(rising, 14) == 100.0
    assert rsi(flat, 14) == 50.0


def test_rsi_stays_bounded() -> None:
    zigzag = [100.0 + (7 if i % 3 == 0 else -5) * (i % 4) for i in range(40)]
    falling = [float(p) for p in range(60, 20, -1)]
    for prices in (zigzag, falling):
        value = rsi(prices, 14)
        assert 0.0 <= value <= 100.0
    assert rsi(falling, 14) == 0.0


def test_bollinger_bands_ordering_and_middle() -> None:
    prices = [10.0, 12.0, 11.0, 13.0, 9.0, 14.0, 10.0, 12.0]
    bands = bollinger_bands(prices, period=5, std_dev=2.0)
    assert bands.lower < bands.middle < bands.upper
    assert bands.middle == pytest.approx(sum(prices[-5:]) / 5)


def test_bollinger_bands_short_history_collapse_to_last_price() -> None:
    bands = bollinger_bands([1.0, 2.0, 3.5], period=20, std_dev=2.0)
    assert bands.upper == bands.middle == bands.lower == 3.5


def test_atr_edge_cases() -> None:
    assert atr([10.0], [9.0], [9.5], 14) == 0.0
    assert atr([5.0] * 10, [5.0] * 10, [5.0] * 10, 14) == 0.0

    highs = [11.0, 12.5, 12.0, 13.0, 14.5]
    lows = [9.0, 10.5, 10.0, 11.5, 12.0]
    closes = [10.0, 12.0, 11.0, 12.5, 14.0]
    assert atr(highs, lows, closes, 3) > 0.0


def test_atr_keeps_fixed_divisor_during_warmup() -> None:
    # TR = [2, 3]; (2 * 13 + 3) / 14
    value = atr([11.0, 13.0], [9.0, 10.0], [10.0, 12.0], 14)
    assert value == pytest.approx((2.0 * 13 + 3.0) / 14)


def test_volatility() -> None:
    assert volatility([1.0, 2.0, 3.0], period=20) == 0.0
    assert volatility([42.0] * 25, period=20) == 0.0

    prices = [10.0, 11.0, 10.0, 12.0, 9.0, 13.0, 8.0, 14.0, 7.0, 15.0]
    assert volatility(prices, period=10) == pytest.approx(2.46779, abs=1e-4)


def test_support_resistance_on_zigzag() -> None:
    prices = [5.0, 4.0, 3.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 6.0, 5.0, 4.0, 3.0]
    supports, resistances = support_resistance(prices, window=2)
    assert supports == [2.0]
    assert resistances == [7.0]


def test_support_resistance_requires_strict_extrema() -> None:
    supports, resistances = support_resistance([3.0, 2.0, 2.0, 3.0, 4.0], window=1)
    assert supports == []
    assert resistances == []


def test_compute_indicators_bundle() -> None:
    prices = tuple(100.0 + (i % 5) - (i % 3) for i in range(30))
    history = HistorySnapshot(prices=prices, highs=prices, lows=prices, volumes=(1.0,) * 30)
    monitoring = MonitoringConfig()

    bundle, vol = compute_indicators(history, monitoring)

    assert set(bundle.ema) == {9, 21}
    assert 0.0 <= bundle.rsi <= 100.0
    assert bundle.atr >= 0.0
    assert bundle.bollinger.middle == pytest.approx(sum(prices[-20:]) / 20)
    assert vol > 0.0


def test_compute_indicators_rejects_empty_history() -> None:
    with pytest.raises(ValueError):
        compute_indicators(HistorySnapshot(), MonitoringConfig())
