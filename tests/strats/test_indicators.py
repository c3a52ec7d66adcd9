from __future__ import annotations

import math

import pytest

from foundry.backtest.types import PriceBar
from foundry.strats import indicators as ind


def _series(prices):
    return [PriceBar(float(i), float(p)) for i, p in enumerate(prices)]


def test_window_and_closes_clamp_at_start():
    series = _series([1, 2, 3, 4, 5])

    assert list(ind.window(series, 3, 2)) == [3.0, 4.0]
    assert list(ind.window(series, 1, 4)) == [1.0, 2.0]
    assert list(ind.closes(series, -3, 2)) == [1.0, 2.0]


def test_basic_moments():
    assert ind.avg([]) == 0.0
    assert ind.std([5.0]) == 0.0
    assert ind.std([1.0, 3.0]) == pytest.approx(math.sqrt(2.0))
    assert ind.highest([]) == -math.inf
    assert ind.lowest([2.0, 1.0]) == 1.0


def test_slope_of_line():
    assert ind.slope([3.0, 5.0, 7.0, 9.0]) == pytest.approx(2.0)
    assert ind.slope([1.0]) == 0.0


def test_rsi_extremes_and_neutral():
    assert ind.rsi([1.0, 2.0], 14) == 50.0
    assert ind.rsi([1.0, 2.0, 3.0, 4.0], 3) == 100.0
    assert ind.rsi([4.0, 3.0, 2.0, 1.0], 3) == pytest.approx(0.0)
    assert ind.rsi([1.0, 2.0, 1.0], 2) == pytest.approx(50.0)


def test_atr_and_volatility():
    assert ind.atr([1.0, 3.0, 2.0], 2) == pytest.approx(1.5)
    assert ind.atr([1.0], 2) == 0.0
    assert ind.volatility([100.0, 110.0, 99.0], 2) == pytest.approx(
        ind.std([0.1, -0.1])
    )


def test_adx_is_high_for_steady_trend_and_zero_for_flat():
    rising = [100.0 + i for i in range(40)]
    assert ind.adx(rising, 14) == pytest.approx(100.0)
    assert ind.adx([100.0] * 40, 14) == 0.0
    assert ind.adx(rising[:20], 14) == 0.0


def test_ewma_and_ewm_std():
    assert ind.ewma([1.0, 3.0], 0.5) == pytest.approx(2.0)
    assert ind.ewma([], 0.5) == 0.0
    assert ind.ewm_std([2.0, 2.0, 2.0], 0.3) == 0.0
    assert ind.ewm_std([1.0, 3.0], 0.5) > 0.0


def test_half_life():
    assert ind.half_life([1.0] * 5) == -1.0
    assert ind.half_life([100.0 + i for i in range(20)]) == -1.0
    alternating = [100.0 + (1.0 if i % 2 else -1.0) for i in range(20)]
    hl = ind.half_life(alternating)
    assert 0.0 < hl < 1.0
