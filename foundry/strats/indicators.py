from __future__ import annotations

import math
from typing import Sequence, Union

import numpy as np

from foundry.backtest.types import PriceBar

ArrayLike = Union[Sequence[float], np.ndarray]


# -------- Series helpers --------
def closes(series: Sequence[PriceBar], start: int = 0, stop: int | None = None) -> np.ndarray:
    """Prices of ``series[start:stop]`` as a float array; a negative start clamps to 0."""
    return np.array(
        [float(bar.price) for bar in series[max(0, start) : stop]], dtype=float
    )


def window(series: Sequence[PriceBar], index: int, length: int) -> np.ndarray:
    """The ``length`` prices ending at (and including) ``index``."""
    return closes(series, index - length + 1, index + 1)


# -------- Moments --------
def avg(values: ArrayLike) -> float:
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return 0.0
    return float(arr.mean())


def std(values: ArrayLike) -> float:
    arr = np.asarray(values, dtype=float)
    if arr.size < 2:
        return 0.0
    return float(arr.std(ddof=1))


def highest(values: ArrayLike) -> float:
    arr = np.asarray(values, dtype=float)
    return float(arr.max()) if arr.size else -math.inf


def lowest(values: ArrayLike) -> float:
    arr = np.asarray(values, dtype=float)
    return float(arr.min()) if arr.size else math.inf


def slope(values: ArrayLike) -> float:
    """OLS slope of the values against their position."""
    arr = np.asarray(values, dtype=float)
    n = arr.size
    if n < 2:
        return 0.0
    dx = np.arange(n, dtype=float) - (n - 1) / 2.0
    den = float(np.sum(dx * dx))
    if den == 0.0:
        return 0.0
    return float(np.sum(dx * (arr - arr.mean()))) / den


# -------- Oscillators / volatility --------
def rsi(values: ArrayLike, period: int) -> float:
    """Simple-average RSI over the last ``period`` changes; 50 until enough data."""
    arr = np.asarray(values, dtype=float)
    if arr.size < period + 1:
        return 50.0
    diffs = np.diff(arr[-(period + 1) :])
    avg_gain = float(diffs[diffs > 0].sum()) / period
    avg_loss = float(-diffs[diffs < 0].sum()) / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def atr(prices: ArrayLike, period: int) -> float:
    """Close-only ATR: mean absolute change over the last ``period`` bars."""
    arr = np.asarray(prices, dtype=float)
    if arr.size < period + 1:
        return 0.0
    return float(np.abs(np.diff(arr[-(period + 1) :])).sum()) / period


def volatility(prices: ArrayLike, period: int) -> float:
    """Sample std of simple returns over the last ``period`` bars."""
    arr = np.asarray(prices, dtype=float)
    if arr.size < period + 1:
        return 0.0
    tail = arr[-(period + 1) :]
    prev = tail[:-1]
    safe_prev = np.where(prev != 0, prev, 1.0)
    rets = np.where(prev != 0, np.diff(tail) / safe_prev, 0.0)
    return std(rets)


def adx(prices: ArrayLike, period: int = 14) -> float:
    """
    Trend-strength proxy from closes only.

    Directional movement is the signed bar change, true range its absolute value,
    both Wilder-smoothed; the result is the mean of the last ``period`` DX values.
    """
    arr = np.asarray(prices, dtype=float)
    if arr.size < period * 2:
        return 0.0

    changes = np.diff(arr)
    dm_plus = np.where(changes > 0, changes, 0.0)
    dm_minus = np.where(changes > 0, 0.0, np.abs(changes))
    tr = np.abs(changes)
    if changes.size < period:
        return 0.0

    smooth_plus = float(dm_plus[:period].mean())
    smooth_minus = float(dm_minus[:period].mean())
    smooth_tr = float(tr[:period].mean())

    dx_values = []
    for i in range(period, changes.size):
        smooth_plus = smooth_plus - smooth_plus / period + dm_plus[i]
        smooth_minus = smooth_minus - smooth_minus / period + dm_minus[i]
        smooth_tr = smooth_tr - smooth_tr / period + tr[i]
        if smooth_tr == 0:
            continue
        di_plus = smooth_plus / smooth_tr * 100.0
        di_minus = smooth_minus / smooth_tr * 100.0
        di_sum = di_plus + di_minus
        if di_sum == 0:
            continue
        dx_values.append(abs(di_plus - di_minus) / di_sum * 100.0)

    if len(dx_values) < period:
        return avg(dx_values) if dx_values else 0.0
    return avg(dx_values[-period:])


# -------- Exponential statistics --------
def ewma(values: ArrayLike, alpha: float) -> float:
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return 0.0
    result = float(arr[0])
    for v in arr[1:]:
        result = alpha * float(v) + (1.0 - alpha) * result
    return result


def ewm_std(values: ArrayLike, alpha: float) -> float:
    """Exponentially weighted std around :func:`ewma`, newest value weighted 1."""
    arr = np.asarray(values, dtype=float)
    if arr.size < 2:
        return 0.0
    mean = ewma(arr, alpha)
    weights = (1.0 - alpha) ** np.arange(arr.size, dtype=float)
    deviations = (arr[::-1] - mean) ** 2
    return math.sqrt(float(np.sum(weights * deviations)) / float(np.sum(weights)))


def half_life(prices: ArrayLike) -> float:
    """
    Ornstein-Uhlenbeck half-life of mean reversion, in bars.

    Regresses each change on the previous level. Returns -1 when the series is too
    short (< 10) or not mean-reverting.
    """
    arr = np.asarray(prices, dtype=float)
    if arr.size < 10:
        return -1.0
    y = np.diff(arr)
    x = arr[:-1]
    dx = x - x.mean()
    den = float(np.sum(dx * dx))
    if den == 0.0:
        return -1.0
    beta = float(np.sum(dx * (y - y.mean()))) / den
    if beta >= 0:
        return -1.0
    hl = -math.log(2.0) / beta
    return hl if hl > 0 else -1.0


__all__ = [
    "closes",
    "window",
    "avg",
    "std",
    "highest",
    "lowest",
    "slope",
    "rsi",
    "atr",
    "volatility",
    "adx",
    "ewma",
    "ewm_std",
    "half_life",
]
