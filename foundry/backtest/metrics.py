# foundry/backtest/metrics.py
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from loguru import logger

# Variances below this are treated as exactly zero (float noise from summing equal values).
_DEF_MIN_EPS = 1e-12

INF = math.inf


# -------- Data classes --------
@dataclass
class SeriesMetrics:
    """Scalar summary of one run's per-bar returns and equity curve."""

    avg_return: float
    volatility: float
    sharpe: float
    sortino: float
    max_drawdown: float
    profit_factor: float
    ulcer_index: float
    tail_ratio: float
    expectancy: float
    calmar: float


# -------- Internals --------
def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float).reshape(-1)


# -------- Basic statistics --------
def mean(values: Sequence[float]) -> float:
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    return float(arr.mean())


def std(values: Sequence[float]) -> float:
    """Sample standard deviation (n - 1); 0 for fewer than two values."""
    arr = _as_array(values)
    if arr.size < 2:
        return 0.0
    value = float(arr.std(ddof=1))
    return value if value > _DEF_MIN_EPS else 0.0


def median(values: Sequence[float]) -> float:
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    return float(np.median(arr))


def percentile(values: Sequence[float], p: float) -> float:
    """
    Lower nearest-rank percentile: ``sorted[floor((n - 1) * p)]``.

    No interpolation, so the result is always an observed value.
    """
    arr = _as_array(values)
    if arr.size == 0:
        return 0.0
    ordered = np.sort(arr)
    pos = int(math.floor((ordered.size - 1) * p))
    pos = max(0, min(ordered.size - 1, pos))
    return float(ordered[pos])


def autocorrelation1(values: Sequence[float]) -> float:
    """Lag-1 autocorrelation around the full-sample mean; 0 for short or flat input."""
    arr = _as_array(values)
    if arr.size < 3:
        return 0.0
    centered = arr - arr.mean()
    den = float(np.sum(centered * centered))
    if den <= _DEF_MIN_EPS:
        return 0.0
    num = float(np.sum(centered[1:] * centered[:-1]))
    return num / den


# -------- Drawdown --------
def drawdown_curve(equity: Sequence[float]) -> np.ndarray:
    """Distance below the running peak at every point (absolute units, >= 0)."""
    arr = _as_array(equity)
    if arr.size == 0:
        return np.zeros(0, dtype=float)
    return np.maximum.accumulate(arr) - arr


def max_drawdown(equity: Sequence[float]) -> float:
    dd = drawdown_curve(equity)
    if dd.size == 0:
        return 0.0
    return float(dd.max())


def ulcer_index(equity: Sequence[float], capital: float = 0.0) -> float:
    """
    Root-mean-square of the percent drawdown from peak.

    ``equity`` is a pnl path starting at 0; ``capital`` is added to turn it into an
    account value. Points whose running peak is not positive contribute 0.
    """
    arr = _as_array(equity) + float(capital)
    if arr.size == 0:
        return 0.0
    peak = np.maximum.accumulate(arr)
    safe_peak = np.where(peak > 0, peak, 1.0)
    pct = np.where(peak > 0, (peak - arr) / safe_peak * 100.0, 0.0)
    return float(math.sqrt(float(np.mean(pct * pct))))


# -------- Risk-adjusted ratios --------
def sharpe(returns: Sequence[float]) -> float:
    """mean / sample std, scaled by sqrt(N) of the series itself."""
    arr = _as_array(returns)
    if arr.size < 2:
        return 0.0
    sigma = std(arr)
    if sigma == 0.0:
        return 0.0
    return float(arr.mean()) / sigma * math.sqrt(arr.size)


def sortino(returns: Sequence[float]) -> float:
    """
    Like :func:`sharpe` but the denominator is the downside deviation:
    sqrt(sum(min(r, 0)^2) / N). No losing bars resolves to 0.
    """
    arr = _as_array(returns)
    if arr.size < 2:
        return 0.0
    downside = np.minimum(arr, 0.0)
    dd = math.sqrt(float(np.sum(downside * downside)) / arr.size)
    if dd <= _DEF_MIN_EPS:
        return 0.0
    return float(arr.mean()) / dd * math.sqrt(arr.size)


def profit_factor(returns: Sequence[float]) -> float:
    arr = _as_array(returns)
    gross_profit = float(arr[arr > 0].sum()) if arr.size else 0.0
    gross_loss = float(arr[arr < 0].sum()) if arr.size else 0.0
    if gross_loss == 0.0:
        return INF if gross_profit > 0 else 0.0
    return gross_profit / abs(gross_loss)


def tail_ratio(returns: Sequence[float]) -> float:
    """|p95 / p5| of the return distribution."""
    arr = _as_array(returns)
    if arr.size == 0:
        return 0.0
    right = percentile(arr, 0.95)
    left = percentile(arr, 0.05)
    if left == 0.0:
        return INF if right != 0.0 else 0.0
    return abs(right / left)


def expectancy(returns: Sequence[float]) -> float:
    """
    win_rate * avg_win - (1 - win_rate) * avg_loss over every bar return.

    Flat bars count as non-wins. This is bar-level, not round-trip trade pnl.
    """
    arr = _as_array(returns)
    if arr.size == 0:
        return 0.0
    wins = arr[arr > 0]
    losses = arr[arr < 0]
    win_rate = wins.size / arr.size
    avg_win = float(wins.mean()) if wins.size else 0.0
    avg_loss = float(np.abs(losses).mean()) if losses.size else 0.0
    return win_rate * avg_win - (1.0 - win_rate) * avg_loss


def calmar(total_pnl: float, drawdown: float) -> float:
    """Recovery factor: total pnl per unit of max drawdown."""
    if drawdown == 0.0:
        return INF if total_pnl > 0 else 0.0
    return float(total_pnl) / float(drawdown)


# -------- Public API --------
def series_stats(
    returns: Sequence[float],
    equity: Sequence[float],
    *,
    capital: float = 0.0,
) -> SeriesMetrics:
    """
    Compute every scalar metric derived from a run's return series and equity curve.

    returns: per-bar pnl increments (net of costs).
    equity: cumulative pnl path, starting at 0.
    capital: account base used for the percent-drawdown based Ulcer index.
    """
    rets = _as_array(returns)
    curve = _as_array(equity)
    dd = max_drawdown(curve)
    total = float(curve[-1]) if curve.size else 0.0

    out = SeriesMetrics(
        avg_return=mean(rets),
        volatility=std(rets),
        sharpe=sharpe(rets),
        sortino=sortino(rets),
        max_drawdown=dd,
        profit_factor=profit_factor(rets),
        ulcer_index=ulcer_index(curve, capital),
        tail_ratio=tail_ratio(rets),
        expectancy=expectancy(rets),
        calmar=calmar(total, dd),
    )
    logger.debug(
        "[metrics] n={} pnl={:.4f} sharpe={:.3f} sortino={:.3f} maxDD={:.4f} pf={} ulcer={:.3f}",
        rets.size,
        total,
        out.sharpe,
        out.sortino,
        out.max_drawdown,
        out.profit_factor,
        out.ulcer_index,
    )
    return out

