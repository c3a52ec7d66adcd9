from __future__ import annotations

from typing import Sequence

import numpy as np

from foundry.backtest import metrics
from foundry.backtest.types import MarketProfile, PriceBar

TREND_THRESHOLD = 0.0025
MEAN_REVERSION_THRESHOLD = 0.05
VOLATILITY_THRESHOLD = 0.02

_MIN_MEAN_PRICE = 1e-9


def _ols_slope(values: np.ndarray) -> float:
    x = np.arange(values.size, dtype=float)
    dx = x - x.mean()
    var_x = float(np.sum(dx * dx))
    if var_x == 0.0:
        return 0.0
    return float(np.sum(dx * (values - values.mean()))) / var_x


def compute_market_profile(bars: Sequence[PriceBar]) -> MarketProfile:
    """
    Describe a series along four axes, each scaled by the mean price.

    trendiness: |OLS slope of price against bar index|.
    mean_reversion: negated lag-1 autocorrelation of price changes.
    volatility: sample std of price changes.
    tail_risk: 95th percentile of absolute price changes.
    """
    if len(bars) < 3:
        return MarketProfile(trendiness=0.0, mean_reversion=0.0, volatility=0.0, tail_risk=0.0)

    prices = np.array([float(bar.price) for bar in bars], dtype=float)
    changes = np.diff(prices)
    mean_price = max(float(prices.mean()), _MIN_MEAN_PRICE)

    return MarketProfile(
        trendiness=abs(_ols_slope(prices)) / mean_price,
        mean_reversion=-metrics.autocorrelation1(changes),
        volatility=metrics.std(changes) / mean_price,
        tail_risk=metrics.percentile(np.abs(changes), 0.95) / mean_price,
    )


def profile_bucket(profile: MarketProfile) -> str:
    trend = "trend-high" if profile.trendiness > TREND_THRESHOLD else "trend-low"
    mr = "mr-high" if profile.mean_reversion > MEAN_REVERSION_THRESHOLD else "mr-low"
    vol = "vol-high" if profile.volatility > VOLATILITY_THRESHOLD else "vol-low"
    return f"{trend}:{mr}:{vol}"


def regime_key(market_type: str, profile: MarketProfile) -> str:
    """Memory lookup key, e.g. ``bitcoin:trend-low:mr-high:vol-low``."""
    return f"{market_type}:{profile_bucket(profile)}"


__all__ = [
    "compute_market_profile",
    "profile_bucket",
    "regime_key",
    "TREND_THRESHOLD",
    "MEAN_REVERSION_THRESHOLD",
    "VOLATILITY_THRESHOLD",
]
