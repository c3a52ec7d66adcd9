from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class MomentumParams:
    # Core signal
    short_window: int = 6
    long_window: int = 24
    threshold: float = 0.005  # fractional MA separation

    # Filters
    adx_threshold: float = 20.0  # trade only when trend strength >= this
    adx_period: int = 14
    confirmation_bars: int = 2  # consecutive agreeing bars before a signal
    use_volatility_scaling: bool = True  # widen threshold with recent vol


@dataclass(frozen=True)
class BreakoutParams:
    breakout_window: int = 20  # channel lookback, excludes the current bar
    confirm_window: int = 6
    volatility_floor: float = 0.007  # min local std / mean to trade
    stop_to_flat: float = 0.02


@dataclass(frozen=True)
class RegimeTrendParams:
    trend_window: int = 32
    trigger_window: int = 10
    rsi_period: int = 12
    rsi_long_min: float = 56.0
    rsi_short_max: float = 44.0
    volatility_cap: float = 0.03
    neutral_band: float = 0.0015  # |trend strength| below this flattens


@dataclass(frozen=True)
class MeanReversionParams:
    window: int = 24
    z_entry: float = 1.2
    z_exit: float = 0.3
    use_ewma: bool = True
    ewma_alpha: float = 0.1
    max_half_life: float = 30.0  # bars; slower reversion is not traded
    use_volatility_scaling: bool = True
    regime_vol_window: int = 50


@dataclass(frozen=True)
class RangeReversionParams:
    window: int = 28
    z_entry: float = 1.3
    z_exit: float = 0.35
    volatility_ceiling: float = 0.04


@dataclass(frozen=True)
class DriftTrendParams:
    trend_window: int = 36
    trigger_window: int = 8
    min_slope: float = 0.0009
    max_distance: float = 0.03  # trigger/trend mean gap that counts as over-extended


__all__ = [
    "MomentumParams",
    "BreakoutParams",
    "RegimeTrendParams",
    "MeanReversionParams",
    "RangeReversionParams",
    "DriftTrendParams",
]
