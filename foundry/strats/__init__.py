from .breakout import BreakoutStrategy
from .drift_trend import DriftTrendStrategy
from .mean_reversion import MeanReversionStrategy
from .momentum import MomentumStrategy
from .params import (
    BreakoutParams,
    DriftTrendParams,
    MeanReversionParams,
    MomentumParams,
    RangeReversionParams,
    RegimeTrendParams,
)
from .range_reversion import RangeReversionStrategy
from .regime_trend import RegimeTrendStrategy
from .registry import FAMILIES, build_candidates, get_family

__all__ = [
    "MomentumStrategy",
    "MomentumParams",
    "BreakoutStrategy",
    "BreakoutParams",
    "RegimeTrendStrategy",
    "RegimeTrendParams",
    "MeanReversionStrategy",
    "MeanReversionParams",
    "RangeReversionStrategy",
    "RangeReversionParams",
    "DriftTrendStrategy",
    "DriftTrendParams",
    "FAMILIES",
    "build_candidates",
    "get_family",
]
