from __future__ import annotations

from typing import Optional, Sequence

from foundry.backtest.types import PositionSide, PriceBar, StrategySignal

from .common import BaseStrategy, move_to
from .indicators import avg, std, window
from .params import RangeReversionParams


class RangeReversionStrategy(BaseStrategy):
    """Band fade that stands aside when relative volatility exceeds the ceiling."""

    name = "weather-range-reversion"
    params_cls = RangeReversionParams

    def _warmup(self) -> int:
        return self.params.window

    def get_signal(
        self, series: Sequence[PriceBar], index: int, current_position: PositionSide
    ) -> Optional[StrategySignal]:
        p = self.params
        sample = window(series, index, p.window)
        mean = avg(sample)
        sigma = std(sample)
        if mean <= 0 or sigma == 0:
            return None

        if sigma / mean > p.volatility_ceiling:
            return move_to(0, current_position, "Weather vol regime unsafe")

        z = (float(series[index].price) - mean) / sigma
        if z > p.z_entry and current_position != -1:
            return move_to(-1, current_position, "Weather upper-band fade")
        if z < -p.z_entry and current_position != 1:
            return move_to(1, current_position, "Weather lower-band fade")
        if abs(z) <= p.z_exit:
            return move_to(0, current_position, "Weather mean reached")
        return None
