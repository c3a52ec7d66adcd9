from __future__ import annotations

from typing import Optional, Sequence

from foundry.backtest.types import PositionSide, PriceBar, StrategySignal

from .common import BaseStrategy, move_to
from .indicators import avg, slope, window
from .params import DriftTrendParams

# Fraction of min_slope below which a drift counts as stalled.
_STALL_FRACTION = 0.4


class DriftTrendStrategy(BaseStrategy):
    name = "weather-drift-trend"
    params_cls = DriftTrendParams

    def _warmup(self) -> int:
        p = self.params
        return max(p.trend_window, p.trigger_window)

    def get_signal(
        self, series: Sequence[PriceBar], index: int, current_position: PositionSide
    ) -> Optional[StrategySignal]:
        p = self.params
        trend = window(series, index, p.trend_window)
        base_slope = slope(trend)
        long_mean = avg(trend)
        if long_mean <= 0:
            return None

        trigger_mean = avg(window(series, index, p.trigger_window))
        if abs(trigger_mean - long_mean) / long_mean > p.max_distance:
            return move_to(0, current_position, "Weather drift over-extended")

        if base_slope >= p.min_slope and current_position != 1:
            return move_to(1, current_position, "Weather upward drift")
        if base_slope <= -p.min_slope and current_position != -1:
            return move_to(-1, current_position, "Weather downward drift")
        if abs(base_slope) < p.min_slope * _STALL_FRACTION:
            return move_to(0, current_position, "Weather drift stalled")
        return None
