from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from foundry.backtest.types import PositionSide, PriceBar, StrategySignal

from .common import BaseStrategy, move_to
from .indicators import avg, closes, rsi, std, window
from .params import RegimeTrendParams


class RegimeTrendStrategy(BaseStrategy):
    name = "btc-regime-trend"
    params_cls = RegimeTrendParams

    def _warmup(self) -> int:
        p = self.params
        return max(p.trend_window, p.trigger_window, p.rsi_period + 1)

    def get_signal(
        self, series: Sequence[PriceBar], index: int, current_position: PositionSide
    ) -> Optional[StrategySignal]:
        p = self.params
        trend_ma = avg(window(series, index, p.trend_window))
        trigger = window(series, index, p.trigger_window)
        trigger_ma = avg(trigger)
        if trend_ma <= 0:
            return None

        strength = (trigger_ma - trend_ma) / trend_ma
        rsi_value = rsi(closes(series, 0, index + 1), p.rsi_period)

        # Volatility of absolute price changes, relative to the trigger mean.
        trigger_vol = std(np.diff(trigger))
        if trigger_ma > 0 and trigger_vol / trigger_ma > p.volatility_cap:
            return move_to(0, current_position, "Volatility too high")

        if strength > 0 and rsi_value >= p.rsi_long_min and current_position != 1:
            return move_to(1, current_position, "Regime trend long")
        if strength < 0 and rsi_value <= p.rsi_short_max and current_position != -1:
            return move_to(-1, current_position, "Regime trend short")
        if abs(strength) < p.neutral_band:
            return move_to(0, current_position, "Trend neutralized")
        return None
