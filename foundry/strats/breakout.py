from __future__ import annotations

from typing import Optional, Sequence

from foundry.backtest.types import PositionSide, PriceBar, StrategySignal

from .common import BaseStrategy, move_to
from .indicators import avg, closes, highest, lowest, std, window
from .params import BreakoutParams


class BreakoutStrategy(BaseStrategy):
    """Trade the first close outside the prior ``breakout_window`` channel."""

    name = "btc-breakout"
    params_cls = BreakoutParams

    def _warmup(self) -> int:
        p = self.params
        return max(p.breakout_window + 1, p.confirm_window)

    def get_signal(
        self, series: Sequence[PriceBar], index: int, current_position: PositionSide
    ) -> Optional[StrategySignal]:
        p = self.params
        current = float(series[index].price)
        prev = float(series[index - 1].price)

        channel = closes(series, index - p.breakout_window, index)
        upper = highest(channel)
        lower = lowest(channel)

        local = window(series, index, p.confirm_window)
        local_mean = avg(local)
        if local_mean <= 0 or std(local) / local_mean < p.volatility_floor:
            return None

        if current_position == 1 and current < local_mean * (1.0 - p.stop_to_flat):
            return move_to(0, current_position, "Breakout stop-to-flat (long)")
        if current_position == -1 and current > local_mean * (1.0 + p.stop_to_flat):
            return move_to(0, current_position, "Breakout stop-to-flat (short)")

        if current > upper and prev <= upper:
            return move_to(1, current_position, "Upside breakout")
        if current < lower and prev >= lower:
            return move_to(-1, current_position, "Downside breakout")
        return None
