from __future__ import annotations

from typing import Optional, Sequence

from foundry.backtest.types import PositionSide, PriceBar, StrategySignal

from .common import BaseStrategy, move_to
from .indicators import adx, avg, closes, volatility, window
from .params import MomentumParams

# Enough history for a settled ADX(14).
_MIN_WARMUP = 30
_VOL_LOOKBACK = 20
_VOL_SCALE = 10.0


class MomentumStrategy(BaseStrategy):
    """
    Short/long moving-average crossover gated by trend strength.

    A crossover must hold for ``confirmation_bars`` consecutive evaluated bars
    before it produces a signal. The counters live on the instance and reset
    whenever ADX drops below ``adx_threshold``.
    """

    name = "btc-momentum"
    params_cls = MomentumParams

    def __init__(self, params: MomentumParams | None = None) -> None:
        super().__init__(params)
        self.consecutive_bullish = 0
        self.consecutive_bearish = 0

    def _warmup(self) -> int:
        p = self.params
        return max(p.short_window, p.long_window, _MIN_WARMUP)

    def get_signal(
        self, series: Sequence[PriceBar], index: int, current_position: PositionSide
    ) -> Optional[StrategySignal]:
        p = self.params
        prices = closes(series, 0, index + 1)

        strength = adx(prices, p.adx_period)
        if strength < p.adx_threshold:
            self.consecutive_bullish = 0
            self.consecutive_bearish = 0
            return None

        short_ma = avg(window(series, index, p.short_window))
        long_ma = avg(window(series, index, p.long_window))

        threshold = p.threshold
        if p.use_volatility_scaling:
            threshold *= 1.0 + volatility(prices, _VOL_LOOKBACK) * _VOL_SCALE

        if short_ma > long_ma * (1.0 + threshold):
            self.consecutive_bullish += 1
            self.consecutive_bearish = 0
        elif short_ma < long_ma * (1.0 - threshold):
            self.consecutive_bearish += 1
            self.consecutive_bullish = 0
        else:
            self.consecutive_bullish = 0
            self.consecutive_bearish = 0

        if self.consecutive_bullish >= p.confirmation_bars:
            return move_to(1, current_position, f"Bullish MA crossover (ADX: {strength:.1f})")
        if self.consecutive_bearish >= p.confirmation_bars:
            return move_to(-1, current_position, f"Bearish MA crossover (ADX: {strength:.1f})")
        return None
