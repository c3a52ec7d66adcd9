from __future__ import annotations

from typing import Optional, Sequence

from foundry.backtest.types import PositionSide, PriceBar, StrategySignal

from .common import BaseStrategy, move_to
from .indicators import avg, closes, ewm_std, ewma, half_life, std, volatility, window
from .params import MeanReversionParams

_MIN_WARMUP = 30
_VOL_SCALE = 5.0


class MeanReversionStrategy(BaseStrategy):
    """
    Fade z-score extremes on series that actually mean-revert.

    Bars are skipped unless the OU half-life of the full history so far is
    positive and at most ``max_half_life``. With volatility scaling both z bands
    widen by ``1 + 5 * vol`` where vol is the std of recent simple returns.
    """

    name = "weather-mean-reversion"
    params_cls = MeanReversionParams

    def _warmup(self) -> int:
        return max(self.params.window, _MIN_WARMUP)

    def get_signal(
        self, series: Sequence[PriceBar], index: int, current_position: PositionSide
    ) -> Optional[StrategySignal]:
        p = self.params
        prices = closes(series, 0, index + 1)

        hl = half_life(prices)
        if hl < 0 or hl > p.max_half_life:
            return None

        sample = window(series, index, p.window)
        if p.use_ewma:
            mean = ewma(sample, p.ewma_alpha)
            sigma = ewm_std(sample, p.ewma_alpha)
        else:
            mean = avg(sample)
            sigma = std(sample)
        if sigma == 0:
            return None

        z = (float(series[index].price) - mean) / sigma
        z_entry, z_exit = p.z_entry, p.z_exit
        if p.use_volatility_scaling:
            scale = 1.0 + volatility(prices, p.regime_vol_window) * _VOL_SCALE
            z_entry *= scale
            z_exit *= scale

        if z > z_entry and current_position != -1:
            return move_to(-1, current_position, f"Price stretched above mean (z: {z:.2f}, HL: {hl:.1f})")
        if z < -z_entry and current_position != 1:
            return move_to(1, current_position, f"Price stretched below mean (z: {z:.2f}, HL: {hl:.1f})")
        if abs(z) < z_exit:
            return move_to(0, current_position, "Reverted near mean")
        return None
