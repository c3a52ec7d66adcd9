from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional, Protocol, Sequence, Tuple

PositionSide = Literal[-1, 0, 1]


@dataclass(frozen=True, slots=True)
class PriceBar:
    """Single observation of a market price. Series are ascending by timestamp."""

    timestamp: float
    price: float


@dataclass(frozen=True, slots=True)
class StrategySignal:
    target_position: PositionSide
    reason: str


class Strategy(Protocol):
    """
    Capability a caller plugs into the engine.

    ``get_signal`` may only read ``series[: index + 1]``. The engine never calls it
    for ``index < warmup_bars`` and may skip further indices (cooldown, trade cap).
    Returning ``None`` means "keep the current position".
    """

    name: str
    warmup_bars: int

    def get_signal(
        self, series: Sequence[PriceBar], index: int, current_position: PositionSide
    ) -> Optional[StrategySignal]: ...


@dataclass(frozen=True, slots=True)
class BacktestTrade:
    timestamp: float
    price: float
    from_position: PositionSide
    to_position: PositionSide
    reason: str
    cost: float = 0.0


@dataclass(frozen=True, slots=True)
class RiskConfig:
    """
    Optional risk overlay applied by the engine.

    Attributes:
        stop_loss (float | None): Flatten once cumulative pnl falls to -|stop_loss|.
        take_profit (float | None): Flatten once cumulative pnl reaches |take_profit|.
        min_bars_between_trades (int | None): Cooldown after any position change.
        max_trades (int | None): Stop consulting the strategy after this many trades.
    """

    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    min_bars_between_trades: Optional[int] = None
    max_trades: Optional[int] = None


@dataclass(frozen=True, slots=True)
class CostConfig:
    """
    Per-unit frictions in basis points of the fill price.

    Attributes:
        spread_bps (float): Half-spread paid on each unit of position change.
        slippage_bps (float): Slippage paid on each unit of position change.
        maker_rebate (float): Rebate earned per unit, in basis points.
    """

    spread_bps: float = 0.0
    slippage_bps: float = 0.0
    maker_rebate: float = 0.0

    @property
    def net_bps(self) -> float:
        return float(self.spread_bps) + float(self.slippage_bps) - float(self.maker_rebate)


@dataclass(frozen=True, slots=True)
class BacktestResult:
    strategy_name: str
    token_id: str
    market_question: str
    bars: int
    trades: Tuple[BacktestTrade, ...]
    equity_curve: Tuple[float, ...]
    returns: Tuple[float, ...]
    total_pnl: float
    gross_pnl: float
    total_costs: float
    max_drawdown: float
    win_rate: float
    sharpe: float
    sortino: float
    profit_factor: float
    ulcer_index: float
    tail_ratio: float
    expectancy: float
    calmar: float
    exposure: float
    trade_count: int
    risk_events: int
    avg_return: float
    volatility: float


@dataclass(frozen=True, slots=True)
class FoldConfig:
    min_train_bars: int
    test_bars: int
    step_bars: int
    max_folds: int


@dataclass(frozen=True, slots=True)
class FoldWindow:
    """Train/test pair. ``test_bars[0]`` is ``train_bars[-1]`` by construction."""

    train_bars: Tuple[PriceBar, ...]
    test_bars: Tuple[PriceBar, ...]
    fold_index: int


@dataclass(frozen=True, slots=True)
class CandidateSpec:
    """
    One parameterization of one strategy family.

    ``build_strategy`` must return a new instance on every call; strategies keep
    per-instance state (confirmation counters) that is scoped to a single pass.
    """

    id: str
    family: str
    params: Any
    build_strategy: Callable[[], Strategy] = field(repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class FoldRun:
    fold_index: int
    train: BacktestResult
    test: BacktestResult


@dataclass(frozen=True, slots=True)
class CandidateMetrics:
    avg_test_pnl: float
    median_test_pnl: float
    avg_test_sharpe: float
    avg_test_sortino: float
    avg_test_drawdown: float
    avg_exposure: float
    avg_trade_count: float
    consistency: float
    overfit_penalty: float
    tail_penalty: float


@dataclass(frozen=True, slots=True)
class CandidateEvaluation:
    candidate: CandidateSpec
    folds: Tuple[FoldRun, ...]
    metrics: CandidateMetrics
    score: float = 0.0


@dataclass(frozen=True, slots=True)
class MarketProfile:
    trendiness: float
    mean_reversion: float
    volatility: float
    tail_risk: float


@dataclass(frozen=True, slots=True)
class WalkForwardResult:
    best_params: Any
    candidates_evaluated: int
    train: BacktestResult
    test: BacktestResult
    overfit_score: float
    robustness_score: float


__all__ = [
    "PositionSide",
    "PriceBar",
    "StrategySignal",
    "Strategy",
    "BacktestTrade",
    "RiskConfig",
    "CostConfig",
    "BacktestResult",
    "FoldConfig",
    "FoldWindow",
    "CandidateSpec",
    "FoldRun",
    "CandidateMetrics",
    "CandidateEvaluation",
    "MarketProfile",
    "WalkForwardResult",
]
