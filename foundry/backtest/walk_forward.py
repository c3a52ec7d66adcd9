from __future__ import annotations

import math
from typing import Callable, Sequence, TypeVar

from loguru import logger

from foundry.backtest.engine import run_backtest
from foundry.backtest.types import (
    BacktestResult,
    CostConfig,
    PriceBar,
    RiskConfig,
    Strategy,
    WalkForwardResult,
)
from foundry.errors import WalkForwardError

P = TypeVar("P")

MIN_WALK_FORWARD_BARS = 20


def _is_better(candidate: BacktestResult, incumbent: BacktestResult) -> bool:
    """Higher pnl, then higher Sharpe, then shallower drawdown. Exact ties keep the incumbent."""
    if candidate.total_pnl != incumbent.total_pnl:
        return candidate.total_pnl > incumbent.total_pnl
    if candidate.sharpe != incumbent.sharpe:
        return candidate.sharpe > incumbent.sharpe
    return candidate.max_drawdown < incumbent.max_drawdown


def split_index_for(n_bars: int, split_ratio: float) -> int:
    return min(n_bars - 1, max(2, int(math.floor(n_bars * split_ratio))))


def overfit_score(train_sharpe: float, test_sharpe: float) -> float:
    if test_sharpe == 0:
        return math.inf if train_sharpe > 0 else 0.0
    return abs(train_sharpe / test_sharpe)


def robustness_score(train_sharpe: float, test_sharpe: float) -> float:
    return test_sharpe - 0.5 * abs(train_sharpe - test_sharpe)


def run_walk_forward(
    token_id: str,
    market_question: str,
    bars: Sequence[PriceBar],
    split_ratio: float,
    candidates: Sequence[P],
    build_strategy: Callable[[P], Strategy],
    risk: RiskConfig | None = None,
    costs: CostConfig | None = None,
) -> WalkForwardResult:
    """
    Pick the best parameter set on a train prefix and replay it on the remainder.

    Args:
        token_id (str): Market identifier.
        market_question (str): Human-readable market label.
        bars (Sequence[PriceBar]): At least 20 ascending bars.
        split_ratio (float): Fraction of bars used for training; clamped so both
            sides keep at least two bars.
        candidates (Sequence[P]): Parameter objects, evaluated in order.
        build_strategy (Callable[[P], Strategy]): Returns a new strategy per call.
        risk (RiskConfig | None): Optional risk overlay applied to both passes.
        costs (CostConfig | None): Optional frictions applied to both passes.

    Returns:
        WalkForwardResult: Winner's params, its train and test results and the
        overfit/robustness diagnostics.

    Raises:
        WalkForwardError: Fewer than 20 bars or no candidates.
    """
    series = tuple(bars)
    if len(series) < MIN_WALK_FORWARD_BARS:
        raise WalkForwardError(f"Not enough bars ({len(series)}) for walk-forward")
    if not candidates:
        raise WalkForwardError("No parameter candidates provided")

    split_index = split_index_for(len(series), split_ratio)
    train_bars = series[:split_index]
    test_bars = series[split_index - 1 :]

    best_params = candidates[0]
    best_train = run_backtest(
        build_strategy(best_params), token_id, market_question, train_bars, risk, costs
    )
    for params in candidates[1:]:
        result = run_backtest(
            build_strategy(params), token_id, market_question, train_bars, risk, costs
        )
        if _is_better(result, best_train):
            best_train = result
            best_params = params

    test = run_backtest(
        build_strategy(best_params), token_id, market_question, test_bars, risk, costs
    )

    overfit = overfit_score(best_train.sharpe, test.sharpe)
    robustness = robustness_score(best_train.sharpe, test.sharpe)
    logger.info(
        "[wf] token={} candidates={} split={} train_pnl={:.4f} test_pnl={:.4f} robustness={:.3f}",
        token_id,
        len(candidates),
        split_index,
        best_train.total_pnl,
        test.total_pnl,
        robustness,
    )
    return WalkForwardResult(
        best_params=best_params,
        candidates_evaluated=len(candidates),
        train=best_train,
        test=test,
        overfit_score=overfit,
        robustness_score=robustness,
    )


__all__ = [
    "run_walk_forward",
    "split_index_for",
    "overfit_score",
    "robustness_score",
    "MIN_WALK_FORWARD_BARS",
]
