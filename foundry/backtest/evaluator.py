from __future__ import annotations

from typing import List, Mapping, Optional, Sequence

from loguru import logger

from foundry.backtest import metrics
from foundry.backtest.engine import run_backtest
from foundry.backtest.ranking import score_candidate_set
from foundry.backtest.types import (
    CandidateEvaluation,
    CandidateMetrics,
    CandidateSpec,
    CostConfig,
    FoldRun,
    FoldWindow,
    PriceBar,
    RiskConfig,
)


def summarize_candidate(folds: Sequence[FoldRun]) -> CandidateMetrics:
    test_pnls = [f.test.total_pnl for f in folds]
    test_drawdowns = [f.test.max_drawdown for f in folds]
    avg_train_pnl = metrics.mean([f.train.total_pnl for f in folds])
    avg_test_pnl = metrics.mean(test_pnls)

    positive = sum(1 for p in test_pnls if p > 0)
    return CandidateMetrics(
        avg_test_pnl=avg_test_pnl,
        median_test_pnl=metrics.median(test_pnls),
        avg_test_sharpe=metrics.mean([f.test.sharpe for f in folds]),
        avg_test_sortino=metrics.mean([f.test.sortino for f in folds]),
        avg_test_drawdown=metrics.mean(test_drawdowns),
        avg_exposure=metrics.mean([f.test.exposure for f in folds]),
        avg_trade_count=metrics.mean([f.test.trade_count for f in folds]),
        consistency=positive / max(1, len(test_pnls)),
        overfit_penalty=max(0.0, avg_train_pnl - avg_test_pnl),
        tail_penalty=metrics.percentile(test_drawdowns, 0.9),
    )


def evaluate_candidate(
    candidate: CandidateSpec,
    folds: Sequence[FoldWindow],
    *,
    token_id: str,
    question: str,
    risk: RiskConfig | None = None,
    costs: CostConfig | None = None,
) -> CandidateEvaluation:
    """Backtest one candidate on the train and test slice of every fold."""
    runs: List[FoldRun] = []
    for fold in folds:
        # Separate instances: a strategy's counters must not carry from train into test.
        train = run_backtest(
            candidate.build_strategy(), token_id, question, fold.train_bars, risk, costs
        )
        test = run_backtest(
            candidate.build_strategy(), token_id, question, fold.test_bars, risk, costs
        )
        runs.append(FoldRun(fold_index=fold.fold_index, train=train, test=test))
    return CandidateEvaluation(
        candidate=candidate,
        folds=tuple(runs),
        metrics=summarize_candidate(runs),
    )


def evaluate_candidates(
    token_id: str,
    question: str,
    bars: Sequence[PriceBar],
    candidates: Sequence[CandidateSpec],
    folds: Sequence[FoldWindow],
    risk: RiskConfig | None = None,
    costs: CostConfig | None = None,
    family_multipliers: Optional[Mapping[str, float]] = None,
) -> List[CandidateEvaluation]:
    """
    Cross-validate every candidate over every fold and return them ranked.

    Empty candidates or folds, or fewer than three bars, yield an empty list.
    """
    if len(bars) < 3 or not candidates or not folds:
        return []

    evaluations = [
        evaluate_candidate(
            candidate, folds, token_id=token_id, question=question, risk=risk, costs=costs
        )
        for candidate in candidates
    ]
    logger.debug(
        "[evaluate] token={} candidates={} folds={}", token_id, len(candidates), len(folds)
    )
    return score_candidate_set(evaluations, family_multipliers)


__all__ = ["evaluate_candidates", "evaluate_candidate", "summarize_candidate"]
