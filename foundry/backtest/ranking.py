from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, List, Mapping, Optional, Sequence

from loguru import logger

from foundry.backtest.types import CandidateEvaluation, CandidateMetrics


@dataclass(frozen=True, slots=True)
class MetricDescriptor:
    name: str
    accessor: Callable[[CandidateMetrics], float]
    higher_is_better: bool
    weight: float


# Weights sum to 1.0.
SCORING_TABLE: tuple[MetricDescriptor, ...] = (
    MetricDescriptor("avg_test_pnl", lambda m: m.avg_test_pnl, True, 0.22),
    MetricDescriptor("avg_test_sharpe", lambda m: m.avg_test_sharpe, True, 0.20),
    MetricDescriptor("avg_test_sortino", lambda m: m.avg_test_sortino, True, 0.18),
    MetricDescriptor("consistency", lambda m: m.consistency, True, 0.15),
    MetricDescriptor("avg_test_drawdown", lambda m: m.avg_test_drawdown, False, 0.10),
    MetricDescriptor("overfit_penalty", lambda m: m.overfit_penalty, False, 0.10),
    MetricDescriptor("tail_penalty", lambda m: m.tail_penalty, False, 0.05),
)


def rank_percentile(values: Sequence[float], value: float, higher_is_better: bool) -> float:
    """
    Fractional rank of ``value`` within ``values`` (which contains it).

    (count of values <= value, minus one) / max(1, n - 1), flipped when lower is
    better. Ranks are insensitive to magnitude, so infinite metrics are harmless.
    """
    if not values:
        return 0.0
    less_or_equal = sum(1 for v in values if v <= value)
    pct = (less_or_equal - 1) / max(1, len(values) - 1)
    return pct if higher_is_better else 1.0 - pct


def score_candidate_set(
    evals: Sequence[CandidateEvaluation],
    family_multipliers: Optional[Mapping[str, float]] = None,
) -> List[CandidateEvaluation]:
    """
    Score every candidate against its peers and return them best-first.

    ``family_multipliers`` is an optional plain mapping (family -> factor) that the
    caller derives from its own regime history; families not present keep 1.0.
    """
    columns = {
        d.name: [d.accessor(e.metrics) for e in evals] for d in SCORING_TABLE
    }
    multipliers = family_multipliers or {}

    scored: List[CandidateEvaluation] = []
    for evaluation in evals:
        score = 0.0
        for d in SCORING_TABLE:
            score += d.weight * rank_percentile(
                columns[d.name], d.accessor(evaluation.metrics), d.higher_is_better
            )
        score *= float(multipliers.get(evaluation.candidate.family, 1.0))
        scored.append(replace(evaluation, score=score))

    scored.sort(key=lambda e: e.score, reverse=True)
    if scored:
        logger.debug(
            "[rank] candidates={} top={} score={:.3f}",
            len(scored),
            scored[0].candidate.id,
            scored[0].score,
        )
    return scored


__all__ = ["MetricDescriptor", "SCORING_TABLE", "rank_percentile", "score_candidate_set"]
