from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple

from loguru import logger

from foundry.backtest.types import CandidateEvaluation, MarketProfile


@dataclass(frozen=True, slots=True)
class MarketRun:
    """Outcome of one market in a sweep: its regime and best-first evaluations."""

    market_id: str
    question: str
    market_type: str
    bars: int
    profile: MarketProfile
    regime_key: str
    candidates_evaluated: int
    top: Tuple[CandidateEvaluation, ...]


@dataclass(frozen=True, slots=True)
class PortfolioCandidate:
    market_id: str
    market_type: str
    question: str
    family: str
    candidate_id: str
    params: Any
    score: float
    drawdown: float
    consistency: float


@dataclass(frozen=True, slots=True)
class PortfolioAllocation:
    market_id: str
    market_type: str
    question: str
    family: str
    candidate_id: str
    params: Any
    score: float
    drawdown: float
    consistency: float
    raw_weight: float
    weight: float


def collect_portfolio_candidates(
    runs: Sequence[MarketRun], per_market: int = 2
) -> List[PortfolioCandidate]:
    rows: List[PortfolioCandidate] = []
    for run in runs:
        for evaluation in run.top[: max(0, per_market)]:
            rows.append(
                PortfolioCandidate(
                    market_id=run.market_id,
                    market_type=run.market_type,
                    question=run.question,
                    family=evaluation.candidate.family,
                    candidate_id=evaluation.candidate.id,
                    params=evaluation.candidate.params,
                    score=evaluation.score,
                    drawdown=evaluation.metrics.avg_test_drawdown,
                    consistency=evaluation.metrics.consistency,
                )
            )
    return rows


def build_portfolio(
    candidates: Sequence[PortfolioCandidate], top_k: int = 20
) -> List[PortfolioAllocation]:
    """
    Weight the top ``top_k`` candidates by positive score, penalised by drawdown.

    raw_weight = max(0, score) / sum(max(0, score)) * 1 / (1 + max(0, drawdown)),
    then renormalised to sum to 1. With no positive score every weight is zero.
    """
    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)[: max(0, top_k)]
    score_total = sum(max(0.0, c.score) for c in ranked)

    raw: List[float] = []
    for c in ranked:
        base = max(0.0, c.score) / score_total if score_total > 0 else 0.0
        raw.append(base * (1.0 / (1.0 + max(0.0, c.drawdown))))
    raw_total = sum(raw)

    allocations = [
        PortfolioAllocation(
            market_id=c.market_id,
            market_type=c.market_type,
            question=c.question,
            family=c.family,
            candidate_id=c.candidate_id,
            params=c.params,
            score=c.score,
            drawdown=c.drawdown,
            consistency=c.consistency,
            raw_weight=r,
            weight=r / raw_total if raw_total > 0 else 0.0,
        )
        for c, r in zip(ranked, raw)
    ]
    logger.debug("[portfolio] candidates={} allocated={}", len(candidates), len(allocations))
    return allocations


__all__ = [
    "MarketRun",
    "PortfolioCandidate",
    "PortfolioAllocation",
    "collect_portfolio_candidates",
    "build_portfolio",
]
