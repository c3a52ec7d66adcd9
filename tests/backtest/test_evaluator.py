from __future__ import annotations

import pytest

from foundry.backtest.evaluator import evaluate_candidates
from foundry.backtest.folds import build_expanding_folds
from foundry.backtest.types import CandidateSpec, FoldConfig

FOLDS = FoldConfig(min_train_bars=20, test_bars=10, step_bars=5, max_folds=3)


@pytest.fixture
def rising_bars(make_bars):
    return make_bars([100.0 + i for i in range(40)])


def _spec(cid, factory, family="test"):
    return CandidateSpec(id=cid, family=family, params={"id": cid}, build_strategy=factory)


def test_long_candidate_outranks_idle(rising_bars, scripted, idle):
    folds = build_expanding_folds(rising_bars, FOLDS)
    candidates = [
        _spec("idle", idle),
        _spec("long", lambda: scripted({1: 1})),
    ]

    ranked = evaluate_candidates("tok", "q", rising_bars, candidates, folds)

    assert [e.candidate.id for e in ranked] == ["long", "idle"]
    long_metrics = ranked[0].metrics
    assert long_metrics.avg_test_pnl == pytest.approx(8.0)
    assert long_metrics.median_test_pnl == pytest.approx(8.0)
    assert long_metrics.consistency == 1.0
    # Train pnl per fold is 18, 23 and 28.
    assert long_metrics.overfit_penalty == pytest.approx(15.0)
    assert long_metrics.tail_penalty == 0.0

    idle_metrics = ranked[1].metrics
    assert idle_metrics.avg_test_pnl == 0.0
    assert idle_metrics.consistency == 0.0
    assert idle_metrics.overfit_penalty == 0.0
    assert len(ranked[1].folds) == 3


def test_every_pass_gets_a_fresh_strategy(rising_bars, scripted):
    folds = build_expanding_folds(rising_bars, FOLDS)
    built = []

    def factory():
        strategy = scripted({1: 1})
        built.append(strategy)
        return strategy

    evaluate_candidates("tok", "q", rising_bars, [_spec("long", factory)], folds)

    assert len(built) == 2 * len(folds)
    for strategy in built:
        assert strategy.calls[0] == 1


@pytest.mark.parametrize("case", ["no_candidates", "no_folds", "short_series"])
def test_degenerate_inputs_return_empty(case, rising_bars, make_bars, idle):
    folds = build_expanding_folds(rising_bars, FOLDS)
    candidates = [_spec("idle", idle)]
    if case == "no_candidates":
        assert evaluate_candidates("tok", "q", rising_bars, [], folds) == []
    elif case == "no_folds":
        assert evaluate_candidates("tok", "q", rising_bars, candidates, []) == []
    else:
        short = make_bars([100.0, 101.0])
        assert evaluate_candidates("tok", "q", short, candidates, folds) == []
