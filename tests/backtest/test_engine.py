from __future__ import annotations

import pytest

from foundry.backtest.engine import run_backtest
from foundry.backtest.types import CostConfig, RiskConfig


def test_long_then_flat_scenario(make_bars, scripted):
    bars = make_bars([100.0, 101.0, 102.0, 99.0])

    result = run_backtest(scripted({1: 1, 3: 0}), "tok", "Will it rise?", bars)

    assert [(t.timestamp, t.price, t.from_position, t.to_position) for t in result.trades] == [
        (1.0, 101.0, 0, 1),
        (3.0, 99.0, 1, 0),
    ]
    assert list(result.equity_curve) == pytest.approx([0.0, 0.0, 1.0, -2.0])
    assert result.total_pnl == pytest.approx(-2.0)
    assert result.max_drawdown == pytest.approx(3.0)
    assert result.trade_count == 2
    assert result.exposure == pytest.approx(0.5)
    assert result.win_rate == 0.0
    assert result.risk_events == 0


def test_spread_cost_on_single_buy(make_bars, scripted):
    bars = make_bars([99.0, 100.0, 102.0])

    result = run_backtest(
        scripted({1: 1}), "tok", "q", bars, costs=CostConfig(spread_bps=100.0)
    )

    assert result.total_costs == pytest.approx(1.0)
    assert result.trades[0].cost == pytest.approx(1.0)
    assert result.total_pnl == pytest.approx(1.0)
    assert result.gross_pnl == pytest.approx(result.total_pnl + result.total_costs)
    assert list(result.returns) == pytest.approx([-1.0, 2.0])


def test_maker_rebate_reduces_cost():
    costs = CostConfig(spread_bps=5.0, slippage_bps=3.0, maker_rebate=2.0)
    assert costs.net_bps == pytest.approx(6.0)


def test_idle_strategy_never_trades(make_bars, idle):
    bars = make_bars([100.0, 103.0, 97.0, 101.0, 100.0])

    result = run_backtest(idle(), "tok", "q", bars)

    assert result.trade_count == 0
    assert result.total_pnl == 0.0
    assert len(result.equity_curve) == len(bars)
    assert result.equity_curve[0] == 0.0
    assert result.exposure == 0.0


def test_strategy_not_called_during_warmup(make_bars, scripted):
    bars = make_bars([100.0 + i for i in range(6)])
    strategy = scripted({}, warmup_bars=3)

    run_backtest(strategy, "tok", "q", bars)

    assert strategy.calls == [3, 4, 5]


def test_stop_loss_flattens_on_cumulative_pnl(make_bars, scripted):
    bars = make_bars([100.0, 100.0, 97.0, 96.0, 95.0])

    result = run_backtest(
        scripted({1: 1}), "tok", "q", bars, risk=RiskConfig(stop_loss=2.0)
    )

    assert result.risk_events == 1
    assert result.trades[-1].reason == "Risk stop-loss"
    assert result.trades[-1].to_position == 0
    assert result.total_pnl == pytest.approx(-3.0)


def test_take_profit_exit(make_bars, scripted):
    bars = make_bars([100.0, 100.0, 103.0, 110.0])

    result = run_backtest(
        scripted({1: 1}), "tok", "q", bars, risk=RiskConfig(take_profit=2.0)
    )

    assert result.trades[-1].reason == "Risk take-profit"
    assert result.total_pnl == pytest.approx(3.0)


def test_cooldown_skips_strategy_calls(make_bars, scripted):
    bars = make_bars([100.0] * 6)
    strategy = scripted({1: 1, 2: -1, 3: 0, 4: -1})

    result = run_backtest(
        strategy, "tok", "q", bars, risk=RiskConfig(min_bars_between_trades=3)
    )

    assert strategy.calls == [1, 4]
    assert [t.to_position for t in result.trades] == [1, -1]


def test_max_trades_caps_strategy(make_bars, scripted):
    bars = make_bars([100.0, 101.0, 102.0, 103.0])
    strategy = scripted({1: 1, 3: 0})

    result = run_backtest(strategy, "tok", "q", bars, risk=RiskConfig(max_trades=1))

    assert result.trade_count == 1
    assert strategy.calls == [1]


def test_invalid_target_raises(make_bars, scripted):
    bars = make_bars([100.0, 101.0, 102.0])
    with pytest.raises(ValueError):
        run_backtest(scripted({1: 2}), "tok", "q", bars)


def test_identical_inputs_give_identical_results(noisy_bars, scripted):
    script = {10: 1, 40: -1, 90: 0, 150: 1}
    first = run_backtest(scripted(script), "tok", "q", noisy_bars, costs=CostConfig(spread_bps=10))
    second = run_backtest(scripted(script), "tok", "q", noisy_bars, costs=CostConfig(spread_bps=10))

    assert first == second
    assert len(first.equity_curve) == len(noisy_bars)


def test_win_rate_counts_bar_increment_at_trade(make_bars, scripted):
    bars = make_bars([100.0, 100.0, 102.0, 103.0])

    # Reversal at bar 2 lands on a +2 bar; the exit at bar 3 lands on a -1 bar.
    result = run_backtest(scripted({1: 1, 2: -1, 3: 0}), "tok", "q", bars)

    assert result.win_rate == pytest.approx(0.5)


def test_empty_series_has_empty_equity_curve(idle):
    result = run_backtest(idle(), "tok", "q", [])

    assert result.bars == 0
    assert result.equity_curve == ()
    assert result.returns == ()
    assert result.total_pnl == 0.0
    assert result.max_drawdown == 0.0
    assert result.exposure == 0.0
