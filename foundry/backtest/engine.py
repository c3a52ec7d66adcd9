from __future__ import annotations

from typing import List, Optional, Sequence

from loguru import logger

from foundry.backtest import metrics
from foundry.backtest.types import (
    BacktestResult,
    BacktestTrade,
    CostConfig,
    PositionSide,
    PriceBar,
    RiskConfig,
    Strategy,
)

_VALID_POSITIONS = (-1, 0, 1)

# Sentinel so the first trade is never blocked by the cooldown.
_NO_TRADE_YET = -1_000_000


def _risk_exit_reason(
    risk: RiskConfig | None, pnl: float, position: PositionSide
) -> Optional[str]:
    """
    Returns the exit label when cumulative pnl breaches a risk limit.

    Args:
        risk (RiskConfig | None): The risk overlay, or None for no risk logic.
        pnl (float): Cumulative run pnl after this bar's mark-to-market.
        position (PositionSide): The position currently held.

    Returns:
        Optional[str]: "Risk stop-loss", "Risk take-profit" or None.
    """
    if risk is None or position == 0:
        return None
    if risk.stop_loss is not None and pnl <= -abs(float(risk.stop_loss)):
        return "Risk stop-loss"
    if risk.take_profit is not None and pnl >= abs(float(risk.take_profit)):
        return "Risk take-profit"
    return None


def _trade_cost(
    net_bps: float, price: float, from_position: int, to_position: int
) -> float:
    return net_bps / 10_000.0 * float(price) * abs(to_position - from_position)


def _strategy_due(
    i: int,
    warmup_bars: int,
    trade_count: int,
    risk: RiskConfig | None,
    last_trade_index: int,
) -> bool:
    if i < warmup_bars:
        return False
    if risk is None:
        return True
    if risk.max_trades is not None and trade_count >= int(risk.max_trades):
        return False
    min_gap = int(risk.min_bars_between_trades or 0)
    return i - last_trade_index >= min_gap


def run_backtest(
    strategy: Strategy,
    token_id: str,
    market_question: str,
    bars: Sequence[PriceBar],
    risk: RiskConfig | None = None,
    costs: CostConfig | None = None,
) -> BacktestResult:
    """
    Replay a bar series through a strategy holding at most one unit long or short.

    Every bar marks the open position to market, then applies the risk overlay
    (even during warmup), then consults the strategy unless it is still warming
    up, the trade cap is reached, or the cooldown since the last trade is active.
    Position changes pay ``costs`` per unit changed.

    The win rate counts signal trades that fire on a bar whose own mark-to-market
    increment was non-zero, and is a winning move when that increment was positive.
    It is a bar-level figure, not round-trip trade pnl; downstream rankings were
    calibrated against it so it is kept as is.

    Args:
        strategy (Strategy): A fresh strategy instance for this pass.
        token_id (str): Identifier of the market being replayed.
        market_question (str): Human-readable market label.
        bars (Sequence[PriceBar]): Ascending, de-duplicated price bars.
        risk (RiskConfig | None): Optional stop/take-profit/cooldown/trade-cap overlay.
        costs (CostConfig | None): Optional frictions in basis points.

    Returns:
        BacktestResult: The immutable summary of the run.
    """
    series = tuple(bars)
    n = len(series)
    net_bps = costs.net_bps if costs is not None else 0.0
    warmup_bars = max(0, int(strategy.warmup_bars))

    position: int = 0
    pnl = 0.0
    total_costs = 0.0
    trades: List[BacktestTrade] = []
    equity_curve: List[float] = [0.0] if n else []
    returns: List[float] = []
    winning_moves = 0
    total_moves = 0
    last_trade_index = _NO_TRADE_YET
    risk_events = 0
    exposed_bars = 0

    for i in range(1, n):
        prev = series[i - 1]
        curr = series[i]
        incremental = position * (float(curr.price) - float(prev.price))
        pnl += incremental
        bar_cost = 0.0

        exit_reason = _risk_exit_reason(risk, pnl, position)
        if exit_reason:
            cost = _trade_cost(net_bps, curr.price, position, 0)
            pnl -= cost
            bar_cost += cost
            total_costs += cost
            trades.append(
                BacktestTrade(
                    timestamp=curr.timestamp,
                    price=float(curr.price),
                    from_position=position,
                    to_position=0,
                    reason=exit_reason,
                    cost=cost,
                )
            )
            position = 0
            last_trade_index = i
            risk_events += 1

        if _strategy_due(i, warmup_bars, len(trades), risk, last_trade_index):
            signal = strategy.get_signal(series, i, position)
            if signal is not None and signal.target_position != position:
                target = signal.target_position
                if target not in _VALID_POSITIONS:
                    raise ValueError(
                        f"{strategy.name} returned invalid target position {target!r}"
                    )
                cost = _trade_cost(net_bps, curr.price, position, target)
                pnl -= cost
                bar_cost += cost
                total_costs += cost
                trades.append(
                    BacktestTrade(
                        timestamp=curr.timestamp,
                        price=float(curr.price),
                        from_position=position,
                        to_position=target,
                        reason=signal.reason,
                        cost=cost,
                    )
                )
                position = target
                last_trade_index = i

                if incremental != 0:
                    total_moves += 1
                    if incremental > 0:
                        winning_moves += 1

        equity_curve.append(pnl)
        returns.append(incremental - bar_cost)
        if position != 0:
            exposed_bars += 1

    capital = float(series[0].price) if n else 0.0
    stats = metrics.series_stats(returns, equity_curve, capital=capital)
    win_rate = winning_moves / total_moves if total_moves else 0.0
    exposure = exposed_bars / n if n else 0.0

    logger.debug(
        "[engine] strategy={} token={} bars={} trades={} pnl={:.4f} costs={:.4f} riskEvents={}",
        strategy.name,
        token_id,
        n,
        len(trades),
        pnl,
        total_costs,
        risk_events,
    )

    return BacktestResult(
        strategy_name=strategy.name,
        token_id=token_id,
        market_question=market_question,
        bars=n,
        trades=tuple(trades),
        equity_curve=tuple(equity_curve),
        returns=tuple(returns),
        total_pnl=pnl,
        gross_pnl=pnl + total_costs,
        total_costs=total_costs,
        max_drawdown=stats.max_drawdown,
        win_rate=win_rate,
        sharpe=stats.sharpe,
        sortino=stats.sortino,
        profit_factor=stats.profit_factor,
        ulcer_index=stats.ulcer_index,
        tail_ratio=stats.tail_ratio,
        expectancy=stats.expectancy,
        calmar=stats.calmar,
        exposure=exposure,
        trade_count=len(trades),
        risk_events=risk_events,
        avg_return=stats.avg_return,
        volatility=stats.volatility,
    )


__all__ = ["run_backtest"]
