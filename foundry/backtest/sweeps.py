from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd
import yaml
from loguru import logger

from foundry.backtest import idea_memory
from foundry.backtest.evaluator import evaluate_candidates
from foundry.backtest.folds import build_expanding_folds, validate_fold_config
from foundry.backtest.portfolio import MarketRun, build_portfolio, collect_portfolio_candidates
from foundry.backtest.regime import compute_market_profile, regime_key
from foundry.backtest.report import to_jsonable
from foundry.backtest.types import CandidateSpec, CostConfig, FoldConfig, PriceBar, RiskConfig
from foundry.errors import ConfigError
from foundry.logging_utils import logging_context
from foundry.settings import Settings, get_settings
from foundry.strats.registry import build_candidates, families_for_market

PORTFOLIO_PER_MARKET = 2
LEADERBOARD_HINTS = 3


@dataclass(frozen=True)
class MarketSpec:
    market_id: str
    question: str
    market_type: str
    bars_path: Path


@dataclass(frozen=True)
class SweepConfig:
    markets: tuple[MarketSpec, ...]
    families: Dict[str, tuple[str, ...]]
    params: Dict[str, Dict[str, Any]]
    folds: FoldConfig
    risk: Optional[RiskConfig]
    costs: Optional[CostConfig]
    min_bars: int
    per_family_cap: int
    top_per_market: int
    portfolio_top_k: int
    memory_strength: float
    memory_path: Path
    output_dir: Path
    max_workers: int


def _load_config(path: Path) -> Dict[str, Any]:
    data = yaml.safe_load(path.read_text())
    if not isinstance(data, dict):
        raise ConfigError("Sweep config must be a mapping")
    return data


def _section(cfg: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = cfg.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _parse_markets(cfg: Mapping[str, Any], base_dir: Path) -> tuple[MarketSpec, ...]:
    raw = cfg.get("markets")
    if not isinstance(raw, list) or not raw:
        raise ConfigError("Sweep config needs a non-empty 'markets' list")
    markets = []
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ConfigError(f"markets[{idx}] must be a mapping")
        missing = [k for k in ("market_id", "market_type", "bars_path") if not entry.get(k)]
        if missing:
            raise ConfigError(f"markets[{idx}] missing {missing}")
        bars_path = Path(str(entry["bars_path"]))
        if not bars_path.is_absolute():
            bars_path = base_dir / bars_path
        markets.append(
            MarketSpec(
                market_id=str(entry["market_id"]),
                question=str(entry.get("question") or entry["market_id"]),
                market_type=str(entry["market_type"]),
                bars_path=bars_path,
            )
        )
    return tuple(markets)


def validate_sweep_config(config: SweepConfig) -> SweepConfig:
    if config.top_per_market < 1:
        raise ConfigError("top_per_market must be >= 1")
    if config.portfolio_top_k < 0:
        raise ConfigError("portfolio_top_k must be >= 0")
    if config.per_family_cap < 0:
        raise ConfigError("per_family_cap must be >= 0")
    if config.min_bars < 0:
        raise ConfigError("min_bars must be >= 0")
    return config


def build_sweep_config(
    cfg: Mapping[str, Any], *, base_dir: Path, settings: Settings | None = None
) -> SweepConfig:
    """Merge a parsed YAML document over the environment defaults."""
    settings = settings or get_settings()
    markets = _parse_markets(cfg, base_dir)

    families_cfg = _section(cfg, "families")
    families: Dict[str, tuple[str, ...]] = {}
    for market_type in sorted({m.market_type for m in markets}):
        names = families_cfg.get(market_type) or families_for_market(market_type)
        if not names:
            raise ConfigError(f"No strategy families for market type '{market_type}'")
        families[market_type] = tuple(str(n) for n in names)

    folds_cfg = _section(cfg, "folds")
    base_folds = settings.folds
    folds = validate_fold_config(
        FoldConfig(
            min_train_bars=int(folds_cfg.get("min_train_bars", base_folds.min_train_bars)),
            test_bars=int(folds_cfg.get("test_bars", base_folds.test_bars)),
            step_bars=int(folds_cfg.get("step_bars", base_folds.step_bars)),
            max_folds=int(folds_cfg.get("max_folds", base_folds.max_folds)),
        )
    )

    risk_cfg = _section(cfg, "risk")
    base_risk = settings.risk.to_risk_config()
    risk = RiskConfig(
        stop_loss=risk_cfg.get("stop_loss", base_risk.stop_loss),
        take_profit=risk_cfg.get("take_profit", base_risk.take_profit),
        min_bars_between_trades=risk_cfg.get(
            "min_bars_between_trades", base_risk.min_bars_between_trades
        ),
        max_trades=risk_cfg.get("max_trades", base_risk.max_trades),
    )

    costs_cfg = _section(cfg, "costs")
    costs = settings.costs.to_cost_config()
    if costs_cfg:
        base_costs = costs or CostConfig()
        costs = CostConfig(
            spread_bps=float(costs_cfg.get("spread_bps", base_costs.spread_bps)),
            slippage_bps=float(costs_cfg.get("slippage_bps", base_costs.slippage_bps)),
            maker_rebate=float(costs_cfg.get("maker_rebate", base_costs.maker_rebate)),
        )

    factory = settings.factory
    output_dir = Path(cfg.get("output_dir") or "artifacts/ideas")
    if not output_dir.is_absolute():
        output_dir = base_dir / output_dir
    memory_path = Path(cfg.get("memory_path") or output_dir / idea_memory.MEMORY_FILENAME)
    if not memory_path.is_absolute():
        memory_path = base_dir / memory_path

    return validate_sweep_config(
        SweepConfig(
            markets=markets,
            families=families,
            params={str(k): dict(v or {}) for k, v in _section(cfg, "params").items()},
            folds=folds,
            risk=risk,
            costs=costs,
            min_bars=int(cfg.get("min_bars", factory.min_bars)),
            per_family_cap=int(cfg.get("per_family_cap", factory.max_candidates_per_family)),
            top_per_market=int(cfg.get("top_per_market", factory.top_per_market)),
            portfolio_top_k=int(cfg.get("portfolio_top_k", factory.portfolio_top_k)),
            memory_strength=float(cfg.get("memory_strength", factory.memory_strength)),
            memory_path=memory_path,
            output_dir=output_dir,
            max_workers=max(1, int(cfg.get("max_workers", min(4, len(markets))))),
        )
    )


def load_bars_csv(path: Path) -> List[PriceBar]:
    """
    Read a ``timestamp,price`` CSV exported by the data collector.

    Rows with missing values are dropped, the series is sorted by timestamp and
    duplicate timestamps keep their last price.
    """
    frame = pd.read_csv(path)
    frame.columns = [str(c).strip().lower() for c in frame.columns]
    missing = {"timestamp", "price"} - set(frame.columns)
    if missing:
        raise ConfigError(f"{path} is missing columns {sorted(missing)}")
    frame = (
        frame[["timestamp", "price"]]
        .apply(pd.to_numeric, errors="coerce")
        .dropna()
        .sort_values("timestamp", kind="mergesort")
        .drop_duplicates(subset="timestamp", keep="last")
    )
    return [
        PriceBar(timestamp=float(ts), price=float(px))
        for ts, px in zip(frame["timestamp"], frame["price"])
    ]


def _build_family_candidates(config: SweepConfig) -> Dict[str, List[CandidateSpec]]:
    by_type: Dict[str, List[CandidateSpec]] = {}
    for market_type, names in config.families.items():
        candidates: List[CandidateSpec] = []
        for name in names:
            candidates.extend(
                build_candidates(name, config.params.get(name), cap=config.per_family_cap)
            )
        by_type[market_type] = candidates
        logger.info(
            "[sweep] market_type={} families={} candidates={}",
            market_type,
            ",".join(names),
            len(candidates),
        )
    return by_type


def _run_market(
    market: MarketSpec,
    candidates: Sequence[CandidateSpec],
    config: SweepConfig,
    memory: Dict[str, Any],
) -> Optional[MarketRun]:
    with logging_context(market_id=market.market_id):
        bars = load_bars_csv(market.bars_path)
        if len(bars) < config.min_bars:
            logger.warning(
                "[sweep] skip market={} bars={} min={}",
                market.market_id,
                len(bars),
                config.min_bars,
            )
            return None

        folds = build_expanding_folds(bars, config.folds)
        if not folds:
            logger.warning("[sweep] insufficient folds market={}", market.market_id)
            return None

        profile = compute_market_profile(bars)
        key = regime_key(market.market_type, profile)
        multipliers = idea_memory.family_multipliers(memory, key, config.memory_strength)

        ranked = evaluate_candidates(
            market.market_id,
            market.question,
            bars,
            candidates,
            folds,
            risk=config.risk,
            costs=config.costs,
            family_multipliers=multipliers,
        )
        if not ranked:
            return None

        top = tuple(ranked[: config.top_per_market])
        logger.info(
            "[sweep] market={} bars={} folds={} candidates={} top={} score={:.3f}",
            market.market_id,
            len(bars),
            len(folds),
            len(ranked),
            top[0].candidate.id,
            top[0].score,
        )
        return MarketRun(
            market_id=market.market_id,
            question=market.question,
            market_type=market.market_type,
            bars=len(bars),
            profile=profile,
            regime_key=key,
            candidates_evaluated=len(ranked),
            top=top,
        )


def summarize_runs(runs: Sequence[MarketRun]) -> Dict[str, Any]:
    if not runs:
        return {"markets": 0, "avg_candidates": 0.0, "avg_top_score": 0.0}
    return {
        "markets": len(runs),
        "avg_candidates": sum(r.candidates_evaluated for r in runs) / len(runs),
        "avg_top_score": sum(r.top[0].score if r.top else 0.0 for r in runs) / len(runs),
    }


def _run_payload(run: MarketRun) -> Dict[str, Any]:
    return {
        "market_id": run.market_id,
        "question": run.question,
        "market_type": run.market_type,
        "bars": run.bars,
        "profile": to_jsonable(run.profile),
        "regime_key": run.regime_key,
        "candidates_evaluated": run.candidates_evaluated,
        "top": [
            {
                "id": e.candidate.id,
                "family": e.candidate.family,
                "params": to_jsonable(e.candidate.params),
                "score": e.score,
                "metrics": to_jsonable(e.metrics),
            }
            for e in run.top
        ],
    }


def run_sweep(config_path: Path, *, run_id: str | None = None) -> Dict[str, Any]:
    config_path = Path(config_path)
    config = build_sweep_config(_load_config(config_path), base_dir=config_path.parent)
    started_at = datetime.now(timezone.utc)
    timestamp = started_at.strftime("%Y%m%d-%H%M%S")
    run_ref = run_id or timestamp
    sweep_dir = config.output_dir / timestamp
    sweep_dir.mkdir(parents=True, exist_ok=True)

    with logging_context(run_id=run_ref):
        logger.info(
            "[sweep] starting run={} dir={} markets={} workers={}",
            run_ref,
            sweep_dir,
            len(config.markets),
            config.max_workers,
        )
        started = perf_counter()
        memory = idea_memory.load_memory(config.memory_path)
        candidates_by_type = _build_family_candidates(config)

        completed: Dict[int, MarketRun] = {}
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            future_map = {
                executor.submit(
                    _run_market, market, candidates_by_type[market.market_type], config, memory
                ): (idx, market)
                for idx, market in enumerate(config.markets)
            }
            for future in as_completed(future_map):
                idx, market = future_map[future]
                try:
                    run = future.result()
                except Exception as exc:
                    with logging_context(market_id=market.market_id):
                        logger.exception("[sweep] market={} failed: {}", market.market_id, exc)
                    continue
                if run is not None:
                    completed[idx] = run

        runs = [completed[idx] for idx in sorted(completed)]
        for run in runs:
            idea_memory.update_memory(memory, run.regime_key, run.top)

        portfolio = build_portfolio(
            collect_portfolio_candidates(runs, per_market=PORTFOLIO_PER_MARKET),
            top_k=config.portfolio_top_k,
        )

        market_types = sorted({m.market_type for m in config.markets})
        payload = {
            "run_id": run_ref,
            "started_at": started_at.isoformat(),
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "config": {
                "config_path": str(config_path),
                "folds": to_jsonable(config.folds),
                "risk": to_jsonable(config.risk),
                "costs": to_jsonable(config.costs),
                "min_bars": config.min_bars,
                "per_family_cap": config.per_family_cap,
                "top_per_market": config.top_per_market,
                "portfolio_top_k": config.portfolio_top_k,
                "memory_strength": config.memory_strength,
                "families": {k: list(v) for k, v in config.families.items()},
            },
            "summary": {
                **{
                    mt: summarize_runs([r for r in runs if r.market_type == mt])
                    for mt in market_types
                },
                "portfolio_algos": len(portfolio),
            },
            "memory_hints": [
                {
                    "market_id": run.market_id,
                    "market_type": run.market_type,
                    "regime_key": run.regime_key,
                    "leaderboard": idea_memory.bucket_leaderboard(memory, run.regime_key)[
                        :LEADERBOARD_HINTS
                    ],
                }
                for run in runs
            ],
            "results": {
                "markets": [_run_payload(run) for run in runs],
                "portfolio": to_jsonable(portfolio),
            },
        }

        summary_path = sweep_dir / "summary.json"
        summary_path.write_text(json.dumps(payload, indent=2, default=str))
        idea_memory.save_memory(memory, config.memory_path)

        duration_ms = (perf_counter() - started) * 1000.0
        logger.info(
            "[sweep] completed run={} dir={} markets={} portfolio={} duration_ms={:.0f}",
            run_ref,
            sweep_dir,
            len(runs),
            len(portfolio),
            duration_ms,
        )
    return {
        "run_id": run_ref,
        "sweep_dir": str(sweep_dir),
        "summary_path": str(summary_path),
        "memory_path": str(config.memory_path),
        "runs": runs,
        "portfolio": portfolio,
    }


__all__ = [
    "MarketSpec",
    "SweepConfig",
    "build_sweep_config",
    "validate_sweep_config",
    "load_bars_csv",
    "summarize_runs",
    "run_sweep",
]
