from __future__ import annotations

import itertools
from dataclasses import dataclass, fields
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from loguru import logger

from foundry.backtest.types import CandidateSpec
from foundry.errors import ConfigError, UnknownFamilyError

from .breakout import BreakoutStrategy
from .drift_trend import DriftTrendStrategy
from .mean_reversion import MeanReversionStrategy
from .momentum import MomentumStrategy
from .range_reversion import RangeReversionStrategy
from .regime_trend import RegimeTrendStrategy

T = TypeVar("T")
Constraint = Callable[[Mapping[str, Any]], bool]


def _less_than(low: str, high: str) -> Constraint:
    def check(combo: Mapping[str, Any]) -> bool:
        if low not in combo or high not in combo:
            return True
        return combo[low] < combo[high]

    check.__name__ = f"{low}<{high}"
    return check


@dataclass(frozen=True)
class FamilySpec:
    name: str
    strategy_cls: type
    id_prefix: str
    market_type: str
    default_grid: Dict[str, Tuple[Any, ...]]
    constraints: Tuple[Constraint, ...] = ()

    @property
    def params_cls(self) -> type:
        return self.strategy_cls.params_cls


FAMILIES: Dict[str, FamilySpec] = {
    "btc-momentum": FamilySpec(
        name="btc-momentum",
        strategy_cls=MomentumStrategy,
        id_prefix="btc-mom",
        market_type="bitcoin",
        default_grid={
            "short_window": (4, 6, 8, 10, 12, 16),
            "long_window": (20, 28, 36, 48, 64),
            "threshold": (0.002, 0.0035, 0.005, 0.0075, 0.01),
        },
        constraints=(_less_than("short_window", "long_window"),),
    ),
    "btc-breakout": FamilySpec(
        name="btc-breakout",
        strategy_cls=BreakoutStrategy,
        id_prefix="btc-bo",
        market_type="bitcoin",
        default_grid={
            "breakout_window": (14, 20, 28, 36, 48),
            "confirm_window": (4, 6, 8, 10),
            "volatility_floor": (0.004, 0.007, 0.01, 0.013),
            "stop_to_flat": (0.01, 0.02, 0.03),
        },
    ),
    "btc-regime-trend": FamilySpec(
        name="btc-regime-trend",
        strategy_cls=RegimeTrendStrategy,
        id_prefix="btc-rt",
        market_type="bitcoin",
        default_grid={
            "trend_window": (24, 32, 48, 64),
            "trigger_window": (8, 10, 12, 16),
            "rsi_period": (8, 12, 16),
            "rsi_long_min": (52, 56, 60),
            "rsi_short_max": (48, 44, 40),
            "volatility_cap": (0.02, 0.03, 0.04),
        },
        constraints=(
            _less_than("trigger_window", "trend_window"),
            _less_than("rsi_short_max", "rsi_long_min"),
        ),
    ),
    "weather-mean-reversion": FamilySpec(
        name="weather-mean-reversion",
        strategy_cls=MeanReversionStrategy,
        id_prefix="w-mr",
        market_type="weather",
        default_grid={
            "window": (16, 24, 32, 40, 48, 56),
            "z_entry": (1.0, 1.2, 1.4, 1.6, 1.8),
            "z_exit": (0.2, 0.3, 0.4, 0.5),
        },
        constraints=(_less_than("z_exit", "z_entry"),),
    ),
    "weather-range-reversion": FamilySpec(
        name="weather-range-reversion",
        strategy_cls=RangeReversionStrategy,
        id_prefix="w-rr",
        market_type="weather",
        default_grid={
            "window": (20, 28, 36, 44, 56),
            "z_entry": (1.0, 1.3, 1.6, 1.9),
            "z_exit": (0.25, 0.35, 0.45),
            "volatility_ceiling": (0.03, 0.04, 0.05, 0.06),
        },
        constraints=(_less_than("z_exit", "z_entry"),),
    ),
    "weather-drift-trend": FamilySpec(
        name="weather-drift-trend",
        strategy_cls=DriftTrendStrategy,
        id_prefix="w-dt",
        market_type="weather",
        default_grid={
            "trend_window": (20, 28, 36, 48, 64),
            "trigger_window": (6, 8, 10, 12),
            "min_slope": (0.0006, 0.0009, 0.0012, 0.0015),
            "max_distance": (0.02, 0.03, 0.04, 0.05),
        },
        constraints=(_less_than("trigger_window", "trend_window"),),
    ),
}


def get_family(name: str) -> FamilySpec:
    try:
        return FAMILIES[name]
    except KeyError:
        raise UnknownFamilyError(name) from None


def families_for_market(market_type: str) -> List[str]:
    return [name for name, spec in FAMILIES.items() if spec.market_type == market_type]


def expand_param_grid(
    grid: Mapping[str, Iterable[Any]], constraints: Sequence[Constraint] = ()
) -> List[Dict[str, Any]]:
    """Cartesian product of ``grid`` in key order, minus combos failing a constraint."""
    if not grid:
        return [{}]
    keys = list(grid.keys())
    combos = []
    for values in itertools.product(*(grid[k] for k in keys)):
        combo = dict(zip(keys, values, strict=True))
        if all(check(combo) for check in constraints):
            combos.append(combo)
    return combos


def cap_deterministic(items: Sequence[T], cap: Optional[int]) -> List[T]:
    """Strided subsample of at most ``cap`` items: index floor(i * len / cap)."""
    items = list(items)
    if cap is None or len(items) <= cap:
        return items
    if cap <= 0:
        return []
    stride = len(items) / cap
    return [items[int(i * stride)] for i in range(cap)]


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return format(value, "g")
    return str(value)


def candidate_id(spec: FamilySpec, combo: Mapping[str, Any]) -> str:
    return "-".join([spec.id_prefix, *(_format_value(v) for v in combo.values())])


def build_candidates(
    family: str,
    grid: Optional[Mapping[str, Iterable[Any]]] = None,
    cap: Optional[int] = None,
) -> List[CandidateSpec]:
    """
    Candidate specs for one family.

    ``grid`` entries replace the matching default grid axes; unknown keys are a
    ConfigError. Each spec's ``build_strategy`` makes a new strategy from its
    frozen params on every call.
    """
    spec = get_family(family)
    merged: Dict[str, Tuple[Any, ...]] = dict(spec.default_grid)
    if grid:
        known = {f.name for f in fields(spec.params_cls)}
        unknown = sorted(set(grid) - known)
        if unknown:
            raise ConfigError(f"Unknown params for {family}: {unknown}")
        for key, values in grid.items():
            if not isinstance(values, (list, tuple, set, range)):
                values = (values,)
            merged[key] = tuple(values)

    combos = cap_deterministic(expand_param_grid(merged, spec.constraints), cap)
    candidates = []
    for combo in combos:
        params = spec.params_cls(**combo)
        candidates.append(
            CandidateSpec(
                id=candidate_id(spec, combo),
                family=spec.name,
                params=params,
                build_strategy=partial(spec.strategy_cls.from_params, params),
            )
        )
    logger.debug("[strats] family={} candidates={}", family, len(candidates))
    return candidates


__all__ = [
    "FamilySpec",
    "FAMILIES",
    "get_family",
    "families_for_market",
    "expand_param_grid",
    "cap_deterministic",
    "candidate_id",
    "build_candidates",
]
