from __future__ import annotations

from dataclasses import fields, is_dataclass
from typing import Any, Mapping, Optional, Sequence

from foundry.backtest.types import PositionSide, PriceBar, StrategySignal
from foundry.errors import ConfigError


# -------- Param helpers --------
def coerce_params(params_cls: type, params: Any) -> Any:
    """Build ``params_cls`` from a dict (unknown keys rejected) or pass an instance through."""
    if params is None:
        return params_cls()
    if isinstance(params, params_cls):
        return params
    if isinstance(params, Mapping):
        known = {f.name for f in fields(params_cls)}
        unknown = sorted(set(params) - known)
        if unknown:
            raise ConfigError(f"Unknown {params_cls.__name__} fields: {unknown}")
        return params_cls(**dict(params))
    if is_dataclass(params):
        raise ConfigError(
            f"Expected {params_cls.__name__}, got {type(params).__name__}"
        )
    raise ConfigError(f"Cannot build {params_cls.__name__} from {params!r}")


def move_to(
    target: PositionSide, current: PositionSide, reason: str
) -> Optional[StrategySignal]:
    """Signal a change to ``target``, or None when already there."""
    if target == current:
        return None
    return StrategySignal(target_position=target, reason=reason)


class BaseStrategy:
    """
    Shared shape for the bundled strategy families.

    Subclasses set ``name`` and ``params_cls`` and implement ``_warmup`` and
    ``get_signal``. Instances are single-use: build a new one per backtest pass.
    """

    name: str = ""
    params_cls: type = object

    def __init__(self, params: Any = None) -> None:
        self.params = coerce_params(self.params_cls, params)
        self.warmup_bars = int(self._warmup())

    @classmethod
    def from_params(cls, params: Any) -> "BaseStrategy":
        return cls(params)

    def _warmup(self) -> int:
        raise NotImplementedError

    def get_signal(
        self, series: Sequence[PriceBar], index: int, current_position: PositionSide
    ) -> Optional[StrategySignal]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.params!r})"


__all__ = ["coerce_params", "move_to", "BaseStrategy"]
