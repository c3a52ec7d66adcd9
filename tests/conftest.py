from __future__ import annotations

import os
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pytest

from foundry.backtest.types import PriceBar, StrategySignal
from foundry.logging_utils import setup_test_logging

os.environ.setdefault("ENV", "test")


@pytest.fixture(scope="session", autouse=True)
def configure_logging(tmp_path_factory):
    setup_test_logging(tmp_path_factory.mktemp("foundry-logs"))
    yield


class ScriptedStrategy:
    """Emits a fixed target position at chosen bar indices and records every call."""

    def __init__(
        self,
        script: Dict[int, int],
        *,
        warmup_bars: int = 0,
        name: str = "scripted",
    ) -> None:
        self.script = dict(script)
        self.warmup_bars = warmup_bars
        self.name = name
        self.calls: List[int] = []

    def get_signal(self, series, index, current_position) -> Optional[StrategySignal]:
        self.calls.append(index)
        target = self.script.get(index)
        if target is None:
            return None
        return StrategySignal(target_position=target, reason=f"scripted {target}")


class IdleStrategy:
    name = "idle"
    warmup_bars = 0

    def __init__(self) -> None:
        self.calls: List[int] = []

    def get_signal(self, series, index, current_position):
        self.calls.append(index)
        return None


def _bars(prices: Sequence[float], start: float = 0.0, step: float = 1.0) -> List[PriceBar]:
    return [PriceBar(timestamp=start + i * step, price=float(p)) for i, p in enumerate(prices)]


@pytest.fixture
def make_bars() -> Callable[..., List[PriceBar]]:
    return _bars


@pytest.fixture
def scripted() -> type:
    return ScriptedStrategy


@pytest.fixture
def idle() -> type:
    return IdleStrategy


@pytest.fixture(scope="module")
def noisy_bars() -> List[PriceBar]:
    """300 bars: slow climb, sharp rally, then a choppy fade."""
    rng = np.random.default_rng(seed=42)
    drift = np.r_[np.full(100, 0.0002), np.full(100, 0.003), np.full(100, -0.001)]
    noise = rng.normal(0.0, 0.008, drift.size)
    prices = 100.0 * np.cumprod(1 + drift + noise)
    return _bars(prices)


@pytest.fixture(scope="module")
def oscillating_bars() -> List[PriceBar]:
    """Mean-reverting series around 50 with a 24-bar cycle plus noise."""
    rng = np.random.default_rng(seed=7)
    t = np.arange(240)
    prices = 50.0 + 2.0 * np.sin(2 * np.pi * t / 24) + rng.normal(0.0, 0.3, t.size)
    return _bars(prices)
