from __future__ import annotations

from typing import List, Sequence

from loguru import logger

from foundry.backtest.types import FoldConfig, FoldWindow, PriceBar
from foundry.errors import ConfigError


def validate_fold_config(cfg: FoldConfig) -> FoldConfig:
    if cfg.min_train_bars < 2:
        raise ConfigError("min_train_bars must be >= 2")
    if cfg.test_bars < 1:
        raise ConfigError("test_bars must be >= 1")
    if cfg.step_bars < 1:
        raise ConfigError("step_bars must be >= 1")
    if cfg.max_folds < 0:
        raise ConfigError("max_folds must be >= 0")
    return cfg


def build_expanding_folds(bars: Sequence[PriceBar], cfg: FoldConfig) -> List[FoldWindow]:
    """
    Expanding-window train/test folds.

    Fold k trains on ``bars[:min_train_bars + k * step_bars]`` and tests on the
    ``test_bars`` bars starting at the last training bar, so the test equity
    curve picks up from the train window's closing price. Too little data yields
    an empty list rather than an error.
    """
    validate_fold_config(cfg)
    series = tuple(bars)
    folds: List[FoldWindow] = []

    train_end = cfg.min_train_bars
    while train_end - 1 + cfg.test_bars <= len(series) and len(folds) < cfg.max_folds:
        test_start = train_end - 1
        folds.append(
            FoldWindow(
                train_bars=series[:train_end],
                test_bars=series[test_start : test_start + cfg.test_bars],
                fold_index=len(folds),
            )
        )
        train_end += cfg.step_bars

    if not folds:
        logger.debug(
            "[folds] insufficient data bars={} min_train={} test={}",
            len(series),
            cfg.min_train_bars,
            cfg.test_bars,
        )
    return folds


__all__ = ["build_expanding_folds", "validate_fold_config"]
