from __future__ import annotations

import pytest

from foundry import settings as settings_module
from foundry.backtest.types import CostConfig, FoldConfig


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in (
        "RISK_STOP_LOSS",
        "RISK_TAKE_PROFIT",
        "RISK_MIN_BARS_BETWEEN_TRADES",
        "RISK_MAX_TRADES",
        "COST_SPREAD_BPS",
        "COST_SLIPPAGE_BPS",
        "COST_MAKER_REBATE_BPS",
        "IDEA_MIN_TRAIN_BARS",
        "IDEA_MEMORY_STRENGTH",
        "SENTRY_DSN",
        "SENTRY_ENVIRONMENT",
        "BACKTEST_MIN_BARS",
    ):
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    s = settings_module.get_settings()

    assert s.risk.to_risk_config().min_bars_between_trades == 2
    assert s.risk.stop_loss is None
    assert s.costs.enabled is False
    assert s.costs.to_cost_config() is None
    assert s.folds.to_fold_config() == FoldConfig(70, 24, 10, 8)
    assert s.factory.memory_strength == 0.0
    assert s.backtest.train_split == 0.7
    assert s.sentry.enabled is False


def test_risk_settings_parse_blank_and_bad_values(monkeypatch):
    monkeypatch.setenv("RISK_STOP_LOSS", " ")
    monkeypatch.setenv("RISK_TAKE_PROFIT", "2.5")
    monkeypatch.setenv("RISK_MIN_BARS_BETWEEN_TRADES", "soon")

    risk = settings_module.get_risk_settings()

    assert risk.stop_loss is None
    assert risk.take_profit == 2.5
    assert risk.min_bars_between_trades == 2


def test_cost_settings_enable_on_any_value(monkeypatch):
    monkeypatch.setenv("COST_SPREAD_BPS", "5")
    monkeypatch.setenv("COST_MAKER_REBATE_BPS", "1")

    costs = settings_module.get_cost_settings().to_cost_config()

    assert costs == CostConfig(spread_bps=5.0, slippage_bps=0.0, maker_rebate=1.0)
    assert costs.net_bps == pytest.approx(4.0)


def test_fold_and_factory_overrides(monkeypatch):
    monkeypatch.setenv("IDEA_MIN_TRAIN_BARS", "90")
    monkeypatch.setenv("IDEA_MEMORY_STRENGTH", "0.25")

    settings_module.reload_settings()

    assert settings_module.get_fold_settings().min_train_bars == 90
    assert settings_module.get_factory_settings().memory_strength == 0.25


def test_reload_settings_returns_fresh_instance(monkeypatch):
    monkeypatch.setenv("SENTRY_DSN", "https://public@sentry.example/1")
    s1 = settings_module.get_settings()
    s2 = settings_module.reload_settings()
    assert s1.sentry.dsn == "https://public@sentry.example/1"
    assert s2.sentry.enabled is True
    assert s1 is not s2


def test_section_getters_read_backtest_and_sentry(monkeypatch):
    monkeypatch.setenv("BACKTEST_MIN_BARS", "45")
    monkeypatch.setenv("SENTRY_DSN", "https://public@sentry.example/2")
    monkeypatch.setenv("SENTRY_ENVIRONMENT", "ci")

    backtest = settings_module.get_backtest_settings()
    sentry = settings_module.get_sentry_settings()

    assert backtest.min_bars == 45
    assert backtest.train_split == 0.7
    assert sentry.enabled is True
    assert sentry.environment == "ci"
