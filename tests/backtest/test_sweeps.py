from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import yaml
from loguru import logger

from foundry.backtest.idea_memory import load_memory
from foundry.backtest.sweeps import build_sweep_config, load_bars_csv, run_sweep
from foundry.errors import ConfigError


def _write_bars(path: Path, n: int, seed: int = 3) -> Path:
    rng = np.random.default_rng(seed)
    prices = 30_000.0 * np.cumprod(1 + rng.normal(0.0005, 0.01, n))
    pd.DataFrame({"timestamp": np.arange(n) * 3600.0, "price": prices}).to_csv(
        path, index=False
    )
    return path


@pytest.fixture
def sweep_config(tmp_path) -> Path:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    _write_bars(data_dir / "btc-long.csv", 150)
    _write_bars(data_dir / "btc-short.csv", 30)
    config = {
        "output_dir": "out",
        "min_bars": 100,
        "top_per_market": 3,
        "portfolio_top_k": 5,
        "max_workers": 2,
        "markets": [
            {
                "market_id": "btc-long",
                "question": "Will BTC close higher?",
                "market_type": "bitcoin",
                "bars_path": "data/btc-long.csv",
            },
            {"market_id": "btc-short", "market_type": "bitcoin", "bars_path": "data/btc-short.csv"},
            {"market_id": "btc-gone", "market_type": "bitcoin", "bars_path": "data/missing.csv"},
        ],
        "families": {"bitcoin": ["btc-momentum"]},
        "params": {
            "btc-momentum": {"short_window": [4, 6], "long_window": [12], "threshold": 0.002}
        },
        "folds": {"min_train_bars": 60, "test_bars": 20, "step_bars": 20, "max_folds": 2},
        "costs": {"spread_bps": 5, "slippage_bps": 2},
    }
    path = tmp_path / "sweep.yaml"
    path.write_text(yaml.safe_dump(config))
    return path


def test_run_sweep_writes_summary_and_memory(sweep_config):
    result = run_sweep(sweep_config, run_id="test-run")

    assert result["run_id"] == "test-run"
    assert [run.market_id for run in result["runs"]] == ["btc-long"]
    run = result["runs"][0]
    assert run.candidates_evaluated == 2
    assert len(run.top) == 2
    assert run.regime_key.startswith("bitcoin:")
    assert 0 < len(result["portfolio"]) <= 2

    summary = json.loads(Path(result["summary_path"]).read_text())
    assert summary["summary"]["bitcoin"]["markets"] == 1
    assert summary["summary"]["portfolio_algos"] == len(result["portfolio"])
    assert summary["config"]["families"] == {"bitcoin": ["btc-momentum"]}
    assert summary["results"]["markets"][0]["top"][0]["family"] == "btc-momentum"
    assert Path(result["summary_path"]).parent.parent == sweep_config.parent / "out"

    memory = load_memory(Path(result["memory_path"]))
    assert memory["buckets"][run.regime_key]["runs"] == 1


def test_second_sweep_accumulates_memory(sweep_config):
    first = run_sweep(sweep_config, run_id="one")
    second = run_sweep(sweep_config, run_id="two")

    key = second["runs"][0].regime_key
    assert key == first["runs"][0].regime_key
    assert load_memory(Path(second["memory_path"]))["buckets"][key]["runs"] == 2


def test_config_merges_over_settings(tmp_path):
    cfg = {"markets": [{"market_id": "w1", "market_type": "weather", "bars_path": "w1.csv"}]}

    config = build_sweep_config(cfg, base_dir=tmp_path)

    assert config.markets[0].bars_path == tmp_path / "w1.csv"
    assert config.markets[0].question == "w1"
    assert config.families["weather"] == (
        "weather-mean-reversion",
        "weather-range-reversion",
        "weather-drift-trend",
    )
    assert config.memory_path == tmp_path / "artifacts" / "ideas" / "idea-memory.json"
    assert config.max_workers == 1


ONE_MARKET = [{"market_id": "x", "market_type": "bitcoin", "bars_path": "x"}]


@pytest.mark.parametrize(
    "cfg",
    [
        {"markets": []},
        {"markets": [{"market_id": "x", "market_type": "bitcoin"}]},
        {"markets": ONE_MARKET, "folds": 5},
        {"markets": ONE_MARKET, "top_per_market": 0},
        {"markets": ONE_MARKET, "top_per_market": -1},
        {"markets": ONE_MARKET, "portfolio_top_k": -1},
        {"markets": ONE_MARKET, "per_family_cap": -1},
    ],
)
def test_bad_config_raises(tmp_path, cfg):
    with pytest.raises(ConfigError):
        build_sweep_config(cfg, base_dir=tmp_path)


def test_zero_top_per_market_is_rejected_before_running(sweep_config):
    cfg = yaml.safe_load(sweep_config.read_text())
    cfg["top_per_market"] = 0
    sweep_config.write_text(yaml.safe_dump(cfg))

    with pytest.raises(ConfigError, match="top_per_market"):
        run_sweep(sweep_config, run_id="zero-top")
    assert not (sweep_config.parent / "out").exists()


def test_market_failure_is_logged_with_market_id(sweep_config):
    records = []
    sink_id = logger.add(lambda message: records.append(message.record), level="ERROR")
    try:
        run_sweep(sweep_config, run_id="failing")
    finally:
        logger.remove(sink_id)

    failures = [r for r in records if "failed" in r["message"]]
    assert len(failures) == 1
    assert failures[0]["extra"]["market_id"] == "btc-gone"
    assert failures[0]["exception"] is not None


def test_load_bars_csv_sorts_and_dedupes(tmp_path):
    path = tmp_path / "bars.csv"
    path.write_text("Timestamp,Price\n3,103\n1,101\n2,\n1,100.5\n2,102\n")

    bars = load_bars_csv(path)

    assert [(b.timestamp, b.price) for b in bars] == [(1.0, 100.5), (2.0, 102.0), (3.0, 103.0)]


def test_load_bars_csv_requires_columns(tmp_path):
    path = tmp_path / "bars.csv"
    path.write_text("ts,close\n1,100\n")

    with pytest.raises(ConfigError):
        load_bars_csv(path)
