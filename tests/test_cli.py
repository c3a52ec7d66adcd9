from __future__ import annotations

import json

import numpy as np
import pandas as pd
import pytest
import yaml

from foundry.cli import build_parser, main


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.setenv("IDEA_MAX_CANDIDATES_PER_FAMILY", "5")


def _json_from(out: str):
    return json.loads(out[out.index("{\n") :])


def _csv(path, n):
    rng = np.random.default_rng(11)
    prices = 100.0 * np.cumprod(1 + rng.normal(0.0, 0.01, n))
    pd.DataFrame({"timestamp": np.arange(n), "price": prices}).to_csv(path, index=False)
    return path


def test_parser_requires_subcommand():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_walk_forward_prints_json(tmp_path, capsys):
    bars = _csv(tmp_path / "btc.csv", 80)

    code = main(["walk-forward", "--bars", str(bars), "--family", "btc-breakout", "--split", "0.6"])

    assert code == 0
    payload = _json_from(capsys.readouterr().out)
    assert payload["family"] == "btc-breakout"
    assert payload["candidates_evaluated"] == 5
    assert payload["train"]["bars"] == 48
    assert payload["test"]["bars"] == 33
    assert payload["train"]["token_id"] == "btc"


def test_walk_forward_writes_output_file(tmp_path):
    bars = _csv(tmp_path / "btc.csv", 60)
    out = tmp_path / "reports" / "wf.json"

    code = main(
        [
            "walk-forward",
            "--bars",
            str(bars),
            "--family",
            "weather-drift-trend",
            "--token",
            "tok-1",
            "--output",
            str(out),
        ]
    )

    assert code == 0
    payload = json.loads(out.read_text())
    assert payload["train"]["token_id"] == "tok-1"
    assert set(payload["best_params"]) == {
        "trend_window",
        "trigger_window",
        "min_slope",
        "max_distance",
    }


def test_walk_forward_rejects_short_series(tmp_path):
    bars = _csv(tmp_path / "short.csv", 10)
    assert main(["walk-forward", "--bars", str(bars), "--family", "btc-momentum"]) == 1


def test_unknown_family_exits_with_error_code(tmp_path):
    bars = _csv(tmp_path / "btc.csv", 60)
    assert main(["walk-forward", "--bars", str(bars), "--family", "nope"]) == 2


def test_missing_bars_file_exits_with_error_code(tmp_path):
    assert main(["walk-forward", "--bars", str(tmp_path / "absent.csv"), "--family", "btc-momentum"]) == 2


def test_missing_sweep_config_exits_with_error_code(tmp_path):
    assert main(["sweep", "--config", str(tmp_path / "absent.yaml")]) == 2


def test_sweep_command(tmp_path, capsys):
    _csv(tmp_path / "w1.csv", 130)
    config = {
        "output_dir": "out",
        "markets": [{"market_id": "w1", "market_type": "weather", "bars_path": "w1.csv"}],
        "families": {"weather": ["weather-range-reversion"]},
        "folds": {"min_train_bars": 60, "test_bars": 24, "step_bars": 20, "max_folds": 2},
    }
    path = tmp_path / "sweep.yaml"
    path.write_text(yaml.safe_dump(config))

    assert main(["sweep", "--config", str(path)]) == 0

    summary = _json_from(capsys.readouterr().out)
    assert summary["markets"] == 1
    assert summary["portfolio"] <= 2
    assert (tmp_path / "out" / "idea-memory.json").exists()
