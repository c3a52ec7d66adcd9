from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import sentry_sdk
from loguru import logger
from sentry_sdk.integrations.logging import LoggingIntegration

from foundry import APP_VERSION
from foundry.backtest.report import to_jsonable
from foundry.backtest.sweeps import load_bars_csv, run_sweep
from foundry.backtest.walk_forward import run_walk_forward
from foundry.errors import FoundryError
from foundry.logging_utils import setup_logging
from foundry.settings import Settings, get_settings
from foundry.strats.registry import build_candidates, get_family


def _init_sentry(settings: Settings) -> bool:
    sentry = settings.sentry
    if not sentry.enabled:
        logger.debug("Sentry DSN not set; Sentry disabled")
        return False
    sentry_sdk.init(
        dsn=sentry.dsn,
        integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
        traces_sample_rate=sentry.traces_sample_rate,
        environment=sentry.environment,
        release=APP_VERSION,
    )
    return True


def _cmd_sweep(args: argparse.Namespace, settings: Settings) -> int:
    result = run_sweep(Path(args.config))
    print(
        json.dumps(
            {
                "run_id": result["run_id"],
                "summary_path": result["summary_path"],
                "memory_path": result["memory_path"],
                "markets": len(result["runs"]),
                "portfolio": len(result["portfolio"]),
            },
            indent=2,
        )
    )
    return 0


def _cmd_walk_forward(args: argparse.Namespace, settings: Settings) -> int:
    bars = load_bars_csv(Path(args.bars))
    if len(bars) < settings.backtest.min_bars:
        logger.error(
            "[wf] not enough bars path={} bars={} min={}",
            args.bars,
            len(bars),
            settings.backtest.min_bars,
        )
        return 1

    family = get_family(args.family)
    specs = build_candidates(
        family.name, cap=settings.factory.max_candidates_per_family
    )
    split = args.split if args.split is not None else settings.backtest.train_split
    result = run_walk_forward(
        args.token or Path(args.bars).stem,
        args.question or Path(args.bars).stem,
        bars,
        split,
        [spec.params for spec in specs],
        family.strategy_cls,
        risk=settings.risk.to_risk_config(),
        costs=settings.costs.to_cost_config(),
    )

    payload = {
        "family": family.name,
        "split": split,
        "best_params": to_jsonable(result.best_params),
        "candidates_evaluated": result.candidates_evaluated,
        "overfit_score": to_jsonable(result.overfit_score),
        "robustness_score": to_jsonable(result.robustness_score),
        "train": to_jsonable(result.train),
        "test": to_jsonable(result.test),
    }
    text = json.dumps(payload, indent=2)
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text)
        logger.info("[wf] wrote {}", out)
    else:
        print(text)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="foundry", description="Backtest, cross-validate and rank trading strategies."
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL.")
    sub = parser.add_subparsers(dest="command", required=True)

    sweep = sub.add_parser("sweep", help="Run the multi-market idea factory sweep.")
    sweep.add_argument("--config", required=True, help="Path to YAML sweep definition")
    sweep.set_defaults(handler=_cmd_sweep)

    wf = sub.add_parser("walk-forward", help="Single-split walk-forward for one family.")
    wf.add_argument("--bars", required=True, help="CSV with timestamp,price columns")
    wf.add_argument("--family", required=True, help="Strategy family, e.g. btc-momentum")
    wf.add_argument("--split", type=float, default=None, help="Train fraction (default BACKTEST_TRAIN_SPLIT)")
    wf.add_argument("--token", default=None, help="Market id label (default: file stem)")
    wf.add_argument("--question", default=None, help="Market question label")
    wf.add_argument("--output", default=None, help="Write JSON here instead of stdout")
    wf.set_defaults(handler=_cmd_walk_forward)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level)
    settings = get_settings()
    _init_sentry(settings)
    try:
        return args.handler(args, settings)
    except (FoundryError, OSError) as exc:
        logger.error("[cli] {} failed: {}", args.command, exc)
        return 2


if __name__ == "__main__":
    sys.exit(main())
