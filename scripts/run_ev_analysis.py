"""CLI entry point for expected-value analysis of one option chain."""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime
from pathlib import Path

from chainev.data.loaders import load_chain_csv
from chainev.data.schema import StrategyKind
from chainev.strategy.results import CurveStore, ResultTable
from chainev.strategy.runner import analyze_snapshots
from chainev.utils.config import (
    get_default_config,
    load_config,
    market_parameters_from_config,
    merge_configs,
    save_config_used,
    strategy_filter_from_config,
)
from chainev.utils.logging import log_assumption, setup_logger


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Expected-value analysis of an option chain")
    parser.add_argument("chain", type=str, help="Per-strike chain CSV (strike, call_*, put_* columns)")
    parser.add_argument("--symbol", type=str, required=True, help="Underlying symbol")
    parser.add_argument("--expiration", type=date.fromisoformat, required=True, help="Expiration date (YYYY-MM-DD)")
    parser.add_argument("--underlying", type=float, required=True, help="Underlying price")
    parser.add_argument("--timestamp", type=datetime.fromisoformat, default=None,
                        help="Snapshot time (ISO format, default now)")
    parser.add_argument("--config", type=str, default=None, help="YAML config overriding the defaults")
    parser.add_argument("--strategy", choices=[k.name for k in StrategyKind], action="append",
                        help="Strategy to analyse (repeatable, default all)")
    parser.add_argument("--output-dir", type=str, default="outputs/ev", help="Directory for result CSVs")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    logger = setup_logger("chainev", level=logging.DEBUG if args.verbose else logging.INFO)

    config = get_default_config()
    if args.config:
        config = merge_configs(config, load_config(args.config))

    timestamp = args.timestamp or datetime.now()
    if args.timestamp is None:
        log_assumption(logger, "snapshot timestamp", timestamp.isoformat())

    params = market_parameters_from_config(config, args.underlying)
    strategy_filter = strategy_filter_from_config(config)
    strategies = [StrategyKind[s] for s in args.strategy] if args.strategy else list(StrategyKind)

    snapshot = load_chain_csv(args.chain, args.symbol, args.expiration, timestamp)
    logger.info(f"Loaded {len(snapshot.rows)} strikes for {args.symbol} {args.expiration}")

    results = ResultTable()
    curves = CurveStore()
    summary = analyze_snapshots(
        [(snapshot, params)],
        results,
        curves,
        strategies=strategies,
        strategy_filter=strategy_filter,
        strict=bool(config['analysis'].get('strict_probability_mass', False)),
        max_workers=config['analysis'].get('max_workers'),
    )

    out_dir = Path(args.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    results.to_csv(str(out_dir / "results.csv"))
    curves.to_dataframe().to_csv(out_dir / "probability_curve.csv", index=False)
    summary.to_csv(out_dir / "summary.csv", index=False)
    save_config_used(config, str(out_dir / "config_used.yaml"))

    logger.info(f"{len(results)} rows written to {out_dir}")
    return 0 if bool(summary['valid'].all()) else 1


if __name__ == "__main__":
    raise SystemExit(main())
