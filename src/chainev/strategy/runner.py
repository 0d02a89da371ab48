"""
Concurrent analysis of many chains.

One engine per (symbol, expiration) runs on a worker thread; engines share
nothing except the sinks, which lock on append. A chain that fails, or raises,
only loses its own rows.
"""

import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from ..analytics.expected_value import ExpectedValueEngine
from ..data.data_quality import DataQualityChecker
from ..data.schema import ChainSnapshot, MarketParameters, StrategyKind
from .filters import CandidateFilter, StrategyFilter
from .results import CurveSink, ResultSink
import logging

logger = logging.getLogger(__name__)

ChainJob = Tuple[ChainSnapshot, MarketParameters]


@dataclass
class ChainOutcome:
    symbol: str
    expiration: object
    valid: bool
    rows: int
    error: str = ''


def default_workers() -> int:
    return 2 * (os.cpu_count() or 1)


def run_chain(
    snapshot: ChainSnapshot,
    params: MarketParameters,
    sink: ResultSink,
    curve_sink: Optional[CurveSink] = None,
    strategies: Sequence[StrategyKind] = tuple(StrategyKind),
    strategy_filter: Optional[StrategyFilter] = None,
    candidate_filter: Optional[CandidateFilter] = None,
    strict: bool = False,
) -> ChainOutcome:
    engine = ExpectedValueEngine(snapshot, params, sink, curve_sink, strategy_filter, candidate_filter, strict)
    rows = sum(engine.analyze(kind) for kind in strategies)
    return ChainOutcome(snapshot.symbol, snapshot.expiration, engine.valid, rows)


def check_quality(jobs: Iterable[ChainJob]) -> pd.DataFrame:
    """Run the data quality checks over every chain and log what they find."""
    checker = DataQualityChecker()
    reports = [checker.check_chain_integrity(snapshot, params.underlying_price) for snapshot, params in jobs]
    for issue in checker.issues:
        logger.warning(issue)
    return pd.DataFrame(reports)


def analyze_snapshots(
    jobs: Sequence[ChainJob],
    sink: ResultSink,
    curve_sink: Optional[CurveSink] = None,
    strategies: Sequence[StrategyKind] = tuple(StrategyKind),
    strategy_filter: Optional[StrategyFilter] = None,
    candidate_filter: Optional[CandidateFilter] = None,
    strict: bool = False,
    max_workers: Optional[int] = None,
) -> pd.DataFrame:
    """
    Analyse every chain on a thread pool.

    Returns one summary row per chain: symbol, expiration, valid, rows, error.
    """
    if not jobs:
        return pd.DataFrame(columns=['symbol', 'expiration', 'valid', 'rows', 'error'])

    check_quality(jobs)

    workers = min(len(jobs), max_workers or default_workers())
    outcomes: List[ChainOutcome] = []

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_chain = {
            executor.submit(
                run_chain, snapshot, params, sink, curve_sink,
                strategies, strategy_filter, candidate_filter, strict,
            ): snapshot
            for snapshot, params in jobs
        }

        for future in as_completed(future_to_chain):
            snapshot = future_to_chain[future]
            try:
                outcome = future.result()
                logger.info(f"{snapshot.symbol} {snapshot.expiration}: {outcome.rows} rows")
            except Exception as e:
                logger.error(f"Error analysing {snapshot.symbol} {snapshot.expiration}: {e}")
                outcome = ChainOutcome(snapshot.symbol, snapshot.expiration, False, 0, str(e))
            outcomes.append(outcome)

    summary = pd.DataFrame([vars(o) for o in outcomes])
    return summary.sort_values(['symbol', 'expiration']).reset_index(drop=True)
