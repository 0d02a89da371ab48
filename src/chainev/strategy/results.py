"""
Strategy result rows and the sinks that collect them.

Rows and curves are pushed as soon as they are computed. Both in-memory
sinks take a lock on append so one instance can serve a pool of engines.
"""
import threading
from dataclasses import asdict, dataclass, fields
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

import pandas as pd

from ..analytics.curve import PublishedCurve
from ..data.schema import StrategyKind


@dataclass
class StrategyResultRow:
    # Identification
    stamp: datetime
    underlying: str
    underlying_price: float
    option_type: str
    strategy: StrategyKind
    strategy_desc: str
    symbol: str
    description: str
    expiration: date

    # Chain
    strike_price: str = ''
    bid_price: float = 0.0
    bid_size: int = 0
    ask_price: float = 0.0
    ask_size: int = 0
    mark: float = 0.0
    multiplier: float = 100.0
    is_in_the_money: bool = False
    days_to_expiry: float = 0.0
    time_to_expiry: float = 0.0
    risk_free_rate: float = 0.0
    div_yield: float = 0.0
    bid_ask_spread: float = 0.0
    bid_ask_spread_percent: float = 0.0

    # Volatility and Greeks
    calc_bid_vi: float = 0.0
    calc_ask_vi: float = 0.0
    calc_mark_vi: float = 0.0
    theo_option_value: float = 0.0
    theo_volatility: float = 0.0
    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    rho: float = 0.0

    # Probabilities (percent)
    probability_itm: float = 0.0
    probability_otm: float = 0.0
    probability_profit: float = 0.0

    # Economics
    investment_option_price: float = 0.0
    investment_option_price_vs_theo: float = 0.0
    investment_amount: float = 0.0
    premium_amount: float = 0.0
    max_gain: float = 0.0
    max_loss: float = 0.0
    break_even_price: float = 0.0

    # Returns (percent)
    ror: float = 0.0
    ror_week: float = 0.0
    ror_month: float = 0.0
    ror_year: float = 0.0
    roi: float = 0.0
    roi_week: float = 0.0
    roi_month: float = 0.0
    roi_year: float = 0.0

    expected_value: float = 0.0
    expected_value_roi: float = 0.0
    expected_value_roi_week: float = 0.0
    expected_value_roi_month: float = 0.0
    expected_value_roi_year: float = 0.0

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['strategy'] = self.strategy.name
        return d

    @classmethod
    def columns(cls) -> List[str]:
        return [f.name for f in fields(cls)]


class ResultSink(Protocol):
    def add_row(self, row: StrategyResultRow) -> None:
        ...


class CurveSink(Protocol):
    def publish_curve(self, curve: PublishedCurve) -> None:
        ...


class ResultTable:
    """Thread-safe in-memory collection of result rows."""

    def __init__(self):
        self._rows: List[StrategyResultRow] = []
        self._lock = threading.Lock()

    def add_row(self, row: StrategyResultRow) -> None:
        with self._lock:
            self._rows.append(row)

    @property
    def rows(self) -> List[StrategyResultRow]:
        with self._lock:
            return list(self._rows)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([r.to_dict() for r in self.rows], columns=StrategyResultRow.columns())

    def to_csv(self, path: str) -> Path:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        self.to_dataframe().to_csv(out, index=False)
        return out


class CurveStore:
    """Thread-safe latest-curve store keyed by (symbol, expiration, stamp)."""

    def __init__(self):
        self._curves: Dict[Tuple[str, date, datetime], PublishedCurve] = {}
        self._lock = threading.Lock()

    def publish_curve(self, curve: PublishedCurve) -> None:
        with self._lock:
            self._curves[curve.key] = curve

    def get(self, symbol: str, expiration: date, stamp: datetime) -> Optional[PublishedCurve]:
        with self._lock:
            return self._curves.get((symbol, expiration, stamp))

    def __len__(self) -> int:
        with self._lock:
            return len(self._curves)

    def to_dataframe(self) -> pd.DataFrame:
        with self._lock:
            curves = list(self._curves.values())
        if not curves:
            return pd.DataFrame()
        return pd.concat([c.to_dataframe() for c in curves], ignore_index=True)
