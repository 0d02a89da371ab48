"""
Probability curve over the strike ladder.

Stores P(S_T >= K) (the call ITM probability) per strike and answers:
- probability_of_itm: exact lookup at a strike, linear interpolation between
  strikes, clamped to the boundary strike outside the ladder
- expected_loss: discretised expected loss of an assignment between two prices
"""

from bisect import bisect_left
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Sequence

import pandas as pd

from ..data.schema import UnderlyingRange, strike_key
import logging

logger = logging.getLogger(__name__)

PROBABILITY_MASS_TOLERANCE = 0.001


class ProbabilityMassError(AssertionError):
    """Accumulated probability of an expected-loss walk does not sum to one."""


def enforce_non_increasing(values: Sequence[float]) -> List[float]:
    """Forward pass clamping each value to at most its predecessor."""
    out: List[float] = []
    for v in values:
        if out and v > out[-1]:
            v = out[-1]
        out.append(v)
    return out


class ProbabilityCurve:

    def __init__(self, strikes: Sequence[float], itm: Sequence[float],
                 underlying_range: UnderlyingRange, strict: bool = False):
        if len(strikes) != len(itm) or not strikes:
            raise ValueError("strikes and probabilities must be non-empty and the same length")

        pairs = sorted(zip(strikes, itm))
        self.strikes = [float(k) for k, _ in pairs]
        self.itm = [float(p) for _, p in pairs]
        self._by_key: Dict[int, float] = {strike_key(k): p for k, p in pairs}
        self.range = underlying_range
        self.strict = strict

    def __contains__(self, strike: float) -> bool:
        return strike_key(strike) in self._by_key

    def __len__(self) -> int:
        return len(self.strikes)

    def _call_itm(self, price: float) -> float:
        key = strike_key(price)
        if key in self._by_key:
            return self._by_key[key]

        if price <= self.strikes[0]:
            return self.itm[0]
        if price >= self.strikes[-1]:
            return self.itm[-1]

        i = bisect_left(self.strikes, price)
        k0, k1 = self.strikes[i - 1], self.strikes[i]
        p0, p1 = self.itm[i - 1], self.itm[i]
        return p0 + (p1 - p0) * (price - k0) / (k1 - k0)

    def probability_of_itm(self, price: float, is_call: bool) -> float:
        p = self._call_itm(price)
        return p if is_call else 1.0 - p

    def probability_of_otm(self, price: float, is_call: bool) -> float:
        return 1.0 - self.probability_of_itm(price, is_call)

    def expected_loss(
        self,
        multiplier: float,
        price_min: float,
        price_max: float,
        cost_basis: float,
        running_total_prob: float,
        is_call: bool,
    ) -> float:
        """
        Expected loss of holding an assignment between ``price_min`` and ``price_max``.

        Walks ascending strikes accumulating the probability mass of S_T in
        (prev_strike, strike] for strikes in (price_min, price_max]. Each mass
        is realised at the midpoint of max(underlying_min, prev_strike) and the
        strike. Calls lose as price rises above the cost basis, puts as it falls
        below. Whatever mass is left when ``price_max`` lies beyond the ladder is
        realised at the midpoint of the last strike and ``price_max``.

        ``running_total_prob`` is the probability already accounted for by the
        caller; together with the walked mass it must sum to one.
        """
        sign = -1.0 if is_call else 1.0

        loss = 0.0
        mass_total = 0.0
        prev_strike = 0.0
        prev_cdf = 0.0
        reached = False

        for strike in self.strikes:
            cdf = self.probability_of_itm(strike, is_call=False)
            if price_min < strike <= price_max:
                mass = cdf - prev_cdf
                midpoint = (max(self.range.min, prev_strike) + strike) / 2.0
                loss += multiplier * mass * sign * (cost_basis - midpoint)
                mass_total += mass

            prev_strike = strike
            prev_cdf = cdf

            if strike >= price_max:
                reached = True
                break

        if not reached:
            mass = 1.0 - prev_cdf
            midpoint = (prev_strike + price_max) / 2.0
            loss += multiplier * mass * sign * (cost_basis - midpoint)
            mass_total += mass

        self._check_mass(running_total_prob + mass_total, price_min, price_max)
        return loss

    def _check_mass(self, total: float, price_min: float, price_max: float):
        if abs(total - 1.0) <= PROBABILITY_MASS_TOLERANCE:
            return
        msg = f"Probability mass {total:.6f} over ({price_min}, {price_max}] does not sum to 1"
        logger.error(msg)
        if self.strict:
            raise ProbabilityMassError(msg)


@dataclass
class CurvePoint:
    strike: float
    call_volatility: float
    put_volatility: float
    volatility: float
    itm_probability: float
    otm_probability: float


@dataclass
class PublishedCurve:
    symbol: str
    expiration: date
    stamp: datetime
    points: List[CurvePoint] = field(default_factory=list)

    @property
    def key(self):
        return (self.symbol, self.expiration, self.stamp)

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame([vars(p) for p in self.points])
        df.insert(0, 'stamp', self.stamp)
        df.insert(0, 'expiration', self.expiration)
        df.insert(0, 'symbol', self.symbol)
        return df
