"""
Probability curve construction.

Turns per-strike market Greeks into a monotone ITM probability per strike:

1. raw bounds from bid/ask (bracket discovery when a side is not invertible)
2. put-call parity for strikes where one side failed
3. monotonic correction along each side's natural order
4. volatility merge and theoretical repricing
5. probability assembly with a non-increasing clamp

Every stage returns a boolean; a False is fatal for the chain.
"""

from dataclasses import dataclass, replace
from math import isfinite
from typing import Dict, List, Optional, Set, Tuple

from ..data.schema import OptionType, StrikeLadder, UnderlyingRange, strike_key
from ..pricing.greeks import Greeks, GreeksMap, ModelFactory, compute_greeks
from ..pricing.iv_solver import (
    discover_high_bound,
    discover_low_bound,
    implied_volatility,
    round_cents,
)
from .curve import CurvePoint, ProbabilityCurve, enforce_non_increasing
import logging

logger = logging.getLogger(__name__)


@dataclass
class ProbabilityBound:
    min_price: float = 0.0
    min_volatility: float = 0.0
    max_price: float = 0.0
    max_volatility: float = 0.0

    # Merged results
    price: float = 0.0
    volatility: float = 0.0
    delta: float = 0.0


BoundMap = Dict[int, ProbabilityBound]


def merge_volatility(call: ProbabilityBound, put: ProbabilityBound) -> Tuple[float, float, bool]:
    """
    Merge the call and put volatility intervals.

    Returns (call_volatility, put_volatility, overlapped). Overlapping intervals
    (touching ones included) give both sides the midpoint of the overlap.
    Otherwise one interval lies wholly below the other and each side takes the
    edge facing the other interval, which keeps the two as close as possible.
    """
    lo = max(call.min_volatility, put.min_volatility)
    hi = min(call.max_volatility, put.max_volatility)
    if lo <= hi:
        vi = lo + (hi - lo) / 2.0
        return vi, vi, True

    if call.max_volatility < put.min_volatility:
        return call.max_volatility, put.min_volatility, False
    return call.min_volatility, put.max_volatility, False


def itm_probability(call_delta: float, put_delta: float) -> float:
    def clamp(v):
        return min(1.0, max(0.0, v))
    return (clamp(call_delta) + clamp(1.0 + put_delta)) / 2.0


class ProbabilityCurveBuilder:

    def __init__(
        self,
        ladder: StrikeLadder,
        underlying_range: UnderlyingRange,
        greeks: Dict[OptionType, GreeksMap],
        model_factory: ModelFactory,
        underlying_price: float,
        trading_days_per_year: float,
        label: str = '',
        strict: bool = False,
    ):
        self.ladder = ladder
        self.range = underlying_range
        self.greeks = {side: dict(m) for side, m in greeks.items()}
        self.model_factory = model_factory
        self.underlying_price = underlying_price
        self.trading_days_per_year = trading_days_per_year
        self.label = label
        self.strict = strict

        self.bounds: Dict[OptionType, BoundMap] = {OptionType.CALL: {}, OptionType.PUT: {}}
        self.failed: Dict[OptionType, Set[int]] = {OptionType.CALL: set(), OptionType.PUT: set()}

        self.curve: Optional[ProbabilityCurve] = None
        self.points: List[CurvePoint] = []

    def _model(self, g: Greeks, sigma: float):
        return self.model_factory(self.underlying_price, g.risk_free_rate, g.cost_of_carry, sigma, g.time_to_expiry)

    def build(self) -> bool:
        stages = (
            self._generate_bounds,
            self._reconcile_parity,
            self._correct_monotonic,
            self._merge_and_price,
            self._assemble,
        )
        for stage in stages:
            if not stage():
                logger.error(f"{self.label} probability curve failed at {stage.__name__}")
                return False
        return True

    # --- Stage: raw bounds ---

    def _side_bound(self, option_type: OptionType, strike: float, g: Greeks) -> Optional[ProbabilityBound]:
        bound = ProbabilityBound(g.bid, g.bid_vi, g.ask, g.ask_vi)
        model = self._model(g, 0.0)

        if bound.min_volatility <= 0:
            found = discover_low_bound(model, option_type, strike, bound.max_price)
            if found is None:
                return None
            bound.min_price, bound.min_volatility = found

        if bound.max_volatility <= 0:
            found = discover_high_bound(model, option_type, strike, bound.min_volatility, bound.max_price)
            if found is None:
                return None
            bound.max_price, bound.max_volatility = found

        return bound

    def _generate_bounds(self) -> bool:
        for strike in self.ladder.ascending:
            key = strike_key(strike)
            for option_type in (OptionType.CALL, OptionType.PUT):
                bound = self._side_bound(option_type, strike, self.greeks[option_type][key])
                if bound is None:
                    logger.warning(f"{self.label} no {option_type.label.lower()} bound at strike {strike}")
                    self.failed[option_type].add(key)
                    continue

                if bound.min_price < 0 or bound.max_price < 0 or bound.max_price < bound.min_price:
                    logger.error(
                        f"{self.label} invalid {option_type.label.lower()} bound at strike {strike}: "
                        f"[{bound.min_price}, {bound.max_price}]"
                    )
                    return False
                self.bounds[option_type][key] = bound
        return True

    # --- Stage: put-call parity ---

    def _reconcile_parity(self) -> bool:
        for strike in self.ladder.ascending:
            key = strike_key(strike)
            call_failed = key in self.failed[OptionType.CALL]
            put_failed = key in self.failed[OptionType.PUT]
            if not (call_failed or put_failed):
                continue
            if call_failed and put_failed:
                logger.error(f"{self.label} no call or put bound at strike {strike}")
                return False

            missing = OptionType.CALL if call_failed else OptionType.PUT
            other = OptionType.PUT if call_failed else OptionType.CALL
            src = self.bounds[other][key]
            g = self.greeks[missing][key]

            model = self._model(g, src.min_volatility)
            min_price = model.option_price(missing, strike)
            model.set_sigma(src.max_volatility)
            max_price = model.option_price(missing, strike)
            if not (isfinite(min_price) and isfinite(max_price)):
                return False

            logger.info(f"{self.label} {missing.label.lower()} bound at strike {strike} from put-call parity")
            self.bounds[missing][key] = ProbabilityBound(
                min_price, src.min_volatility, max_price, src.max_volatility
            )
            self.failed[missing].discard(key)
        return True

    # --- Stage: monotonic correction ---

    def _clamped_sequence(self, option_type: OptionType) -> Optional[List[ProbabilityBound]]:
        out: List[ProbabilityBound] = []
        for strike in self.ladder.ordered(option_type):
            b = replace(self.bounds[option_type][strike_key(strike)])
            if out:
                prev = out[-1]
                g = self.greeks[option_type][strike_key(strike)]
                if prev.min_price < b.min_price:
                    vol, ok = implied_volatility(self._model(g, 0.0), option_type, strike, prev.min_price)
                    if not ok:
                        return None
                    b.min_price, b.min_volatility = prev.min_price, vol
                if prev.max_price < b.max_price:
                    vol, ok = implied_volatility(self._model(g, 0.0), option_type, strike, prev.max_price)
                    if not ok:
                        return None
                    b.max_price, b.max_volatility = prev.max_price, vol
            out.append(b)
        return out

    def _correct_monotonic(self) -> bool:
        for option_type in (OptionType.CALL, OptionType.PUT):
            corrected = self._clamped_sequence(option_type)
            if corrected is None:
                logger.error(f"{self.label} {option_type.label.lower()} bounds could not be made monotonic")
                return False
            order = self.ladder.ordered(option_type)
            self.bounds[option_type] = {strike_key(k): b for k, b in zip(order, corrected)}
        return True

    # --- Stage: merge + theoretical prices ---

    def _merge_and_price(self) -> bool:
        for strike in self.ladder.ascending:
            key = strike_key(strike)
            call = self.bounds[OptionType.CALL][key]
            put = self.bounds[OptionType.PUT][key]
            call.volatility, put.volatility, overlapped = merge_volatility(call, put)
            if not overlapped:
                logger.warning(
                    f"{self.label} call/put volatility do not overlap at strike {strike}: "
                    f"call [{call.min_volatility:.4f}, {call.max_volatility:.4f}] "
                    f"put [{put.min_volatility:.4f}, {put.max_volatility:.4f}]"
                )

        for option_type in (OptionType.CALL, OptionType.PUT):
            if not self._price_side(option_type):
                return False
        return True

    def _price_side(self, option_type: OptionType) -> bool:
        prev_price = None
        for strike in self.ladder.ordered(option_type):
            key = strike_key(strike)
            bound = self.bounds[option_type][key]
            g = self.greeks[option_type][key]

            model = self._model(g, bound.volatility)
            price = round_cents(model.option_price(option_type, strike))
            if not isfinite(price):
                return False
            if prev_price is not None and prev_price < price:
                price = prev_price

            updated, ok = compute_greeks(model, price, strike, option_type, g, self.trading_days_per_year)
            if not ok:
                logger.error(f"{self.label} no {option_type.label.lower()} greeks at strike {strike} price {price}")
                return False

            updated.market_price = bound.min_price + (bound.max_price - bound.min_price) / 2.0
            self.greeks[option_type][key] = updated

            bound.price = price
            bound.delta = updated.delta
            prev_price = price
        return True

    # --- Stage: probability assembly ---

    def _assemble(self) -> bool:
        strikes = list(self.ladder.ascending)
        raw = []
        for strike in strikes:
            key = strike_key(strike)
            raw.append(itm_probability(
                self.bounds[OptionType.CALL][key].delta,
                self.bounds[OptionType.PUT][key].delta,
            ))
        probs = enforce_non_increasing(raw)

        self.curve = ProbabilityCurve(strikes, probs, self.range, strict=self.strict)
        self.points = []
        for strike, p in zip(strikes, probs):
            key = strike_key(strike)
            call_vol = self.bounds[OptionType.CALL][key].volatility
            put_vol = self.bounds[OptionType.PUT][key].volatility
            self.points.append(CurvePoint(
                strike=strike,
                call_volatility=call_vol,
                put_volatility=put_vol,
                volatility=(call_vol + put_vol) / 2.0,
                itm_probability=p,
                otm_probability=1.0 - p,
            ))
        return True
