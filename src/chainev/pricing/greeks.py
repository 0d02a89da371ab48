from dataclasses import dataclass, replace
from math import isfinite
from typing import Callable, Dict, Optional, Tuple

from ..data.schema import ChainRow, MarketParameters, OptionQuote, OptionType, StrikeLadder, strike_key
from .iv_solver import implied_volatility
from .models import OptionPricingModel
import logging

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0

# (S, r, b, sigma, T) -> model
ModelFactory = Callable[[float, float, float, float, float], OptionPricingModel]


@dataclass
class Greeks:
    """Per strike, per side market data, implied volatilities and theoretical values."""
    bid: float = 0.0
    bid_vi: float = 0.0
    ask: float = 0.0
    ask_vi: float = 0.0
    mark: float = 0.0
    mark_vi: float = 0.0

    spread: float = 0.0
    spread_percent: float = 0.0

    time_to_expiry: float = 0.0
    risk_free_rate: float = 0.0
    cost_of_carry: float = 0.0

    # Theoretical values (replaced once the probability curve is priced)
    price: float = 0.0
    vi: float = 0.0
    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    rho: float = 0.0

    market_price: float = 0.0


GreeksMap = Dict[int, Greeks]


def compute_greeks(
    model: OptionPricingModel,
    theo_price: float,
    strike: float,
    option_type: OptionType,
    greeks: Greeks,
    trading_days_per_year: float,
) -> Tuple[Greeks, bool]:
    """
    Greeks at a theoretical price.

    Solves the volatility for ``theo_price``, reprices at it and scales the
    partials: theta per trading day, vega and rho per percentage point.
    Returns a new record; the input is left untouched.
    """
    vi, ok = implied_volatility(model, option_type, strike, theo_price)
    if not ok or vi <= 0:
        return greeks, False

    model.set_sigma(vi)
    p = model.partials(option_type, strike)
    if not isfinite(p.price) or p.price < 0:
        return greeks, False

    return replace(
        greeks,
        price=p.price,
        vi=vi,
        delta=p.delta,
        gamma=p.gamma,
        theta=p.theta / trading_days_per_year,
        vega=p.vega / 100.0,
        rho=p.rho / 100.0,
    ), True


def _time_to_expiry(quote: OptionQuote, days_per_year: float) -> float:
    seconds = (quote.expiry_time - quote.quote_time).total_seconds()
    return seconds / SECONDS_PER_DAY / days_per_year


def _solve_or_zero(model: OptionPricingModel, option_type: OptionType,
                   strike: float, price: float) -> float:
    vi, ok = implied_volatility(model, option_type, strike, price)
    return vi if ok else 0.0


def generate_side_greeks(
    quote: Optional[OptionQuote],
    strike: float,
    option_type: OptionType,
    params: MarketParameters,
    model_factory: ModelFactory,
) -> Optional[Greeks]:
    """Market Greeks for one strike/side, or None when the quote cannot be used."""
    if quote is None or not quote.has_valid_times():
        return None

    T = _time_to_expiry(quote, params.days_per_year)
    r = params.rate_for(T)
    b = params.cost_of_carry(r)
    model = model_factory(params.underlying_price, r, b, 0.0, T)

    spread = quote.ask - quote.bid
    g = Greeks(
        bid=quote.bid,
        ask=quote.ask,
        mark=quote.mark,
        spread=spread,
        spread_percent=spread / quote.ask if quote.ask > 0 else 0.0,
        time_to_expiry=T,
        risk_free_rate=r,
        cost_of_carry=b,
    )

    g.bid_vi = _solve_or_zero(model, option_type, strike, quote.bid)
    g.ask_vi = _solve_or_zero(model, option_type, strike, quote.ask)
    g.mark_vi = _solve_or_zero(model, option_type, strike, quote.mark)

    if g.ask_vi > 0:
        if g.bid_vi > g.ask_vi:
            g.bid_vi = 0.0
        if g.mark_vi > g.ask_vi:
            g.mark_vi = 0.0

    return g


def generate_chain_greeks(
    rows: Dict[int, ChainRow],
    ladder: StrikeLadder,
    params: MarketParameters,
    model_factory: ModelFactory,
) -> Optional[Tuple[GreeksMap, GreeksMap]]:
    """
    Market Greeks for every ladder strike and both sides.

    Any strike/side without a usable quote fails the whole chain (returns None).
    """
    calls: GreeksMap = {}
    puts: GreeksMap = {}

    for strike in ladder.ascending:
        key = strike_key(strike)
        row = rows.get(key)
        for option_type, out in ((OptionType.CALL, calls), (OptionType.PUT, puts)):
            quote = row.quote(option_type) if row is not None else None
            g = generate_side_greeks(quote, strike, option_type, params, model_factory)
            if g is None:
                logger.warning(f"No usable {option_type.label.lower()} quote at strike {strike}")
                return None
            out[key] = g

    return calls, puts
