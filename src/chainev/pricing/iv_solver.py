"""
Implied Volatility Solver

Features:
- Newton-Raphson from the Manaster-Koehler seed, Brent bracketing fallback
- Returns (volatility, ok) and never raises on numeric edge cases
- Bracket discovery for bid/ask bounds outside the model's feasible range
- Solver failures logged at debug level
"""

from math import ceil, isfinite
from typing import Optional, Tuple

from scipy.optimize import brentq

from ..data.schema import OptionType
from .models import OptionPricingModel
import logging

logger = logging.getLogger(__name__)

# Constants
VOLATILITY_MIN = 1e-7
VOLATILITY_MAX = 1000.0
PRICE_EPSILON = 0.001
MAX_LOOPS = 512
FALLBACK_SEED = 0.30

# Bracket discovery
PROBE_VOLATILITY = 0.0001
HIGH_SEARCH_START_STEP = 100.0
HIGH_SEARCH_MIN_STEP = 0.00005

BoundPoint = Tuple[float, float]  # (price, volatility)


def round_up_cents(price: float) -> float:
    # Tolerance keeps 1.0000000001 from becoming 1.01
    return ceil(price * 100.0 - 1e-9) / 100.0


def round_cents(price: float) -> float:
    return round(price * 100.0) / 100.0


def _newton(model: OptionPricingModel, option_type: OptionType, strike: float,
            price: float) -> Optional[float]:
    vol = model.implied_volatility_seed(strike)
    if not isfinite(vol) or vol <= VOLATILITY_MIN:
        vol = FALLBACK_SEED

    for _ in range(MAX_LOOPS):
        model.set_sigma(vol)
        model_price = model.option_price(option_type, strike)
        if not isfinite(model_price):
            return None

        diff = model_price - price
        if abs(diff) <= PRICE_EPSILON:
            return vol

        v = model.vega(option_type, strike)
        if not isfinite(v) or v < 1e-12:
            return None

        vol -= diff / v
        if not isfinite(vol) or vol <= VOLATILITY_MIN or vol >= VOLATILITY_MAX:
            return None

    return None


def _brent(model: OptionPricingModel, option_type: OptionType, strike: float,
           price: float) -> Optional[float]:
    def objective(vol):
        model.set_sigma(vol)
        return model.option_price(option_type, strike) - price

    f_lo = objective(VOLATILITY_MIN)
    f_hi = objective(VOLATILITY_MAX)
    # A price already matched at the lower edge is degenerate (no time value), not a root
    if not (isfinite(f_lo) and isfinite(f_hi)) or f_lo * f_hi >= 0:
        return None

    try:
        return brentq(objective, VOLATILITY_MIN, VOLATILITY_MAX, xtol=1e-10, maxiter=MAX_LOOPS)
    except (ValueError, RuntimeError) as e:
        logger.debug(f"Brent fallback failed: {e}")
        return None


def implied_volatility(
    model: OptionPricingModel,
    option_type: OptionType,
    strike: float,
    price: float,
) -> Tuple[float, bool]:
    """
    Invert the model for the volatility that reproduces ``price``.

    Returns:
        (volatility, ok). ok is False for a non-positive price, when neither
        Newton nor Brent converges, or when the result is not positive. On success the model is left at the solved
        volatility so callers can reprice or take partials directly.
    """
    if not isfinite(price) or price <= 0:
        return 0.0, False

    vol = _newton(model, option_type, strike, price)
    if vol is None:
        vol = _brent(model, option_type, strike, price)

    if vol is None or vol <= 0:
        logger.debug(f"IV solve failed: {option_type.label} K={strike} price={price} ({model!r})")
        return 0.0, False

    model.set_sigma(vol)
    return vol, True


def discover_low_bound(
    model: OptionPricingModel,
    option_type: OptionType,
    strike: float,
    high_price: float,
) -> Optional[BoundPoint]:
    """
    Replace an infeasible low bound by the price at a near-zero volatility.

    The probe price is rounded up to the cent and accepted when it does not
    exceed ``high_price``. Its volatility is the solved one, or the probe
    volatility when the rounded price cannot be inverted.
    """
    model.set_sigma(PROBE_VOLATILITY)
    probe = model.option_price(option_type, strike)
    if not isfinite(probe):
        return None

    price = round_up_cents(probe)
    if price > high_price:
        return None

    vol, ok = implied_volatility(model, option_type, strike, price)
    if not ok or vol < PROBE_VOLATILITY:
        vol = PROBE_VOLATILITY
    return price, vol


def discover_high_bound(
    model: OptionPricingModel,
    option_type: OptionType,
    strike: float,
    low_volatility: float,
    high_price: float,
) -> Optional[BoundPoint]:
    """
    Geometric search for the largest feasible price strictly below ``high_price``.

    Steps up from ``low_volatility`` with an increment of 100, dividing the
    increment by 10 on each overshoot, until the increment is below 0.00005 or
    a trial volatility exceeds 1000.
    """
    vol = low_volatility
    step = HIGH_SEARCH_START_STEP
    best: Optional[BoundPoint] = None

    while step >= HIGH_SEARCH_MIN_STEP:
        trial = vol + step
        if trial > VOLATILITY_MAX:
            break

        model.set_sigma(trial)
        price = model.option_price(option_type, strike)
        if not isfinite(price) or price >= high_price:
            step /= 10.0
            continue

        vol = trial
        best = (price, trial)

    return best
