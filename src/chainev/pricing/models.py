"""
Option pricing models.

Each model is a short-lived value object built for one (S, r, b, sigma, T)
tuple. Volatility is the only mutable input (``set_sigma``) so the IV solver
can probe one model repeatedly. Models are cheap; build one per use and drop it.

- BlackScholesModel: generalized Black-Scholes with cost of carry ``b``
  (b = r for non-dividend stock, b = r - q for a continuous yield q) and
  discrete proportional dividends handled by escrowing the spot.
- BinomialModel: Cox-Ross-Rubinstein tree, American (default) or European,
  with finite-difference partials.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from math import exp, isfinite, log, sqrt
from typing import NamedTuple, Optional

import numpy as np
from scipy.stats import norm

from ..data.schema import DividendSchedule, OptionType

N = norm.pdf
CDF = norm.cdf

BINOMIAL_DEFAULT_STEPS = 128


class Partials(NamedTuple):
    """Raw (unscaled) sensitivities: theta per year, vega and rho per unit."""
    price: float
    delta: float
    gamma: float
    theta: float
    vega: float
    rho: float


class OptionPricingModel(ABC):

    def __init__(
        self,
        S: float,
        r: float,
        b: float,
        sigma: float,
        T: float,
        dividends: Optional[DividendSchedule] = None,
        european: bool = False,
    ):
        self.S = S
        self.r = r
        self.b = b
        self.sigma = sigma
        self.T = T
        self.dividends = dividends or DividendSchedule()
        self.european = european

    def set_sigma(self, sigma: float) -> None:
        self.sigma = sigma

    def implied_volatility_seed(self, strike: float) -> float:
        """Manaster-Koehler starting point for Newton iteration."""
        if self.T <= 0 or self.S <= 0 or strike <= 0:
            return 0.0
        return sqrt(abs(log(self.S / strike) + self.r * self.T) * 2.0 / self.T)

    @abstractmethod
    def option_price(self, option_type: OptionType, strike: float) -> float:
        ...

    @abstractmethod
    def partials(self, option_type: OptionType, strike: float) -> Partials:
        ...

    def vega(self, option_type: OptionType, strike: float) -> float:
        return self.partials(option_type, strike).vega

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(S={self.S}, r={self.r}, b={self.b}, "
                f"sigma={self.sigma}, T={self.T})")


class BlackScholesModel(OptionPricingModel):

    @property
    def _spot(self) -> float:
        # Escrowed dividend model: remove dividends paid before expiry from spot
        if not self.dividends:
            return self.S
        return self.S * self.dividends.retained_fraction(0.0, self.T)

    def _d1_d2(self, strike: float):
        vol_term = self.sigma * sqrt(self.T)
        d1 = (log(self._spot / strike) + (self.b + 0.5 * self.sigma * self.sigma) * self.T) / vol_term
        return d1, d1 - vol_term

    def _degenerate(self) -> bool:
        return self.T <= 0 or self.sigma <= 0

    def _forward_intrinsic(self, option_type: OptionType, strike: float) -> float:
        fwd = self._spot * exp((self.b - self.r) * max(self.T, 0.0))
        disc_strike = strike * exp(-self.r * max(self.T, 0.0))
        if option_type is OptionType.CALL:
            return max(0.0, fwd - disc_strike)
        return max(0.0, disc_strike - fwd)

    def option_price(self, option_type: OptionType, strike: float) -> float:
        if self._degenerate():
            return self._forward_intrinsic(option_type, strike)

        S = self._spot
        d1, d2 = self._d1_d2(strike)
        ebrt = exp((self.b - self.r) * self.T)
        ert = exp(-self.r * self.T)

        if option_type is OptionType.CALL:
            price = S * ebrt * CDF(d1) - strike * ert * CDF(d2)
        else:
            price = strike * ert * CDF(-d2) - S * ebrt * CDF(-d1)
        return float(max(0.0, price))

    def partials(self, option_type: OptionType, strike: float) -> Partials:
        price = self.option_price(option_type, strike)
        if self._degenerate():
            itm = price > 0
            ebrt = exp((self.b - self.r) * max(self.T, 0.0))
            if option_type is OptionType.CALL:
                delta = ebrt if itm else 0.0
            else:
                delta = -ebrt if itm else 0.0
            return Partials(price, delta, 0.0, 0.0, 0.0, 0.0)

        S = self._spot
        T = self.T
        sqrt_t = sqrt(T)
        d1, d2 = self._d1_d2(strike)
        ebrt = exp((self.b - self.r) * T)
        ert = exp(-self.r * T)
        pdf_d1 = N(d1)

        gamma = ebrt * pdf_d1 / (S * self.sigma * sqrt_t)
        vega = S * ebrt * pdf_d1 * sqrt_t
        decay = -S * ebrt * pdf_d1 * self.sigma / (2.0 * sqrt_t)

        if option_type is OptionType.CALL:
            delta = ebrt * CDF(d1)
            theta = decay - (self.b - self.r) * S * ebrt * CDF(d1) - self.r * strike * ert * CDF(d2)
            rho = strike * T * ert * CDF(d2)
        else:
            delta = ebrt * (CDF(d1) - 1.0)
            theta = decay + (self.b - self.r) * S * ebrt * CDF(-d1) + self.r * strike * ert * CDF(-d2)
            rho = -strike * T * ert * CDF(-d2)

        return Partials(price, float(delta), float(gamma), float(theta), float(vega), float(rho))

    def vega(self, option_type: OptionType, strike: float) -> float:
        if self._degenerate():
            return 0.0
        d1, _ = self._d1_d2(strike)
        return float(self._spot * exp((self.b - self.r) * self.T) * N(d1) * sqrt(self.T))


class BinomialModel(OptionPricingModel):
    """Cox-Ross-Rubinstein tree. Partials by central differences on the tree."""

    def __init__(self, *args, steps: int = BINOMIAL_DEFAULT_STEPS, **kwargs):
        super().__init__(*args, **kwargs)
        self.steps = steps

    def _tree_price(self, option_type: OptionType, strike: float,
                    S: float, T: float, r: float, b: float, sigma: float) -> float:
        is_call = option_type is OptionType.CALL

        def payoff(spot):
            return np.maximum(spot - strike, 0.0) if is_call else np.maximum(strike - spot, 0.0)

        if T <= 0 or sigma <= 0:
            T = max(T, 0.0)
            grown = S * self.dividends.retained_fraction(0.0, T) * exp(b * T)
            value = float(payoff(np.array([grown]))[0]) * exp(-r * T)
            if not self.european:
                value = max(value, float(payoff(np.array([S]))[0]))
            return value

        n = self.steps
        dt = T / n
        u = exp(sigma * sqrt(dt))
        d = 1.0 / u
        # Very low volatility can push p outside [0, 1]; clip to keep the tree a measure
        p = min(1.0, max(0.0, (exp(b * dt) - d) / (u - d)))
        disc = exp(-r * dt)

        ups = np.arange(n + 1)
        values = payoff(S * self.dividends.retained_fraction(0.0, T) * u ** ups * d ** (n - ups))

        for i in range(n - 1, -1, -1):
            values = disc * (p * values[1:] + (1.0 - p) * values[:-1])
            if not self.european:
                ups = np.arange(i + 1)
                spot = S * self.dividends.retained_fraction(0.0, i * dt) * u ** ups * d ** (i - ups)
                values = np.maximum(values, payoff(spot))

        return float(values[0])

    def option_price(self, option_type: OptionType, strike: float) -> float:
        return self._tree_price(option_type, strike, self.S, self.T, self.r, self.b, self.sigma)

    def partials(self, option_type: OptionType, strike: float) -> Partials:
        price = self.option_price(option_type, strike)

        def bumped(S=None, T=None, r=None, b=None, sigma=None):
            return self._tree_price(
                option_type, strike,
                self.S if S is None else S,
                self.T if T is None else T,
                self.r if r is None else r,
                self.b if b is None else b,
                self.sigma if sigma is None else sigma,
            )

        dS = self.S * 0.01
        price_up = bumped(S=self.S + dS)
        price_dn = bumped(S=self.S - dS)
        delta = (price_up - price_dn) / (2.0 * dS)
        gamma = (price_up - 2.0 * price + price_dn) / (dS * dS)

        vega = self.vega(option_type, strike)

        dt = min(1.0 / 365.0, self.T / 2.0)
        theta = (bumped(T=self.T - dt) - price) / dt if dt > 0 else 0.0

        # Rate bumps move the cost of carry with them
        dr = 0.0001
        rho = (bumped(r=self.r + dr, b=self.b + dr) - bumped(r=self.r - dr, b=self.b - dr)) / (2.0 * dr)

        return Partials(price, delta, gamma, theta, vega, rho)

    def vega(self, option_type: OptionType, strike: float) -> float:
        dsig = min(0.01, self.sigma / 2.0)
        if dsig <= 0:
            return 0.0
        up = self._tree_price(option_type, strike, self.S, self.T, self.r, self.b, self.sigma + dsig)
        dn = self._tree_price(option_type, strike, self.S, self.T, self.r, self.b, self.sigma - dsig)
        return (up - dn) / (2.0 * dsig)


PRICING_METHODS = {
    'BLACKSCHOLES': BlackScholesModel,
    'BINOM': BinomialModel,
}


def create_pricing_model(
    method: str,
    S: float,
    r: float,
    b: float,
    sigma: float,
    T: float,
    dividends: Optional[DividendSchedule] = None,
    european: bool = False,
) -> OptionPricingModel:
    """Build a pricing model by method name (BLACKSCHOLES or BINOM)."""
    key = method.upper().strip()
    if key not in PRICING_METHODS:
        raise ValueError(f"Unknown pricing method '{method}', expected one of {sorted(PRICING_METHODS)}")
    if not isfinite(S) or S <= 0:
        raise ValueError("S must be positive")
    return PRICING_METHODS[key](S, r, b, sigma, T, dividends=dividends, european=european)
