from dataclasses import dataclass
from typing import Optional, Tuple


def round2(value: float) -> float:
    return round(value, 2)


def round4(value: float) -> float:
    return round(value, 4)


@dataclass(frozen=True)
class TradeEconomics:
    """Cash flows of one strategy instance, in currency units per contract."""
    premium: float
    investment: float
    max_gain: float
    max_loss: float
    break_even: float
    cost_basis: float

    @property
    def ror(self) -> float:
        """Return on risk (fraction)."""
        return self.max_gain / self.max_loss if self.max_loss else 0.0

    @property
    def roi(self) -> float:
        """Return on investment (fraction)."""
        return self.premium / self.investment if self.investment else 0.0


def single_call_economics(
    strike: float,
    mark: float,
    multiplier: float,
    option_trade_cost: float,
    equity_trade_cost: float,
    underlying_price: float,
    cost_basis: Optional[float] = None,
) -> TradeEconomics:
    """
    Covered call: buy (or hold at ``cost_basis``) the shares, sell one call.

    Without a cost-basis override the shares are bought at the underlying
    price plus the per-share equity commission.
    """
    if cost_basis is not None and cost_basis > 0:
        equity_price = cost_basis
    else:
        equity_price = underlying_price + equity_trade_cost / multiplier

    premium = multiplier * mark - option_trade_cost
    investment = multiplier * equity_price - premium
    max_gain = premium + multiplier * (strike - equity_price) - equity_trade_cost
    break_even = equity_price - premium / multiplier

    return TradeEconomics(
        premium=premium,
        investment=investment,
        max_gain=max_gain,
        max_loss=investment,
        break_even=break_even,
        cost_basis=break_even,
    )


def single_put_economics(
    strike: float,
    mark: float,
    multiplier: float,
    option_trade_cost: float,
    equity_trade_cost: float,
) -> TradeEconomics:
    """Cash-secured put: sell one put holding the strike in cash."""
    premium = multiplier * mark - option_trade_cost
    investment = multiplier * strike - premium
    break_even = strike - premium / multiplier

    return TradeEconomics(
        premium=premium,
        investment=investment,
        max_gain=premium,
        max_loss=investment + equity_trade_cost,
        break_even=break_even,
        cost_basis=break_even,
    )


def vertical_economics(
    strike_long: float,
    strike_short: float,
    mark_long: float,
    mark_short: float,
    multiplier: float,
    option_trade_cost: float,
    equity_trade_cost: float,
) -> TradeEconomics:
    """
    Credit vertical (bear call or bull put): sell ``strike_short``, buy ``strike_long``.

    Break-even sits on the far side of the short strike from the long one.
    """
    spread = abs(strike_long - strike_short)
    premium = multiplier * (mark_short - mark_long) - 2.0 * option_trade_cost
    investment = multiplier * spread - premium

    if strike_long > strike_short:
        break_even = strike_short + premium / multiplier
    else:
        break_even = strike_short - premium / multiplier

    return TradeEconomics(
        premium=premium,
        investment=investment,
        max_gain=premium,
        max_loss=investment + 2.0 * equity_trade_cost,
        break_even=break_even,
        cost_basis=strike_short,
    )


def probability_of_profit(econ: TradeEconomics, profit_probability: float) -> float:
    """
    Probability of profit in percent.

    ``profit_probability`` is the probability of finishing on the profitable
    side of the break-even. Nothing to gain means 0; a negative investment
    (paid to enter) means 100.
    """
    if econ.max_gain <= 0:
        return 0.0
    if econ.investment < 0:
        return 100.0
    return 100.0 * profit_probability


def time_scaled(value: float, days_to_expiry: float, trading_days_per_year: float) -> Tuple[float, float, float]:
    """Weekly, monthly and yearly versions of a return realised over ``days_to_expiry``."""
    weeks = days_to_expiry / 7.0
    if weeks <= 0:
        return 0.0, 0.0, 0.0
    week = value / weeks
    weeks_per_year = trading_days_per_year / 7.0
    return week, week * weeks_per_year / 12.0, week * weeks_per_year
