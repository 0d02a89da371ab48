from datetime import date, datetime

import pytest

from chainev.data.schema import (
    ChainRow,
    ChainSnapshot,
    MarketParameters,
    OptionQuote,
    OptionType,
)
from chainev.pricing.models import BlackScholesModel

SPOT = 100.0
RATE = 0.05
SIGMA = 0.25
STAMP = datetime(2024, 1, 2, 10, 0)
EXPIRATION = date(2024, 4, 1)
EXPIRY_TIME = datetime(2024, 4, 1, 16, 0)
STRIKES = [85.0, 90.0, 95.0, 100.0, 105.0, 110.0, 115.0]


def _years(days_per_year: float = 365.0) -> float:
    return (EXPIRY_TIME - STAMP).total_seconds() / 86400.0 / days_per_year


def _quote(model, option_type, strike, half_spread, size):
    p = model.option_price(option_type, strike)
    bid = max(0.0, round(p - half_spread, 2))
    ask = round(p + half_spread, 2)
    return OptionQuote(
        bid=bid,
        ask=ask,
        mark=round((bid + ask) / 2.0, 3),
        bid_size=size,
        ask_size=size,
        quote_time=STAMP,
        expiry_time=EXPIRY_TIME,
        in_the_money=(strike < SPOT) if option_type is OptionType.CALL else (strike > SPOT),
        symbol=f"XYZ240401{option_type.value}{int(strike * 1000):08d}",
    )


def build_chain(strikes=STRIKES, sigma=SIGMA, half_spread=0.05, size=10, symbol='XYZ'):
    model = BlackScholesModel(SPOT, RATE, RATE, sigma, _years())
    rows = [
        ChainRow(
            strike=k,
            call=_quote(model, OptionType.CALL, k, half_spread, size),
            put=_quote(model, OptionType.PUT, k, half_spread, size),
        )
        for k in strikes
    ]
    return ChainSnapshot(symbol=symbol, expiration=EXPIRATION, timestamp=STAMP, rows=rows)


@pytest.fixture
def chain():
    return build_chain()


@pytest.fixture
def params():
    return MarketParameters(underlying_price=SPOT, risk_free_rate=RATE, option_trade_cost=0.65)
