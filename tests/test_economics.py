import pytest

from chainev.strategy.economics import (
    TradeEconomics,
    probability_of_profit,
    single_call_economics,
    single_put_economics,
    time_scaled,
    vertical_economics,
)


def _single_call(**overrides):
    kwargs = dict(
        strike=105.0,
        mark=2.00,
        multiplier=100.0,
        option_trade_cost=1.0,
        equity_trade_cost=5.0,
        underlying_price=100.0,
    )
    kwargs.update(overrides)
    return single_call_economics(**kwargs)


def test_single_call_scenario():
    econ = _single_call()
    assert econ.premium == pytest.approx(199.0)
    assert econ.investment == pytest.approx(9806.0)
    assert econ.max_gain == pytest.approx(689.0)
    assert econ.max_loss == pytest.approx(9806.0)
    assert 100 * econ.ror == pytest.approx(7.03, abs=0.005)
    assert 100 * econ.roi == pytest.approx(2.03, abs=0.005)
    # Equity bought at 100.05, premium worth 1.99 per share
    assert econ.break_even == pytest.approx(98.06)
    assert econ.cost_basis == econ.break_even


def test_single_call_cost_basis_override():
    econ = _single_call(cost_basis=90.0)
    assert econ.investment == pytest.approx(9000.0 - 199.0)
    assert econ.max_gain == pytest.approx(199.0 + 1500.0 - 5.0)
    assert econ.break_even == pytest.approx(88.01)


def test_single_put_cash_secured():
    econ = single_put_economics(95.0, 1.50, 100.0, 1.0, 5.0)
    assert econ.premium == pytest.approx(149.0)
    assert econ.investment == pytest.approx(9500.0 - 149.0)
    assert econ.max_gain == pytest.approx(149.0)
    assert econ.max_loss == pytest.approx(9351.0 + 5.0)
    assert econ.break_even == pytest.approx(93.51)


def test_bear_call_vertical():
    # Sell 100 call at 3.00, buy 105 call at 1.00
    econ = vertical_economics(105.0, 100.0, 1.00, 3.00, 100.0, 0.65, 5.0)
    assert econ.premium == pytest.approx(200.0 - 1.30)
    assert econ.investment == pytest.approx(500.0 - 198.7)
    assert econ.max_gain == pytest.approx(198.7)
    assert econ.max_loss == pytest.approx(301.3 + 10.0)
    assert econ.break_even == pytest.approx(101.987)
    assert econ.cost_basis == 100.0


def test_bull_put_vertical_break_even_below_short():
    # Sell 100 put at 2.50, buy 95 put at 1.00
    econ = vertical_economics(95.0, 100.0, 1.00, 2.50, 100.0, 0.0, 0.0)
    assert econ.premium == pytest.approx(150.0)
    assert econ.break_even == pytest.approx(98.5)


def test_ratios_guard_zero_denominators():
    econ = TradeEconomics(premium=0.0, investment=0.0, max_gain=0.0, max_loss=0.0, break_even=0.0, cost_basis=0.0)
    assert econ.ror == 0.0
    assert econ.roi == 0.0


def test_probability_of_profit_no_gain_is_zero():
    econ = _single_call(strike=95.0, mark=0.01)
    assert econ.max_gain <= 0
    assert probability_of_profit(econ, 0.9) == 0.0


def test_probability_of_profit_negative_investment_is_certain():
    # Credit larger than the spread width: paid to enter
    econ = vertical_economics(105.0, 100.0, 0.50, 6.00, 100.0, 0.0, 0.0)
    assert econ.investment < 0
    assert econ.max_gain > 0
    assert probability_of_profit(econ, 0.1) == 100.0


def test_probability_of_profit_regular_case():
    assert probability_of_profit(_single_call(), 0.62) == pytest.approx(62.0)


def test_time_scaled_returns():
    week, month, year = time_scaled(7.0, 14.0, 252.0)
    assert week == pytest.approx(3.5)
    assert month == pytest.approx(3.5 * 36.0 / 12.0)
    assert year == pytest.approx(3.5 * 36.0)


def test_time_scaled_expired_is_zero():
    assert time_scaled(5.0, 0.0, 252.0) == (0.0, 0.0, 0.0)
