from datetime import timedelta

import pytest

from chainev.data.schema import MarketParameters, OptionQuote, OptionType, strike_key, StrikeLadder
from chainev.pricing.greeks import Greeks, compute_greeks, generate_chain_greeks, generate_side_greeks
from chainev.pricing.models import BlackScholesModel, create_pricing_model

from conftest import EXPIRY_TIME, RATE, SPOT, STAMP, build_chain


def _factory(S, r, b, sigma, T):
    return create_pricing_model('BLACKSCHOLES', S, r, b, sigma, T)


def test_compute_greeks_scaling():
    reference = BlackScholesModel(100.0, 0.05, 0.05, 0.22, 0.5)
    raw = reference.partials(OptionType.CALL, 100.0)

    g, ok = compute_greeks(
        BlackScholesModel(100.0, 0.05, 0.05, 0.0, 0.5), raw.price, 100.0, OptionType.CALL, Greeks(), 252.0
    )
    assert ok
    assert g.vi == pytest.approx(0.22, abs=1e-3)
    assert g.theta == pytest.approx(raw.theta / 252.0, rel=1e-2)
    assert g.vega == pytest.approx(raw.vega / 100.0, rel=1e-2)
    assert g.rho == pytest.approx(raw.rho / 100.0, rel=1e-2)
    assert g.delta == pytest.approx(raw.delta, abs=1e-3)


def test_compute_greeks_returns_new_record_and_fails_on_zero_price():
    original = Greeks(bid=1.0, ask=1.2)
    g, ok = compute_greeks(BlackScholesModel(100.0, 0.05, 0.05, 0.0, 0.5), 0.0, 100.0,
                           OptionType.PUT, original, 252.0)
    assert not ok
    assert g is original
    assert original.vi == 0.0


def test_side_greeks_spread_and_volatilities():
    params = MarketParameters(underlying_price=SPOT, risk_free_rate=RATE)
    quote = build_chain().get_quote(100.0, OptionType.CALL)

    g = generate_side_greeks(quote, 100.0, OptionType.CALL, params, _factory)
    assert g is not None
    assert g.spread == pytest.approx(quote.ask - quote.bid)
    assert g.spread_percent == pytest.approx((quote.ask - quote.bid) / quote.ask)
    assert g.time_to_expiry == pytest.approx((EXPIRY_TIME - STAMP).total_seconds() / 86400.0 / 365.0)
    assert 0.0 < g.bid_vi < g.mark_vi < g.ask_vi
    assert g.mark_vi == pytest.approx(0.25, abs=0.005)


def test_side_greeks_zero_bid_volatility_above_ask():
    # A bid that inverts above the ask volatility is discarded
    params = MarketParameters(underlying_price=SPOT, risk_free_rate=RATE)
    quote = OptionQuote(bid=5.50, ask=5.00, quote_time=STAMP, expiry_time=EXPIRY_TIME)
    g = generate_side_greeks(quote, 100.0, OptionType.CALL, params, _factory)
    assert g.ask_vi > 0
    assert g.bid_vi == 0.0


def test_side_greeks_rejects_bad_timestamps():
    params = MarketParameters(underlying_price=SPOT, risk_free_rate=RATE)
    late = OptionQuote(bid=1.0, ask=1.1, quote_time=EXPIRY_TIME, expiry_time=EXPIRY_TIME - timedelta(hours=1))
    missing = OptionQuote(bid=1.0, ask=1.1)
    assert generate_side_greeks(late, 100.0, OptionType.CALL, params, _factory) is None
    assert generate_side_greeks(missing, 100.0, OptionType.CALL, params, _factory) is None
    assert generate_side_greeks(None, 100.0, OptionType.CALL, params, _factory) is None


def test_rate_curve_used_for_horizon():
    params = MarketParameters(underlying_price=SPOT, rate_curve=((0.0, 0.01), (1.0, 0.05)))
    quote = build_chain().get_quote(100.0, OptionType.PUT)
    g = generate_side_greeks(quote, 100.0, OptionType.PUT, params, _factory)
    assert g.risk_free_rate == pytest.approx(0.01 + 0.04 * g.time_to_expiry)


def test_chain_greeks_all_or_nothing():
    chain = build_chain()
    params = MarketParameters(underlying_price=SPOT, risk_free_rate=RATE)
    ladder = StrikeLadder.from_snapshot(chain)
    rows = {r.key: r for r in chain.rows}

    calls, puts = generate_chain_greeks(rows, ladder, params, _factory)
    assert set(calls) == set(puts) == {strike_key(k) for k in ladder.ascending}

    chain.get_row(95.0).put = None
    assert generate_chain_greeks(rows, ladder, params, _factory) is None
