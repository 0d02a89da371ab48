import numpy as np
import pytest

from chainev.data.schema import DividendSchedule, OptionType
from chainev.pricing.models import (
    BinomialModel,
    BlackScholesModel,
    create_pricing_model,
)


def _bs(sigma=0.2, S=100.0, r=0.05, b=None, T=1.0, dividends=None):
    return BlackScholesModel(S, r, r if b is None else b, sigma, T, dividends=dividends)


def test_black_scholes_reference_values():
    # Hull's textbook example: S=42, K=40, r=10%, sigma=20%, T=0.5
    model = BlackScholesModel(42.0, 0.10, 0.10, 0.20, 0.5)
    assert model.option_price(OptionType.CALL, 40.0) == pytest.approx(4.76, abs=0.01)
    assert model.option_price(OptionType.PUT, 40.0) == pytest.approx(0.81, abs=0.01)


def test_put_call_parity_with_cost_of_carry():
    S, K, r, b, T = 100.0, 95.0, 0.05, 0.02, 0.75
    model = _bs(sigma=0.3, r=r, b=b, T=T)
    call = model.option_price(OptionType.CALL, K)
    put = model.option_price(OptionType.PUT, K)
    assert call - put == pytest.approx(S * np.exp((b - r) * T) - K * np.exp(-r * T), abs=1e-9)


def test_zero_volatility_returns_forward_intrinsic():
    model = _bs(sigma=0.0, T=1.0)
    assert model.option_price(OptionType.CALL, 90.0) == pytest.approx(100.0 - 90.0 * np.exp(-0.05))
    assert model.option_price(OptionType.PUT, 90.0) == 0.0


def test_partials_match_finite_differences():
    model = _bs(sigma=0.25, T=0.5)
    p = model.partials(OptionType.CALL, 105.0)

    h = 0.01
    up = BlackScholesModel(100.0 + h, 0.05, 0.05, 0.25, 0.5).option_price(OptionType.CALL, 105.0)
    dn = BlackScholesModel(100.0 - h, 0.05, 0.05, 0.25, 0.5).option_price(OptionType.CALL, 105.0)
    assert p.delta == pytest.approx((up - dn) / (2 * h), abs=1e-4)
    assert p.gamma == pytest.approx((up - 2 * p.price + dn) / (h * h), rel=1e-2)

    v_up = _bs(sigma=0.25 + 1e-4, T=0.5).option_price(OptionType.CALL, 105.0)
    v_dn = _bs(sigma=0.25 - 1e-4, T=0.5).option_price(OptionType.CALL, 105.0)
    assert p.vega == pytest.approx((v_up - v_dn) / 2e-4, rel=1e-4)
    assert model.vega(OptionType.CALL, 105.0) == pytest.approx(p.vega)


def test_put_delta_is_negative_and_theta_decays():
    p = _bs(sigma=0.3, T=0.25).partials(OptionType.PUT, 100.0)
    assert -1.0 < p.delta < 0.0
    assert p.theta < 0.0
    assert p.rho < 0.0


def test_discrete_dividend_lowers_call_and_raises_put():
    divs = DividendSchedule(times=(0.1,), yields=(0.02,))
    plain = _bs(sigma=0.2, T=0.5)
    paying = _bs(sigma=0.2, T=0.5, dividends=divs)
    assert paying.option_price(OptionType.CALL, 100.0) < plain.option_price(OptionType.CALL, 100.0)
    assert paying.option_price(OptionType.PUT, 100.0) > plain.option_price(OptionType.PUT, 100.0)


def test_dividend_after_expiry_is_ignored():
    divs = DividendSchedule(times=(2.0,), yields=(0.05,))
    assert _bs(T=0.5, dividends=divs).option_price(OptionType.CALL, 100.0) == pytest.approx(
        _bs(T=0.5).option_price(OptionType.CALL, 100.0)
    )


def test_dividend_schedule_lengths_must_match():
    with pytest.raises(ValueError):
        DividendSchedule(times=(0.1, 0.2), yields=(0.01,))


def test_manaster_koehler_seed():
    model = _bs(T=0.5)
    assert model.implied_volatility_seed(110.0) == pytest.approx(
        np.sqrt(abs(np.log(100.0 / 110.0) + 0.05 * 0.5) * 2.0 / 0.5)
    )


def test_european_binomial_converges_to_black_scholes():
    bs = _bs(sigma=0.3, T=0.5)
    tree = BinomialModel(100.0, 0.05, 0.05, 0.3, 0.5, european=True, steps=256)
    for option_type in (OptionType.CALL, OptionType.PUT):
        assert tree.option_price(option_type, 100.0) == pytest.approx(bs.option_price(option_type, 100.0), abs=0.05)


def test_american_put_worth_at_least_european():
    american = BinomialModel(100.0, 0.08, 0.08, 0.25, 1.0)
    european = BinomialModel(100.0, 0.08, 0.08, 0.25, 1.0, european=True)
    assert american.option_price(OptionType.PUT, 110.0) > european.option_price(OptionType.PUT, 110.0)
    assert american.option_price(OptionType.PUT, 110.0) >= 10.0


def test_binomial_partials_have_black_scholes_signs():
    p = BinomialModel(100.0, 0.05, 0.05, 0.25, 0.5).partials(OptionType.CALL, 100.0)
    assert 0.0 < p.delta < 1.0
    assert p.gamma > 0.0
    assert p.vega > 0.0
    assert p.theta < 0.0
    assert p.rho > 0.0


def test_factory_selects_model_by_name():
    assert isinstance(create_pricing_model('blackscholes', 100, 0.05, 0.05, 0.2, 1.0), BlackScholesModel)
    assert isinstance(create_pricing_model('BINOM', 100, 0.05, 0.05, 0.2, 1.0), BinomialModel)


def test_factory_rejects_unknown_method_and_bad_spot():
    with pytest.raises(ValueError):
        create_pricing_model('MONTECARLO', 100, 0.05, 0.05, 0.2, 1.0)
    with pytest.raises(ValueError):
        create_pricing_model('BLACKSCHOLES', 0.0, 0.05, 0.05, 0.2, 1.0)
