from pathlib import Path

import pytest
import yaml

from chainev.data.schema import OptionTypeFilter, StrategyFilterFlags
from chainev.utils.config import (
    get_config_hash,
    get_default_config,
    load_config,
    market_parameters_from_config,
    merge_configs,
    save_config_used,
    strategy_filter_from_config,
)


def test_defaults_build_parameters():
    params = market_parameters_from_config({}, 100.0)
    assert params.underlying_price == 100.0
    assert params.risk_free_rate == 0.05
    assert params.days_per_year == 365.0
    assert params.trading_days_per_year == 252.0
    assert params.vertical_depth == 4
    assert params.option_types == OptionTypeFilter.ALL
    assert params.strategies == StrategyFilterFlags.ALL
    assert params.pricing_method == 'BLACKSCHOLES'
    assert params.cost_basis is None
    assert not params.dividends


def test_partial_override_keeps_other_defaults():
    params = market_parameters_from_config(
        {'analysis': {'option_types': 'puts', 'vertical_depth': 2, 'pricing_method': 'binom'},
         'costs': {'cost_basis': 95.0}},
        50.0,
    )
    assert params.option_types == OptionTypeFilter.PUTS
    assert params.strategies == StrategyFilterFlags.ALL
    assert params.vertical_depth == 2
    assert params.pricing_method == 'BINOM'
    assert params.cost_basis == 95.0
    assert params.option_trade_cost == 0.65


def test_curves_and_dividends_parsed():
    params = market_parameters_from_config(
        {'market': {'rate_curve': [[0.25, 0.03], [1.0, 0.04]], 'dividends': [[0.1, 0.01]]}},
        100.0,
    )
    assert params.rate_curve == ((0.25, 0.03), (1.0, 0.04))
    assert params.dividends.times == (0.1,)
    assert params.dividends.yields == (0.01,)
    assert params.rate_for(0.25) == pytest.approx(0.03)


@pytest.mark.parametrize("override, price", [
    ({'analysis': {'option_types': 'BOTH'}}, 100.0),
    ({'analysis': {'strategies': 'CONDOR'}}, 100.0),
    ({'analysis': {'vertical_depth': 0}}, 100.0),
    ({}, 0.0),
])
def test_invalid_values_rejected(override, price):
    with pytest.raises(ValueError):
        market_parameters_from_config(override, price)


def test_default_config_is_a_copy():
    cfg = get_default_config()
    cfg['market']['risk_free_rate'] = 0.5
    assert get_default_config()['market']['risk_free_rate'] == 0.05


def test_merge_is_deep():
    merged = merge_configs({'a': {'x': 1, 'y': 2}, 'b': 1}, {'a': {'y': 3}})
    assert merged == {'a': {'x': 1, 'y': 3}, 'b': 1}


def test_config_hash_stable_and_sensitive():
    cfg = get_default_config()
    assert get_config_hash(cfg) == get_config_hash(get_default_config())
    cfg['analysis']['vertical_depth'] = 6
    assert get_config_hash(cfg) != get_config_hash(get_default_config())


def test_save_and_load_config(tmp_path):
    cfg = get_default_config()
    path = tmp_path / 'out' / 'config_used.yaml'
    save_config_used(cfg, str(path))

    saved = yaml.safe_load(path.read_text())
    assert saved['_meta']['config_hash'] == get_config_hash(cfg)
    assert '_meta' not in cfg

    loaded = load_config(str(path))
    assert loaded['analysis'] == cfg['analysis']


def test_load_empty_config(tmp_path):
    path = tmp_path / 'empty.yaml'
    path.write_text('')
    assert load_config(str(path)) == {}


def test_strategy_filter_from_config():
    f = strategy_filter_from_config({'filters': {'min_bid_size': 2, 'max_spread_percent': 15.0}})
    assert f.min_bid_size == 2
    assert f.min_ask_size == 0
    assert f.max_spread_percent == 15.0
    assert f.min_expected_value is None


def test_shipped_yaml_mirrors_defaults():
    path = Path(__file__).resolve().parent.parent / 'configs' / 'ev_config.yaml'
    assert load_config(str(path)) == get_default_config()
