import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import hashlib

from ..data.schema import (
    DividendSchedule,
    MarketParameters,
    OptionTypeFilter,
    StrategyFilterFlags,
)
from ..strategy.filters import StrategyFilter


def load_config(config_path: str) -> Dict[str, Any]:
    """Load YAML configuration file."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def merge_configs(base: Dict, override: Dict) -> Dict:
    """Deep merge two config dicts."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value
    return result


def get_config_hash(config: Dict) -> str:
    """Generate hash of config for reproducibility tracking."""
    config_str = yaml.dump(config, sort_keys=True)
    return hashlib.sha256(config_str.encode()).hexdigest()[:12]


def save_config_used(config: Dict, output_path: str):
    """Save config with hash next to the results it produced."""
    config_with_meta = config.copy()
    config_with_meta['_meta'] = {
        'config_hash': get_config_hash(config),
        'saved_at': str(Path(output_path).resolve())
    }

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w') as f:
        yaml.dump(config_with_meta, f, default_flow_style=False)


# ══════════════════════════════════════════════════════════════════════════════
# ANALYSIS DEFAULTS
# ══════════════════════════════════════════════════════════════════════════════

DEFAULT_CONFIG = {
    'market': {
        'risk_free_rate': 0.05,
        'rate_curve': [],            # [[years, rate], ...]; overrides risk_free_rate when set
        'dividend_yield': 0.0,       # continuous yield, folded into cost of carry
        'dividends': [],             # [[years, yield], ...] discrete proportional dividends
        'days_per_year': 365.0,      # calendar convention for time to expiry
        'trading_days_per_year': 252.0,  # theta and return annualization
    },
    'costs': {
        'option_trade_cost': 0.65,   # per option contract
        'equity_trade_cost': 0.0,    # per equity trade
        'cost_basis': None,          # per-share basis of held stock; None buys at market
    },
    'analysis': {
        'vertical_depth': 4,
        'option_types': 'ALL',       # CALLS, PUTS or ALL
        'strategies': 'ALL',         # SINGLE, VERTICAL or ALL
        'pricing_method': 'BLACKSCHOLES',  # or BINOM
        'european': False,
        'strict_probability_mass': False,
        'max_workers': None,         # None = 2 x CPU count
    },
    'filters': {
        'min_bid_size': 0,
        'min_ask_size': 0,
        'max_spread_percent': None,
        'min_investment': None,
        'max_investment': None,
        'max_loss': None,
        'min_gain': None,
        'min_probability_profit': None,
        'max_probability_profit': None,
        'min_roi': None,
        'max_roi': None,
        'min_expected_value': None,
    },
}


def get_default_config() -> Dict[str, Any]:
    """Get a fresh copy of the analysis defaults."""
    return copy.deepcopy(DEFAULT_CONFIG)


def _flag(enum_cls, token: str):
    try:
        return enum_cls[str(token).upper().strip()]
    except KeyError:
        raise ValueError(f"Unknown {enum_cls.__name__} '{token}', expected one of {[m.name for m in enum_cls]}")


def market_parameters_from_config(config: Dict[str, Any], underlying_price: float) -> MarketParameters:
    """Build MarketParameters from a (possibly partial) config dict."""
    cfg = merge_configs(get_default_config(), config or {})
    market = cfg['market']
    costs = cfg['costs']
    analysis = cfg['analysis']

    if underlying_price is None or underlying_price <= 0:
        raise ValueError("underlying_price must be positive")

    dividends = market.get('dividends') or []
    depth = int(analysis.get('vertical_depth', 4))
    if depth < 1:
        raise ValueError("vertical_depth must be at least 1")

    return MarketParameters(
        underlying_price=float(underlying_price),
        risk_free_rate=float(market.get('risk_free_rate', 0.0)),
        rate_curve=tuple((float(t), float(r)) for t, r in (market.get('rate_curve') or [])),
        dividend_yield=float(market.get('dividend_yield', 0.0)),
        dividends=DividendSchedule(
            times=tuple(float(t) for t, _ in dividends),
            yields=tuple(float(y) for _, y in dividends),
        ),
        days_per_year=float(market.get('days_per_year', 365.0)),
        trading_days_per_year=float(market.get('trading_days_per_year', 252.0)),
        option_trade_cost=float(costs.get('option_trade_cost', 0.0)),
        equity_trade_cost=float(costs.get('equity_trade_cost', 0.0)),
        cost_basis=costs.get('cost_basis'),
        vertical_depth=depth,
        option_types=_flag(OptionTypeFilter, analysis.get('option_types', 'ALL')),
        strategies=_flag(StrategyFilterFlags, analysis.get('strategies', 'ALL')),
        pricing_method=str(analysis.get('pricing_method', 'BLACKSCHOLES')).upper(),
        european=bool(analysis.get('european', False)),
    )


def strategy_filter_from_config(config: Optional[Dict[str, Any]]) -> StrategyFilter:
    cfg = merge_configs(get_default_config(), config or {})
    return StrategyFilter.from_config(cfg['filters'])
