from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..data.schema import OptionQuote, OptionType, StrategyKind
from .results import StrategyResultRow

# (strategy, option type, leg strikes) -> keep?
CandidateFilter = Callable[[StrategyKind, OptionType, Sequence[float]], bool]


@dataclass
class StrategyFilter:
    """
    Thresholds applied to candidates (quote level, before any computation)
    and to finished rows (before they reach the sink). None disables a check.
    Percent thresholds use the same units as the rows (0-100).
    """
    min_bid_size: int = 0
    min_ask_size: int = 0
    max_spread_percent: Optional[float] = None

    min_investment: Optional[float] = None
    max_investment: Optional[float] = None
    max_loss: Optional[float] = None
    min_gain: Optional[float] = None
    min_probability_profit: Optional[float] = None
    max_probability_profit: Optional[float] = None
    min_roi: Optional[float] = None
    max_roi: Optional[float] = None
    min_expected_value: Optional[float] = None

    @classmethod
    def from_config(cls, config: dict) -> 'StrategyFilter':
        return cls(
            min_bid_size=int(config.get('min_bid_size', 0)),
            min_ask_size=int(config.get('min_ask_size', 0)),
            max_spread_percent=config.get('max_spread_percent'),
            min_investment=config.get('min_investment'),
            max_investment=config.get('max_investment'),
            max_loss=config.get('max_loss'),
            min_gain=config.get('min_gain'),
            min_probability_profit=config.get('min_probability_profit'),
            max_probability_profit=config.get('max_probability_profit'),
            min_roi=config.get('min_roi'),
            max_roi=config.get('max_roi'),
            min_expected_value=config.get('min_expected_value'),
        )

    def accepts_quote(self, quote: OptionQuote) -> bool:
        if quote.bid_size < self.min_bid_size or quote.ask_size < self.min_ask_size:
            return False
        if self.max_spread_percent is not None and quote.ask > 0:
            if 100.0 * (quote.ask - quote.bid) / quote.ask > self.max_spread_percent:
                return False
        return True

    def accepts_row(self, row: StrategyResultRow) -> bool:
        checks = (
            (self.min_investment, row.investment_amount, False),
            (self.max_investment, row.investment_amount, True),
            (self.max_loss, row.max_loss, True),
            (self.min_gain, row.max_gain, False),
            (self.min_probability_profit, row.probability_profit, False),
            (self.max_probability_profit, row.probability_profit, True),
            (self.min_roi, row.roi, False),
            (self.max_roi, row.roi, True),
            (self.min_expected_value, row.expected_value, False),
        )
        for limit, value, is_max in checks:
            if limit is None:
                continue
            if is_max and value > limit:
                return False
            if not is_max and value < limit:
                return False
        return True
