from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum, IntEnum, IntFlag
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np


class OptionType(str, Enum):
    CALL = 'C'
    PUT = 'P'

    @property
    def is_call(self) -> bool:
        return self is OptionType.CALL

    @property
    def label(self) -> str:
        return 'Call' if self is OptionType.CALL else 'Put'


class StrategyKind(IntEnum):
    SINGLE = 0
    VERT_BEAR_CALL = 1
    VERT_BULL_PUT = 2


class OptionTypeFilter(IntFlag):
    CALLS = 1
    PUTS = 2
    ALL = 3


class StrategyFilterFlags(IntFlag):
    SINGLE = 1
    VERTICAL = 2
    ALL = 3


# Options on US equities stop trading at the close
EXPIRY_TIME_OF_DAY = time(16, 0)


def strike_key(strike: float) -> int:
    """Quantize a strike to integer cents so equal strikes compare equal."""
    return int(round(strike * 100.0))


@dataclass
class OptionQuote:
    bid: float
    ask: float
    mark: Optional[float] = None
    bid_size: int = 0
    ask_size: int = 0

    quote_time: Optional[datetime] = None
    expiry_time: Optional[datetime] = None

    in_the_money: bool = False
    non_standard: bool = False
    multiplier: float = 100.0

    symbol: str = ''
    description: str = ''

    def __post_init__(self):
        if self.mark is None:
            self.mark = (self.bid + self.ask) / 2.0

    def valid_spread(self) -> bool:
        """Returns True if bid > 0 and ask > bid."""
        return self.bid > 0 and self.ask > self.bid

    def has_valid_times(self) -> bool:
        if self.quote_time is None or self.expiry_time is None:
            return False
        return self.quote_time < self.expiry_time

    def is_actively_traded(self) -> bool:
        return self.bid_size > 0 and self.ask_size > 0


@dataclass
class ChainRow:
    strike: float
    call: Optional[OptionQuote] = None
    put: Optional[OptionQuote] = None

    @property
    def key(self) -> int:
        return strike_key(self.strike)

    @property
    def non_standard(self) -> bool:
        return any(q is not None and q.non_standard for q in (self.call, self.put))

    def quote(self, option_type: OptionType) -> Optional[OptionQuote]:
        return self.call if option_type is OptionType.CALL else self.put


@dataclass
class ChainSnapshot:
    symbol: str
    expiration: date
    timestamp: datetime
    rows: List[ChainRow] = field(default_factory=list)

    def get_row(self, strike: float) -> Optional[ChainRow]:
        key = strike_key(strike)
        for row in self.rows:
            if row.key == key:
                return row
        return None

    def get_quote(self, strike: float, option_type: OptionType) -> Optional[OptionQuote]:
        row = self.get_row(strike)
        return row.quote(option_type) if row is not None else None

    @property
    def strikes(self) -> List[float]:
        """Returns sorted unique list of strikes in the chain."""
        return sorted(set(row.strike for row in self.rows))

    @property
    def expiry_datetime(self) -> datetime:
        return datetime.combine(self.expiration, EXPIRY_TIME_OF_DAY)


@dataclass(frozen=True)
class DividendSchedule:
    """Discrete proportional dividends: times in years and yields as fractions."""
    times: Tuple[float, ...] = ()
    yields: Tuple[float, ...] = ()

    def __post_init__(self):
        if len(self.times) != len(self.yields):
            raise ValueError("dividend times and yields must have the same length")

    def retained_fraction(self, t_start: float, t_end: float) -> float:
        """Fraction of spot left after the dividends paid in (t_start, t_end]."""
        fraction = 1.0
        for t, y in zip(self.times, self.yields):
            if t_start < t <= t_end:
                fraction *= 1.0 - y
        return fraction

    def __bool__(self) -> bool:
        return len(self.times) > 0


@dataclass(frozen=True)
class MarketParameters:
    underlying_price: float
    risk_free_rate: float = 0.0
    # Optional (years, rate) term structure; overrides the flat rate when set
    rate_curve: Tuple[Tuple[float, float], ...] = ()
    dividend_yield: float = 0.0
    dividends: DividendSchedule = field(default_factory=DividendSchedule)

    days_per_year: float = 365.0
    trading_days_per_year: float = 252.0

    option_trade_cost: float = 0.0
    equity_trade_cost: float = 0.0
    cost_basis: Optional[float] = None

    vertical_depth: int = 4
    option_types: OptionTypeFilter = OptionTypeFilter.ALL
    strategies: StrategyFilterFlags = StrategyFilterFlags.ALL

    pricing_method: str = 'BLACKSCHOLES'
    european: bool = False

    def rate_for(self, time_to_expiry: float) -> float:
        """Risk-free rate for a horizon, linear on the term curve with flat ends."""
        if not self.rate_curve:
            return self.risk_free_rate
        terms = [t for t, _ in self.rate_curve]
        rates = [r for _, r in self.rate_curve]
        return float(np.interp(time_to_expiry, terms, rates))

    def cost_of_carry(self, rate: float) -> float:
        return rate - self.dividend_yield

    def wants(self, option_type: OptionType) -> bool:
        flag = OptionTypeFilter.CALLS if option_type is OptionType.CALL else OptionTypeFilter.PUTS
        return bool(self.option_types & flag)


@dataclass(frozen=True)
class StrikeLadder:
    ascending: Tuple[float, ...]
    descending: Tuple[float, ...]

    @classmethod
    def from_strikes(cls, strikes: Sequence[float]) -> 'StrikeLadder':
        by_key: Dict[int, float] = {}
        for k in strikes:
            by_key.setdefault(strike_key(k), float(k))
        ordered = tuple(by_key[key] for key in sorted(by_key))
        return cls(ascending=ordered, descending=tuple(reversed(ordered)))

    @classmethod
    def from_snapshot(cls, snapshot: ChainSnapshot) -> 'StrikeLadder':
        return cls.from_strikes([row.strike for row in snapshot.rows if not row.non_standard])

    def is_valid(self) -> bool:
        return (
            len(self.ascending) == len(self.descending) > 0
            and tuple(reversed(self.ascending)) == self.descending
        )

    def ordered(self, option_type: OptionType) -> Tuple[float, ...]:
        """Strikes in the natural order of a side: ascending for calls, descending for puts."""
        return self.ascending if option_type is OptionType.CALL else self.descending

    def __len__(self) -> int:
        return len(self.ascending)

    def __contains__(self, strike: float) -> bool:
        key = strike_key(strike)
        return any(strike_key(k) == key for k in self.ascending)


@dataclass(frozen=True)
class UnderlyingRange:
    underlying: float
    spread: float
    min: float
    max: float

    @classmethod
    def from_ladder(cls, ladder: StrikeLadder, underlying: float) -> 'UnderlyingRange':
        spread = max(underlying - ladder.ascending[0], ladder.ascending[-1] - underlying)
        return cls(
            underlying=underlying,
            spread=spread,
            min=max(0.0, underlying - spread),
            max=underlying + spread,
        )

    def is_valid(self) -> bool:
        return self.spread > 0
