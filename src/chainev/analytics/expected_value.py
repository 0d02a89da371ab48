"""
Expected-value analysis of one (symbol, expiration) option chain.

The engine builds market Greeks and the probability curve once, on the first
analysis request, then turns every candidate strategy into a result row:

- single calls (covered call) and single puts (cash-secured put)
- vertical bear calls and vertical bull puts, up to ``vertical_depth`` strikes wide

Rows go straight to the sink; the engine keeps none of them. One engine per
chain, used from one thread.
"""

from functools import partial
from typing import Dict, Optional

from ..data.schema import (
    ChainRow,
    ChainSnapshot,
    MarketParameters,
    OptionQuote,
    OptionType,
    StrategyFilterFlags,
    StrategyKind,
    StrikeLadder,
    UnderlyingRange,
    strike_key,
)
from ..pricing.greeks import Greeks, generate_chain_greeks
from ..pricing.models import create_pricing_model
from ..strategy.economics import (
    TradeEconomics,
    probability_of_profit,
    round2,
    round4,
    single_call_economics,
    single_put_economics,
    time_scaled,
    vertical_economics,
)
from ..strategy.filters import CandidateFilter, StrategyFilter
from ..strategy.results import CurveSink, ResultSink, StrategyResultRow
from .curve import ProbabilityCurve, PublishedCurve
from .probability import ProbabilityCurveBuilder
import logging

logger = logging.getLogger(__name__)

STRATEGY_DESC = {
    (StrategyKind.SINGLE, OptionType.CALL): 'Covered Call',
    (StrategyKind.SINGLE, OptionType.PUT): 'Cash Secured Put',
    (StrategyKind.VERT_BEAR_CALL, OptionType.CALL): 'Vertical Bear Call',
    (StrategyKind.VERT_BULL_PUT, OptionType.PUT): 'Vertical Bull Put',
}


def _net_volatility(vega_long: float, vi_long: float, vega_short: float, vi_short: float) -> float:
    denom = vega_long - vega_short
    if denom == 0:
        return 0.0
    return (vega_long * vi_long - vega_short * vi_short) / denom


class ExpectedValueEngine:

    def __init__(
        self,
        snapshot: ChainSnapshot,
        params: MarketParameters,
        sink: ResultSink,
        curve_sink: Optional[CurveSink] = None,
        strategy_filter: Optional[StrategyFilter] = None,
        candidate_filter: Optional[CandidateFilter] = None,
        strict: bool = False,
    ):
        self.snapshot = snapshot
        self.params = params
        self.sink = sink
        self.curve_sink = curve_sink
        self.strategy_filter = strategy_filter or StrategyFilter()
        self.candidate_filter = candidate_filter
        self.strict = strict
        self.label = f"{snapshot.symbol} {snapshot.expiration:%Y-%m-%d}"

        self._rows: Dict[int, ChainRow] = {r.key: r for r in snapshot.rows if not r.non_standard}
        self._model_factory = partial(
            create_pricing_model,
            params.pricing_method,
            dividends=params.dividends,
            european=params.european,
        )

        self.ladder = StrikeLadder.from_snapshot(snapshot)
        self.range: Optional[UnderlyingRange] = None
        self._valid = self.ladder.is_valid()
        if self._valid:
            self.range = UnderlyingRange.from_ladder(self.ladder, params.underlying_price)
            self._valid = self.range.is_valid()
        if not self._valid:
            logger.warning(f"{self.label} chain has no usable strike range, skipping")

        self._prepared: Optional[bool] = None
        self._greeks: Dict[OptionType, Dict[int, Greeks]] = {}
        self.curve: Optional[ProbabilityCurve] = None
        self.published: Optional[PublishedCurve] = None

    @property
    def valid(self) -> bool:
        return self._valid and self._prepared is not False

    def greeks(self, option_type: OptionType, strike: float) -> Optional[Greeks]:
        return self._greeks.get(option_type, {}).get(strike_key(strike))

    def prepare(self) -> bool:
        """Build Greeks and the probability curve once; later calls reuse the outcome."""
        if self._prepared is not None:
            return self._prepared
        if not self._valid:
            self._prepared = False
            return False

        generated = generate_chain_greeks(self._rows, self.ladder, self.params, self._model_factory)
        if generated is None:
            logger.error(f"{self.label} greeks generation failed")
            self._prepared = False
            return False

        calls, puts = generated
        builder = ProbabilityCurveBuilder(
            self.ladder,
            self.range,
            {OptionType.CALL: calls, OptionType.PUT: puts},
            self._model_factory,
            self.params.underlying_price,
            self.params.trading_days_per_year,
            label=self.label,
            strict=self.strict,
        )
        if not builder.build():
            self._prepared = False
            return False

        self._greeks = builder.greeks
        self.curve = builder.curve
        self.published = PublishedCurve(
            self.snapshot.symbol, self.snapshot.expiration, self.snapshot.timestamp, builder.points
        )
        if self.curve_sink is not None:
            self.curve_sink.publish_curve(self.published)

        self._prepared = True
        return True

    def analyze(self, strategy: StrategyKind) -> int:
        """Analyse one strategy over the chain. Returns the number of rows emitted."""
        flag = StrategyFilterFlags.SINGLE if strategy is StrategyKind.SINGLE else StrategyFilterFlags.VERTICAL
        if not self.params.strategies & flag:
            return 0
        if not self.prepare():
            return 0

        if strategy is StrategyKind.SINGLE:
            count = self._analyze_single()
        elif strategy is StrategyKind.VERT_BEAR_CALL:
            count = self._analyze_vertical(OptionType.CALL)
        else:
            count = self._analyze_vertical(OptionType.PUT)

        logger.debug(f"{self.label} {strategy.name}: {count} rows")
        return count

    # --- candidates ---

    def _accepts(self, strategy: StrategyKind, option_type: OptionType, strikes, quotes) -> bool:
        for q in quotes:
            if q is None or not q.is_actively_traded():
                return False
            if not self.strategy_filter.accepts_quote(q):
                return False
        if self.candidate_filter is not None and not self.candidate_filter(strategy, option_type, strikes):
            return False
        return True

    def _emit(self, row: Optional[StrategyResultRow]) -> int:
        if row is None or not self.strategy_filter.accepts_row(row):
            return 0
        self.sink.add_row(row)
        return 1

    def _analyze_single(self) -> int:
        count = 0
        for strike in self.ladder.ascending:
            chain_row = self._rows[strike_key(strike)]
            for option_type in (OptionType.CALL, OptionType.PUT):
                if not self.params.wants(option_type):
                    continue
                quote = chain_row.quote(option_type)
                if not self._accepts(StrategyKind.SINGLE, option_type, (strike,), (quote,)):
                    continue
                count += self._emit(self.single_row(strike, option_type))
        return count

    def _analyze_vertical(self, option_type: OptionType) -> int:
        if not self.params.wants(option_type):
            return 0

        strategy = StrategyKind.VERT_BEAR_CALL if option_type is OptionType.CALL else StrategyKind.VERT_BULL_PUT
        strikes = self.ladder.ascending
        depth = self.params.vertical_depth
        count = 0

        # Outer index is the higher strike: long leg for bear calls, short leg for bull puts
        for hi in range(len(strikes) - 1, -1, -1):
            for lo in range(max(0, hi - depth), hi):
                if option_type is OptionType.CALL:
                    long_strike, short_strike = strikes[hi], strikes[lo]
                else:
                    long_strike, short_strike = strikes[lo], strikes[hi]

                quotes = (
                    self._rows[strike_key(long_strike)].quote(option_type),
                    self._rows[strike_key(short_strike)].quote(option_type),
                )
                if not self._accepts(strategy, option_type, (long_strike, short_strike), quotes):
                    continue
                count += self._emit(self.vertical_row(long_strike, short_strike, option_type))
        return count

    # --- rows ---

    def _base_row(self, strategy: StrategyKind, option_type: OptionType, g: Greeks,
                  symbol: str, description: str, strike_price: str) -> StrategyResultRow:
        return StrategyResultRow(
            stamp=self.snapshot.timestamp,
            underlying=self.snapshot.symbol,
            underlying_price=self.params.underlying_price,
            option_type=option_type.label,
            strategy=strategy,
            strategy_desc=STRATEGY_DESC[(strategy, option_type)],
            symbol=symbol,
            description=description,
            expiration=self.snapshot.expiration,
            strike_price=strike_price,
            days_to_expiry=round2(g.time_to_expiry * self.params.days_per_year),
            time_to_expiry=round4(g.time_to_expiry),
            risk_free_rate=round4(g.risk_free_rate),
            div_yield=round4(self.params.dividend_yield),
        )

    def _fill_quote(self, row: StrategyResultRow, bid: float, ask: float, mark: float,
                    bid_size: int, ask_size: int, multiplier: float, itm: bool) -> None:
        row.bid_price = round2(bid)
        row.ask_price = round2(ask)
        row.mark = round2(mark)
        row.bid_size = bid_size
        row.ask_size = ask_size
        row.multiplier = multiplier
        row.is_in_the_money = itm
        row.bid_ask_spread = round2(ask - bid)
        row.bid_ask_spread_percent = round2(100.0 * (ask - bid) / ask) if ask > 0 else 0.0

    def _fill_economics(self, row: StrategyResultRow, econ: TradeEconomics, option_price: float,
                        theo_price: float, p_itm: float, pop: float, ev: float, time_to_expiry: float) -> None:
        days = time_to_expiry * self.params.days_per_year
        tdpy = self.params.trading_days_per_year

        row.probability_itm = round4(100.0 * p_itm)
        row.probability_otm = round4(100.0 * (1.0 - p_itm))
        row.probability_profit = round4(pop)

        row.investment_option_price = round2(option_price)
        row.investment_option_price_vs_theo = round2(option_price - theo_price)
        row.investment_amount = round2(econ.investment)
        row.premium_amount = round2(econ.premium)
        row.max_gain = round2(econ.max_gain)
        row.max_loss = round2(econ.max_loss)
        row.break_even_price = round2(econ.break_even)

        ror = 100.0 * econ.ror
        roi = 100.0 * econ.roi
        ev_roi = 100.0 * ev / econ.investment if econ.investment else 0.0

        row.ror = round2(ror)
        row.ror_week, row.ror_month, row.ror_year = map(round2, time_scaled(ror, days, tdpy))
        row.roi = round2(roi)
        row.roi_week, row.roi_month, row.roi_year = map(round2, time_scaled(roi, days, tdpy))
        row.expected_value = round2(ev)
        row.expected_value_roi = round2(ev_roi)
        (row.expected_value_roi_week,
         row.expected_value_roi_month,
         row.expected_value_roi_year) = map(round2, time_scaled(ev_roi, days, tdpy))

    def single_row(self, strike: float, option_type: OptionType) -> Optional[StrategyResultRow]:
        key = strike_key(strike)
        if self.curve is None or strike not in self.curve:
            return None

        quote: OptionQuote = self._rows[key].quote(option_type)
        g = self._greeks[option_type][key]
        m = quote.multiplier
        mark = round2(g.market_price)
        co = self.params.option_trade_cost
        ce = self.params.equity_trade_cost
        curve = self.curve

        if option_type is OptionType.CALL:
            econ = single_call_economics(
                strike, mark, m, co, ce, self.params.underlying_price, self.params.cost_basis
            )
            p_itm = curve.probability_of_itm(strike, is_call=True)
            ev = p_itm * econ.max_gain - curve.expected_loss(m, 0.0, strike, econ.cost_basis, p_itm, is_call=False)
            pop = probability_of_profit(econ, curve.probability_of_itm(econ.break_even, is_call=True))
        else:
            econ = single_put_economics(strike, mark, m, co, ce)
            p_itm = curve.probability_of_itm(strike, is_call=False)
            p_otm = 1.0 - p_itm
            ev = (p_otm * econ.max_gain
                  - curve.expected_loss(m, 0.0, strike, econ.cost_basis, p_otm, is_call=False)
                  - p_itm * ce)
            pop = probability_of_profit(econ, curve.probability_of_otm(econ.break_even, is_call=False))

        description = f"{self.snapshot.expiration:%b %d '%y} ${strike:g} {option_type.label}"
        row = self._base_row(StrategyKind.SINGLE, option_type, g, quote.symbol, description, f"{strike:g}")
        self._fill_quote(row, quote.bid, quote.ask, quote.mark, quote.bid_size, quote.ask_size,
                         m, quote.in_the_money)

        row.calc_bid_vi = round4(g.bid_vi)
        row.calc_ask_vi = round4(g.ask_vi)
        row.calc_mark_vi = round4(g.mark_vi)
        row.theo_option_value = round2(g.price)
        row.theo_volatility = round4(g.vi)
        row.delta = round4(g.delta)
        row.gamma = round4(g.gamma)
        row.theta = round4(g.theta)
        row.vega = round4(g.vega)
        row.rho = round4(g.rho)

        self._fill_economics(row, econ, mark, g.price, p_itm, pop, ev, g.time_to_expiry)
        return row

    def vertical_row(self, long_strike: float, short_strike: float,
                     option_type: OptionType) -> Optional[StrategyResultRow]:
        if self.curve is None or long_strike not in self.curve or short_strike not in self.curve:
            return None

        is_call = option_type is OptionType.CALL
        strategy = StrategyKind.VERT_BEAR_CALL if is_call else StrategyKind.VERT_BULL_PUT
        long_key, short_key = strike_key(long_strike), strike_key(short_strike)
        ql = self._rows[long_key].quote(option_type)
        qs = self._rows[short_key].quote(option_type)
        gl = self._greeks[option_type][long_key]
        gs = self._greeks[option_type][short_key]

        m = qs.multiplier
        mark_long, mark_short = round2(gl.market_price), round2(gs.market_price)
        ce = self.params.equity_trade_cost
        curve = self.curve

        econ = vertical_economics(
            long_strike, short_strike, mark_long, mark_short, m, self.params.option_trade_cost, ce
        )
        spread = abs(long_strike - short_strike)
        p_itm_long = curve.probability_of_itm(long_strike, is_call)
        p_itm_short = curve.probability_of_itm(short_strike, is_call)
        p_otm_short = 1.0 - p_itm_short
        lo, hi = min(long_strike, short_strike), max(long_strike, short_strike)

        ev = (p_otm_short * econ.max_gain
              - p_itm_long * (m * spread + ce)
              - curve.expected_loss(m, lo, hi, short_strike, p_itm_long + p_otm_short, is_call)
              - p_itm_short * ce)
        if econ.investment < 0:
            ev = -ev
        pop = probability_of_profit(econ, curve.probability_of_otm(econ.break_even, is_call))

        description = (f"{self.snapshot.expiration:%b %d '%y} ${short_strike:g}/${long_strike:g} "
                       f"{STRATEGY_DESC[(strategy, option_type)]}")
        row = self._base_row(
            strategy, option_type, gs, f"{qs.symbol}-{ql.symbol}", description,
            f"{short_strike:g}/{long_strike:g}",
        )
        self._fill_quote(
            row,
            bid=qs.bid - ql.ask,
            ask=qs.ask - ql.bid,
            mark=qs.mark - ql.mark,
            bid_size=min(qs.bid_size, ql.bid_size),
            ask_size=min(qs.ask_size, ql.ask_size),
            multiplier=m,
            itm=qs.in_the_money,
        )

        # Net position is long one leg and short the other
        row.calc_bid_vi = round4(_net_volatility(gl.vega, gl.bid_vi, gs.vega, gs.bid_vi))
        row.calc_ask_vi = round4(_net_volatility(gl.vega, gl.ask_vi, gs.vega, gs.ask_vi))
        row.calc_mark_vi = round4(_net_volatility(gl.vega, gl.mark_vi, gs.vega, gs.mark_vi))
        row.theo_volatility = round4(_net_volatility(gl.vega, gl.vi, gs.vega, gs.vi))
        row.theo_option_value = round2(gs.price - gl.price)
        row.delta = round4(gl.delta - gs.delta)
        row.gamma = round4(gl.gamma - gs.gamma)
        row.theta = round4(gl.theta - gs.theta)
        row.vega = round4(gl.vega - gs.vega)
        row.rho = round4(gl.rho - gs.rho)

        self._fill_economics(
            row, econ, mark_short - mark_long, gs.price - gl.price,
            p_itm_short, pop, ev, gs.time_to_expiry,
        )
        return row


def analyze_chain(
    snapshot: ChainSnapshot,
    params: MarketParameters,
    sink: ResultSink,
    curve_sink: Optional[CurveSink] = None,
    strategy_filter: Optional[StrategyFilter] = None,
    candidate_filter: Optional[CandidateFilter] = None,
    strict: bool = False,
) -> int:
    """Run every strategy over one chain. Returns the number of rows emitted."""
    engine = ExpectedValueEngine(snapshot, params, sink, curve_sink, strategy_filter, candidate_filter, strict)
    return sum(engine.analyze(kind) for kind in StrategyKind)
