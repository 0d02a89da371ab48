"""
Chain loaders.

A chain file has one row per strike and call_/put_ prefixed quote columns:

    strike, call_bid, call_ask[, call_mark, call_bid_size, call_ask_size,
    call_quote_time, call_expiry_time, call_itm, call_non_standard,
    call_multiplier, call_symbol, call_description], put_... likewise

Missing optional columns take defaults: mark = mid, sizes = 0, quote time =
snapshot timestamp, expiry time = expiration date at the close.
"""

from datetime import date, datetime
from typing import Optional

import numpy as np
import pandas as pd

from .schema import ChainRow, ChainSnapshot, OptionQuote, OptionType, EXPIRY_TIME_OF_DAY

REQUIRED_COLUMNS = ['strike']
SIDE_REQUIRED = ['bid', 'ask']


def _value(rec, name, default=None):
    v = rec.get(name, default)
    if v is None:
        return default
    if isinstance(v, float) and np.isnan(v):
        return default
    return v


def _bool(v) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ('true', '1', 'yes', 'y')
    return bool(v)


def _timestamp(v, default: datetime) -> datetime:
    if v is None:
        return default
    ts = pd.Timestamp(v)
    if pd.isna(ts):
        return default
    return ts.to_pydatetime()


def _side_quote(rec: dict, prefix: str, timestamp: datetime, expiry: datetime) -> Optional[OptionQuote]:
    bid = _value(rec, f'{prefix}_bid')
    ask = _value(rec, f'{prefix}_ask')
    if bid is None or ask is None:
        return None

    return OptionQuote(
        bid=float(bid),
        ask=float(ask),
        mark=float(_value(rec, f'{prefix}_mark', (float(bid) + float(ask)) / 2.0)),
        bid_size=int(_value(rec, f'{prefix}_bid_size', 0)),
        ask_size=int(_value(rec, f'{prefix}_ask_size', 0)),
        quote_time=_timestamp(_value(rec, f'{prefix}_quote_time'), timestamp),
        expiry_time=_timestamp(_value(rec, f'{prefix}_expiry_time'), expiry),
        in_the_money=_bool(_value(rec, f'{prefix}_itm', False)),
        non_standard=_bool(_value(rec, f'{prefix}_non_standard', False)),
        multiplier=float(_value(rec, f'{prefix}_multiplier', 100.0)),
        symbol=str(_value(rec, f'{prefix}_symbol', '')),
        description=str(_value(rec, f'{prefix}_description', '')),
    )


def chain_from_dataframe(
    df: pd.DataFrame,
    symbol: str,
    expiration: date,
    timestamp: datetime,
) -> ChainSnapshot:
    """Build a ChainSnapshot from a per-strike DataFrame."""
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    for side in (OptionType.CALL, OptionType.PUT):
        prefix = side.label.lower()
        missing += [f'{prefix}_{c}' for c in SIDE_REQUIRED if f'{prefix}_{c}' not in df.columns]
    if missing:
        raise ValueError(f"Chain data is missing columns: {missing}")

    expiry = datetime.combine(expiration, EXPIRY_TIME_OF_DAY)
    rows = []
    for rec in df.sort_values('strike').to_dict('records'):
        rows.append(ChainRow(
            strike=float(rec['strike']),
            call=_side_quote(rec, 'call', timestamp, expiry),
            put=_side_quote(rec, 'put', timestamp, expiry),
        ))

    return ChainSnapshot(symbol=symbol, expiration=expiration, timestamp=timestamp, rows=rows)


def load_chain_csv(
    path: str,
    symbol: str,
    expiration: date,
    timestamp: datetime,
) -> ChainSnapshot:
    """Load a per-strike chain CSV."""
    df = pd.read_csv(path)
    return chain_from_dataframe(df, symbol, expiration, timestamp)


def chain_to_dataframe(snapshot: ChainSnapshot) -> pd.DataFrame:
    """Flatten a snapshot back into the per-strike column layout."""
    records = []
    for row in snapshot.rows:
        rec = {'strike': row.strike}
        for side in (OptionType.CALL, OptionType.PUT):
            q = row.quote(side)
            if q is None:
                continue
            prefix = side.label.lower()
            rec.update({
                f'{prefix}_bid': q.bid,
                f'{prefix}_ask': q.ask,
                f'{prefix}_mark': q.mark,
                f'{prefix}_bid_size': q.bid_size,
                f'{prefix}_ask_size': q.ask_size,
                f'{prefix}_quote_time': q.quote_time,
                f'{prefix}_expiry_time': q.expiry_time,
                f'{prefix}_itm': q.in_the_money,
                f'{prefix}_non_standard': q.non_standard,
                f'{prefix}_multiplier': q.multiplier,
                f'{prefix}_symbol': q.symbol,
                f'{prefix}_description': q.description,
            })
        records.append(rec)
    return pd.DataFrame(records)
