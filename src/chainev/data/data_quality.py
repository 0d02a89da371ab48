import pandas as pd
from typing import Any, Dict, List

from .schema import ChainSnapshot, OptionType


class DataQualityChecker:
    def __init__(self):
        self.issues: List[str] = []

    def check_chain_integrity(self, chain: ChainSnapshot, underlying_price: float) -> Dict[str, Any]:
        """
        Validates a single option chain snapshot.
        Checks for:
        - Crossed quotes (ask < bid)
        - Negative prices
        - Strikes missing a call or put quote
        - Non-standard strikes
        - Spot outside the strike range
        """
        label = f"{chain.symbol} {chain.expiration} at {chain.timestamp}"
        report = {
            "symbol": chain.symbol,
            "expiration": chain.expiration,
            "timestamp": chain.timestamp,
            "total_strikes": len(chain.rows),
            "crossed_quotes": 0,
            "negative_bids": 0,
            "missing_sides": 0,
            "non_standard": 0,
            "spot_outside_range": False,
        }

        if not chain.rows:
            self.issues.append(f"Empty chain {label}")
            return report

        strikes = chain.strikes
        if underlying_price < strikes[0] or underlying_price > strikes[-1]:
            report["spot_outside_range"] = True
            self.issues.append(
                f"Spot {underlying_price} outside strike range [{strikes[0]}, {strikes[-1]}] {label}"
            )

        for row in chain.rows:
            if row.non_standard:
                report["non_standard"] += 1
                continue
            for side in (OptionType.CALL, OptionType.PUT):
                quote = row.quote(side)
                if quote is None:
                    report["missing_sides"] += 1
                    self.issues.append(f"Missing {side.label.lower()} at strike {row.strike} {label}")
                    continue
                if quote.bid < 0:
                    report["negative_bids"] += 1
                if quote.ask < quote.bid:
                    report["crossed_quotes"] += 1
                    self.issues.append(
                        f"Crossed {side.label.lower()} quote at strike {row.strike} "
                        f"({quote.bid}/{quote.ask}) {label}"
                    )

        return report

    def generate_report(self) -> pd.DataFrame:
        """Returns a summary of issues found."""
        return pd.DataFrame(self.issues, columns=["issue_description"])
