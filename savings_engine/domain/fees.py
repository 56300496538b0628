"""Contribution fee schedules"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from savings_engine.utils.money import ZERO, to_money

# (inclusive lower bound, fee), highest bound first
CIRCLE_FEE_TIERS: List[Tuple[Decimal, Decimal]] = [
    (Decimal("100000"), Decimal("1000")),
    (Decimal("50000"), Decimal("500")),
    (Decimal("30000"), Decimal("500")),
    (Decimal("25000"), Decimal("500")),
    (Decimal("20000"), Decimal("500")),
    (Decimal("15000"), Decimal("300")),
    (Decimal("10000"), Decimal("200")),
]


def tiers_from_config(config: Optional[Dict[str, Any]]) -> Optional[List[Tuple[Decimal, Decimal]]]:
    """
    Read a plan's `fee_tiers` override: [{"min": 20000, "fee": 500}, ...].

    Returns None when the plan does not override the default table.
    """
    raw = (config or {}).get("fee_tiers")
    if not raw:
        return None
    tiers = [(to_money(t["min"]), to_money(t["fee"])) for t in raw]
    return sorted(tiers, key=lambda t: t[0], reverse=True)


def tiered_fee(amount, tiers: Sequence[Tuple[Decimal, Decimal]]) -> Decimal:
    """Fee of the highest tier whose lower bound the amount reaches; 0 below all tiers"""
    amount = to_money(amount)
    for lower_bound, fee in tiers:
        if amount >= lower_bound:
            return to_money(fee)
    return ZERO


def circle_fee(amount, config: Optional[Dict[str, Any]] = None) -> Decimal:
    """
    Ajo circle contribution fee.

    Default schedule (inclusive lower bounds):
        >= 100,000           -> 1,000
        >= 20,000 (..50,000) -> 500
        >= 15,000            -> 300
        >= 10,000            -> 200
        below 10,000         -> 0
    """
    return tiered_fee(amount, tiers_from_config(config) or CIRCLE_FEE_TIERS)
