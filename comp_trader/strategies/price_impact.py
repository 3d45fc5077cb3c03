"""
Constant-product price impact estimate.

This is an approximation of what a trade would do to the pool, not a quote
from the live router: it assumes ``reserve_base * reserve_quote`` is preserved
net of a flat LP fee, and ignores fee-on-transfer tokens and the integer
rounding the pool contract does.
"""

import math
from typing import Optional

DEFAULT_FEE_MULTIPLIER = 0.997


def estimate_impact(
    pool_base: float,
    pool_quote: float,
    user_balance: float,
    percentage: float,
    is_buy: bool,
    fee_multiplier: float = DEFAULT_FEE_MULTIPLIER,
) -> Optional[float]:
    """
    Price (base per quote token) after trading ``percentage`` of ``user_balance``.

    For a buy the balance is in the base (stable) asset and goes into the
    base reserve; for a sell it is in the quote token. Returns None whenever
    the inputs don't describe a tradeable pool or trade.
    """
    values = (pool_base, pool_quote, user_balance, percentage, fee_multiplier)
    if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in values):
        return None
    if pool_base <= 0 or pool_quote <= 0:
        return None
    if not 0 < percentage <= 100:
        return None

    amount_in = user_balance * percentage / 100
    if amount_in <= 0:
        return None

    k = pool_base * pool_quote
    if is_buy:
        new_base = pool_base + amount_in * fee_multiplier
        if new_base <= 0:
            return None
        new_quote = k / new_base
    else:
        new_quote = pool_quote + amount_in * fee_multiplier
        if new_quote <= 0:
            return None
        new_base = k / new_quote

    if new_base <= 0 or new_quote <= 0:
        return None
    return new_base / new_quote
