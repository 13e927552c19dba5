"""Stateless hedge sizing for the mirror-swap strategy.

All functions are pure computation with no I/O.
"""

import math
from dataclasses import dataclass

from dlmm_bot.utils.constants import MAX_SWAP_AMOUNT_UNITS


@dataclass(frozen=True)
class HedgeRatio:
    ratio: float
    direction: str | None  # "buy", "sell", or None when the price is unchanged
    price_change: float  # fraction, positive when the price fell


@dataclass(frozen=True)
class HedgeOrder:
    direction: str
    ratio: float
    notional_usd: float
    base_price: float
    current_price: float


@dataclass(frozen=True)
class SwapAmount:
    input_mint: str
    output_mint: str
    amount: float  # human units of the input token
    amount_units: int  # smallest units of the input token


def _finite_positive(*values: float) -> bool:
    return all(isinstance(v, (int, float)) and math.isfinite(v) and v > 0 for v in values)


def calculate_hedge_ratio(base_price: float, current_price: float, hedge_percent: float) -> HedgeRatio:
    """h = (hedge_percent / 100) * 0.5 * (P_base - P) / P_base.

    A falling price (positive change) sells the base token, a rising price
    buys it back.
    """
    if not _finite_positive(base_price, current_price):
        raise ValueError(f"prices must be positive and finite: {base_price}, {current_price}")
    price_change = (base_price - current_price) / base_price
    ratio = (hedge_percent / 100) * 0.5 * price_change
    if price_change > 0:
        direction = "sell"
    elif price_change < 0:
        direction = "buy"
    else:
        direction = None
    return HedgeRatio(ratio=ratio, direction=direction, price_change=price_change)


def size_hedge(
    base_price: float,
    current_price: float,
    hedge_percent: float,
    position_value_usd: float,
    min_notional_usd: float,
) -> HedgeOrder | None:
    """Hedge order for the move since base_price, or None when nothing should trade."""
    if not _finite_positive(base_price, current_price, position_value_usd):
        return None
    if not math.isfinite(hedge_percent) or not 0 < hedge_percent <= 100:
        return None

    hedge = calculate_hedge_ratio(base_price, current_price, hedge_percent)
    if hedge.direction is None:
        return None

    notional = position_value_usd * abs(hedge.ratio)
    if not math.isfinite(notional) or notional < min_notional_usd or notional <= 0:
        return None

    return HedgeOrder(
        direction=hedge.direction,
        ratio=hedge.ratio,
        notional_usd=notional,
        base_price=base_price,
        current_price=current_price,
    )


def to_swap_amount(
    order: HedgeOrder,
    base_mint: str,
    quote_mint: str,
    base_decimals: int,
    quote_decimals: int,
) -> SwapAmount | None:
    """Input side of the swap for a hedge order.

    Sells spend notional / price of the base token; buys spend the notional in
    the quote token, which is treated as USD. Returns None when the resulting
    amount is not finite, not positive, or beyond MAX_SWAP_AMOUNT_UNITS.
    """
    if order.direction == "sell":
        amount = order.notional_usd / order.current_price
        input_mint, output_mint, decimals = base_mint, quote_mint, base_decimals
    else:
        amount = order.notional_usd
        input_mint, output_mint, decimals = quote_mint, base_mint, quote_decimals

    if not math.isfinite(amount) or amount <= 0:
        return None
    units = math.floor(amount * 10**decimals)
    if units <= 0 or units > MAX_SWAP_AMOUNT_UNITS:
        return None
    return SwapAmount(
        input_mint=input_mint,
        output_mint=output_mint,
        amount=amount,
        amount_units=units,
    )
