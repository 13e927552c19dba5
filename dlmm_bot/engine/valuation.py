"""Position valuation and fee-versus-loss estimates.

All functions are pure computation with no I/O.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from dlmm_bot.models.position import Position
from dlmm_bot.services.collaborators import PoolStats, PositionBin
from dlmm_bot.utils.constants import BASIS_POINT_DIVISOR


@dataclass(frozen=True)
class FeeVsLoss:
    accumulated_fees: float
    estimated_loss: float
    net_result: float
    should_close: bool
    stop_loss_price: float
    break_even_price: float


def token_totals(position: Position, bins: list[PositionBin] | None = None) -> tuple[float, float]:
    """Human-unit (x, y) held by the position, falling back to the funding snapshot."""
    if bins:
        raw_x = sum(b.amount_x for b in bins)
        raw_y = sum(b.amount_y for b in bins)
    else:
        raw_x = position.initial_token_x_amount
        raw_y = position.initial_token_y_amount
    return raw_x / 10**position.token_x_decimals, raw_y / 10**position.token_y_decimals


def estimate_position_value(
    position: Position, price: float, bins: list[PositionBin] | None = None
) -> float:
    """USD value: x * price + y, with the quote token treated as USD."""
    x, y = token_totals(position, bins)
    return x * price + y


def hours_in_pool(position: Position, now: datetime | None = None) -> float:
    now = now or datetime.now(timezone.utc)
    opened = position.opened_at
    if opened.tzinfo is None:
        opened = opened.replace(tzinfo=timezone.utc)
    return max(0.0, (now - opened).total_seconds() / 3600)


def liquidity_share_percent(position_value: float, pool_liquidity: float) -> float:
    if pool_liquidity <= 0 or position_value <= 0:
        return 0.0
    return min(100.0, position_value / pool_liquidity * 100)


def accumulated_fees(
    volume_24h: float,
    fee_bps: float,
    liquidity_share_pct: float,
    hours: float,
) -> float:
    """Fee income estimate: daily pool fees pro-rated by share and time in pool."""
    daily = volume_24h * (fee_bps / BASIS_POINT_DIVISOR) * (liquidity_share_pct / 100)
    return max(0.0, daily * (hours / 24))


def estimate_fees(
    position: Position,
    stats: PoolStats,
    price: float,
    bins: list[PositionBin] | None = None,
    now: datetime | None = None,
) -> float:
    value = estimate_position_value(position, price, bins)
    share = liquidity_share_percent(value, stats.liquidity)
    return accumulated_fees(stats.volume_24h, stats.fee_bps, share, hours_in_pool(position, now))


def break_even_price(
    position: Position, fees: float, bins: list[PositionBin] | None = None
) -> float:
    initial_value = estimate_position_value(position, position.initial_price, bins)
    if initial_value <= 0:
        return position.initial_price
    return position.initial_price * ((initial_value - fees) / initial_value)


def fee_vs_loss(
    position: Position,
    current_price: float,
    stop_loss_percent: float,
    fees: float,
    bins: list[PositionBin] | None = None,
) -> FeeVsLoss:
    """Compare accrued fees with the loss of riding the position down to stop loss."""
    stop_loss_price = position.lower_bound_price * (1 + stop_loss_percent / 100)
    current_value = estimate_position_value(position, current_price, bins)
    sl_value = estimate_position_value(position, stop_loss_price, bins)
    loss = current_value - sl_value
    net = fees - loss
    return FeeVsLoss(
        accumulated_fees=fees,
        estimated_loss=max(0.0, loss),
        net_result=net,
        should_close=net >= 0,
        stop_loss_price=stop_loss_price,
        break_even_price=break_even_price(position, fees, bins),
    )
