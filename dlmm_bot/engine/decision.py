"""Per-position lifecycle decisions, evaluated once per monitoring tick.

Order of evaluation:
1. price at or below the lower bound: close at stop loss, otherwise roll the
   range down (open a replacement, closing this one)
2. price at or above the upper bound: close on take profit, otherwise roll up
3. fee-check zone (below the initial price and within fee_check_percent of
   the range above the lower bound): close if accrued fees cover the stop-loss
   loss, otherwise open a successor while keeping this position
4. hedge, when requested by the caller
5. none
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from dlmm_bot.engine.valuation import estimate_fees, fee_vs_loss
from dlmm_bot.models.position import Position
from dlmm_bot.schemas.admin_config import AdminConfig
from dlmm_bot.services.collaborators import PoolDataProvider, PoolStatsSource, PositionBin
from dlmm_bot.services.errors import PositionNotFoundError
from dlmm_bot.utils.constants import RANGE_INTERVAL_MAX, RANGE_INTERVAL_MIN

logger = logging.getLogger(__name__)

CLOSE = "close"
OPEN_NEW = "open_new"
HEDGE = "hedge"
KEEP = "keep"
NONE = "none"


@dataclass(frozen=True)
class NewPositionParams:
    pool_address: str
    range_interval: int


@dataclass
class PositionDecision:
    action: str
    reason: str
    position_address: str
    new_position_params: NewPositionParams | None = None
    should_close_old: bool = False
    details: dict[str, Any] = field(default_factory=dict)


def clamp_range_interval(value: int) -> int:
    return max(RANGE_INTERVAL_MIN, min(RANGE_INTERVAL_MAX, value))


def default_range_interval(position: Position) -> int:
    """Half the replaced position's bin span, clamped to [1, 100]."""
    return clamp_range_interval((position.max_bin_id - position.min_bin_id + 1) // 2)


def price_position_percent(position: Position, price: float) -> float:
    """Where the price sits within the bounds: 0 at lower, 100 at upper."""
    width = position.upper_bound_price - position.lower_bound_price
    if width <= 0:
        return 0.0
    return (price - position.lower_bound_price) / width * 100


def stop_loss_price(position: Position, config: AdminConfig) -> float:
    return position.lower_bound_price * (1 + config.stop_loss_percent / 100)


def take_profit_price(position: Position, config: AdminConfig) -> float:
    return position.upper_bound_price * (1 + config.take_profit_percent / 100)


class PositionDecisionEngine:
    def __init__(self, pool_stats: PoolStatsSource, pool_data: PoolDataProvider):
        self.pool_stats = pool_stats
        self.pool_data = pool_data

    def _replacement(
        self,
        position: Position,
        reason: str,
        should_close_old: bool,
        range_interval: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> PositionDecision:
        interval = (
            clamp_range_interval(range_interval)
            if range_interval is not None
            else default_range_interval(position)
        )
        return PositionDecision(
            action=OPEN_NEW,
            reason=reason,
            position_address=position.position_address,
            new_position_params=NewPositionParams(
                pool_address=position.pool_address,
                range_interval=interval,
            ),
            should_close_old=should_close_old,
            details=details or {},
        )

    async def evaluate(
        self,
        position: Position,
        price: float,
        config: AdminConfig,
        hedge_due: bool = False,
    ) -> PositionDecision:
        address = position.position_address

        if price <= position.lower_bound_price:
            sl_price = stop_loss_price(position, config)
            if price <= sl_price:
                return PositionDecision(
                    action=CLOSE,
                    reason=f"Stop loss: ${price:.4f} <= ${sl_price:.4f}",
                    position_address=address,
                    details={"stop_loss_price": sl_price},
                )
            return self._replacement(
                position,
                f"Price ${price:.4f} below lower bound ${position.lower_bound_price:.4f}, rolling range down",
                should_close_old=True,
            )

        if price >= position.upper_bound_price:
            tp_price = take_profit_price(position, config)
            if price >= tp_price:
                return PositionDecision(
                    action=CLOSE,
                    reason=f"Take profit: ${price:.4f} >= ${tp_price:.4f}",
                    position_address=address,
                    details={"take_profit_price": tp_price},
                )
            return self._replacement(
                position,
                f"Price ${price:.4f} above upper bound ${position.upper_bound_price:.4f}, rolling range up",
                should_close_old=True,
            )

        if price < position.initial_price:
            percent = price_position_percent(position, price)
            if percent <= config.fee_check_percent:
                return await self._fee_check(position, price, percent, config)

        if hedge_due:
            return PositionDecision(
                action=HEDGE,
                reason="Within bounds, hedge due",
                position_address=address,
            )

        return PositionDecision(
            action=NONE,
            reason="Price within bounds, no action needed",
            position_address=address,
        )

    async def _fee_check(
        self, position: Position, price: float, percent: float, config: AdminConfig
    ) -> PositionDecision:
        address = position.position_address
        try:
            stats = await self.pool_stats.get_pool_stats(position.pool_address)
        except Exception as e:
            logger.warning(f"[{position.short_address()}] Pool stats unavailable for fee check: {e}")
            return PositionDecision(
                action=KEEP,
                reason="Fee check deferred, pool stats unavailable",
                position_address=address,
            )

        bins: list[PositionBin] | None = None
        try:
            bins = await self.pool_data.get_position_bins(
                position.pool_address, address, position.owner_address
            )
        except PositionNotFoundError:
            raise
        except Exception as e:
            logger.warning(f"[{position.short_address()}] Bin data unavailable for fee check: {e}")

        fees = estimate_fees(position, stats, price, bins)
        calc = fee_vs_loss(position, price, config.stop_loss_percent, fees, bins)
        details = {
            "price_position_percent": percent,
            "accumulated_fees": calc.accumulated_fees,
            "estimated_loss": calc.estimated_loss,
            "net_result": calc.net_result,
            "stop_loss_price": calc.stop_loss_price,
            "break_even_price": calc.break_even_price,
        }

        if calc.should_close:
            return PositionDecision(
                action=CLOSE,
                reason=f"Fees (${calc.accumulated_fees:.2f}) cover losses (${calc.estimated_loss:.2f})",
                position_address=address,
                details=details,
            )
        if position.successor_address:
            return PositionDecision(
                action=KEEP,
                reason=f"Fees don't cover losses, successor {position.successor_address[:8]} already open",
                position_address=address,
                details=details,
            )
        return self._replacement(
            position,
            f"Fees (${calc.accumulated_fees:.2f}) don't cover losses "
            f"(${calc.estimated_loss:.2f}), opening successor",
            should_close_old=False,
            details=details,
        )
