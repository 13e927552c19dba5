"""Open and close liquidity positions through the pool SDK and the ledger."""

import logging

from dlmm_bot.engine.bounds import BoundsCalculator, corridor_bounds
from dlmm_bot.engine.hedge_scheduler import HedgeScheduler
from dlmm_bot.engine.price_feed import PriceFeed
from dlmm_bot.engine.registry import PositionRegistry
from dlmm_bot.models.position import Position, STATUS_ACTIVE
from dlmm_bot.schemas.admin_config import AdminConfig
from dlmm_bot.services.collaborators import ExecutionService, PoolDataProvider, PositionBuilder
from dlmm_bot.services.errors import InvalidAmountError, PositionNotFoundError
from dlmm_bot.services.notifications import notify
from dlmm_bot.services.position_store import PositionStore
from dlmm_bot.utils.constants import RANGE_INTERVAL_MAX, RANGE_INTERVAL_MIN
from dlmm_bot.utils.retry import with_retry

logger = logging.getLogger(__name__)


class PositionManager:
    def __init__(
        self,
        store: PositionStore,
        registry: PositionRegistry,
        pool_data: PoolDataProvider,
        builder: PositionBuilder,
        execution: ExecutionService,
        bounds: BoundsCalculator,
        price_feed: PriceFeed,
        hedge_scheduler: HedgeScheduler,
        retry=with_retry,
    ):
        self.store = store
        self.registry = registry
        self.pool_data = pool_data
        self.builder = builder
        self.execution = execution
        self.bounds = bounds
        self.price_feed = price_feed
        self.hedge_scheduler = hedge_scheduler
        self._retry = retry

    async def open_position(
        self,
        pool_address: str,
        amount_x: int,
        amount_y: int,
        range_interval: int,
        config: AdminConfig,
    ) -> Position:
        """Open a position of ±range_interval bins around the active bin.

        Args:
            pool_address: Pool to provide liquidity in.
            amount_x: Base token, smallest units.
            amount_y: Quote token, smallest units.
            range_interval: Bins on each side of the active bin, 1..100.
            config: Admin configuration the new position is hedged with.

        Returns:
            The persisted active Position.
        """
        if not RANGE_INTERVAL_MIN <= range_interval <= RANGE_INTERVAL_MAX:
            raise ValueError(
                f"range_interval must be within [{RANGE_INTERVAL_MIN}, {RANGE_INTERVAL_MAX}], "
                f"got {range_interval}"
            )
        if amount_x < 0 or amount_y < 0 or (amount_x == 0 and amount_y == 0):
            raise InvalidAmountError(f"Invalid funding amounts x={amount_x} y={amount_y}")

        owner = self.execution.wallet_address
        info = await self.pool_data.get_pool_info(pool_address)
        price = await self.price_feed.get_price(pool_address)

        async def _open():
            built = await self.builder.build_open_position(
                pool_address, owner, range_interval, amount_x, amount_y
            )
            signature = await self.execution.submit(built.transaction)
            return built, signature

        built, signature = await self._retry(_open, label=f"Open position in pool {pool_address[:8]}")

        try:
            bounds = await self.bounds.calculate_usd_bounds(
                pool_address, built.min_bin_id, built.max_bin_id, info.bin_step, price
            )
            if bounds.lower >= bounds.upper:
                raise ValueError(f"degenerate bounds ${bounds.lower:.4f} - ${bounds.upper:.4f}")
        except ValueError as e:
            corridor = config.price_corridor_percent
            logger.warning(f"Bin range not priceable ({e}), using -{corridor.lower}%/+{corridor.upper}% corridor")
            bounds = corridor_bounds(price, corridor.upper, corridor.lower)
        position = self.store.save(Position(
            position_address=built.position_address,
            pool_address=pool_address,
            owner_address=owner,
            token_x_mint=info.token_x_mint,
            token_y_mint=info.token_y_mint,
            token_x_decimals=info.token_x_decimals,
            token_y_decimals=info.token_y_decimals,
            initial_token_x_amount=amount_x,
            initial_token_y_amount=amount_y,
            initial_price=price,
            current_price=price,
            lower_bound_price=bounds.lower,
            upper_bound_price=bounds.upper,
            min_bin_id=built.min_bin_id,
            max_bin_id=built.max_bin_id,
            bin_step=info.bin_step,
            status=STATUS_ACTIVE,
        ))
        self.registry.ensure(position.position_address)
        self.hedge_scheduler.start(position, config)

        message = (
            f"Opened {position.short_address()} in pool {pool_address[:8]} "
            f"bins [{built.min_bin_id}, {built.max_bin_id}] "
            f"${bounds.lower:.4f} - ${bounds.upper:.4f} @ ${price:.4f}"
        )
        logger.info(f"[{position.short_address()}] {message}")
        notify(message)
        self.store.record_event(
            position.position_address, "success", action="open",
            message=message, current_price=price,
            lower_bound_price=bounds.lower, upper_bound_price=bounds.upper,
            details={"signature": signature, "range_interval": range_interval, "bounds_method": bounds.method},
        )
        return position

    async def close_position(self, position_address: str, reason: str) -> Position | None:
        """Close on chain and mark the record closed. Stops hedging for the position."""
        position = self.store.get(position_address)
        if position is None:
            logger.warning(f"[{position_address[:8]}] Close requested for unknown position")
            return None
        if not position.is_active:
            logger.info(f"[{position.short_address()}] Already {position.status}, nothing to close")
            return position

        signature = None

        async def _close():
            transaction = await self.builder.build_close_position(
                position.pool_address, position_address, position.owner_address
            )
            return await self.execution.submit(transaction)

        try:
            signature = await self._retry(_close, label=f"Close position {position.short_address()}")
        except PositionNotFoundError:
            logger.info(f"[{position.short_address()}] Already closed on chain")
            reason = "closed externally"

        self.hedge_scheduler.stop(position_address)
        closed = self.store.mark_closed(position_address, reason)
        self.registry.remove(position_address)

        message = f"Closed {position.short_address()}: {reason}"
        logger.info(f"[{position.short_address()}] {message}")
        notify(message)
        self.store.record_event(
            position_address, "success", action="close", message=message,
            current_price=position.current_price,
            lower_bound_price=position.lower_bound_price,
            upper_bound_price=position.upper_bound_price,
            details={"signature": signature},
        )
        return closed
