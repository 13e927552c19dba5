"""Position sync: reconcile stored positions with on-chain state on startup.

Scenarios handled:
1. Stored active position exists on chain → bin range re-read and bounds recomputed
2. Stored active position not found on chain → closed externally, marked closed
3. Pool SDK or price errors → record left untouched, retried by the monitor
"""

import logging

from dlmm_bot.engine.bounds import BoundsCalculator
from dlmm_bot.engine.price_feed import PriceFeed
from dlmm_bot.models.position import Position
from dlmm_bot.services.collaborators import PoolDataProvider
from dlmm_bot.services.errors import PositionNotFoundError
from dlmm_bot.services.position_store import PositionStore

logger = logging.getLogger(__name__)


async def sync_position_bounds(
    position: Position,
    store: PositionStore,
    pool_data: PoolDataProvider,
    bounds: BoundsCalculator,
    price_feed: PriceFeed,
) -> Position:
    """Refresh the bin range and USD bounds from the position's real bins.

    Raises PositionNotFoundError when the position no longer exists.
    """
    bins = await pool_data.get_position_bins(
        position.pool_address, position.position_address, position.owner_address
    )
    if not bins:
        logger.warning(f"[{position.short_address()}] No bins returned, keeping stored range")
        return position

    bin_ids = [b.bin_id for b in bins]
    min_bin_id, max_bin_id = min(bin_ids), max(bin_ids)
    price = await price_feed.get_price(position.pool_address)
    new_bounds = await bounds.calculate_usd_bounds(
        position.pool_address, min_bin_id, max_bin_id, position.bin_step, price
    )
    if min_bin_id == max_bin_id or new_bounds.lower >= new_bounds.upper:
        logger.warning(
            f"[{position.short_address()}] Degenerate range bins [{min_bin_id}, {max_bin_id}] "
            f"(${new_bounds.lower:.4f} - ${new_bounds.upper:.4f}), keeping stored range"
        )
        return position

    changed = (
        min_bin_id != position.min_bin_id
        or max_bin_id != position.max_bin_id
        or abs(new_bounds.lower - position.lower_bound_price) > 1e-9
        or abs(new_bounds.upper - position.upper_bound_price) > 1e-9
    )
    if not changed:
        return position

    logger.info(
        f"[{position.short_address()}] Bounds synced: bins [{position.min_bin_id}, {position.max_bin_id}] "
        f"-> [{min_bin_id}, {max_bin_id}], ${position.lower_bound_price:.4f} - ${position.upper_bound_price:.4f} "
        f"-> ${new_bounds.lower:.4f} - ${new_bounds.upper:.4f}"
    )
    return store.update(
        position.position_address,
        min_bin_id=min_bin_id,
        max_bin_id=max_bin_id,
        lower_bound_price=new_bounds.lower,
        upper_bound_price=new_bounds.upper,
    ) or position


async def sync_positions_on_startup(
    store: PositionStore,
    pool_data: PoolDataProvider,
    bounds: BoundsCalculator,
    price_feed: PriceFeed,
) -> dict:
    """Compare stored active positions against the chain and reconcile.

    Called once before the monitor starts.
    """
    result = {"confirmed": 0, "closed_externally": 0, "errors": []}
    positions = store.load_active()
    if not positions:
        logger.info("Position sync: no active positions, all clear")
        return result

    logger.info(f"Position sync: checking {len(positions)} active positions")
    for position in positions:
        try:
            await sync_position_bounds(position, store, pool_data, bounds, price_feed)
            result["confirmed"] += 1
        except PositionNotFoundError:
            logger.warning(
                f"Position sync: {position.short_address()} not found on chain, marking closed"
            )
            store.mark_closed(position.position_address, "closed externally")
            store.record_event(
                position.position_address, "warning", action="position_sync",
                message="Stored active position not found on chain; marked closed",
            )
            result["closed_externally"] += 1
        except Exception as e:
            error_msg = f"Position sync failed for {position.short_address()}: {e}"
            logger.error(error_msg)
            result["errors"].append(error_msg)

    logger.info("Position sync complete")
    return result
