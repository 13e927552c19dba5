"""Price bounds derived from a position's bin range.

Bin i on the pool lattice trades at (1 + bin_step / 10000) ** i in pool-native
units. USD bounds rescale that lattice using a reference USD price.
"""

import logging
from dataclasses import dataclass

from dlmm_bot.services.collaborators import PoolDataProvider
from dlmm_bot.utils.constants import BASIS_POINT_DIVISOR

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceBounds:
    lower: float
    upper: float
    method: str  # "raw", "active_bin", "midpoint", "corridor"


def price_from_bin_id(bin_id: int, bin_step: int) -> float:
    return (1 + bin_step / BASIS_POINT_DIVISOR) ** bin_id


def _validate_range(min_bin_id: int, max_bin_id: int, bin_step: int):
    if bin_step <= 0:
        raise ValueError(f"bin_step must be positive, got {bin_step}")
    if min_bin_id > max_bin_id:
        raise ValueError(f"min_bin_id {min_bin_id} > max_bin_id {max_bin_id}")


def bounds_from_bins(min_bin_id: int, max_bin_id: int, bin_step: int) -> PriceBounds:
    """Pool-native bounds of a bin range."""
    _validate_range(min_bin_id, max_bin_id, bin_step)
    return PriceBounds(
        lower=price_from_bin_id(min_bin_id, bin_step),
        upper=price_from_bin_id(max_bin_id, bin_step),
        method="raw",
    )


def bounds_from_bins_usd(
    min_bin_id: int,
    max_bin_id: int,
    bin_step: int,
    reference_price: float,
    active_bin_id: int | None = None,
) -> PriceBounds:
    """USD bounds of a bin range.

    With the active bin known, both raw bounds are scaled by
    reference_price / price(active_bin_id). Without it the midpoint of the
    range stands in for the active bin and the reference price is offset by
    (1 + bin_step / 10000) ** distance to each edge. The midpoint path is an
    approximation for asymmetric ranges.
    """
    _validate_range(min_bin_id, max_bin_id, bin_step)
    if reference_price <= 0:
        raise ValueError(f"reference_price must be positive, got {reference_price}")

    if active_bin_id is not None:
        active_price = price_from_bin_id(active_bin_id, bin_step)
        if active_price < 1 and reference_price > 1:
            logger.warning(
                f"Raw active-bin price {active_price:.6g} looks implausibly small "
                f"for reference ${reference_price:.4f}"
            )
        scale = reference_price / active_price
        raw = bounds_from_bins(min_bin_id, max_bin_id, bin_step)
        return PriceBounds(lower=raw.lower * scale, upper=raw.upper * scale, method="active_bin")

    step = 1 + bin_step / BASIS_POINT_DIVISOR
    midpoint = (min_bin_id + max_bin_id) / 2
    return PriceBounds(
        lower=reference_price * step ** (min_bin_id - midpoint),
        upper=reference_price * step ** (max_bin_id - midpoint),
        method="midpoint",
    )


def corridor_bounds(reference_price: float, upper_percent: float, lower_percent: float) -> PriceBounds:
    """Percentage corridor around a price, used when the bin range cannot be priced."""
    if reference_price <= 0:
        raise ValueError(f"reference_price must be positive, got {reference_price}")
    return PriceBounds(
        lower=reference_price * (1 - lower_percent / 100),
        upper=reference_price * (1 + upper_percent / 100),
        method="corridor",
    )


class BoundsCalculator:
    """Computes USD bounds, reading the active bin from the pool when possible."""

    def __init__(self, pool_data: PoolDataProvider):
        self.pool_data = pool_data

    async def calculate_usd_bounds(
        self,
        pool_address: str,
        min_bin_id: int,
        max_bin_id: int,
        bin_step: int,
        reference_price: float,
    ) -> PriceBounds:
        active_bin_id = None
        try:
            active = await self.pool_data.get_active_bin(pool_address)
            active_bin_id = active.bin_id
        except Exception as e:
            logger.warning(
                f"Active bin unavailable for pool {pool_address[:8]}, using midpoint bounds: {e}"
            )
        bounds = bounds_from_bins_usd(
            min_bin_id, max_bin_id, bin_step, reference_price, active_bin_id
        )
        logger.debug(
            f"Bounds for pool {pool_address[:8]} bins [{min_bin_id}, {max_bin_id}] "
            f"via {bounds.method}: ${bounds.lower:.4f} - ${bounds.upper:.4f}"
        )
        return bounds
