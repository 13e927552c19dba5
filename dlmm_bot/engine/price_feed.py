"""Cached pool price with fallback from the price API to the active bin."""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from dlmm_bot.engine.bounds import price_from_bin_id
from dlmm_bot.services.collaborators import PoolDataProvider, PriceSource
from dlmm_bot.services.errors import PriceUnavailableError
from dlmm_bot.utils.constants import PRICE_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    price: float
    fetched_at: float
    source: str


class PriceFeed:
    def __init__(
        self,
        price_source: PriceSource,
        pool_data: PoolDataProvider,
        ttl_seconds: float = PRICE_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.price_source = price_source
        self.pool_data = pool_data
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}

    async def get_price(self, pool_address: str) -> float:
        """Current USD price for a pool.

        Fresh cache entries are served directly. A stale entry is returned only
        when both sources fail; with no entry at all PriceUnavailableError is
        raised and callers retry on the next tick.
        """
        now = self._clock()
        entry = self._cache.get(pool_address)
        if entry and now - entry.fetched_at < self.ttl_seconds:
            return entry.price

        api_error: Exception | None = None
        try:
            price = await self.price_source.get_usd_price(pool_address)
        except Exception as e:
            api_error = e
            price = None
            logger.warning(f"Price API failed for pool {pool_address[:8]}: {e}")

        if price is not None and price > 1:
            return self._store(pool_address, price, "api", now)

        if price is not None:
            logger.debug(
                f"Price API returned implausible {price} for pool {pool_address[:8]}, "
                f"falling back to active bin"
            )

        try:
            active = await self.pool_data.get_active_bin(pool_address)
            bin_price = price_from_bin_id(active.bin_id, active.bin_step)
        except Exception as e:
            if entry:
                logger.warning(
                    f"All price sources failed for pool {pool_address[:8]}, "
                    f"serving cached ${entry.price:.4f} from {entry.source}: {e}"
                )
                return entry.price
            raise PriceUnavailableError(
                f"No price for pool {pool_address}: api={api_error}, active_bin={e}"
            ) from e

        if bin_price < 1:
            logger.warning(
                f"Active-bin price {bin_price:.6g} for pool {pool_address[:8]} is below 1; "
                f"it may not be USD-denominated"
            )
        return self._store(pool_address, bin_price, "active_bin", now)

    def _store(self, pool_address: str, price: float, source: str, now: float) -> float:
        self._cache[pool_address] = _CacheEntry(price=price, fetched_at=now, source=source)
        return price

    def cached(self, pool_address: str) -> float | None:
        entry = self._cache.get(pool_address)
        return entry.price if entry else None

    def invalidate(self, pool_address: str | None = None):
        if pool_address is None:
            self._cache.clear()
        else:
            self._cache.pop(pool_address, None)
