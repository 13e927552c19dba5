"""Meteora DLMM REST API: pool USD price and 24h statistics.

Wraps GET {dlmm_api_base}/pair/{pool}. The price can arrive under several
keys; normalize_pair_price picks the first usable one in a fixed order.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from dlmm_bot.services.collaborators import PoolStats
from dlmm_bot.utils.constants import DEFAULT_POOL_FEE_BPS, PRICE_RESPONSE_KEYS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairPrice:
    field: str
    value: float


def _to_float(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def normalize_pair_price(payload: Any) -> PairPrice | None:
    """First non-zero numeric price among the known keys, or None."""
    if not isinstance(payload, dict):
        return None
    for key in PRICE_RESPONSE_KEYS:
        value = _to_float(payload.get(key))
        if value is not None and value != 0:
            return PairPrice(field=key, value=value)
    return None


def _first_float(payload: dict, keys: tuple[str, ...], default: float) -> float:
    for key in keys:
        value = _to_float(payload.get(key))
        if value is not None:
            return value
    return default


def parse_pool_stats(payload: dict) -> PoolStats:
    return PoolStats(
        volume_24h=_first_float(payload, ("trade_volume_24h", "volume_24h"), 0.0),
        fee_bps=_first_float(payload, ("base_fee_bps", "baseFeeBps"), DEFAULT_POOL_FEE_BPS),
        liquidity=_first_float(payload, ("liquidity", "total_liquidity", "tvl"), 0.0),
    )


class MeteoraApiClient:
    """PriceSource and PoolStatsSource backed by the public DLMM API."""

    def __init__(self, base_url: str, timeout_seconds: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> None:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    async def get_pair(self, pool_address: str) -> dict:
        await self._ensure_session()
        async with self.session.get(f"{self.base_url}/pair/{pool_address}") as resp:
            resp.raise_for_status()
            return await resp.json()

    async def get_usd_price(self, pool_address: str) -> float | None:
        payload = await self.get_pair(pool_address)
        price = normalize_pair_price(payload)
        if price is None:
            logger.debug(f"No price field in pair response for {pool_address[:8]}")
            return None
        return price.value

    async def get_pool_stats(self, pool_address: str) -> PoolStats:
        return parse_pool_stats(await self.get_pair(pool_address))
