"""Tests for startup reconciliation of stored positions."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from dlmm_bot.engine.bounds import BoundsCalculator
from dlmm_bot.engine.position_sync import sync_position_bounds, sync_positions_on_startup
from dlmm_bot.services.collaborators import ActiveBin, PositionBin
from dlmm_bot.services.errors import PoolDataError, PositionNotFoundError

from tests.conftest import make_position


def _pool_data(bins):
    pool_data = MagicMock()
    if isinstance(bins, dict):
        async def get_bins(pool, address, owner):
            result = bins[address]
            if isinstance(result, Exception):
                raise result
            return result
        pool_data.get_position_bins = AsyncMock(side_effect=get_bins)
    else:
        pool_data.get_position_bins = AsyncMock(return_value=bins)
    pool_data.get_active_bin = AsyncMock(return_value=ActiveBin(bin_id=0, bin_step=10))
    return pool_data


def _price_feed(price=100.0):
    feed = MagicMock()
    feed.get_price = AsyncMock(return_value=price)
    return feed


def _bins(lo, hi):
    return [PositionBin(bin_id=i, amount_x=1, amount_y=1) for i in range(lo, hi + 1)]


@pytest.mark.asyncio
async def test_bounds_recomputed_from_real_bins(store):
    position = store.save(make_position())
    pool_data = _pool_data(_bins(-5, 5))

    synced = await sync_position_bounds(
        position, store, pool_data, BoundsCalculator(pool_data), _price_feed()
    )

    assert (synced.min_bin_id, synced.max_bin_id) == (-5, 5)
    assert synced.lower_bound_price == pytest.approx(100.0 * 1.001 ** -5)
    assert store.get(position.position_address).max_bin_id == 5


@pytest.mark.asyncio
async def test_empty_bins_keep_stored_range(store):
    position = store.save(make_position())
    pool_data = _pool_data([])
    synced = await sync_position_bounds(
        position, store, pool_data, BoundsCalculator(pool_data), _price_feed()
    )
    assert synced.lower_bound_price == 96.0


@pytest.mark.asyncio
async def test_single_bin_keeps_stored_range(store):
    position = store.save(make_position())
    pool_data = _pool_data([PositionBin(bin_id=3, amount_x=1, amount_y=1)])

    synced = await sync_position_bounds(
        position, store, pool_data, BoundsCalculator(pool_data), _price_feed(100.0)
    )

    stored = store.get(position.position_address)
    assert (stored.lower_bound_price, stored.upper_bound_price) == (96.0, 104.0)
    assert (stored.min_bin_id, stored.max_bin_id) == (-20, 19)
    assert synced.lower_bound_price < synced.upper_bound_price


@pytest.mark.asyncio
async def test_startup_sync_classifies_positions(store):
    store.save(make_position(position_address="PosOk"))
    store.save(make_position(position_address="PosGone"))
    store.save(make_position(position_address="PosErr"))
    pool_data = _pool_data({
        "PosOk": _bins(-20, 19),
        "PosGone": PositionNotFoundError("PosGone"),
        "PosErr": PoolDataError("sidecar 500"),
    })

    result = await sync_positions_on_startup(
        store, pool_data, BoundsCalculator(pool_data), _price_feed()
    )

    assert result["confirmed"] == 1
    assert result["closed_externally"] == 1
    assert len(result["errors"]) == 1
    assert store.get("PosGone").status == "closed"
    assert store.get("PosErr").status == "active"


@pytest.mark.asyncio
async def test_startup_sync_with_nothing_stored(store):
    pool_data = _pool_data([])
    result = await sync_positions_on_startup(
        store, pool_data, BoundsCalculator(pool_data), _price_feed()
    )
    assert result == {"confirmed": 0, "closed_externally": 0, "errors": []}
