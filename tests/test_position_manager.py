"""Tests for opening and closing positions through the pool SDK."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dlmm_bot.engine.bounds import BoundsCalculator
from dlmm_bot.engine.position_manager import PositionManager
from dlmm_bot.engine.registry import PositionRegistry
from dlmm_bot.schemas.admin_config import AdminConfig
from dlmm_bot.services.collaborators import ActiveBin, OpenPositionTx, PoolInfo
from dlmm_bot.services.errors import (
    InvalidAmountError,
    PositionNotFoundError,
    TransactionSimulationError,
)
from dlmm_bot.utils.retry import with_retry

from tests.conftest import OWNER, POOL, SOL, USDC, make_position


async def _no_sleep(_delay):
    return None


async def _fast_retry(operation, label):
    return await with_retry(operation, label, sleep=_no_sleep)


@pytest.fixture(autouse=True)
def _silence_notify():
    with patch("dlmm_bot.engine.position_manager.notify"):
        yield


@pytest.fixture
def manager(store):
    pool_data = MagicMock()
    pool_data.get_pool_info = AsyncMock(return_value=PoolInfo(
        pool_address=POOL, token_x_mint=SOL, token_y_mint=USDC,
        token_x_decimals=9, token_y_decimals=6, bin_step=10,
    ))
    pool_data.get_active_bin = AsyncMock(return_value=ActiveBin(bin_id=100, bin_step=10))
    builder = MagicMock()
    builder.build_open_position = AsyncMock(return_value=OpenPositionTx(
        position_address="PosNew11111", transaction=b"open-tx",
        min_bin_id=90, max_bin_id=110, active_bin_id=100,
    ))
    builder.build_close_position = AsyncMock(return_value=b"close-tx")
    execution = MagicMock()
    execution.wallet_address = OWNER
    execution.submit = AsyncMock(return_value="Sig111")
    price_feed = MagicMock()
    price_feed.get_price = AsyncMock(return_value=150.0)
    return PositionManager(
        store=store,
        registry=PositionRegistry(),
        pool_data=pool_data,
        builder=builder,
        execution=execution,
        bounds=BoundsCalculator(pool_data),
        price_feed=price_feed,
        hedge_scheduler=MagicMock(),
        retry=_fast_retry,
    )


# ---------------------------------------------------------------------------
# 1. Open
# ---------------------------------------------------------------------------

class TestOpen:
    @pytest.mark.asyncio
    async def test_open_persists_and_arms_hedge(self, manager, store):
        config = AdminConfig()
        position = await manager.open_position(POOL, 10**9, 150 * 10**6, 10, config)

        assert position.position_address == "PosNew11111"
        assert position.initial_price == 150.0
        assert position.lower_bound_price == pytest.approx(150.0 * 1.001 ** -10)
        assert position.upper_bound_price == pytest.approx(150.0 * 1.001 ** 10)
        assert position.owner_address == OWNER
        assert store.get("PosNew11111").is_active
        assert "PosNew11111" in manager.registry
        manager.hedge_scheduler.start.assert_called_once()
        manager.builder.build_open_position.assert_awaited_once_with(
            POOL, OWNER, 10, 10**9, 150 * 10**6
        )

    @pytest.mark.asyncio
    async def test_unpriceable_bin_range_uses_corridor(self, manager):
        manager.builder.build_open_position.return_value = OpenPositionTx(
            position_address="PosOdd", transaction=b"open-tx",
            min_bin_id=110, max_bin_id=90, active_bin_id=100,
        )
        position = await manager.open_position(POOL, 10**9, 0, 10, AdminConfig())
        assert position.lower_bound_price == pytest.approx(144.0)
        assert position.upper_bound_price == pytest.approx(156.0)

    @pytest.mark.asyncio
    async def test_single_bin_range_uses_corridor(self, manager):
        manager.builder.build_open_position.return_value = OpenPositionTx(
            position_address="PosOne", transaction=b"open-tx",
            min_bin_id=100, max_bin_id=100, active_bin_id=100,
        )
        position = await manager.open_position(POOL, 10**9, 0, 10, AdminConfig())
        assert position.lower_bound_price == pytest.approx(144.0)
        assert position.upper_bound_price == pytest.approx(156.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("interval", [0, 101, -5])
    async def test_range_interval_out_of_bounds(self, manager, interval):
        with pytest.raises(ValueError):
            await manager.open_position(POOL, 10**9, 0, interval, AdminConfig())
        manager.builder.build_open_position.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount_x, amount_y", [(0, 0), (-1, 10), (10, -1)])
    async def test_invalid_amounts(self, manager, amount_x, amount_y):
        with pytest.raises(InvalidAmountError):
            await manager.open_position(POOL, amount_x, amount_y, 10, AdminConfig())

    @pytest.mark.asyncio
    async def test_transient_submit_failure_retried(self, manager):
        manager.execution.submit.side_effect = [RuntimeError("blockhash expired"), "Sig222"]
        position = await manager.open_position(POOL, 10**9, 0, 10, AdminConfig())
        assert position.is_active
        assert manager.builder.build_open_position.await_count == 2

    @pytest.mark.asyncio
    async def test_simulation_failure_not_retried(self, manager, store):
        manager.execution.submit.side_effect = TransactionSimulationError("custom program error", ["log"])
        with pytest.raises(TransactionSimulationError):
            await manager.open_position(POOL, 10**9, 0, 10, AdminConfig())
        assert manager.execution.submit.await_count == 1
        assert store.load() == []


# ---------------------------------------------------------------------------
# 2. Close
# ---------------------------------------------------------------------------

class TestClose:
    @pytest.mark.asyncio
    async def test_close_marks_closed_and_stops_hedge(self, manager, store):
        position = store.save(make_position())
        manager.registry.ensure(position.position_address)

        closed = await manager.close_position(position.position_address, "Take profit")

        assert closed.status == "closed"
        assert closed.close_reason == "Take profit"
        manager.hedge_scheduler.stop.assert_called_once_with(position.position_address)
        assert position.position_address not in manager.registry

    @pytest.mark.asyncio
    async def test_close_unknown_returns_none(self, manager):
        assert await manager.close_position("missing", "manual") is None

    @pytest.mark.asyncio
    async def test_close_already_closed_is_noop(self, manager, store):
        store.save(make_position(status="closed"))
        closed = await manager.close_position(make_position().position_address, "manual")
        assert closed.status == "closed"
        manager.builder.build_close_position.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_close_gone_on_chain(self, manager, store):
        position = store.save(make_position())
        manager.builder.build_close_position.side_effect = PositionNotFoundError(
            position.position_address
        )
        closed = await manager.close_position(position.position_address, "Stop loss")
        assert closed.close_reason == "closed externally"
