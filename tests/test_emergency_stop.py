"""Tests for the emergency stop procedure."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from dlmm_bot.engine.registry import HedgeState, PositionRegistry
from dlmm_bot.engine.runtime import set_runtime
from dlmm_bot.services.emergency_stop import run_emergency_stop

from tests.conftest import make_position


@pytest.fixture
def runtime(store):
    registry = PositionRegistry()
    registry.ensure("PosA").hedge_state = HedgeState()
    store.save(make_position(position_address="PosA"))
    store.save(make_position(position_address="PosB"))

    async def close_now(address, reason):
        if address == "PosB":
            raise RuntimeError("rpc timeout")
        return store.mark_closed(address, reason)

    runtime = SimpleNamespace(
        store=store,
        registry=registry,
        hedge_scheduler=MagicMock(),
        monitor=MagicMock(close_now=AsyncMock(side_effect=close_now)),
    )
    set_runtime(runtime)
    yield runtime
    set_runtime(None)


@pytest.mark.asyncio
async def test_emergency_stop_closes_and_reports_errors(runtime, store):
    result = await run_emergency_stop()

    assert result["positions_closed"] == 1
    assert result["hedges_stopped"] == 1
    assert result["monitoring_stopped"] is True
    assert len(result["errors"]) == 1
    runtime.monitor.stop.assert_called_once()
    runtime.hedge_scheduler.stop_all.assert_called_once()
    assert store.get("PosA").close_reason == "emergency_stop"


@pytest.mark.asyncio
async def test_emergency_stop_keep_positions(runtime):
    result = await run_emergency_stop(close_positions=False, stop_monitoring=False)

    assert result["positions_closed"] == 0
    assert result["monitoring_stopped"] is False
    runtime.monitor.close_now.assert_not_awaited()
    runtime.monitor.stop.assert_not_called()
    runtime.hedge_scheduler.stop_all.assert_called_once()
