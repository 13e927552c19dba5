"""Tests for runtime wiring."""

from unittest.mock import MagicMock

import pytest

from dlmm_bot.config import Settings
from dlmm_bot.engine.runtime import assemble_runtime, build_runtime, get_runtime, has_runtime
from dlmm_bot.schemas.admin_config import AdminConfig


def test_assemble_shares_one_registry(store, mock_scheduler):
    runtime = assemble_runtime(
        store=store,
        scheduler=mock_scheduler,
        config=AdminConfig(),
        pool_data=MagicMock(),
        builder=MagicMock(),
        price_source=MagicMock(),
        pool_stats=MagicMock(),
        swap_router=MagicMock(),
        execution=MagicMock(),
        balances=MagicMock(),
    )
    assert runtime.monitor.registry is runtime.registry
    assert runtime.hedge_scheduler.registry is runtime.registry
    assert runtime.position_manager.hedge_scheduler is runtime.hedge_scheduler
    assert runtime.monitor.price_feed is runtime.price_feed


def test_build_requires_wallet(mock_scheduler):
    with pytest.raises(RuntimeError):
        build_runtime(Settings(wallet_secret_key=""), AdminConfig(), mock_scheduler)


def test_runtime_unset():
    assert has_runtime() is False
    with pytest.raises(RuntimeError):
        get_runtime()


@pytest.mark.parametrize(
    "job_id, kind", [
        ("monitor", "monitor"),
        ("admin_config_reload", "config"),
        ("hedge_PosA111", "hedge"),
        ("cleanup", "other"),
    ]
)
def test_scheduler_job_kinds(job_id, kind):
    from dlmm_bot.engine.scheduler import _job_kind

    assert _job_kind(job_id) == kind
