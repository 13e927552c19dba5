"""Shared fixtures: in-memory store and position factory."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

import dlmm_bot.models  # noqa: F401
from dlmm_bot.models.position import Position
from dlmm_bot.services.position_store import PositionStore

SOL = "So11111111111111111111111111111111111111112"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
POOL = "Pool1111111111111111111111111111111111111111"
OWNER = "Owner111111111111111111111111111111111111111"


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(db_engine) -> PositionStore:
    return PositionStore(db_engine)


def make_position(**overrides) -> Position:
    fields = dict(
        position_address="PosA111111111111111111111111111111111111111",
        pool_address=POOL,
        owner_address=OWNER,
        token_x_mint=SOL,
        token_y_mint=USDC,
        token_x_decimals=9,
        token_y_decimals=6,
        initial_token_x_amount=10 * 10**9,  # 10 SOL
        initial_token_y_amount=1_000 * 10**6,  # 1000 USDC
        initial_price=100.0,
        current_price=100.0,
        lower_bound_price=96.0,
        upper_bound_price=104.0,
        min_bin_id=-20,
        max_bin_id=19,
        bin_step=10,
        status="active",
    )
    fields.update(overrides)
    return Position(**fields)


@pytest.fixture
def position_factory():
    return make_position


@pytest.fixture
def mock_scheduler():
    """Stand-in for AsyncIOScheduler that tracks job ids."""
    jobs = {}
    scheduler = MagicMock()

    def add_job(func, trigger=None, args=None, id=None, **kwargs):
        jobs[id] = MagicMock(id=id, func=func, args=args, trigger=trigger, kwargs=kwargs)
        return jobs[id]

    scheduler.add_job.side_effect = add_job
    scheduler.get_job.side_effect = lambda job_id: jobs.get(job_id)
    scheduler.remove_job.side_effect = lambda job_id: jobs.pop(job_id)
    scheduler.jobs = jobs
    return scheduler
