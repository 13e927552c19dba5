"""Tests for the SQLite position store."""

from sqlmodel import Session, select

from dlmm_bot.models.decision_log import DecisionLog
from dlmm_bot.schemas.hedge import HedgeSwapRecord
from dlmm_bot.services.position_store import append_capped

from tests.conftest import SOL, USDC, make_position


def _record(i: int) -> HedgeSwapRecord:
    return HedgeSwapRecord(
        direction="sell", amount=0.1, notional_usd=10.0, price=100.0 - i / 100,
        price_change_percent=-i / 100, signature=f"sig{i}", input_mint=SOL, output_mint=USDC,
    )


def test_append_capped_keeps_newest():
    history = [{"n": i} for i in range(100)]
    capped = append_capped(history, {"n": 100})
    assert len(capped) == 100
    assert capped[0] == {"n": 1}
    assert capped[-1] == {"n": 100}
    assert len(history) == 100


def test_save_and_get(store):
    store.save(make_position())
    loaded = store.get(make_position().position_address)
    assert loaded.initial_price == 100.0
    assert loaded.hedge_swaps_history == []


def test_save_is_upsert(store):
    store.save(make_position())
    store.save(make_position(current_price=101.0))
    assert len(store.load()) == 1
    assert store.get(make_position().position_address).current_price == 101.0


def test_load_active_filters(store):
    store.save(make_position(position_address="PosA"))
    store.save(make_position(position_address="PosB"))
    store.mark_closed("PosB", "stop loss")
    assert [p.position_address for p in store.load_active()] == ["PosA"]
    closed = store.get("PosB")
    assert closed.status == "closed"
    assert closed.close_reason == "stop loss"
    assert closed.closed_at is not None


def test_update_unknown_returns_none(store):
    assert store.update("missing", current_price=1.0) is None


def test_remove(store):
    store.save(make_position())
    assert store.remove(make_position().position_address) is True
    assert store.remove(make_position().position_address) is False


def test_hedge_history_capped_in_order(store):
    address = store.save(make_position()).position_address
    for i in range(101):
        store.append_hedge_record(address, _record(i))

    position = store.get(address)
    history = position.hedge_swaps_history
    assert len(history) == 100
    assert history[0]["signature"] == "sig1"
    assert history[-1]["signature"] == "sig100"
    assert position.last_hedge_price == 99.0


def test_hedge_record_for_unknown_position(store):
    assert store.append_hedge_record("missing", _record(0)) is None


def test_record_event_scrubs_non_finite(store):
    store.record_event("PosA", "success", action="none", current_price=float("nan"),
                       lower_bound_price=float("inf"), upper_bound_price=104.0)
    with Session(store.engine) as session:
        log = session.exec(select(DecisionLog)).one()
    assert log.current_price is None
    assert log.lower_bound_price is None
    assert log.upper_bound_price == 104.0
