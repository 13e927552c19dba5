"""Tests for the incremental hedge trigger (threshold and accumulator)."""

import pytest

from dlmm_bot.engine.hedge_scheduler import evaluate_trigger
from dlmm_bot.engine.registry import HedgeState


def _hedged_state(anchor: float = 100.0) -> HedgeState:
    return HedgeState(last_hedge_price=anchor, hedge_count=1, last_checked_price=anchor)


# ---------------------------------------------------------------------------
# 1. First hedge
# ---------------------------------------------------------------------------

class TestFirstHedge:
    def test_small_move_from_initial_waits(self):
        result = evaluate_trigger(HedgeState(), 100.0, 100.05, 0.1, 2.0)
        assert result.proceed is False
        assert result.reason == "below_threshold"

    def test_move_from_initial_fires(self):
        result = evaluate_trigger(HedgeState(), 100.0, 99.8, 0.1, 2.0)
        assert result.proceed is True
        assert result.reason == "first_hedge"
        assert result.state.accumulated_change_since_last_hedge == 0.0

    def test_accumulator_does_not_fire_before_first_hedge(self):
        state = HedgeState()
        for price in [100.5, 100.0] * 6:
            result = evaluate_trigger(state, 100.0, price, 5.0, 2.0)
            state = result.state
        assert state.accumulated_change_since_last_hedge > 2.0
        assert result.proceed is False

    def test_unset_last_checked_defaults_to_initial(self):
        result = evaluate_trigger(HedgeState(), 100.0, 100.05, 0.1, 2.0)
        assert result.delta_check == pytest.approx(0.05)


# ---------------------------------------------------------------------------
# 2. Subsequent hedges
# ---------------------------------------------------------------------------

class TestIncrementalTrigger:
    def test_move_from_last_hedge_fires(self):
        result = evaluate_trigger(_hedged_state(95.0), 100.0, 94.8, 0.1, 2.0)
        assert result.proceed is True
        assert result.reason == "price_change"
        assert result.delta_last == pytest.approx(0.2 / 95 * 100)

    def test_anchor_is_last_hedge_not_initial(self):
        # 5% from initial but flat against the last hedge price
        result = evaluate_trigger(_hedged_state(95.0), 100.0, 95.0, 0.1, 2.0)
        assert result.proceed is False

    def test_accumulated_oscillation_fires(self):
        state = _hedged_state(100.0)
        reasons = []
        for price in [100.5, 100.0, 100.5, 100.0, 100.5]:
            result = evaluate_trigger(state, 100.0, price, 5.0, 2.0)
            state = result.state
            reasons.append(result.reason)
        assert reasons[:4] == ["below_threshold"] * 4
        assert reasons[4] == "accumulated"
        assert state.accumulated_change_since_last_hedge >= 2.0

    def test_steady_small_drift_fires_on_second_tick(self):
        # Two 0.05% steps in one direction cross the 0.1% minimum from the anchor
        state = _hedged_state(100.0)
        fired = None
        for tick in range(1, 21):
            result = evaluate_trigger(state, 100.0, 100.0 * 1.0005 ** tick, 0.1, 2.0)
            state = result.state
            if result.proceed:
                fired = (tick, result.reason)
                break
        assert fired == (2, "price_change")

    def test_sub_minimum_moves_fire_once_accrued_change_reaches_threshold(self):
        state = _hedged_state(100.0)
        results = []
        for tick in range(1, 61):
            price = 100.05 if tick % 2 else 100.0
            result = evaluate_trigger(state, 100.0, price, 0.1, 2.0)
            state = result.state
            results.append(result)
            if result.proceed:
                break

        assert all(r.delta_last < 0.1 for r in results)
        assert [r.reason for r in results[:-1]] == ["below_threshold"] * 40
        assert results[-1].reason == "accumulated"
        assert len(results) == 41
        assert state.accumulated_change_since_last_hedge >= 2.0

    def test_price_change_resets_accumulator(self):
        state = _hedged_state(100.0)
        state.accumulated_change_since_last_hedge = 1.5
        result = evaluate_trigger(state, 100.0, 101.0, 0.5, 2.0)
        assert result.reason == "price_change"
        assert result.state.accumulated_change_since_last_hedge == 0.0
        assert result.state.last_checked_price == 101.0


# ---------------------------------------------------------------------------
# 3. Accumulator bookkeeping
# ---------------------------------------------------------------------------

class TestAccumulator:
    def test_same_price_never_double_counted(self):
        state = _hedged_state(100.0)
        first = evaluate_trigger(state, 100.0, 101.0, 5.0, 10.0)
        assert first.state.accumulated_change_since_last_hedge == pytest.approx(1.0)

        state = first.state
        for _ in range(5):
            state = evaluate_trigger(state, 100.0, 101.0, 5.0, 10.0).state
        assert state.accumulated_change_since_last_hedge == pytest.approx(1.0)

    def test_sub_epsilon_moves_do_not_accrue(self):
        state = _hedged_state(100.0)
        result = evaluate_trigger(state, 100.0, 100.0005, 5.0, 2.0)
        assert result.state.accumulated_change_since_last_hedge == 0.0
        assert result.state.last_checked_price == 100.0

    def test_input_state_is_not_mutated(self):
        state = _hedged_state(100.0)
        evaluate_trigger(state, 100.0, 103.0, 5.0, 2.0)
        assert state.accumulated_change_since_last_hedge == 0.0
        assert state.last_checked_price == 100.0
