"""Per-position mirror-swap hedging.

Each hedged position owns an APScheduler interval job. A tick re-reads the
position, evaluates the incremental trigger and, when it fires, sizes and
executes one swap through the swap router. Trigger evaluation works on a copy
of the position's HedgeState; the copy is committed back to the registry only
when the tick skips or the swap succeeds, so a failed attempt leaves the anchor
and accumulator exactly as they were.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from dlmm_bot.engine.hedge_sizer import size_hedge, to_swap_amount
from dlmm_bot.engine.price_feed import PriceFeed
from dlmm_bot.engine.registry import HEDGE_INSUFFICIENT_BALANCE, HedgeState, PositionRegistry
from dlmm_bot.engine.valuation import estimate_position_value
from dlmm_bot.models.position import Position
from dlmm_bot.schemas.admin_config import AdminConfig
from dlmm_bot.schemas.hedge import HedgeSwapRecord
from dlmm_bot.services.collaborators import (
    ExecutionService,
    PoolDataProvider,
    PositionBin,
    SwapRouter,
    WalletBalanceReader,
)
from dlmm_bot.services.errors import (
    InsufficientBalanceError,
    InvalidAmountError,
    PositionNotFoundError,
    PriceUnavailableError,
    TransactionSimulationError,
)
from dlmm_bot.services.notifications import notify
from dlmm_bot.services.position_store import PositionStore
from dlmm_bot.utils.constants import ACCRUAL_EPSILON_PERCENT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerResult:
    proceed: bool
    reason: str  # "first_hedge", "price_change", "accumulated", "below_threshold"
    state: HedgeState
    delta_last: float
    delta_check: float


@dataclass(frozen=True)
class HedgeOutcome:
    status: str  # "executed", "skipped", "inactive", "closed_externally"
    reason: str
    signature: str | None = None
    record: HedgeSwapRecord | None = None


def _pct_change(a: float, b: float) -> float:
    return abs(a - b) / b * 100


def evaluate_trigger(
    state: HedgeState,
    initial_price: float,
    current_price: float,
    min_price_change_percent: float,
    significant_change_percent: float,
) -> TriggerResult:
    """Decide whether this tick should hedge. Returns an updated copy of `state`.

    Movement since the last evaluation accrues into the accumulator only when
    it exceeds ACCRUAL_EPSILON_PERCENT, so polling an unchanged price never
    grows it. Before the first hedge the decision depends only on the move
    from the initial price.
    """
    new = replace(state)
    anchor = state.last_hedge_price or initial_price
    if new.last_checked_price is None:
        new.last_checked_price = anchor

    delta_check = _pct_change(current_price, new.last_checked_price)
    if delta_check > ACCRUAL_EPSILON_PERCENT:
        new.accumulated_change_since_last_hedge += delta_check
        new.last_checked_price = current_price

    if not state.has_hedged:
        delta_initial = _pct_change(current_price, initial_price)
        if delta_initial >= min_price_change_percent:
            new.accumulated_change_since_last_hedge = 0.0
            new.last_checked_price = current_price
            return TriggerResult(True, "first_hedge", new, delta_initial, delta_check)
        return TriggerResult(False, "below_threshold", new, delta_initial, delta_check)

    delta_last = _pct_change(current_price, anchor)
    if delta_last >= min_price_change_percent:
        new.accumulated_change_since_last_hedge = 0.0
        new.last_checked_price = current_price
        return TriggerResult(True, "price_change", new, delta_last, delta_check)

    if new.accumulated_change_since_last_hedge >= significant_change_percent:
        return TriggerResult(True, "accumulated", new, delta_last, delta_check)

    return TriggerResult(False, "below_threshold", new, delta_last, delta_check)


def _job_id(position_address: str) -> str:
    return f"hedge_{position_address}"


class HedgeScheduler:
    def __init__(
        self,
        registry: PositionRegistry,
        store: PositionStore,
        price_feed: PriceFeed,
        pool_data: PoolDataProvider,
        swap_router: SwapRouter,
        execution: ExecutionService,
        balances: WalletBalanceReader,
        scheduler: AsyncIOScheduler,
    ):
        self.registry = registry
        self.store = store
        self.price_feed = price_feed
        self.pool_data = pool_data
        self.swap_router = swap_router
        self.execution = execution
        self.balances = balances
        self.scheduler = scheduler

    # -- lifecycle ------------------------------------------------------------

    def start(self, position: Position, config: AdminConfig) -> bool:
        """Arm the hedge job for a position. Returns False when hedging is disabled."""
        address = position.position_address
        if not config.mirror_swap.enabled:
            logger.debug(f"[{position.short_address()}] Mirror swap disabled, not hedging")
            return False

        self._remove_job(address)
        slot = self.registry.ensure(address)
        if slot.hedge_state is None:
            # Anchor survives restarts through the stored last_hedge_price
            slot.hedge_state = HedgeState(
                last_hedge_price=position.last_hedge_price,
                last_checked_price=position.last_hedge_price or position.initial_price,
            )
        slot.hedge_config = config

        interval = config.monitoring.price_update_interval_ms / 1000
        self.scheduler.add_job(
            self.run_tick,
            trigger=IntervalTrigger(seconds=interval),
            args=[address],
            id=_job_id(address),
            name=f"Hedge {position.short_address()}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.info(f"[{position.short_address()}] Hedging armed every {interval:.0f}s")
        return True

    def stop(self, position_address: str):
        """Cancel the job and drop the in-memory hedge state. Idempotent."""
        self._remove_job(position_address)
        slot = self.registry.get(position_address)
        if slot is not None and slot.hedge_state is not None:
            slot.hedge_state = None
            slot.hedge_config = None
            logger.info(f"[{position_address[:8]}] Hedging stopped")

    def stop_all(self):
        for address in list(self.registry.hedge_states()):
            self.stop(address)

    def is_armed(self, position_address: str) -> bool:
        slot = self.registry.get(position_address)
        return slot is not None and slot.hedge_state is not None

    def update_config(self, config: AdminConfig):
        """Re-arm every hedged position with new parameters."""
        for address in list(self.registry.hedge_states()):
            position = self.store.get(address)
            if position is None or not position.is_active:
                self.stop(address)
                continue
            if not config.mirror_swap.enabled:
                self.stop(address)
                continue
            self.start(position, config)

    def _remove_job(self, position_address: str):
        job_id = _job_id(position_address)
        if self.scheduler.get_job(job_id):
            self.scheduler.remove_job(job_id)

    # -- ticks ----------------------------------------------------------------

    async def run_tick(self, position_address: str) -> HedgeOutcome | None:
        """One hedge tick, skipped if the position is busy elsewhere."""
        slot = self.registry.get(position_address)
        if slot is None or slot.hedge_state is None:
            return None
        if slot.lock.locked():
            logger.info(f"[{position_address[:8]}] Skipping hedge tick, position busy")
            return None
        async with slot.lock:
            try:
                return await self._tick(position_address)
            except (PriceUnavailableError, InsufficientBalanceError, InvalidAmountError) as e:
                logger.warning(f"[{position_address[:8]}] Hedge tick abandoned: {e}")
                self.store.record_event(position_address, "skipped", action="hedge", message=str(e))
            except TransactionSimulationError as e:
                logger.error(
                    f"[{position_address[:8]}] Hedge swap simulation failed: {e}\n" + "\n".join(e.logs)
                )
                self.store.record_event(
                    position_address, "error", action="hedge", message=str(e),
                    details={"logs": e.logs},
                )
            except Exception as e:
                logger.error(f"[{position_address[:8]}] Hedge tick error: {e}", exc_info=True)
                self.store.record_event(position_address, "error", action="hedge", message=str(e))
            return None

    async def hedge_now(self, position_address: str) -> HedgeOutcome | None:
        """Run one tick out of band (API / decision engine hedge branch)."""
        return await self.run_tick(position_address)

    async def _tick(self, position_address: str) -> HedgeOutcome:
        position = self.store.get(position_address)
        if position is None or not position.is_active:
            logger.info(f"[{position_address[:8]}] Position no longer active, stopping hedge")
            self.stop(position_address)
            return HedgeOutcome("inactive", "position not active")

        bins: list[PositionBin] | None = None
        try:
            bins = await self.pool_data.get_position_bins(
                position.pool_address, position_address, position.owner_address
            )
        except PositionNotFoundError:
            logger.info(f"[{position.short_address()}] Position closed externally, stopping hedge")
            self.stop(position_address)
            self.store.mark_closed(position_address, "closed externally")
            self.registry.remove(position_address)
            self.store.record_event(
                position_address, "success", action="closed_externally",
                message="Position not found on chain",
            )
            notify(f"[{position.short_address()}] Position closed externally, hedging stopped")
            return HedgeOutcome("closed_externally", "position not found")
        except Exception as e:
            logger.warning(f"[{position.short_address()}] Bin data unavailable, valuing from snapshot: {e}")

        price = await self.price_feed.get_price(position.pool_address)
        return await self.execute_hedge(position, price, bins)

    async def execute_hedge(
        self,
        position: Position,
        price: float,
        bins: list[PositionBin] | None = None,
    ) -> HedgeOutcome:
        address = position.position_address
        slot = self.registry.get(address)
        if slot is None or slot.hedge_state is None or slot.hedge_config is None:
            return HedgeOutcome("inactive", "hedging not armed")
        mirror = slot.hedge_config.mirror_swap
        state = slot.hedge_state

        window = slot.hedge_config.rebalance.insufficient_balance_cooldown_seconds
        remaining = self.registry.cooldown_remaining(address, HEDGE_INSUFFICIENT_BALANCE, window)
        if remaining > 0:
            logger.debug(
                f"[{position.short_address()}] Hedge suppressed for {remaining:.0f}s "
                f"after insufficient balance"
            )
            return HedgeOutcome("skipped", "insufficient_balance_cooldown")

        trigger = evaluate_trigger(
            state,
            position.initial_price,
            price,
            mirror.min_price_change_percent,
            mirror.significant_change_threshold_percent,
        )
        if not trigger.proceed:
            self._commit(address, trigger.state)
            logger.debug(
                f"[{position.short_address()}] No hedge: Δ={trigger.delta_last:.3f}% "
                f"accumulated={trigger.state.accumulated_change_since_last_hedge:.3f}%"
            )
            return HedgeOutcome("skipped", trigger.reason)

        base_price = state.last_hedge_price or position.initial_price
        value = estimate_position_value(position, price, bins)
        order = size_hedge(
            base_price, price, mirror.hedge_amount_percent, value, mirror.min_hedge_amount
        )
        if order is None:
            self._commit(address, trigger.state)
            logger.info(
                f"[{position.short_address()}] Hedge below minimum notional "
                f"(value=${value:.2f}, base=${base_price:.4f}, price=${price:.4f})"
            )
            return HedgeOutcome("skipped", "below_minimum")

        swap = to_swap_amount(
            order,
            base_mint=position.token_x_mint,
            quote_mint=position.token_y_mint,
            base_decimals=position.token_x_decimals,
            quote_decimals=position.token_y_decimals,
        )
        if swap is None:
            raise InvalidAmountError(
                f"Hedge amount out of range for ${order.notional_usd:.6g} {order.direction}"
            )

        available = await self.balances.get_balance(position.owner_address, swap.input_mint)
        if available < swap.amount_units:
            self.registry.record_failure(address, HEDGE_INSUFFICIENT_BALANCE)
            raise InsufficientBalanceError(swap.input_mint, swap.amount_units, available)

        logger.info(
            f"[{position.short_address()}] Hedging ({trigger.reason}): {order.direction} "
            f"${order.notional_usd:.2f} ratio={order.ratio:.5f} base=${base_price:.4f} "
            f"price=${price:.4f}"
        )
        quote = await self.swap_router.get_quote(
            swap.input_mint, swap.output_mint, swap.amount_units, mirror.slippage_bps
        )
        transaction = await self.swap_router.build_swap_transaction(
            quote, self.execution.wallet_address
        )
        signature = await self.execution.submit(transaction)
        self.registry.clear_failure(address, HEDGE_INSUFFICIENT_BALANCE)

        record = HedgeSwapRecord(
            direction=order.direction,
            amount=swap.amount,
            notional_usd=order.notional_usd,
            price=price,
            price_change_percent=(price - position.initial_price) / position.initial_price * 100,
            signature=signature,
            input_mint=swap.input_mint,
            output_mint=swap.output_mint,
        )
        # The trade happened: always keep the record, even if hedging was stopped meanwhile
        self.store.append_hedge_record(address, record)
        self._commit(
            address,
            replace(
                trigger.state,
                last_hedge_price=price,
                last_hedge_amount=swap.amount,
                last_hedge_direction=order.direction,
                hedge_count=trigger.state.hedge_count + 1,
                accumulated_change_since_last_hedge=0.0,
                last_checked_price=price,
            ),
        )
        self.store.record_event(
            address, "success", action="hedge",
            message=f"{order.direction} ${order.notional_usd:.2f} ({trigger.reason})",
            current_price=price,
            lower_bound_price=position.lower_bound_price,
            upper_bound_price=position.upper_bound_price,
            details=record.model_dump(mode="json"),
        )
        notify(
            f"[{position.short_address()}] Hedge {order.direction} ${order.notional_usd:.2f} "
            f"@ ${price:.4f} | {signature[:16]}"
        )
        return HedgeOutcome("executed", trigger.reason, signature=signature, record=record)

    def _commit(self, position_address: str, state: HedgeState):
        """Publish a tick's resulting state unless hedging stopped in the meantime."""
        slot = self.registry.get(position_address)
        if slot is None or slot.hedge_state is None:
            logger.debug(f"[{position_address[:8]}] Dropping hedge state update, hedging stopped")
            return
        slot.hedge_state = state
