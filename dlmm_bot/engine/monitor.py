"""Monitoring loop: one sequential scan over all active positions per tick.

For each position: fetch the price, evaluate a decision, journal it and act on
it. Rolling a range is a two-phase sequence: close the old position, wait for
the freed tokens to show up in the wallet, then open the replacement with what
actually arrived.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from dlmm_bot.engine.decision import (
    CLOSE,
    HEDGE,
    KEEP,
    NONE,
    OPEN_NEW,
    PositionDecision,
    PositionDecisionEngine,
)
from dlmm_bot.engine.hedge_scheduler import HedgeScheduler
from dlmm_bot.engine.position_manager import PositionManager
from dlmm_bot.engine.price_feed import PriceFeed
from dlmm_bot.engine.registry import INSUFFICIENT_BALANCE, PositionRegistry
from dlmm_bot.models.position import Position
from dlmm_bot.schemas.admin_config import AdminConfig
from dlmm_bot.services.collaborators import WalletBalanceReader
from dlmm_bot.services.errors import (
    InsufficientBalanceError,
    PositionNotFoundError,
    PriceUnavailableError,
)
from dlmm_bot.services.admin_config import reload_admin_config_if_changed
from dlmm_bot.services.notifications import notify
from dlmm_bot.services.position_store import PositionStore
from dlmm_bot.utils.constants import (
    CONFIG_RELOAD_INTERVAL_SECONDS,
    CONFIG_RELOAD_JOB_ID,
    MONITOR_JOB_ID,
)

logger = logging.getLogger(__name__)


class PositionMonitor:
    def __init__(
        self,
        registry: PositionRegistry,
        store: PositionStore,
        price_feed: PriceFeed,
        decision_engine: PositionDecisionEngine,
        position_manager: PositionManager,
        hedge_scheduler: HedgeScheduler,
        balances: WalletBalanceReader,
        scheduler: AsyncIOScheduler,
        config: AdminConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self.store = store
        self.price_feed = price_feed
        self.decision_engine = decision_engine
        self.position_manager = position_manager
        self.hedge_scheduler = hedge_scheduler
        self.balances = balances
        self.scheduler = scheduler
        self.config = config
        self._sleep = sleep

    # -- lifecycle ------------------------------------------------------------

    def start(self):
        interval = self.config.monitoring.check_interval_ms / 1000
        self.scheduler.add_job(
            self.run_cycle,
            trigger=IntervalTrigger(seconds=interval),
            id=MONITOR_JOB_ID,
            name="Position monitor",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.add_job(
            self.reload_config,
            trigger=IntervalTrigger(seconds=CONFIG_RELOAD_INTERVAL_SECONDS),
            id=CONFIG_RELOAD_JOB_ID,
            name="Admin config reload",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Position monitoring every {interval:.0f}s")

    def stop(self):
        for job_id in (MONITOR_JOB_ID, CONFIG_RELOAD_JOB_ID):
            if self.scheduler.get_job(job_id):
                self.scheduler.remove_job(job_id)
        self.hedge_scheduler.stop_all()
        logger.info("Position monitoring stopped")

    def update_config(self, config: AdminConfig):
        interval_changed = (
            config.monitoring.check_interval_ms != self.config.monitoring.check_interval_ms
        )
        self.config = config
        self.hedge_scheduler.update_config(config)
        if interval_changed and self.scheduler.get_job(MONITOR_JOB_ID):
            self.scheduler.reschedule_job(
                MONITOR_JOB_ID,
                trigger=IntervalTrigger(seconds=config.monitoring.check_interval_ms / 1000),
            )
        logger.info("Admin config applied to monitor")

    async def reload_config(self):
        """Apply the admin config document once it is rewritten on disk, e.g. by the CLI."""
        config = reload_admin_config_if_changed()
        if config is not None:
            self.update_config(config)

    # -- scan -----------------------------------------------------------------

    async def run_cycle(self):
        positions = self.store.load_active()
        if not positions:
            logger.debug("No active positions to monitor")
            return

        logger.info(f"Monitoring {len(positions)} active positions")
        for position in positions:
            try:
                await self.process_position(position.position_address)
            except Exception as e:
                logger.error(f"[{position.short_address()}] Monitoring error: {e}", exc_info=True)
                notify(f"[{position.short_address()}] ERROR: {e}")
                self.store.record_event(
                    position.position_address, "error", message=str(e),
                    current_price=position.current_price,
                )

    async def process_position(self, position_address: str) -> PositionDecision | None:
        """One monitoring tick for a position. Waits for any in-flight hedge tick."""
        slot = self.registry.ensure(position_address)
        async with slot.lock:
            position = self.store.get(position_address)
            if position is None or not position.is_active:
                return None

            try:
                price = await self.price_feed.get_price(position.pool_address)
            except PriceUnavailableError as e:
                logger.warning(f"[{position.short_address()}] Skipping tick: {e}")
                self.store.record_event(position_address, "skipped", message=str(e))
                return None

            position = self.store.update(
                position_address,
                current_price=price,
                last_price_check=datetime.now(timezone.utc),
            ) or position

            hedge_due = (
                self.config.mirror_swap.enabled
                and not self.hedge_scheduler.is_armed(position_address)
            )
            try:
                decision = await self.decision_engine.evaluate(
                    position, price, self.config, hedge_due=hedge_due
                )
            except PositionNotFoundError:
                await self.position_manager.close_position(position_address, "closed externally")
                return None

            self._journal(position, price, decision)
            if decision.action != HEDGE:
                await self.execute_decision(position, decision)

        # Outside the lock so the hedge job's first run is not skipped as overlapping
        if decision.action == HEDGE:
            await self.execute_decision(position, decision)
        else:
            self._ensure_hedging(position_address)
        return decision

    def _ensure_hedging(self, position_address: str):
        """Arm the hedge job for a still-active position that lost it, e.g. after a restart."""
        if not self.config.mirror_swap.enabled or self.hedge_scheduler.is_armed(position_address):
            return
        position = self.store.get(position_address)
        if position is not None and position.is_active:
            self.hedge_scheduler.start(position, self.config)

    async def close_now(self, position_address: str, reason: str) -> Position | None:
        """Close outside the scan, waiting for any in-flight tick on the position."""
        slot = self.registry.ensure(position_address)
        async with slot.lock:
            return await self.position_manager.close_position(position_address, reason)

    def _journal(self, position: Position, price: float, decision: PositionDecision):
        if decision.action == NONE:
            logger.debug(f"[{position.short_address()}] {decision.reason}")
        else:
            logger.info(f"[{position.short_address()}] {decision.action}: {decision.reason}")
        fees = decision.details.get("accumulated_fees")
        if fees is not None:
            self.store.update(position.position_address, accumulated_fees=fees)
        params = decision.new_position_params
        self.store.record_event(
            position.position_address, "success", action=decision.action,
            message=decision.reason, current_price=price,
            lower_bound_price=position.lower_bound_price,
            upper_bound_price=position.upper_bound_price,
            details={
                **decision.details,
                "should_close_old": decision.should_close_old,
                "range_interval": params.range_interval if params else None,
            },
        )

    # -- execution ------------------------------------------------------------

    async def execute_decision(self, position: Position, decision: PositionDecision):
        if decision.action == CLOSE:
            await self.position_manager.close_position(position.position_address, decision.reason)

        elif decision.action == OPEN_NEW:
            try:
                if decision.should_close_old:
                    await self._roll(position, decision)
                else:
                    await self._open_successor(position, decision)
            except InsufficientBalanceError as e:
                logger.warning(f"[{position.short_address()}] Replacement not opened: {e}")
                self.store.record_event(
                    position.position_address, "skipped", action=OPEN_NEW, message=str(e),
                    details={"mint": e.mint, "required": e.required, "available": e.available},
                )

        elif decision.action == HEDGE:
            if self.hedge_scheduler.is_armed(position.position_address):
                await self.hedge_scheduler.hedge_now(position.position_address)
            else:
                self.hedge_scheduler.start(position, self.config)

        elif decision.action in (KEEP, NONE):
            pass

        else:
            logger.warning(f"[{position.short_address()}] Unknown action {decision.action}")

    async def _read_balances(self, owner: str, mints: tuple[str, str]) -> dict[str, int]:
        return {mint: await self.balances.get_balance(owner, mint) for mint in mints}

    async def _wait_for_freed_balances(
        self, owner: str, mints: tuple[str, str], baseline: dict[str, int]
    ) -> dict[str, int]:
        """Poll until some token balance rises above the pre-close baseline.

        Bounded by rebalance.balance_wait_attempts; returns the last reading
        either way.
        """
        rebalance = self.config.rebalance
        observed = baseline
        for attempt in range(1, rebalance.balance_wait_attempts + 1):
            await self._sleep(rebalance.balance_wait_delay_seconds)
            try:
                observed = await self._read_balances(owner, mints)
            except Exception as e:
                logger.warning(f"Balance read {attempt}/{rebalance.balance_wait_attempts} failed: {e}")
                continue
            if any(observed[m] > baseline[m] for m in mints):
                logger.info(f"Freed balances observed after {attempt} attempts")
                return observed
        logger.warning(
            f"Freed balances not observed after {rebalance.balance_wait_attempts} attempts, "
            f"using current balances"
        )
        return observed

    async def _roll(self, position: Position, decision: PositionDecision):
        params = decision.new_position_params
        owner = position.owner_address
        mints = (position.token_x_mint, position.token_y_mint)

        baseline = await self._read_balances(owner, mints)
        closed = await self.position_manager.close_position(
            position.position_address, decision.reason
        )
        if closed is None or closed.is_active:
            logger.warning(f"[{position.short_address()}] Close not confirmed, replacement deferred")
            return

        observed = await self._wait_for_freed_balances(owner, mints, baseline)
        amount_x = min(position.initial_token_x_amount, observed[position.token_x_mint])
        amount_y = min(position.initial_token_y_amount, observed[position.token_y_mint])
        if amount_x <= 0 and amount_y <= 0:
            raise InsufficientBalanceError(
                position.token_x_mint, position.initial_token_x_amount, observed[position.token_x_mint]
            )

        replacement = await self.position_manager.open_position(
            params.pool_address, amount_x, amount_y, params.range_interval, self.config
        )
        logger.info(
            f"[{position.short_address()}] Rolled into {replacement.short_address()} "
            f"(x={amount_x}, y={amount_y})"
        )

    async def _open_successor(self, position: Position, decision: PositionDecision):
        address = position.position_address
        window = self.config.rebalance.insufficient_balance_cooldown_seconds
        remaining = self.registry.cooldown_remaining(address, INSUFFICIENT_BALANCE, window)
        if remaining > 0:
            logger.info(
                f"[{position.short_address()}] Successor suppressed for {remaining:.0f}s "
                f"after insufficient balance"
            )
            return

        requested = {
            position.token_x_mint: position.initial_token_x_amount,
            position.token_y_mint: position.initial_token_y_amount,
        }
        for mint, amount in requested.items():
            if amount <= 0:
                continue
            available = await self.balances.get_balance(position.owner_address, mint)
            if available < amount:
                self.registry.record_failure(address, INSUFFICIENT_BALANCE)
                raise InsufficientBalanceError(mint, amount, available)
        self.registry.clear_failure(address, INSUFFICIENT_BALANCE)

        params = decision.new_position_params
        successor = await self.position_manager.open_position(
            params.pool_address,
            position.initial_token_x_amount,
            position.initial_token_y_amount,
            params.range_interval,
            self.config,
        )
        self.store.update(address, successor_address=successor.position_address)
        logger.info(f"[{position.short_address()}] Successor {successor.short_address()} opened")
