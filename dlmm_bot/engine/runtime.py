"""Composition root: wires the collaborators into the engine components."""

import logging
from dataclasses import dataclass, field
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from dlmm_bot.config import Settings
from dlmm_bot.engine.bounds import BoundsCalculator
from dlmm_bot.engine.decision import PositionDecisionEngine
from dlmm_bot.engine.hedge_scheduler import HedgeScheduler
from dlmm_bot.engine.monitor import PositionMonitor
from dlmm_bot.engine.position_manager import PositionManager
from dlmm_bot.engine.price_feed import PriceFeed
from dlmm_bot.engine.registry import PositionRegistry
from dlmm_bot.schemas.admin_config import AdminConfig
from dlmm_bot.services.position_store import PositionStore

logger = logging.getLogger(__name__)

_runtime: "Runtime | None" = None


@dataclass
class Runtime:
    registry: PositionRegistry
    store: PositionStore
    pool_data: Any
    price_feed: PriceFeed
    bounds: BoundsCalculator
    decision_engine: PositionDecisionEngine
    hedge_scheduler: HedgeScheduler
    position_manager: PositionManager
    monitor: PositionMonitor
    # Adapters with an async close()
    resources: list[Any] = field(default_factory=list)

    async def close(self):
        for resource in self.resources:
            try:
                await resource.close()
            except Exception as e:
                logger.warning(f"Error closing {type(resource).__name__}: {e}")


def assemble_runtime(
    *,
    store: PositionStore,
    scheduler: AsyncIOScheduler,
    config: AdminConfig,
    pool_data,
    builder,
    price_source,
    pool_stats,
    swap_router,
    execution,
    balances,
    resources: list[Any] | None = None,
) -> Runtime:
    """Wire engine components around already-constructed collaborators."""
    registry = PositionRegistry()
    price_feed = PriceFeed(price_source, pool_data)
    bounds = BoundsCalculator(pool_data)
    hedge_scheduler = HedgeScheduler(
        registry=registry,
        store=store,
        price_feed=price_feed,
        pool_data=pool_data,
        swap_router=swap_router,
        execution=execution,
        balances=balances,
        scheduler=scheduler,
    )
    position_manager = PositionManager(
        store=store,
        registry=registry,
        pool_data=pool_data,
        builder=builder,
        execution=execution,
        bounds=bounds,
        price_feed=price_feed,
        hedge_scheduler=hedge_scheduler,
    )
    decision_engine = PositionDecisionEngine(pool_stats=pool_stats, pool_data=pool_data)
    monitor = PositionMonitor(
        registry=registry,
        store=store,
        price_feed=price_feed,
        decision_engine=decision_engine,
        position_manager=position_manager,
        hedge_scheduler=hedge_scheduler,
        balances=balances,
        scheduler=scheduler,
        config=config,
    )
    return Runtime(
        registry=registry,
        store=store,
        pool_data=pool_data,
        price_feed=price_feed,
        bounds=bounds,
        decision_engine=decision_engine,
        hedge_scheduler=hedge_scheduler,
        position_manager=position_manager,
        monitor=monitor,
        resources=list(resources or []),
    )


def build_runtime(settings: Settings, config: AdminConfig, scheduler: AsyncIOScheduler) -> Runtime:
    """Production wiring from settings. Installs the result as the process runtime."""
    from dlmm_bot.database import engine
    from dlmm_bot.services.dlmm_sidecar import DlmmSidecarClient
    from dlmm_bot.services.jupiter_client import JupiterClient
    from dlmm_bot.services.meteora_api import MeteoraApiClient
    from dlmm_bot.services.solana_client import SolanaGateway

    if not settings.wallet_secret_key:
        raise RuntimeError("DLMM_WALLET_SECRET_KEY is not set")

    timeout = settings.http_timeout_seconds
    sidecar = DlmmSidecarClient(settings.dlmm_sidecar_url, timeout_seconds=timeout)
    meteora = MeteoraApiClient(settings.dlmm_api_base, timeout_seconds=timeout)
    jupiter = JupiterClient(settings.jupiter_swap_base, settings.jupiter_api_key, timeout_seconds=timeout)
    gateway = SolanaGateway.from_secret(settings.rpc_url, settings.wallet_secret_key)
    logger.info(f"Wallet {gateway.wallet_address}, RPC {settings.rpc_url}")

    runtime = assemble_runtime(
        store=PositionStore(engine),
        scheduler=scheduler,
        config=config,
        pool_data=sidecar,
        builder=sidecar,
        price_source=meteora,
        pool_stats=meteora,
        swap_router=jupiter,
        execution=gateway,
        balances=gateway,
        resources=[sidecar, meteora, jupiter, gateway],
    )
    set_runtime(runtime)
    return runtime


def set_runtime(runtime: "Runtime | None"):
    global _runtime
    _runtime = runtime


def get_runtime() -> Runtime:
    if _runtime is None:
        raise RuntimeError("Engine runtime is not running")
    return _runtime


def has_runtime() -> bool:
    return _runtime is not None
