"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dlmm_bot.config import settings
from dlmm_bot.database import create_db_and_tables
from dlmm_bot.utils.logging import setup_logging
from dlmm_bot.api import positions, system

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    from dlmm_bot.engine.runtime import build_runtime, set_runtime
    from dlmm_bot.engine.scheduler import scheduler, start_scheduler, stop_scheduler
    from dlmm_bot.services.admin_config import load_admin_config

    config = load_admin_config()
    runtime = None
    if settings.wallet_secret_key:
        runtime = build_runtime(settings, config, scheduler)
        # Reconcile stored positions with the chain before any job runs
        from dlmm_bot.engine.position_sync import sync_positions_on_startup
        await sync_positions_on_startup(
            runtime.store, runtime.pool_data, runtime.bounds, runtime.price_feed
        )
        runtime.monitor.start()
    else:
        logger.warning("DLMM_WALLET_SECRET_KEY not set; engine disabled, API is read-only")
    start_scheduler()

    # Start Telegram bot if configured
    telegram_bot = None
    if settings.telegram_bot_token:
        from dlmm_bot.services.telegram_bot import init_bot
        telegram_bot = init_bot(service_loop=asyncio.get_running_loop())
        telegram_bot.start()

    yield

    if telegram_bot:
        telegram_bot.stop()
    if runtime:
        runtime.monitor.stop()
    stop_scheduler()
    if runtime:
        await runtime.close()
        set_runtime(None)


app = FastAPI(
    title="DLMM Bot",
    description="DLMM liquidity position monitor with delta hedging",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(positions.router)
app.include_router(system.router)
