"""Emergency stop: close all positions and optionally stop monitoring."""

import logging

logger = logging.getLogger(__name__)


async def run_emergency_stop(
    close_positions: bool = True,
    stop_monitoring: bool = True,
) -> dict:
    """Execute emergency stop across all positions.

    Hedging is always stopped. Returns dict with positions_closed,
    hedges_stopped, monitoring_stopped and errors.
    """
    from dlmm_bot.engine.runtime import get_runtime

    runtime = get_runtime()
    result = {"positions_closed": 0, "hedges_stopped": 0, "monitoring_stopped": False, "errors": []}

    if stop_monitoring:
        runtime.monitor.stop()
        result["monitoring_stopped"] = True

    hedged = list(runtime.registry.hedge_states())
    runtime.hedge_scheduler.stop_all()
    result["hedges_stopped"] = len(hedged)

    if close_positions:
        for position in runtime.store.load_active():
            try:
                await runtime.monitor.close_now(position.position_address, "emergency_stop")
                result["positions_closed"] += 1
            except Exception as e:
                error_msg = f"Failed to close position {position.position_address}: {e}"
                logger.error(error_msg)
                result["errors"].append(error_msg)

    logger.info(
        f"[emergency_stop] Closed {result['positions_closed']} positions, "
        f"stopped {result['hedges_stopped']} hedges, {len(result['errors'])} errors"
    )
    return result
