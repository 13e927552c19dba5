"""APScheduler instance shared by the monitor and the per-position hedge jobs."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from dlmm_bot.utils.constants import CONFIG_RELOAD_JOB_ID, MONITOR_JOB_ID

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def start_scheduler():
    if not scheduler.running:
        scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")


def _job_kind(job_id: str) -> str:
    if job_id == MONITOR_JOB_ID:
        return "monitor"
    if job_id == CONFIG_RELOAD_JOB_ID:
        return "config"
    if job_id.startswith("hedge_"):
        return "hedge"
    return "other"


def get_scheduler_status() -> dict:
    """Scheduler state for the API: the monitor job plus one hedge job per hedged position."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "hedge_jobs": sum(1 for j in jobs if _job_kind(j.id) == "hedge"),
        "jobs": [
            {
                "id": j.id,
                "kind": _job_kind(j.id),
                "name": j.name,
                "next_run": str(j.next_run_time) if j.next_run_time else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
