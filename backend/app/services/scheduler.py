"""
Finder-fee sweep scheduler.

WHAT: Owns the AsyncIOScheduler that runs the finder-fee sweep on an
interval.

WHY: Paid bills must eventually produce their finder fees even when the
mark-paid request did not create them; a periodic sweep does that without
user requests.

HOW: One in-process AsyncIOScheduler with an in-memory job store. The
sweep is idempotent per bill, so pending runs lost on restart are simply
picked up by the next one. main.py starts it on startup only when
FINDER_FEE_SWEEP_ENABLED is set and stops it on shutdown.
"""

import logging
from typing import Any, Dict, Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.services.finder_fee_background_service import (
    FINDER_FEE_SWEEP_INTERVAL_SECONDS,
    get_finder_fee_sweep_service,
)


logger = logging.getLogger(__name__)


FINDER_FEE_SWEEP_JOB_ID = "finder_fee_sweep"

# A sweep that starts late still finds the same bills
SWEEP_JOB_DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": FINDER_FEE_SWEEP_INTERVAL_SECONDS,
}

_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> Optional[AsyncIOScheduler]:
    return _scheduler


def _build_scheduler() -> AsyncIOScheduler:
    """Scheduler with the sweep job registered but not yet started."""
    sweep_scheduler = AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults=SWEEP_JOB_DEFAULTS,
        timezone="UTC",
    )
    sweep_scheduler.add_job(
        func=get_finder_fee_sweep_service().sweep_paid_bills,
        trigger=IntervalTrigger(seconds=FINDER_FEE_SWEEP_INTERVAL_SECONDS),
        id=FINDER_FEE_SWEEP_JOB_ID,
        name="Finder fee sweep",
        replace_existing=True,
    )
    return sweep_scheduler


async def start_scheduler() -> None:
    """
    Start the sweep scheduler.

    Calling it again while the scheduler runs is a no-op.
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Finder fee scheduler already running")
        return

    _scheduler = _build_scheduler()
    _scheduler.start()
    logger.info(
        "Finder fee sweep scheduled every %s seconds", FINDER_FEE_SWEEP_INTERVAL_SECONDS
    )


async def shutdown_scheduler() -> None:
    """Stop the sweep scheduler, letting a running sweep finish first."""
    global _scheduler

    if _scheduler is None:
        return

    if _scheduler.running:
        _scheduler.shutdown(wait=True)
        logger.info("Finder fee scheduler stopped")
    _scheduler = None


async def run_finder_fee_sweep_now() -> dict:
    """
    Run the finder fee sweep immediately.

    WHY: Useful after importing paid bills or for manual testing.
    """
    return await get_finder_fee_sweep_service().sweep_paid_bills()


def get_scheduler_status() -> Dict[str, Any]:
    """
    Scheduler state for the health endpoint.

    Returns:
        Dict with ``running``, the sweep interval and one entry per job
    """
    if _scheduler is None:
        return {"running": False, "interval_seconds": FINDER_FEE_SWEEP_INTERVAL_SECONDS, "jobs": []}

    return {
        "running": _scheduler.running,
        "interval_seconds": FINDER_FEE_SWEEP_INTERVAL_SECONDS,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in _scheduler.get_jobs()
        ],
    }
