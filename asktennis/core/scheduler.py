"""
Background sync scheduler for the AskTennis stats API.

One interval job calls SyncEngine.run_background_sync(). The job is
configured with max_instances=1 and coalesce=True on top of the engine's
own skip-if-running guard, so a slow sync never stacks up missed runs.

Scheduler: APScheduler (lightweight, FastAPI-compatible)
"""
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from asktennis.core.logging import get_logger
from asktennis.services.sync.engine import SyncEngine

logger = get_logger(__name__)

SYNC_JOB_ID = "tennis_data_sync"


class SyncScheduler:
    """
    Runs the sync engine on a fixed interval.

    Args:
        engine: The process-wide SyncEngine
        interval_seconds: Seconds between scheduled runs
        run_on_startup: Fire the first run immediately instead of after one interval
    """

    def __init__(self, engine: SyncEngine, interval_seconds: int, run_on_startup: bool = False):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.engine = engine
        self.interval_seconds = interval_seconds
        self.run_on_startup = run_on_startup
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False

    async def start(self):
        """Start the scheduler on the running event loop."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting sync scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone=timezone.utc,
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job
                'misfire_grace_time': 300,
            }
        )

        job_options = {}
        if self.run_on_startup:
            job_options['next_run_time'] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self._run_sync,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=SYNC_JOB_ID,
            name='Sync Sportradar rankings, tournaments and results',
            replace_existing=True,
            **job_options,
        )

        self.scheduler.start()
        self.running = True

        job = self.scheduler.get_job(SYNC_JOB_ID)
        logger.info(
            f"Scheduler started: sync every {self.interval_seconds}s, next run {job.next_run_time if job else 'pending'}"
        )

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Scheduler stopped")

    def next_run_time(self) -> Optional[datetime]:
        if not self.running or self.scheduler is None:
            return None
        job = self.scheduler.get_job(SYNC_JOB_ID)
        return job.next_run_time if job else None

    async def _run_sync(self):
        result = await self.engine.run_background_sync()
        logger.info(f"Scheduled sync finished with status {result.status}")


# Global scheduler instance
_scheduler: Optional[SyncScheduler] = None


async def start_scheduler(
    engine: SyncEngine,
    interval_seconds: int,
    run_on_startup: bool = False,
) -> SyncScheduler:
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = SyncScheduler(engine, interval_seconds, run_on_startup)
        await _scheduler.start()
    return _scheduler


async def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_scheduler() -> Optional[SyncScheduler]:
    """Get the global scheduler instance."""
    return _scheduler
