#!/usr/bin/env python3
"""
Background runner for the AskTennis sync scheduler.

Runs the Sportradar sync on its interval as a standalone service, separate
from the API process. It can be run via systemd, supervisor, or directly.

Only one process may own syncing. Set SYNC_RUNNER=standalone so the API
leaves the schedule to this runner; the runner refuses to sync otherwise.
The API notices the runner's commits through the sync_metadata table and
drops its query cache on its next query.

Usage:
    python run_scheduler.py              # Run in foreground
    python run_scheduler.py --once       # Run one sync and exit
    python run_scheduler.py --status     # Print configuration and exit
"""
import argparse
import asyncio
import json
import signal
import sys

from asktennis.core.config import settings
from asktennis.core.database import init_db
from asktennis.core.logging import configure_logging, get_logger
from asktennis.core.scheduler import SyncScheduler
from asktennis.main import build_sync_engine
from asktennis.services.cache.query_cache import QueryCache
from asktennis.services.provider.sportradar_client import SportradarClient

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


class SchedulerRunner:
    """Runner for the sync scheduler."""

    def __init__(self, run_on_startup: bool = False):
        self.client = SportradarClient(settings.provider_config())
        # API processes invalidate through sync_metadata, not through this cache
        self.engine = build_sync_engine(self.client, QueryCache())
        self.scheduler = SyncScheduler(self.engine, settings.SYNC_INTERVAL_SECONDS, run_on_startup)
        self._shutdown = asyncio.Event()

    async def start(self):
        """Start the scheduler and run until shutdown."""
        logger.info("Starting scheduler runner...")
        init_db()
        await self.scheduler.start()

        logger.info("Scheduler is now running. Press Ctrl+C to stop")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        await self._shutdown.wait()

        await self.scheduler.stop()
        await self.client.close()
        logger.info("Scheduler runner stopped")

    async def run_once(self) -> int:
        init_db()
        try:
            result = await self.engine.force_sync(trigger="cli")
        finally:
            await self.client.close()
        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.status in ("success", "skipped") else 1

    def _set_shutdown(self):
        logger.info("Shutdown signal received")
        self._shutdown.set()


def print_status():
    """Print the effective scheduler configuration."""
    provider = settings.provider_config()
    print(f"Sync enabled:      {settings.SYNC_ENABLED}")
    print(f"Sync runner:       {settings.SYNC_RUNNER}")
    print(f"Interval:          {settings.SYNC_INTERVAL_SECONDS}s")
    print(f"Run on startup:    {settings.SYNC_ON_STARTUP}")
    print(f"Provider base URL: {provider.base_url}")
    print(f"Provider key set:  {provider.available}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Run the AskTennis Sportradar sync scheduler'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Run a single sync and exit'
    )
    parser.add_argument(
        '--status',
        action='store_true',
        help='Print scheduler configuration and exit'
    )
    args = parser.parse_args()

    if args.status:
        print_status()
        return 0

    if settings.api_owns_sync():
        logger.error("The API process runs the sync scheduler; set SYNC_RUNNER=standalone to use this runner")
        return 2

    if args.once:
        return asyncio.run(SchedulerRunner().run_once())

    if not settings.SYNC_ENABLED:
        logger.warning("SYNC_ENABLED is false; not starting the scheduler")
        return 0

    try:
        asyncio.run(SchedulerRunner(run_on_startup=settings.SYNC_ON_STARTUP).start())
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down...")
        return 0
    except Exception as e:
        logger.error(f"Scheduler error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
