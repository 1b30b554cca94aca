"""
Application context management.
"""
import asyncio
from contextlib import AsyncExitStack
from typing import Optional, Set

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ogugu.config import Settings
from ogugu.feeds.base import FeedFetcher
from ogugu.store import Storage, get_storage

logger = structlog.get_logger()


class AppContext:
    """
    Application context that holds all initialized components and resources.

    This class manages the lifecycle of the storage, the HTTP fetcher and the
    scheduler, and hands them to the refresh job.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.exit_stack = AsyncExitStack()
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.storage: Optional[Storage] = None
        self.fetcher: Optional[FeedFetcher] = None
        self.shutdown_event = asyncio.Event()
        self.active_tasks: Set[asyncio.Task] = set()

    async def initialize(self, start_scheduler: bool = True) -> None:
        """
        Initialize all components and resources.

        Args:
            start_scheduler: Whether to schedule and start the periodic refresh
                job; one-shot commands leave it off.
        """
        logger.info("Initializing application context")

        await self._init_storage()
        await self._init_fetcher()

        if start_scheduler:
            await self._init_scheduler()

        logger.info("Application context initialized")

    async def _init_storage(self) -> None:
        """Initialize the feed and post storage."""
        logger.info("Initializing storage", backend=self.settings.database.backend.value)
        self.storage = await get_storage(self.settings.database)
        await self.exit_stack.enter_async_context(self.storage)
        logger.info("Storage initialized", type=type(self.storage).__name__)

    async def _init_fetcher(self) -> None:
        """Initialize the HTTP feed fetcher."""
        self.fetcher = FeedFetcher.from_config(self.settings.fetcher)
        await self.exit_stack.enter_async_context(self.fetcher)
        logger.info("Feed fetcher initialized", timeout_seconds=self.fetcher.timeout)

    async def _init_scheduler(self) -> None:
        """Initialize the job scheduler."""
        from ogugu.scheduler import create_scheduler, get_all_jobs, schedule_refresh_job

        logger.info("Initializing job scheduler")
        self.scheduler = create_scheduler(self.settings.scheduler)
        schedule_refresh_job(self.scheduler, self, self.settings.job)

        self.scheduler.start()
        logger.info("Job scheduler initialized and started", jobs=get_all_jobs(self.scheduler))

    async def shutdown(self) -> None:
        """Gracefully shut down all components and resources."""
        logger.info("Shutting down application")

        # Signal shutdown to all tasks
        self.shutdown_event.set()

        # Cancel all active tasks
        if self.active_tasks:
            logger.info("Cancelling active tasks", count=len(self.active_tasks))
            for task in self.active_tasks:
                if not task.done():
                    task.cancel()

            await asyncio.gather(*self.active_tasks, return_exceptions=True)

        if self.scheduler and self.scheduler.running:
            logger.info("Shutting down scheduler")
            self.scheduler.shutdown(wait=False)

        # Close all components using the exit stack
        logger.info("Closing all components")
        await self.exit_stack.aclose()

        logger.info("Application shutdown complete")

    def create_task(self, coro) -> asyncio.Task:
        """Create a tracked asyncio task."""
        task = asyncio.create_task(coro)
        self.active_tasks.add(task)
        task.add_done_callback(self.active_tasks.discard)
        return task
