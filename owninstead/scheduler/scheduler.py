"""
SCHEDULER BOOTSTRAP

Initializes and manages the APScheduler instance.
Scheduler is orchestration-only and contains no business logic.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from owninstead.config import settings
from owninstead.domain.services.job_cadence import JobCadence
from owninstead.infrastructure.db.repositories.job_run_repository import JobRunRepository
from owninstead.scheduler.jobs import (
    JOB_NAMES,
    ORDER_STATUS,
    TRADE_EXECUTION,
    TRANSACTION_SYNC,
    WEEKLY_EVALUATION,
    PipelineJobs,
)
from owninstead.utils.time import now_utc_naive

_logger = logging.getLogger(__name__)


def default_cadences(timezone: str = "UTC") -> Dict[str, JobCadence]:
    crontabs = {
        TRANSACTION_SYNC: settings.TRANSACTION_SYNC_CRON,
        WEEKLY_EVALUATION: settings.WEEKLY_EVALUATION_CRON,
        TRADE_EXECUTION: settings.TRADE_EXECUTION_CRON,
        ORDER_STATUS: settings.ORDER_STATUS_CRON,
    }
    return {
        name: JobCadence(name=name, crontab=crontabs[name], timezone=timezone)
        for name in JOB_NAMES
    }


class PipelineScheduler:
    """
    Registers every batch on an AsyncIOScheduler and catches up on
    occurrences missed while the process was down.

    Batches run as tasks of their own. Shutting the scheduler down or
    cancelling a catch-up stops further runs only; ``drain`` waits for the
    batches already started.
    """

    def __init__(
        self,
        jobs: PipelineJobs,
        session_factory: async_sessionmaker[AsyncSession],
        cadences: Optional[Dict[str, JobCadence]] = None,
        timezone: str = "UTC",
        clock: Callable[[], datetime] = now_utc_naive,
    ):
        self.jobs = jobs
        self.session_factory = session_factory
        self.cadences = cadences or default_cadences(timezone)
        self.clock = clock
        self.scheduler = AsyncIOScheduler(timezone=pytz.timezone(timezone))
        self._in_flight: Set[asyncio.Task] = set()

    def start(self) -> None:
        for name, cadence in self.cadences.items():
            self.scheduler.add_job(
                self._run_job,
                trigger=cadence.trigger(),
                args=[name],
                id=name,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=3600,
            )
            _logger.info("Scheduled %s (%s %s)", name, cadence.crontab, cadence.timezone)

        self.scheduler.start()
        _logger.info("✅ Scheduler started with all jobs registered")

    def stop(self) -> None:
        """Stop firing new runs; batches already started keep going until drained"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            _logger.info("🛑 Scheduler shut down")

    async def drain(self) -> None:
        """Wait for every batch this scheduler started"""
        running = [task for task in self._in_flight if not task.done()]
        if running:
            _logger.info("⏳ Waiting for %d running job(s)", len(running))
            await asyncio.gather(*running, return_exceptions=True)

    async def _run_job(self, name: str):
        task = asyncio.create_task(self.jobs.run(name))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        # Cancelling the caller leaves the batch running
        return await asyncio.shield(task)

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    async def due_jobs(self, now: Optional[datetime] = None) -> List[str]:
        """Jobs whose last completed batch is older than their latest occurrence"""
        now = now or self.clock()
        due = []
        async with self.session_factory() as session:
            runs = JobRunRepository(session)
            for name, cadence in self.cadences.items():
                last_run = await runs.last_finished_at(name)
                if cadence.is_due(last_run, now):
                    due.append(name)
        return due

    async def catch_up(self, now: Optional[datetime] = None) -> List[str]:
        """Run overdue batches once, in registration order"""
        due = await self.due_jobs(now)
        for name in due:
            _logger.info("⏩ Catching up missed %s run", name)
            await self._run_job(name)
        return due
