"""
Job dispatch for on-demand triggers.

A trigger either goes onto an in-process queue drained by a worker, or runs
inline when no queue is configured. Both paths call the same job handler.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from owninstead.scheduler.jobs import JOB_NAMES, PipelineJobs
from owninstead.services.trade_executor import BatchResult
from owninstead.utils.time import now_utc_naive

logger = logging.getLogger(__name__)

QUEUED = "queued"
DIRECT = "direct"


@dataclass
class JobRequest:
    job_name: str
    target: Optional[str] = None
    requested_at: datetime = field(default_factory=now_utc_naive)


@dataclass
class DispatchReceipt:
    job_name: str
    target: Optional[str]
    mode: str
    result: Optional[BatchResult] = None


class JobQueue:
    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue[JobRequest] = asyncio.Queue(maxsize=maxsize)

    async def publish(self, request: JobRequest) -> None:
        await self._queue.put(request)

    async def get(self) -> JobRequest:
        return await self._queue.get()

    def size(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        await self._queue.join()

    def task_done(self) -> None:
        self._queue.task_done()


class JobWorker:
    """
    Drains the queue one request at a time

    ``stop`` lets the request being handled run to completion; requests
    still queued at that point are dropped.
    """

    def __init__(self, queue: JobQueue, handler, poll_interval: float = 0.5):
        self._queue = queue
        self._handler = handler
        self._poll_interval = poll_interval
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stop.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            left = self._queue.size()
            if left:
                logger.warning("Job worker stopped with %d queued request(s) unhandled", left)

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                request = await asyncio.wait_for(self._queue.get(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                continue
            try:
                await self._handler(request)
            except Exception:
                logger.exception("Queued job %s failed | target=%s", request.job_name, request.target)
            finally:
                self._queue.task_done()


class JobDispatcher:
    """
    Routes triggers to PipelineJobs, queued when a queue is attached
    """

    def __init__(self, jobs: PipelineJobs, queue: Optional[JobQueue] = None):
        self.jobs = jobs
        self.queue = queue

    async def dispatch(self, job_name: str, target: Optional[str] = None) -> DispatchReceipt:
        if job_name not in JOB_NAMES:
            raise ValueError(f"Unknown job: {job_name}")

        request = JobRequest(job_name=job_name, target=target)
        if self.queue is not None:
            await self.queue.publish(request)
            logger.info("Job queued | %s | target=%s", job_name, target or "all")
            return DispatchReceipt(job_name, target, QUEUED)

        result = await self.handle(request)
        return DispatchReceipt(job_name, target, DIRECT, result)

    async def handle(self, request: JobRequest) -> BatchResult:
        return await self.jobs.run(request.job_name, request.target)
