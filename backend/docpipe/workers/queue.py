"""
In-process job queue.

Decouples job creation from processing: the API enqueues a job id and
returns at once; `concurrency` worker tasks dequeue ids and run the
processing coroutine. A single worker matches one-job-at-a-time
behaviour; more workers let independent jobs interleave on the loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from docpipe.core.errors import PipelineError

logger = logging.getLogger(__name__)

ProcessFn = Callable[[str], Awaitable[object]]


class JobQueue:
    """Usage:
        queue = JobQueue(service.process_job, concurrency=1)
        await queue.start()
        await queue.submit(job_id)
        ...
        await queue.stop()
    """

    def __init__(self, process_fn: ProcessFn, concurrency: int = 1) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._process_fn = process_fn
        self._concurrency = concurrency
        self._queue: Optional[asyncio.Queue[str]] = None
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def size(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        if self._workers:
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._workers = [
            asyncio.get_event_loop().create_task(self._worker_loop(n))
            for n in range(self._concurrency)
        ]
        logger.info("Job queue started | workers=%d", self._concurrency)

    async def stop(self) -> None:
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        for task in workers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if workers:
            logger.info("Job queue stopped | pending=%d", self.size)

    async def submit(self, job_id: str) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        await self._queue.put(job_id)
        logger.debug("Job queued | job=%s depth=%d", job_id, self._queue.qsize())

    async def join(self) -> None:
        """Block until every submitted job has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def _worker_loop(self, worker: int) -> None:
        assert self._queue is not None
        while True:
            job_id = await self._queue.get()
            try:
                await self._process_fn(job_id)
            except PipelineError as exc:
                logger.warning("Queued job failed | worker=%d job=%s error=%s",
                               worker, job_id, exc.message)
            except Exception:
                logger.exception("Worker error | worker=%d job=%s", worker, job_id)
            finally:
                self._queue.task_done()
