"""
Unit Tests — JobQueue
"""

from __future__ import annotations

import asyncio
import logging

import pytest

from docpipe.core.errors import ProcessingFailed
from docpipe.workers.queue import JobQueue


@pytest.mark.unit
class TestJobQueue:

    async def test_processes_submitted_ids_in_order(self):
        seen = []

        async def process(job_id):
            seen.append(job_id)

        queue = JobQueue(process, concurrency=1)
        await queue.start()
        try:
            for job_id in ("a", "b", "c"):
                await queue.submit(job_id)
            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            await queue.stop()

        assert seen == ["a", "b", "c"]

    async def test_submit_returns_before_processing(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def process(job_id):
            started.set()
            await release.wait()

        queue = JobQueue(process)
        await queue.start()
        try:
            await queue.submit("slow")
            assert not release.is_set()
            await asyncio.wait_for(started.wait(), timeout=5)
            release.set()
            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            await queue.stop()

    async def test_failures_do_not_kill_the_worker(self, caplog):
        seen = []

        async def process(job_id):
            seen.append(job_id)
            if job_id == "pipeline-error":
                raise ProcessingFailed(job_id, "fetch failed")
            if job_id == "bug":
                raise KeyError("unexpected")

        queue = JobQueue(process)
        await queue.start()
        try:
            with caplog.at_level(logging.WARNING, logger="docpipe.workers.queue"):
                for job_id in ("pipeline-error", "bug", "ok"):
                    await queue.submit(job_id)
                await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            await queue.stop()

        assert seen == ["pipeline-error", "bug", "ok"]
        messages = [r.getMessage() for r in caplog.records]
        assert any("Queued job failed" in m for m in messages)
        assert any("Worker error" in m for m in messages)

    async def test_multiple_workers_interleave(self):
        active = 0
        peak = 0

        async def process(job_id):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1

        queue = JobQueue(process, concurrency=3)
        await queue.start()
        try:
            for n in range(6):
                await queue.submit(str(n))
            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            await queue.stop()

        assert peak > 1

    async def test_stop_cancels_workers(self):
        queue = JobQueue(lambda job_id: asyncio.sleep(0), concurrency=2)
        await queue.start()
        assert queue.running

        await queue.stop()

        assert not queue.running

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            JobQueue(lambda job_id: asyncio.sleep(0), concurrency=0)
