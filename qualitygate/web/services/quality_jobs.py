"""Runs queued quality-batch jobs in the background of the web server."""

import asyncio
from typing import Optional

from ...logging_config import get_logger
from ...services.batch_evaluation import QualityBatchHandler
from .job_manager import JobManager

logger = get_logger(__name__)


class QualityJobQueue:
    """
    Work queue backed by the job manager.

    `add` must be called from the event loop thread. The job itself runs
    in a worker thread; its progress is relayed to the job's SSE stream.
    """

    def __init__(self, job_manager: JobManager, handler: QualityBatchHandler):
        self.job_manager = job_manager
        self.handler = handler
        self.tasks: dict[str, asyncio.Task] = {}

    def add(self, name: str, payload: dict) -> str:
        job = self.job_manager.create_job(
            name,
            payload.get("branch_id", ""),
            total=len(payload.get("translation_ids", [])),
        )
        self.tasks[job.job_id] = asyncio.get_running_loop().create_task(self._run(job.job_id, payload))
        return job.job_id

    async def wait(self, job_id: str) -> None:
        """Wait for a job's task to finish."""
        task: Optional[asyncio.Task] = self.tasks.get(job_id)
        if task:
            await task

    async def _run(self, job_id: str, payload: dict) -> None:
        loop = asyncio.get_running_loop()
        self.job_manager.mark_running(job_id)

        def sync_progress(current: int, total: int, translation_id: str) -> None:
            """Called from the worker thread."""
            asyncio.run_coroutine_threadsafe(
                self.job_manager.report_progress(job_id, current, total, translation_id),
                loop,
            )

        try:
            result = await asyncio.to_thread(self.handler.execute, payload, sync_progress)
        except Exception as e:
            logger.exception(f"Quality job {job_id} failed")
            await self.job_manager.fail(job_id, str(e))
            return
        finally:
            self.tasks.pop(job_id, None)

        await self.job_manager.complete(job_id, result.to_dict())
        logger.info(f"Quality job {job_id} done: {result.succeeded} scored, {result.failed} failed")
