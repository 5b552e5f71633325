"""Tracks background quality jobs and fans their events out over SSE."""

import asyncio
import json
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import AsyncGenerator, Callable, Optional


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def finished(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class JobProgress:
    """How far a batch has got; `translation_id` is the last one scored."""
    evaluated: int
    total: int
    translation_id: str = ""

    @property
    def percentage(self) -> float:
        return round(self.evaluated / self.total * 100, 1) if self.total else 0.0

    def to_dict(self) -> dict:
        return {
            "current": self.evaluated,
            "total": self.total,
            "percentage": self.percentage,
            "message": f"Evaluated {self.evaluated}/{self.total}",
            "translation_id": self.translation_id,
        }


@dataclass
class JobEvent:
    """One SSE frame: `progress`, `complete` or `error`."""
    name: str
    payload: dict

    @property
    def terminal(self) -> bool:
        return self.name != "progress"

    def encode(self) -> str:
        return f"event: {self.name}\ndata: {json.dumps(self.payload)}\n\n"


@dataclass
class Job:
    job_id: str
    job_type: str
    branch_id: str
    created_at: str
    total: int = 0
    status: JobStatus = JobStatus.PENDING
    progress: Optional[JobProgress] = None
    result: Optional[dict] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["progress"] = self.progress.to_dict() if self.progress else None
        return data

    def terminal_event(self) -> Optional[JobEvent]:
        if self.status == JobStatus.COMPLETED:
            return JobEvent("complete", {"complete": True, "result": self.result})
        if self.status == JobStatus.FAILED:
            return JobEvent("error", {"error": self.error})
        return None


class JobManager:
    """
    In-memory registry of quality jobs.

    Producers call `report_progress`, `complete` or `fail`, which update the
    job record. Events are only queued for SSE clients attached at that
    moment; a client that joins late starts from the job's current state.
    Finished jobs are forgotten `job_ttl` seconds after they end.
    """

    HEARTBEAT_SECONDS = 30.0
    JOB_TTL_SECONDS = 3600.0

    def __init__(self, job_ttl: float = JOB_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.jobs: dict[str, Job] = {}
        self.job_ttl = job_ttl
        self._clock = clock
        self._subscribers: dict[str, list[asyncio.Queue]] = {}
        self._expires_at: dict[str, float] = {}

    def create_job(self, job_type: str, branch_id: str, total: int = 0) -> Job:
        self.evict_expired()
        job = Job(
            job_id=uuid.uuid4().hex,
            job_type=job_type,
            branch_id=branch_id,
            created_at=datetime.now().isoformat(),
            total=total,
        )
        self.jobs[job.job_id] = job
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    def list_jobs(self, branch_id: str = None) -> list[Job]:
        """Newest first, optionally limited to one branch."""
        self.evict_expired()
        jobs = [j for j in self.jobs.values() if not branch_id or j.branch_id == branch_id]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [job_id for job_id, deadline in self._expires_at.items() if deadline <= now]
        for job_id in expired:
            del self._expires_at[job_id]
            self.jobs.pop(job_id, None)
        return len(expired)

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, []))

    def mark_running(self, job_id: str) -> None:
        job = self.jobs.get(job_id)
        if job and not job.status.finished:
            job.status = JobStatus.RUNNING

    async def report_progress(self, job_id: str, evaluated: int, total: int, translation_id: str = "") -> None:
        job = self.jobs.get(job_id)
        if not job or job.status.finished:
            return
        job.progress = JobProgress(evaluated, total, translation_id)
        await self._publish(job_id, JobEvent("progress", job.progress.to_dict()))

    async def complete(self, job_id: str, result: dict) -> None:
        await self._finish(job_id, JobStatus.COMPLETED, result=result)

    async def fail(self, job_id: str, error: str) -> None:
        await self._finish(job_id, JobStatus.FAILED, error=error)

    async def _finish(self, job_id: str, status: JobStatus, result: dict = None, error: str = None) -> None:
        job = self.jobs.get(job_id)
        if not job:
            return
        job.status = status
        job.result = result
        job.error = error
        self._expires_at[job_id] = self._clock() + self.job_ttl
        await self._publish(job_id, job.terminal_event())
        self._subscribers.pop(job_id, None)

    async def _publish(self, job_id: str, event: JobEvent) -> None:
        for queue in self._subscribers.get(job_id, []):
            await queue.put(event)

    async def stream_progress(self, job_id: str) -> AsyncGenerator[str, None]:
        """Yield SSE frames until the job completes or fails."""
        job = self.jobs.get(job_id)
        if not job:
            yield JobEvent("error", {"error": "Job not found"}).encode()
            return

        finished = job.terminal_event()
        if finished:
            yield finished.encode()
            return

        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(job_id, []).append(queue)
        try:
            if job.progress:
                yield JobEvent("progress", job.progress.to_dict()).encode()
            while True:
                try:
                    event: JobEvent = await asyncio.wait_for(queue.get(), timeout=self.HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    yield ": heartbeat\n\n"
                    continue
                yield event.encode()
                if event.terminal:
                    return
        finally:
            queues = self._subscribers.get(job_id)
            if queues and queue in queues:
                queues.remove(queue)
                if not queues:
                    del self._subscribers[job_id]
