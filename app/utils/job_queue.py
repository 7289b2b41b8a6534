"""
In-process background job runner with dependency flows.

A flow is a tree of ``FlowJob`` nodes. Children run before their parent, so a
linear chain runs from its deepest child up to its root. Job ids de-duplicate:
submitting a job whose id is already waiting, active or completed reuses the
existing job instead of running it again.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.utils.config import Settings
from app.utils.singleton import singleton

settings = Settings()


class JobState(str, Enum):
    waiting = "waiting"
    active = "active"
    completed = "completed"
    failed = "failed"


@dataclass
class Job:
    job_id: str
    name: str
    data: Dict[str, Any]
    state: JobState = JobState.waiting
    failed_reason: Optional[str] = None
    done: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def is_finished(self) -> bool:
        return self.state in (JobState.completed, JobState.failed)


@dataclass
class FlowJob:
    name: str
    queue_name: str
    data: Dict[str, Any]
    job_id: str
    fail_parent_on_failure: bool = True
    children: List["FlowJob"] = field(default_factory=list)


@dataclass
class _FlowNode:
    flow: FlowJob
    job: Job
    owned: bool
    children: List["_FlowNode"]


JobHandler = Callable[[Job], Awaitable[Any]]


class JobQueue:
    def __init__(
        self,
        name: str,
        handler: JobHandler,
        concurrency: int = 1,
        max_retained_jobs: int = 1000,
    ):
        self.name = name
        self.handler = handler
        self.max_retained_jobs = max_retained_jobs
        self._jobs: Dict[str, Job] = {}
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._tasks: set[asyncio.Task] = set()

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def add_flow(self, flow: FlowJob) -> Job:
        """
        Registers every job in ``flow`` and starts processing it. Must be called
        from a running event loop. Registration happens without suspending, so
        two flows submitted back to back de-duplicate deterministically.
        """
        plan = self._register(flow)
        task = asyncio.create_task(
            self._run_flow(plan), name=f"{self.name}:{flow.job_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return plan.job

    def _register(self, flow: FlowJob) -> _FlowNode:
        if flow.queue_name != self.name:
            raise ValueError(
                f"Flow job {flow.job_id} targets queue {flow.queue_name}, not {self.name}"
            )
        children = [self._register(child) for child in flow.children]

        existing = self._jobs.get(flow.job_id)
        if existing is not None and existing.state != JobState.failed:
            logging.debug(f"[{self.name}] Job {flow.job_id} already {existing.state.value}")
            return _FlowNode(flow=flow, job=existing, owned=False, children=children)

        job = Job(job_id=flow.job_id, name=flow.name, data=dict(flow.data))
        # Re-inserting moves a retried id to the end of the retention order
        self._jobs.pop(flow.job_id, None)
        self._jobs[flow.job_id] = job
        return _FlowNode(flow=flow, job=job, owned=True, children=children)

    async def _run_flow(self, node: _FlowNode) -> None:
        try:
            await self._process(node)
        finally:
            self._trim()

    async def _process(self, node: _FlowNode) -> bool:
        results = await asyncio.gather(*(self._process(c) for c in node.children))
        job = node.job

        if not node.owned:
            await job.done.wait()
            return job.state == JobState.completed

        if not all(results) and node.flow.fail_parent_on_failure:
            failed = [c.job.job_id for c, ok in zip(node.children, results) if not ok]
            self._finish(job, JobState.failed, f"child job failed: {', '.join(failed)}")
            logging.warning(
                f"[{self.name}] Job {job.job_id} failed because a child failed: {failed}"
            )
            return False

        async with self._semaphore:
            job.state = JobState.active
            try:
                await self.handler(job)
            except Exception as e:
                logging.error(
                    f"[{self.name}] Job {job.job_id} failed: {e}", exc_info=True
                )
                self._finish(job, JobState.failed, str(e))
                return False

        self._finish(job, JobState.completed)
        return True

    def _finish(self, job: Job, state: JobState, reason: Optional[str] = None) -> None:
        job.state = state
        job.failed_reason = reason
        job.done.set()

    def _trim(self) -> None:
        overflow = len(self._jobs) - self.max_retained_jobs
        if overflow <= 0:
            return
        for job_id in [jid for jid, job in self._jobs.items() if job.is_finished][:overflow]:
            del self._jobs[job_id]

    async def wait_until_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)


def get_job_queue(name: str, handler: JobHandler) -> JobQueue:
    """Returns the queue registered under ``name``, creating it once per process."""
    return singleton(
        f"job_queue:{name}",
        lambda: JobQueue(
            name,
            handler,
            concurrency=settings.slide_summary_concurrency,
            max_retained_jobs=settings.job_queue_retained_jobs,
        ),
    )
