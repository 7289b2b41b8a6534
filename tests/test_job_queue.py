import asyncio

import pytest

from app.utils.job_queue import FlowJob, JobQueue, JobState


def _chain(queue_name, job_ids):
    """Linear flow where each job id is a child of the next one."""
    flow = None
    for job_id in job_ids:
        flow = FlowJob(
            name=queue_name,
            queue_name=queue_name,
            data={"id": job_id},
            job_id=job_id,
            children=[flow] if flow else [],
        )
    return flow


def test_children_run_before_parents():
    executed = []

    async def scenario():
        async def handler(job):
            await asyncio.sleep(0)
            executed.append(job.job_id)

        queue = JobQueue("test", handler, concurrency=4)
        root = queue.add_flow(_chain("test", ["a", "b", "c"]))
        await queue.wait_until_idle()
        return root

    root = asyncio.run(scenario())

    assert executed == ["a", "b", "c"]
    assert root.job_id == "c"
    assert root.state == JobState.completed


def test_same_job_ids_are_not_run_twice():
    executed = []

    async def scenario():
        async def handler(job):
            await asyncio.sleep(0)
            executed.append(job.job_id)

        queue = JobQueue("test", handler)
        queue.add_flow(_chain("test", ["a", "b"]))
        queue.add_flow(_chain("test", ["a", "b"]))
        await queue.wait_until_idle()
        queue.add_flow(_chain("test", ["a", "b", "c"]))
        await queue.wait_until_idle()

    asyncio.run(scenario())

    assert executed == ["a", "b", "c"]


def test_child_failure_fails_parent_without_running_it():
    executed = []

    async def scenario():
        async def handler(job):
            if job.job_id == "a":
                raise RuntimeError("provider down")
            executed.append(job.job_id)

        queue = JobQueue("test", handler)
        root = queue.add_flow(_chain("test", ["a", "b"]))
        await queue.wait_until_idle()
        return queue, root

    queue, root = asyncio.run(scenario())

    assert executed == []
    assert queue.get_job("a").state == JobState.failed
    assert queue.get_job("a").failed_reason == "provider down"
    assert root.state == JobState.failed
    assert "a" in root.failed_reason


def test_failed_job_can_be_submitted_again():
    attempts = []

    async def scenario():
        async def handler(job):
            attempts.append(job.job_id)
            if len(attempts) == 1:
                raise RuntimeError("flaky")

        queue = JobQueue("test", handler)
        queue.add_flow(_chain("test", ["a"]))
        await queue.wait_until_idle()
        job = queue.add_flow(_chain("test", ["a"]))
        await queue.wait_until_idle()
        return job

    job = asyncio.run(scenario())

    assert attempts == ["a", "a"]
    assert job.state == JobState.completed


def test_flow_for_another_queue_is_rejected():
    async def scenario():
        async def handler(job):
            return None

        queue = JobQueue("test", handler)
        with pytest.raises(ValueError):
            queue.add_flow(_chain("other", ["a"]))

    asyncio.run(scenario())


def test_finished_jobs_are_trimmed():
    async def scenario():
        async def handler(job):
            return None

        queue = JobQueue("test", handler, max_retained_jobs=2)
        for job_id in ["a", "b", "c"]:
            queue.add_flow(_chain("test", [job_id]))
            await queue.wait_until_idle()
        return queue

    queue = asyncio.run(scenario())

    assert queue.get_job("a") is None
    assert queue.get_job("c").state == JobState.completed
