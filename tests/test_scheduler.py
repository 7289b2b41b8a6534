import asyncio
import uuid

import pytest

from app.services.pregeneration import scheduler
from app.services.pregeneration.scheduler import schedule_summaries
from app.utils.errors import LectureNotFoundError


def _schedule_and_wait(store, queue, lecture_id, completed, fanout=None, times=1):
    async def scenario():
        chains = [
            await schedule_summaries(store, lecture_id, completed, fanout)
            for _ in range(times)
        ]
        await queue.wait_until_idle()
        return chains

    return asyncio.run(scenario())


def test_chain_executes_in_ascending_order(store, make_lecture, job_recorder):
    lecture = make_lecture(num_slides=10, summaries={3: "S3"})

    [chain] = _schedule_and_wait(store, job_recorder.queue, lecture.id, 3, fanout=5)

    assert chain.slide_numbers == [4, 5, 6, 7]
    assert job_recorder.executed == [4, 5, 6, 7]


def test_repeated_scheduling_runs_each_slide_once(store, make_lecture, job_recorder):
    lecture = make_lecture(num_slides=10)

    _schedule_and_wait(store, job_recorder.queue, lecture.id, 1, fanout=5, times=2)
    _schedule_and_wait(store, job_recorder.queue, lecture.id, 2, fanout=5)

    assert job_recorder.executed == [2, 3, 4, 5, 6]


def test_no_jobs_after_last_slide(store, make_lecture, job_recorder):
    lecture = make_lecture(num_slides=10)

    [chain] = _schedule_and_wait(store, job_recorder.queue, lecture.id, 10)

    assert chain is None
    assert job_recorder.executed == []


def test_default_fanout_comes_from_settings(store, make_lecture, job_recorder, mocker):
    mocker.patch.object(scheduler.settings, "pregeneration_fanout", 3)
    lecture = make_lecture(num_slides=10)

    [chain] = _schedule_and_wait(store, job_recorder.queue, lecture.id, 1)

    assert chain.slide_numbers == [2, 3]


def test_missing_lecture_is_reported(store, job_recorder):
    with pytest.raises(LectureNotFoundError):
        asyncio.run(schedule_summaries(store, uuid.uuid4(), 1))


def test_lecture_without_slide_count_is_rejected(store, make_lecture, job_recorder):
    lecture = make_lecture(num_slides=None)

    with pytest.raises(ValueError):
        asyncio.run(schedule_summaries(store, lecture.id, 1))


def test_chain_is_published_when_topic_is_configured(
    store, make_lecture, job_recorder, mocker
):
    mocker.patch.object(scheduler.settings, "slide_summary_topic", "slide-summary")
    publish = mocker.patch.object(scheduler, "publish_slide_summary_chain")
    lecture = make_lecture(num_slides=10)

    [chain] = _schedule_and_wait(store, job_recorder.queue, lecture.id, 3)

    publish.assert_called_once_with(chain)
    assert job_recorder.executed == []
