import asyncio

import pytest

from app.schemas.lecture import GenerateStatus
from app.services.pregeneration.job_chain import SLIDE_SUMMARY_QUEUE_NAME
from app.services.pregeneration.orchestrator import (
    generate_background_summary,
    process_slide_summary_job,
)
from app.services.store.base import SlideKey
from app.utils.db_utils import INTERACTIVE_SUMMARY, save_slide_summary
from app.utils.job_queue import Job
from app.utils.tasks import wait_for_background_tasks


def _run(coro):
    async def scenario():
        try:
            return await coro
        finally:
            await wait_for_background_tasks()

    return asyncio.run(scenario())


def test_generates_and_saves_missing_summary(store, make_lecture, fake_openai):
    lecture = make_lecture(num_slides=3, summaries={1: "S1"})

    won = _run(generate_background_summary(store, lecture.id, 2))

    slide = asyncio.run(store.get_slide(SlideKey.by_position(lecture.id, 2)))
    assert won is True
    assert slide.content == ["A background summary."]
    assert slide.generate_status == GenerateStatus.ready
    # Context slide 1 as an (image, summary) exchange, then slide 2
    messages = fake_openai.chat.completions.summary_calls[0]["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert len(fake_openai.embeddings.calls) == 1


def test_existing_summary_is_not_regenerated(store, make_lecture, fake_openai):
    lecture = make_lecture(num_slides=3, summaries={2: "S2"})

    won = _run(generate_background_summary(store, lecture.id, 2))

    assert won is False
    assert fake_openai.chat.completions.calls == []


def test_interactive_winner_is_kept(store, make_lecture, fake_openai):
    lecture = make_lecture(num_slides=3)
    key = SlideKey.by_position(lecture.id, 2)

    async def interactive_finishes_first(kwargs):
        await save_slide_summary(store, key, "streamed summary", INTERACTIVE_SUMMARY)

    fake_openai.chat.completions.before_response = interactive_finishes_first

    won = _run(generate_background_summary(store, lecture.id, 2))

    slide = asyncio.run(store.get_slide(key))
    assert won is False
    assert slide.content == ["streamed summary"]
    assert slide.generate_status == GenerateStatus.ready
    assert fake_openai.embeddings.calls == []


def test_provider_error_marks_slide_failed(store, make_lecture, fake_openai):
    lecture = make_lecture(num_slides=3)
    fake_openai.chat.completions.error = RuntimeError("rate limited")

    with pytest.raises(RuntimeError):
        _run(generate_background_summary(store, lecture.id, 2))

    slide = asyncio.run(store.get_slide(SlideKey.by_position(lecture.id, 2)))
    assert slide.generate_status == GenerateStatus.failed
    assert slide.content == []


def test_late_failure_does_not_downgrade_ready_slide(store, make_lecture, fake_openai):
    lecture = make_lecture(num_slides=3)
    key = SlideKey.by_position(lecture.id, 2)

    async def interactive_then_provider_fails(kwargs):
        await save_slide_summary(store, key, "streamed summary", INTERACTIVE_SUMMARY)
        raise RuntimeError("provider down")

    fake_openai.chat.completions.before_response = interactive_then_provider_fails

    with pytest.raises(RuntimeError):
        _run(generate_background_summary(store, lecture.id, 2))

    slide = asyncio.run(store.get_slide(key))
    assert slide.generate_status == GenerateStatus.ready
    assert slide.content == ["streamed summary"]


def test_missing_image_fails_job(store, make_lecture, fake_openai):
    lecture = make_lecture(num_slides=2, with_images=False)

    with pytest.raises(Exception, match="Image not found"):
        _run(generate_background_summary(store, lecture.id, 1))

    slide = asyncio.run(store.get_slide(SlideKey.by_position(lecture.id, 1)))
    assert slide.generate_status == GenerateStatus.failed
    assert fake_openai.chat.completions.calls == []


def test_first_slide_sets_lecture_title(store, make_lecture, fake_openai):
    lecture = make_lecture(num_slides=2)

    _run(generate_background_summary(store, lecture.id, 1))

    assert asyncio.run(store.get_lecture(lecture.id)).title == "Gradient Descent"


def test_title_failure_keeps_summary(store, make_lecture, fake_openai):
    lecture = make_lecture(num_slides=2)
    fake_openai.chat.completions.title_responses = ['{"title": ""}']

    won = _run(generate_background_summary(store, lecture.id, 1))

    assert won is True
    assert asyncio.run(store.get_lecture(lecture.id)).title == "Untitled"
    slide = asyncio.run(store.get_slide(SlideKey.by_position(lecture.id, 1)))
    assert slide.generate_status == GenerateStatus.ready


def test_queue_handler_reads_job_data(store, make_lecture, fake_openai):
    lecture = make_lecture(num_slides=2)
    job = Job(
        job_id=f"{lecture.id}-2",
        name=SLIDE_SUMMARY_QUEUE_NAME,
        data={"lecture_id": str(lecture.id), "slide_number": 2},
    )

    assert _run(process_slide_summary_job(job)) is True
