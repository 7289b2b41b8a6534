import asyncio

import pytest

from app.schemas.lecture import GenerateStatus
from app.services.store.base import SlideGuard, SlideKey
from app.utils.db_utils import (
    INTERACTIVE_SUMMARY,
    SAFE_FAILURE,
    SAFE_SUMMARY,
    append_conversation_turn,
    get_context_slides,
    mark_slide_failed,
    mark_slide_processing,
    save_slide_summary,
)
from app.utils.errors import ConversationStateError
from app.utils.sanitize import sanitize_content


def test_only_one_safe_summary_write_wins(store, make_lecture):
    lecture = make_lecture(num_slides=3)
    key = SlideKey.by_position(lecture.id, 2)

    async def race():
        return await asyncio.gather(
            *(save_slide_summary(store, key, f"summary {i}", SAFE_SUMMARY) for i in range(8))
        )

    results = asyncio.run(race())
    slide = asyncio.run(store.get_slide(key))

    assert results.count(True) == 1
    assert slide.generate_status == GenerateStatus.ready
    assert slide.content == [f"summary {results.index(True)}"]


def test_safe_failure_never_downgrades_ready(store, make_lecture):
    lecture = make_lecture(num_slides=2, summaries={1: "S1"})
    key = SlideKey.by_position(lecture.id, 1)

    marked = asyncio.run(mark_slide_failed(store, key, SAFE_FAILURE))
    slide = asyncio.run(store.get_slide(key))

    assert marked is False
    assert slide.generate_status == GenerateStatus.ready
    assert slide.content == ["S1"]


def test_safe_failure_marks_untouched_slide(store, make_lecture):
    lecture = make_lecture(num_slides=2)
    key = SlideKey.by_position(lecture.id, 2)

    assert asyncio.run(mark_slide_failed(store, key)) is True
    assert asyncio.run(store.get_slide(key)).generate_status == GenerateStatus.failed


def test_background_write_skips_slide_claimed_by_stream(store, make_lecture):
    lecture = make_lecture(num_slides=2)
    key = SlideKey.by_position(lecture.id, 1)

    assert asyncio.run(mark_slide_processing(store, key)) is True
    assert asyncio.run(save_slide_summary(store, key, "background", SAFE_SUMMARY)) is False
    assert asyncio.run(save_slide_summary(store, key, "streamed", INTERACTIVE_SUMMARY)) is True

    slide = asyncio.run(store.get_slide(key))
    assert slide.content == ["streamed"]
    assert slide.generate_status == GenerateStatus.ready


def test_streaming_claim_retries_failed_but_not_ready(store, make_lecture):
    lecture = make_lecture(num_slides=2, summaries={2: "S2"})
    failed_key = SlideKey.by_position(lecture.id, 1)
    asyncio.run(mark_slide_failed(store, failed_key))

    assert asyncio.run(mark_slide_processing(store, failed_key)) is True
    assert asyncio.run(
        mark_slide_processing(store, SlideKey.by_position(lecture.id, 2))
    ) is False


def test_context_keeps_nearest_slides(store, make_lecture):
    lecture = make_lecture(
        num_slides=25, summaries={n: f"S{n}" for n in range(1, 25)}
    )

    context = asyncio.run(get_context_slides(store, lecture.id, 25, max_slides=20))

    assert [c.slide_number for c in context] == list(range(24, 4, -1))
    assert context[0].summary == "S24"


def test_context_skips_slides_without_content(store, make_lecture):
    lecture = make_lecture(num_slides=5, summaries={1: "S1", 3: "S3"})

    context = asyncio.run(get_context_slides(store, lecture.id, 5))

    assert [c.slide_number for c in context] == [3, 1]
    assert asyncio.run(get_context_slides(store, lecture.id, 1)) == []


def test_append_conversation_turn_keeps_alternation(store, make_lecture):
    lecture = make_lecture(num_slides=1, summaries={1: "summary text"})
    key = SlideKey.by_position(lecture.id, 1)

    content = asyncio.run(append_conversation_turn(store, key, "why?", "because."))

    assert content == ["summary text", "why?", "because."]
    assert asyncio.run(store.get_slide(key)).content == content


def test_append_conversation_turn_rejects_broken_alternation(store, make_lecture):
    lecture = make_lecture(num_slides=2, summaries={1: "summary text"})

    with pytest.raises(ConversationStateError):
        asyncio.run(
            append_conversation_turn(
                store, SlideKey.by_position(lecture.id, 2), "why?", "because."
            )
        )

    key = SlideKey.by_position(lecture.id, 1)
    asyncio.run(store.update_slide(key, {"content": ["summary text", "dangling question"]}))
    with pytest.raises(ConversationStateError):
        asyncio.run(append_conversation_turn(store, key, "why?", "because."))


def test_guard_renders_sql_predicate():
    guard = SlideGuard(statuses=(None, GenerateStatus.processing), content_length=0)

    sql, params = guard.to_sql(3)

    assert sql == (
        "(generate_status IS NULL OR generate_status = ANY($3::text[]))"
        " AND cardinality(content) = $4"
    )
    assert params == [["PROCESSING"], 0]


def test_content_is_sanitized_for_postgres():
    assert sanitize_content(["a\x00b", None]) == ["ab", ""]
