"""
Record store access and the conditional write rules shared by the interactive
streamers and the background summary jobs.

Nothing here takes a lock. Every write that can race another producer is a
guarded update whose affected-row count says whether this writer won.
"""

import logging
from typing import List, Optional
from uuid import UUID

from app.schemas.lecture import ContextSlide, GenerateStatus, Lecture, Slide
from app.services.store.base import RecordStore, SlideGuard, SlideKey
from app.utils.config import Settings
from app.utils.errors import (
    ConversationStateError,
    LectureNotFoundError,
    SlideNotFoundError,
)
from app.utils.singleton import async_singleton

settings = Settings()

RECORD_STORE_SINGLETON = "record_store"

# Background writers only fill a slide nobody has touched.
SAFE_SUMMARY = SlideGuard(statuses=(None,), content_length=0)
SAFE_FAILURE = SlideGuard(statuses=(None,), content_length=0)
# An interactive stream marks the slide PROCESSING first, so it also accepts that.
INTERACTIVE_SUMMARY = SlideGuard(
    statuses=(None, GenerateStatus.processing), content_length=0
)
INTERACTIVE_FAILURE = SlideGuard(
    statuses=(None, GenerateStatus.processing), content_length=0
)
CLAIM_FOR_STREAMING = SlideGuard(
    statuses=(None, GenerateStatus.failed), content_length=0
)


async def _create_record_store() -> RecordStore:
    backend = settings.record_store_backend
    if backend == "memory":
        from app.services.store.memory import MemoryRecordStore

        logging.warning("Using in-memory record store; data is lost on restart.")
        return MemoryRecordStore()
    if backend == "postgres":
        from app.services.store.postgres import PostgresRecordStore

        return await PostgresRecordStore.connect(
            settings.postgres_dsn,
            min_size=settings.postgres_pool_min_size,
            max_size=settings.postgres_pool_max_size,
        )
    raise ValueError(f"Unknown record store backend: {backend}")


async def get_record_store() -> RecordStore:
    """Returns the process-wide record store, connecting on first use."""
    return await async_singleton(RECORD_STORE_SINGLETON, _create_record_store)


async def get_lecture_or_raise(store: RecordStore, lecture_id: UUID) -> Lecture:
    lecture = await store.get_lecture(lecture_id)
    if lecture is None:
        logging.warning(f"Lecture {lecture_id} not found.")
        raise LectureNotFoundError(f"Lecture {lecture_id} not found")
    return lecture


async def get_slide_or_raise(store: RecordStore, key: SlideKey) -> Slide:
    slide = await store.get_slide(key)
    if slide is None:
        raise SlideNotFoundError(f"Slide not found: {key}")
    return slide


async def get_num_slides(store: RecordStore, lecture_id: UUID) -> Optional[int]:
    lecture = await get_lecture_or_raise(store, lecture_id)
    return lecture.num_slides


async def get_context_slides(
    store: RecordStore, lecture_id: UUID, slide_number: int, max_slides: int = 20
) -> List[ContextSlide]:
    """
    Returns up to ``max_slides`` summarised slides before ``slide_number``,
    nearest first. When more exist than the cap the closest ones are kept;
    callers reverse the list to get chronological order for a prompt.
    """
    if slide_number <= 1 or max_slides <= 0:
        return []
    return await store.get_context_slides(lecture_id, slide_number, max_slides)


async def mark_slide_processing(store: RecordStore, key: SlideKey) -> bool:
    """Claims an untouched (or previously failed) slide for an interactive stream."""
    affected = await store.update_slide_where(
        key, CLAIM_FOR_STREAMING, {"generate_status": GenerateStatus.processing}
    )
    return affected == 1


async def save_slide_summary(
    store: RecordStore, key: SlideKey, summary: str, guard: SlideGuard
) -> bool:
    """
    Writes ``summary`` as content[0] and marks the slide READY if ``guard``
    still holds. Returns False when another writer got there first, which is
    not an error.
    """
    affected = await store.update_slide_where(
        key,
        guard,
        {"content": [summary], "generate_status": GenerateStatus.ready},
    )
    if affected == 0:
        logging.info(f"Summary for {key} already written by another producer.")
        return False
    logging.info(f"Saved summary for {key}.")
    return True


async def mark_slide_failed(
    store: RecordStore, key: SlideKey, guard: Optional[SlideGuard] = SAFE_FAILURE
) -> bool:
    """Records FAILED. With a guard, a slide that already has content is left alone."""
    if guard is None:
        await store.update_slide(key, {"generate_status": GenerateStatus.failed})
        return True
    affected = await store.update_slide_where(
        key, guard, {"generate_status": GenerateStatus.failed}
    )
    if affected == 0:
        logging.info(f"Not marking {key} as FAILED; it was resolved by another writer.")
    return affected == 1


async def append_conversation_turn(
    store: RecordStore, key: SlideKey, question: str, answer: str
) -> List[str]:
    """
    Appends a [question, answer] pair after the summary or the last answer.

    The write is guarded on the content length that was read, so a turn that
    would break the summary/question/answer alternation is rejected.
    """
    slide = await get_slide_or_raise(store, key)
    length = len(slide.content)
    if length == 0 or length % 2 == 0:
        raise ConversationStateError(
            f"Cannot append a conversation turn to {key} with {length} content entries"
        )

    content = [*slide.content, question, answer]
    affected = await store.update_slide_where(
        key, SlideGuard(content_length=length), {"content": content}
    )
    if affected == 0:
        raise ConversationStateError(
            f"Conversation for {key} changed while the answer was generated"
        )
    return content
