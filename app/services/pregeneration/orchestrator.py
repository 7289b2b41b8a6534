import logging
from uuid import UUID

from app.schemas.pregeneration import SlideSummaryJobData
from app.services.store.base import RecordStore, SlideKey
from app.services.summary.followups import start_followup_tasks
from app.services.summary.llm_utils import build_summary_messages, generate_slide_summary
from app.utils.config import Settings
from app.utils.db_utils import (
    SAFE_FAILURE,
    SAFE_SUMMARY,
    get_context_slides,
    get_record_store,
    get_slide_or_raise,
    mark_slide_failed,
    save_slide_summary,
)
from app.utils.errors import SlideImageNotFoundError
from app.utils.job_queue import Job

settings = Settings()


async def process_slide_summary_job(job: Job) -> bool:
    """Queue handler for one stage of a pre-generation chain."""
    data = SlideSummaryJobData.model_validate(job.data)
    store = await get_record_store()
    return await generate_background_summary(store, data.lecture_id, data.slide_number)


async def generate_background_summary(
    store: RecordStore, lecture_id: UUID, slide_number: int
) -> bool:
    """
    Makes sure a slide has a summary, generating one if nobody has yet.

    Returns True when this call wrote the summary, False when the slide was
    already summarised or another writer won the race. Any error marks the
    slide FAILED (only if it is still untouched) and is re-raised so the job
    queue records the failure.
    """
    key = SlideKey.by_position(lecture_id, slide_number)

    try:
        # 1. Skip slides that already have a summary
        slide = await get_slide_or_raise(store, key)
        if slide.content:
            logging.info(f"Summary for {key} already exists; skipping.")
            return False
        if not slide.base64:
            raise SlideImageNotFoundError(f"Image not found for {key}")

        # 2. Build the prompt from the preceding summaries and the slide image
        context_slides = await get_context_slides(
            store, lecture_id, slide_number, settings.summary_context_slides
        )
        messages = build_summary_messages(context_slides, slide.base64)

        # 3. Generate and save only if the slide is still untouched
        summary = await generate_slide_summary(messages, lecture_id, slide_number)
        won = await save_slide_summary(store, key, summary, SAFE_SUMMARY)

    except Exception as e:
        logging.error(f"Error generating background summary for {key}: {e}", exc_info=True)
        try:
            await mark_slide_failed(store, key, SAFE_FAILURE)
        except Exception as mark_error:
            logging.error(f"Failed to mark {key} as FAILED: {mark_error}")
        raise

    if won:
        start_followup_tasks(store, lecture_id, slide_number, summary)
        if settings.pregenerate_on_background_completion:
            from app.services.pregeneration.scheduler import (
                schedule_summaries_in_background,
            )

            schedule_summaries_in_background(store, lecture_id, slide_number)
    return won
