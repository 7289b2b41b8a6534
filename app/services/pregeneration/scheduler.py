import asyncio
import logging
from typing import Optional
from uuid import UUID

from app.services.pregeneration.job_chain import (
    SLIDE_SUMMARY_QUEUE_NAME,
    JobChain,
    build_job_chain,
)
from app.services.pregeneration.orchestrator import process_slide_summary_job
from app.services.pregeneration.pubsub_utils import publish_slide_summary_chain
from app.services.store.base import RecordStore
from app.utils.config import Settings
from app.utils.db_utils import get_num_slides
from app.utils.job_queue import Job, JobQueue, get_job_queue
from app.utils.tasks import spawn

settings = Settings()


def ensure_summary_queue_exists() -> JobQueue:
    """Registers the slide summary queue and its worker once per process."""
    return get_job_queue(SLIDE_SUMMARY_QUEUE_NAME, process_slide_summary_job)


def submit_chain(chain: JobChain) -> Job:
    """Adds ``chain`` to the local queue and returns the job of its last stage."""
    queue = ensure_summary_queue_exists()
    return queue.add_flow(chain.to_flow(queue.name))


async def schedule_summaries(
    store: RecordStore,
    lecture_id: UUID,
    completed_slide_number: int,
    fanout: Optional[int] = None,
) -> Optional[JobChain]:
    """
    Queues background summaries for the slides after ``completed_slide_number``.

    Safe to call repeatedly for the same window: stages share job ids with any
    earlier submission, so pending or finished slides are not run twice.
    Returns the submitted chain, or None when no slide is left downstream.
    """
    fanout = fanout or settings.pregeneration_fanout
    num_slides = await get_num_slides(store, lecture_id)
    if num_slides is None:
        raise ValueError(f"Lecture {lecture_id} has no slide count yet")

    chain = build_job_chain(lecture_id, completed_slide_number, num_slides, fanout)
    if chain is None:
        logging.info(
            f"No slides to pre-generate after slide {completed_slide_number} "
            f"of lecture {lecture_id} ({num_slides} slides)"
        )
        return None

    ensure_summary_queue_exists()
    if settings.slide_summary_topic:
        await asyncio.to_thread(publish_slide_summary_chain, chain)
    else:
        submit_chain(chain)

    logging.info(
        f"Scheduled summaries for slides {chain.slide_numbers} of lecture {lecture_id}"
    )
    return chain


def schedule_summaries_in_background(
    store: RecordStore, lecture_id: UUID, completed_slide_number: int
) -> asyncio.Task:
    """Fire-and-forget scheduling; a failure is logged and never reaches the caller."""
    return spawn(
        schedule_summaries(store, lecture_id, completed_slide_number),
        name=f"schedule-summaries:{lecture_id}-{completed_slide_number}",
    )
