import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from app.schemas.common import PubSubRequest
from app.schemas.pregeneration import (
    QueueSummariesRequest,
    QueueSummariesResponse,
    SlideSummaryChainPayload,
)
from app.services.pregeneration.job_chain import JobChain
from app.services.pregeneration.scheduler import schedule_summaries, submit_chain
from app.services.store.base import RecordStore
from app.utils.auth import verify_token
from app.utils.db_utils import get_record_store
from app.utils.errors import LectureNotFoundError

router = APIRouter(tags=["pregeneration"])


@router.post(
    "/summaries/queue",
    response_model=QueueSummariesResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_summaries(
    request: QueueSummariesRequest,
    store: RecordStore = Depends(get_record_store),
):
    """Tops up background summaries after the client viewed an already summarised slide."""
    try:
        chain = await schedule_summaries(
            store, request.lecture_id, request.slide_number, request.fanout
        )
    except LectureNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if chain is None:
        return QueueSummariesResponse(status="nothing_to_queue", slide_numbers=[])
    return QueueSummariesResponse(status="queued", slide_numbers=chain.slide_numbers)


@router.post(
    "/slide-summary",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_token)],
)
async def handle_slide_summary_chain(request: PubSubRequest):
    """Handles a pre-generation chain pushed from Pub/Sub."""
    try:
        payload = SlideSummaryChainPayload(**request.message.data)
        chain = JobChain.from_slide_numbers(payload.lecture_id, payload.slide_numbers)
    except (ValidationError, ValueError) as e:
        # Permanent error: acknowledge message to stop Pub/Sub retries
        logging.error(f"Malformed slide summary chain message: {e}")
        return

    job = submit_chain(chain)
    logging.info(
        f"Accepted slide summary chain {chain.slide_numbers} for lecture "
        f"{chain.lecture_id} (last job {job.job_id} is {job.state.value})"
    )
