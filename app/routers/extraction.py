import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from app.schemas.common import PubSubRequest
from app.schemas.extraction import ExtractionPayload
from app.services.extraction.orchestrator import extract_lecture
from app.services.store.base import RecordStore
from app.utils.auth import verify_token
from app.utils.db_utils import get_record_store

router = APIRouter(
    prefix="/extraction",
    tags=["extraction"],
    dependencies=[Depends(verify_token)],
)


@router.post("", status_code=status.HTTP_204_NO_CONTENT)
async def handle_extraction_job(
    request: PubSubRequest, store: RecordStore = Depends(get_record_store)
):
    """Handles a deck extraction job request from Pub/Sub."""
    try:
        payload = ExtractionPayload(**request.message.data)
    except ValidationError as e:
        # Permanent error: acknowledge message to stop Pub/Sub retries
        logging.error(f"Malformed extraction message: {e}")
        return

    try:
        await extract_lecture(store, payload)
    except Exception as e:
        logging.error(f"Extraction job failed: {e}", exc_info=True)
        # Signal a server-side error so Pub/Sub retries the delivery.
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process extraction job: {e}",
        )
