from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from app.services.conversation.orchestrator import stream_conversation_events
from app.services.store.base import RecordStore, SlideKey
from app.utils.db_utils import get_record_store, get_slide_or_raise
from app.utils.errors import SlideNotFoundError
from app.utils.streaming import SSE_HEADERS

router = APIRouter(tags=["conversation"])


@router.get("/slides/{slide_id}/conversation/stream")
async def stream_conversation(
    slide_id: UUID,
    query: str = Query(..., min_length=1, max_length=4000),
    store: RecordStore = Depends(get_record_store),
):
    """Streams the answer to a follow-up question about a slide."""
    try:
        slide = await get_slide_or_raise(store, SlideKey.by_id(slide_id))
    except SlideNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return StreamingResponse(
        stream_conversation_events(store, slide, query.strip()),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
