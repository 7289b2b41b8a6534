from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from app.schemas.lecture import SlideView
from app.services.store.base import RecordStore, SlideKey
from app.services.summary.orchestrator import stream_slide_summary_events
from app.utils.db_utils import get_record_store, get_slide_or_raise
from app.utils.errors import SlideNotFoundError
from app.utils.streaming import SSE_HEADERS

router = APIRouter(tags=["summary"])


@router.get(
    "/lectures/{lecture_id}/slides/{slide_number}", response_model=SlideView
)
async def get_slide_view(
    lecture_id: UUID,
    slide_number: int,
    store: RecordStore = Depends(get_record_store),
):
    """Returns a slide's status and content without its image."""
    try:
        slide = await get_slide_or_raise(
            store, SlideKey.by_position(lecture_id, slide_number)
        )
    except SlideNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return SlideView(
        slide_id=slide.id,
        lecture_id=slide.lecture_id,
        slide_number=slide.slide_number,
        generate_status=slide.generate_status,
        content=slide.content,
        has_image=bool(slide.base64),
    )


@router.get("/slides/{slide_id}/summary/stream")
async def stream_summary(
    slide_id: UUID, store: RecordStore = Depends(get_record_store)
):
    """Streams the slide's summary, generating it if it does not exist yet."""
    try:
        slide = await get_slide_or_raise(store, SlideKey.by_id(slide_id))
    except SlideNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return StreamingResponse(
        stream_slide_summary_events(store, slide),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
