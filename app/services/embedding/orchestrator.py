import logging
from uuid import UUID

from app.services.embedding.llm_utils import generate_embedding
from app.services.store.base import RecordStore


async def embed_slide_summary(
    store: RecordStore, lecture_id: UUID, slide_number: int, summary: str
) -> bool:
    """
    Stores the embedding of a slide summary for later retrieval by the
    conversation streamer. Best-effort: failures are logged and reported as False.
    """
    try:
        vector = await generate_embedding(summary, lecture_id, slide_number)
        await store.upsert_slide_embedding(lecture_id, slide_number, vector)
    except Exception as e:
        logging.error(
            f"Error embedding summary of slide {slide_number} in lecture {lecture_id}: {e}",
            exc_info=True,
        )
        return False

    logging.info(f"Embedded summary of slide {slide_number} in lecture {lecture_id}")
    return True
