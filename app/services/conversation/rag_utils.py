import logging
from typing import List
from uuid import UUID

from app.schemas.lecture import ContextSlide
from app.services.embedding.llm_utils import generate_embedding
from app.services.store.base import RecordStore
from app.utils.config import Settings

settings = Settings()


async def retrieve_relevant_slides(
    store: RecordStore,
    lecture_id: UUID,
    slide_number: int,
    query_text: str,
    top_k: int | None = None,
) -> List[ContextSlide]:
    """
    Full RAG pipeline: embed the query and return the most similar summaries
    of slides before ``slide_number``. Retrieval is optional context, so any
    failure yields an empty list.
    """
    top_k = settings.rag_top_k if top_k is None else top_k
    if slide_number <= 1 or top_k <= 0:
        return []

    try:
        query_embedding = await generate_embedding(
            query_text, lecture_id, slide_number, span_name="conversation_query_embedding"
        )
        slides = await store.search_slide_embeddings(
            lecture_id, query_embedding, before_slide_number=slide_number, limit=top_k
        )
    except Exception as e:
        logging.warning(f"Retrieval failed for lecture {lecture_id}: {e}")
        return []

    if not slides:
        logging.info(f"No similar slides found for lecture {lecture_id}")
    return slides
