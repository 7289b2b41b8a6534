import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from app.utils.config import Settings
from app.utils.errors import EmptyCompletionError, InvalidAPIKeyError
from app.utils.llm_utils import is_authentication_error
from app.utils.posthog_client import get_openai_client, get_posthog_kwargs

# Initialize settings
settings = Settings()


def _create_posthog_properties(
    lecture_id: UUID, slide_number: Optional[int], span_name: str
) -> Dict[str, Any]:
    properties: Dict[str, Any] = {
        "$ai_span_name": span_name,
        "lecture_id": str(lecture_id),
    }
    if slide_number is not None:
        properties["slide_number"] = slide_number
    return properties


async def generate_embedding(
    text: str,
    lecture_id: UUID,
    slide_number: Optional[int] = None,
    span_name: str = "slide_embedding",
) -> List[float]:
    """
    Generate an embedding vector for one piece of text.

    Raises:
        InvalidAPIKeyError: If the API key is invalid.
        EmptyCompletionError: If the provider returned no vector.
    """
    client = get_openai_client()

    try:
        response = await client.embeddings.create(
            model=settings.embedding_model,
            input=[text],
            dimensions=settings.embedding_dimensions,
            **get_posthog_kwargs(
                str(lecture_id),
                str(lecture_id),
                _create_posthog_properties(lecture_id, slide_number, span_name),
            ),
        )
    except Exception as e:
        if is_authentication_error(e):
            logging.error(f"OpenAI authentication error (invalid API key): {e}")
            raise InvalidAPIKeyError(f"Invalid API key: {str(e)}") from e
        logging.error(
            f"An error occurred while calling the OpenAI API for embeddings: {e}",
            exc_info=True,
        )
        raise

    data_list = getattr(response, "data", None) or []
    vector = getattr(data_list[0], "embedding", None) if data_list else None
    if not vector:
        raise EmptyCompletionError(f"No embedding returned for lecture {lecture_id}")
    return list(vector)
