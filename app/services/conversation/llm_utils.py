import asyncio
import logging
from typing import Any, AsyncGenerator, Dict, List, Sequence
from uuid import UUID

from app.schemas.lecture import ContextSlide
from app.utils.config import Settings
from app.utils.errors import InvalidAPIKeyError
from app.utils.llm_utils import (
    LATEX_PROMPT,
    build_image_message,
    build_text_message,
    extract_delta_text,
    is_authentication_error,
)
from app.utils.posthog_client import get_openai_client, get_posthog_kwargs

# Initialize settings
settings = Settings()

SLIDE_PROMPT = "Here is the lecture slide the student is looking at."

RELATED_SLIDES_PROMPT = """The following are summaries of earlier slides from the same lecture that may be relevant to the question.

{context}"""


def _format_related_slides(related_slides: Sequence[ContextSlide]) -> str:
    return "\n\n".join(
        f"[Slide {slide.slide_number}]\n{slide.summary}" for slide in related_slides
    )


def build_conversation_messages(
    base64_encoding: str,
    content: Sequence[str],
    related_slides: Sequence[ContextSlide],
    query: str,
) -> List[Dict[str, Any]]:
    """
    Builds the follow-up prompt: the slide image, the conversation so far
    (summary and answers as assistant turns, questions as user turns), any
    related earlier slides, then the new question.
    """
    messages: List[Dict[str, Any]] = [build_image_message(base64_encoding, SLIDE_PROMPT)]

    for index, text in enumerate(content):
        role = "assistant" if index % 2 == 0 else "user"
        messages.append(build_text_message(role, text))

    if related_slides:
        messages.append(
            {
                "role": "system",
                "content": RELATED_SLIDES_PROMPT.format(
                    context=_format_related_slides(related_slides)
                ),
            }
        )

    messages.append(build_text_message("user", f"{query}\n\n{LATEX_PROMPT}"))
    return messages


async def stream_conversation_answer(
    messages: List[Dict[str, Any]],
    lecture_id: UUID,
    slide_number: int,
    related_slides_count: int = 0,
) -> AsyncGenerator[str, None]:
    """Stream a follow-up answer, yielding text chunks as they arrive."""
    client = get_openai_client()

    try:
        stream = await client.chat.completions.create(
            model=settings.conversation_model,
            messages=messages,
            stream=True,
            **get_posthog_kwargs(
                str(lecture_id),
                str(lecture_id),
                {
                    "$ai_span_name": "slide_conversation",
                    "lecture_id": str(lecture_id),
                    "slide_number": slide_number,
                    "context_slides_count": related_slides_count,
                },
            ),
        )
        async for chunk in stream:
            text = extract_delta_text(chunk)
            if text:
                yield text
    except asyncio.CancelledError:
        logging.warning(f"Conversation stream cancelled for lecture {lecture_id}")
        raise
    except Exception as e:
        if is_authentication_error(e):
            logging.error(f"OpenAI authentication error (invalid API key): {e}")
            raise InvalidAPIKeyError(f"Invalid API key: {str(e)}") from e
        logging.error(
            f"An error occurred while streaming a conversation answer: {e}",
            exc_info=True,
        )
        raise
