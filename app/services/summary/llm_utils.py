import asyncio
import logging
from typing import Any, AsyncGenerator, Dict, List, NoReturn, Sequence
from uuid import UUID

from pydantic import ValidationError

from app.schemas.lecture import ContextSlide
from app.schemas.summary import LectureTitle
from app.utils.config import Settings
from app.utils.errors import (
    EmptyCompletionError,
    InvalidAPIKeyError,
    TitleGenerationError,
)
from app.utils.llm_utils import (
    LATEX_PROMPT,
    build_image_message,
    build_text_message,
    extract_delta_text,
    extract_text_from_response,
    is_authentication_error,
)
from app.utils.posthog_client import get_openai_client, get_posthog_kwargs

# Constants
TITLE_MAX_ATTEMPTS = 3
TITLE_BASE_TEMPERATURE = 0.3
TITLE_TEMPERATURE_STEP = 0.1
TITLE_MAX_TOKENS = 30

# Initialize settings
settings = Settings()

SUMMARY_PROMPT = f"""Attached is a slide from a lecture. Explain the content of the slide to a student learning the material.
Avoid language such as "this slide" and just explain the material to the student. If the slide is some
kind of title page, just introduce the subject very briefly.
The prior messages are summaries produced by an LLM of up to the previous {settings.summary_context_slides} slides from the same lecture.
{LATEX_PROMPT}"""

TITLE_SYSTEM_PROMPT = """You are a helpful assistant that creates concise, descriptive titles for lectures.
Given a summary of a lecture's first slide, create a brief, informative title that captures the main topic or concept.
The title should be:
- Between 2-6 words
- Properly capitalized
- Not include unnecessary words like "Introduction to" unless it's actually an introductory lecture
- Focus on the key concept or topic
- Not end with punctuation

Return ONLY a JSON object with a single "title" field."""


def build_summary_messages(
    context_slides: Sequence[ContextSlide], base64_encoding: str
) -> List[Dict[str, Any]]:
    """
    Builds the summary prompt: each prior slide as an (image, summary) exchange
    in chronological order, then the current slide with the instruction.

    ``context_slides`` arrives nearest first, as the retriever returns it.
    """
    messages: List[Dict[str, Any]] = []
    for slide in reversed(context_slides):
        if slide.base64:
            messages.append(build_image_message(slide.base64))
        messages.append(build_text_message("assistant", slide.summary))
    messages.append(build_image_message(base64_encoding, SUMMARY_PROMPT))
    return messages


def _posthog_properties(lecture_id: UUID, slide_number: int, span: str) -> dict:
    return {
        "$ai_span_name": span,
        "lecture_id": str(lecture_id),
        "slide_number": slide_number,
    }


def _raise_provider_error(e: Exception, context: str) -> NoReturn:
    if is_authentication_error(e):
        logging.error(f"OpenAI authentication error (invalid API key) for {context}: {e}")
        raise InvalidAPIKeyError(f"Invalid API key: {str(e)}") from e
    logging.error(f"An error occurred while calling the OpenAI API for {context}: {e}")
    raise e


async def stream_slide_summary(
    messages: List[Dict[str, Any]],
    lecture_id: UUID,
    slide_number: int,
) -> AsyncGenerator[str, None]:
    """Streams a slide summary from the provider, yielding text fragments."""
    client = get_openai_client()
    context = f"slide {slide_number} of lecture {lecture_id}"

    try:
        stream = await client.chat.completions.create(
            model=settings.summary_model,
            messages=messages,
            stream=True,
            **get_posthog_kwargs(
                str(lecture_id),
                str(lecture_id),
                _posthog_properties(lecture_id, slide_number, "slide_summary_stream"),
            ),
        )
        async for chunk in stream:
            text = extract_delta_text(chunk)
            if text:
                yield text
    except asyncio.CancelledError:
        logging.warning(f"Summary stream cancelled for {context}")
        raise
    except Exception as e:
        _raise_provider_error(e, context)


async def generate_slide_summary(
    messages: List[Dict[str, Any]],
    lecture_id: UUID,
    slide_number: int,
) -> str:
    """Generates a complete (non-streamed) slide summary."""
    client = get_openai_client()
    context = f"slide {slide_number} of lecture {lecture_id}"

    try:
        response = await client.chat.completions.create(
            model=settings.summary_model,
            messages=messages,
            stream=False,
            **get_posthog_kwargs(
                str(lecture_id),
                str(lecture_id),
                _posthog_properties(lecture_id, slide_number, "slide_summary"),
            ),
        )
    except Exception as e:
        _raise_provider_error(e, context)

    summary = extract_text_from_response(response)
    if not summary:
        raise EmptyCompletionError(f"No summary generated for {context}")
    return summary


async def _attempt_title_generation(
    slide_summary: str, lecture_id: UUID, attempt: int
) -> str:
    system_prompt = TITLE_SYSTEM_PROMPT
    if attempt > 1:
        system_prompt += "\nPrevious attempts failed validation. Please ensure you follow the requirements exactly."

    messages = [
        {"role": "system", "content": system_prompt},
        {
            "role": "user",
            "content": f'Create a title for the following slide summary: "{slide_summary}"',
        },
    ]

    client = get_openai_client()
    response = await client.chat.completions.create(
        model=settings.title_model,
        messages=messages,
        temperature=TITLE_BASE_TEMPERATURE + attempt * TITLE_TEMPERATURE_STEP,
        max_tokens=TITLE_MAX_TOKENS,
        response_format={"type": "json_object"},
        **get_posthog_kwargs(
            str(lecture_id),
            str(lecture_id),
            {"$ai_span_name": "lecture_title", "lecture_id": str(lecture_id)},
        ),
    )

    content = extract_text_from_response(response)
    if not content:
        raise EmptyCompletionError("No content received from OpenAI API")

    return LectureTitle.model_validate_json(content).title


async def infer_lecture_title(slide_summary: str, lecture_id: UUID) -> str:
    """
    Asks for a short lecture title derived from the first slide's summary.

    Up to three attempts are made, each at a slightly higher temperature. The
    error from the last attempt is reported once all of them have failed.
    """
    last_error: Exception | None = None

    for attempt in range(1, TITLE_MAX_ATTEMPTS + 1):
        try:
            logging.info(
                f"Generating title for lecture {lecture_id} "
                f"(attempt {attempt}/{TITLE_MAX_ATTEMPTS})"
            )
            return await _attempt_title_generation(slide_summary, lecture_id, attempt)
        except (ValidationError, EmptyCompletionError) as e:
            last_error = e
            logging.warning(f"Title attempt {attempt} returned an invalid title: {e}")
        except Exception as e:
            if is_authentication_error(e):
                raise InvalidAPIKeyError(f"Invalid API key: {str(e)}") from e
            last_error = e
            logging.warning(f"Title attempt {attempt} failed: {e}")

    raise TitleGenerationError(
        f"Failed to generate valid title after {TITLE_MAX_ATTEMPTS} attempts. "
        f"Last error: {last_error}"
    )
