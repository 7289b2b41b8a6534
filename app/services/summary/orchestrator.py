"""
Interactive slide summary streaming.

The streamer runs as its own task and pushes events into a sink. A client
disconnect swaps the sink for a no-op; generation and the final save carry
on so the summary is there when the user comes back.
"""

import logging
from enum import Enum
from typing import AsyncGenerator, List

from app.schemas.lecture import Slide
from app.schemas.summary import StreamEvent
from app.services.pregeneration.scheduler import schedule_summaries_in_background
from app.services.store.base import RecordStore, SlideKey
from app.services.summary.followups import start_followup_tasks
from app.services.summary.llm_utils import build_summary_messages, stream_slide_summary
from app.utils.config import Settings
from app.utils.db_utils import (
    INTERACTIVE_FAILURE,
    INTERACTIVE_SUMMARY,
    get_context_slides,
    get_slide_or_raise,
    mark_slide_failed,
    mark_slide_processing,
    save_slide_summary,
)
from app.utils.errors import EmptyCompletionError, InvalidAPIKeyError
from app.utils.streaming import EventSink, discard_event, stream_events

settings = Settings()

IMAGE_NOT_FOUND_MESSAGE = "Image not found for this slide"
GENERATION_FAILED_MESSAGE = "Failed to generate summary. Please try again."
INVALID_API_KEY_MESSAGE = "The AI provider rejected the configured API key."


class StreamState(str, Enum):
    idle = "IDLE"
    streaming = "STREAMING"
    saved = "SAVED"
    save_failed = "SAVE_FAILED"


def error_message_for(e: Exception, default: str) -> str:
    if isinstance(e, InvalidAPIKeyError):
        return INVALID_API_KEY_MESSAGE
    return default


class SummaryStreamer:
    def __init__(self, store: RecordStore, slide: Slide, sink: EventSink):
        self.store = store
        self.slide = slide
        self.key = SlideKey.by_id(slide.id)
        self.state = StreamState.idle
        self.won = False
        self._sink = sink
        self._fragments: List[str] = []

    @property
    def text(self) -> str:
        return "".join(self._fragments)

    @property
    def is_attached(self) -> bool:
        return self._sink is not discard_event

    def detach(self) -> None:
        """Stops forwarding events; accumulation and saving are unaffected."""
        if self.is_attached:
            logging.info(f"Client disconnected from summary stream for {self.key}")
        self._sink = discard_event

    def _emit(self, event: StreamEvent) -> None:
        self._sink(event)

    async def run(self) -> StreamState:
        slide = self.slide

        if slide.summary is not None:
            return self._replay(slide.summary)

        if not slide.base64:
            logging.warning(f"No image for {self.key}; not generating a summary")
            self._emit(StreamEvent.error(IMAGE_NOT_FOUND_MESSAGE))
            return self.state

        if not await mark_slide_processing(self.store, self.key):
            current = await get_slide_or_raise(self.store, self.key)
            if current.summary is not None:
                logging.info(f"{self.key} was summarised before the stream claimed it")
                return self._replay(current.summary)
            logging.info(f"{self.key} is held by another stream; generating anyway")

        self.state = StreamState.streaming
        try:
            await self._generate()
        except Exception as e:
            logging.error(f"Error streaming summary for {self.key}: {e}", exc_info=True)
            await self._record_failure()
            self._emit(StreamEvent.error(error_message_for(e, GENERATION_FAILED_MESSAGE)))
            return self.state

        try:
            self.won = await save_slide_summary(
                self.store, self.key, self.text, INTERACTIVE_SUMMARY
            )
        except Exception as e:
            logging.error(f"Error saving summary for {self.key}: {e}", exc_info=True)
            await self._record_failure()
            self._emit(StreamEvent.error("Failed to save summary."))
            return self.state

        self.state = StreamState.saved
        self._emit(StreamEvent.end())

        if self.won:
            start_followup_tasks(
                self.store, slide.lecture_id, slide.slide_number, self.text
            )
        schedule_summaries_in_background(self.store, slide.lecture_id, slide.slide_number)
        return self.state

    def _replay(self, summary: str) -> StreamState:
        # Already summarised: replay it and keep the window ahead topped up
        self._emit(StreamEvent.token(summary))
        self._emit(StreamEvent.end())
        self.state = StreamState.saved
        schedule_summaries_in_background(
            self.store, self.slide.lecture_id, self.slide.slide_number
        )
        return self.state

    async def _generate(self) -> None:
        slide = self.slide
        context_slides = await get_context_slides(
            self.store,
            slide.lecture_id,
            slide.slide_number,
            settings.summary_context_slides,
        )
        messages = build_summary_messages(context_slides, slide.base64)

        async for fragment in stream_slide_summary(
            messages, slide.lecture_id, slide.slide_number
        ):
            self._fragments.append(fragment)
            self._emit(StreamEvent.token(fragment))

        if not self.text:
            raise EmptyCompletionError(f"No summary generated for {self.key}")

    async def _record_failure(self) -> None:
        self.state = StreamState.save_failed
        try:
            await mark_slide_failed(self.store, self.key, INTERACTIVE_FAILURE)
        except Exception as e:
            logging.error(f"Failed to mark {self.key} as FAILED: {e}")


def stream_slide_summary_events(
    store: RecordStore, slide: Slide
) -> AsyncGenerator[str, None]:
    return stream_events(
        lambda sink: SummaryStreamer(store, slide, sink),
        name=f"summary-stream:{slide.id}",
        fallback_message=GENERATION_FAILED_MESSAGE,
    )
