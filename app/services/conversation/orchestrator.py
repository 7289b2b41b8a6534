import logging
from typing import AsyncGenerator, List

from app.schemas.lecture import Slide
from app.schemas.summary import StreamEvent
from app.services.conversation.llm_utils import (
    build_conversation_messages,
    stream_conversation_answer,
)
from app.services.conversation.rag_utils import retrieve_relevant_slides
from app.services.store.base import RecordStore, SlideKey
from app.services.summary.orchestrator import (
    IMAGE_NOT_FOUND_MESSAGE,
    StreamState,
    error_message_for,
)
from app.utils.db_utils import append_conversation_turn
from app.utils.errors import ConversationStateError, EmptyCompletionError
from app.utils.streaming import EventSink, discard_event, stream_events

ANSWER_FAILED_MESSAGE = "Failed to answer the question. Please try again."
NO_SUMMARY_MESSAGE = "This slide has no summary yet"
CONVERSATION_CHANGED_MESSAGE = "The conversation changed while the answer was generated"


class ConversationStreamer:
    """
    Streams the answer to one follow-up question and appends the
    [question, answer] turn when done, whether or not the client stayed.
    """

    def __init__(self, store: RecordStore, slide: Slide, query: str, sink: EventSink):
        self.store = store
        self.slide = slide
        self.query = query
        self.key = SlideKey.by_id(slide.id)
        self.state = StreamState.idle
        self.content: List[str] = list(slide.content)
        self._sink = sink
        self._fragments: List[str] = []

    @property
    def text(self) -> str:
        return "".join(self._fragments)

    def detach(self) -> None:
        self._sink = discard_event

    def _emit(self, event: StreamEvent) -> None:
        self._sink(event)

    async def run(self) -> StreamState:
        slide = self.slide
        if slide.summary is None:
            self._emit(StreamEvent.error(NO_SUMMARY_MESSAGE))
            return self.state
        if not slide.base64:
            self._emit(StreamEvent.error(IMAGE_NOT_FOUND_MESSAGE))
            return self.state

        self.state = StreamState.streaming
        try:
            related_slides = await retrieve_relevant_slides(
                self.store, slide.lecture_id, slide.slide_number, self.query
            )
            messages = build_conversation_messages(
                slide.base64, slide.content, related_slides, self.query
            )
            async for fragment in stream_conversation_answer(
                messages, slide.lecture_id, slide.slide_number, len(related_slides)
            ):
                self._fragments.append(fragment)
                self._emit(StreamEvent.token(fragment))
            if not self.text:
                raise EmptyCompletionError(f"No answer generated for {self.key}")
        except Exception as e:
            logging.error(f"Error streaming answer for {self.key}: {e}", exc_info=True)
            self.state = StreamState.save_failed
            self._emit(StreamEvent.error(error_message_for(e, ANSWER_FAILED_MESSAGE)))
            return self.state

        try:
            self.content = await append_conversation_turn(
                self.store, self.key, self.query, self.text
            )
        except ConversationStateError as e:
            logging.warning(f"Discarding answer for {self.key}: {e}")
            self.state = StreamState.save_failed
            self._emit(StreamEvent.error(CONVERSATION_CHANGED_MESSAGE))
            return self.state
        except Exception as e:
            logging.error(f"Error saving answer for {self.key}: {e}", exc_info=True)
            self.state = StreamState.save_failed
            self._emit(StreamEvent.error("Failed to save answer."))
            return self.state

        self.state = StreamState.saved
        self._emit(StreamEvent.end())
        return self.state


def stream_conversation_events(
    store: RecordStore, slide: Slide, query: str
) -> AsyncGenerator[str, None]:
    return stream_events(
        lambda sink: ConversationStreamer(store, slide, query, sink),
        name=f"conversation-stream:{slide.id}",
        fallback_message=ANSWER_FAILED_MESSAGE,
    )
