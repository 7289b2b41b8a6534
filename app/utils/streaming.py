"""Server-sent event plumbing shared by the interactive streamers."""

import asyncio
from typing import AsyncGenerator, Callable, Optional, Protocol

from app.schemas.summary import StreamEvent
from app.utils.tasks import spawn

EventSink = Callable[[StreamEvent], None]


def discard_event(event: StreamEvent) -> None:
    return None


class Streamer(Protocol):
    async def run(self): ...

    def detach(self) -> None: ...


async def stream_events(
    streamer_factory: Callable[[EventSink], Streamer],
    name: str,
    fallback_message: str,
) -> AsyncGenerator[str, None]:
    """
    Runs a streamer as a background task and yields its events as SSE frames
    until a terminal event. Leaving early (client gone) detaches the streamer,
    which keeps running to completion.
    """
    events: asyncio.Queue[Optional[StreamEvent]] = asyncio.Queue()
    streamer = streamer_factory(events.put_nowait)
    task = spawn(streamer.run(), name=name)
    # Wakes the reader if the task ends without emitting a terminal event
    task.add_done_callback(lambda _: events.put_nowait(None))

    try:
        while True:
            event = await events.get()
            if event is None:
                yield StreamEvent.error(fallback_message).encode()
                break
            yield event.encode()
            if event.is_terminal:
                break
    finally:
        streamer.detach()


SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
