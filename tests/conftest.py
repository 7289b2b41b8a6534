import asyncio
import os
from types import SimpleNamespace
from typing import Dict, Optional

# Configure the app for tests before any module builds its Settings
os.environ["APP_ENV"] = "local"
os.environ["RECORD_STORE_BACKEND"] = "memory"
os.environ["LOG_FORMAT"] = "text"
os.environ["SLIDE_SUMMARY_TOPIC"] = ""
os.environ["OPENAI_API_KEY"] = "test-key"

import pytest
from fastapi.testclient import TestClient

from app.schemas.lecture import GenerateStatus, LectureStatus
from app.services.pregeneration.job_chain import SLIDE_SUMMARY_QUEUE_NAME
from app.services.store.base import SlideKey
from app.services.store.memory import MemoryRecordStore
from app.utils.db_utils import RECORD_STORE_SINGLETON
from app.utils.job_queue import get_job_queue
from app.utils.posthog_client import OPENAI_SINGLETON
from app.utils.singleton import get_singleton, reset_singletons, singleton
from app.utils.tasks import wait_for_background_tasks

SLIDE_IMAGE = "aW1hZ2U="


def _chunk(text):
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=SimpleNamespace(content=text))]
    )


def _completion(text):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        model="fake-model",
        usage=None,
        id="resp-1",
    )


async def _stream(fragments):
    for fragment in fragments:
        await asyncio.sleep(0)
        yield _chunk(fragment)


class FakeChatCompletions:
    def __init__(self):
        self.calls = []
        self.stream_fragments = ["Gradient descent ", "minimises ", "a loss."]
        self.completion_text = "A background summary."
        self.title_responses = ['{"title": "Gradient Descent"}']
        self.error: Optional[Exception] = None
        self.before_response = None
        self._title_index = 0

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.before_response is not None:
            await self.before_response(kwargs)
        if self.error is not None:
            raise self.error

        if kwargs.get("response_format"):
            index = min(self._title_index, len(self.title_responses) - 1)
            self._title_index += 1
            response = self.title_responses[index]
            if isinstance(response, Exception):
                raise response
            return _completion(response)

        if kwargs.get("stream"):
            return _stream(list(self.stream_fragments))
        return _completion(self.completion_text)

    @property
    def title_calls(self):
        return [c for c in self.calls if c.get("response_format")]

    @property
    def summary_calls(self):
        return [c for c in self.calls if not c.get("response_format")]


class FakeEmbeddings:
    def __init__(self):
        self.calls = []
        self.error: Optional[Exception] = None

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        text = kwargs["input"][0]
        vector = [float(len(text)), float(sum(map(ord, text)) % 97), 1.0]
        return SimpleNamespace(data=[SimpleNamespace(embedding=vector)])


class FakeOpenAI:
    def __init__(self):
        self.chat = SimpleNamespace(completions=FakeChatCompletions())
        self.embeddings = FakeEmbeddings()


@pytest.fixture
def store():
    store = MemoryRecordStore()
    singleton(RECORD_STORE_SINGLETON, lambda: store)
    yield store
    reset_singletons()


@pytest.fixture
def fake_openai(store):
    fake = FakeOpenAI()
    singleton(OPENAI_SINGLETON, lambda: fake)
    return fake


@pytest.fixture
def make_lecture(store):
    """Seeds a READY lecture with ``num_slides`` empty slides."""

    def _make(
        num_slides: Optional[int] = 10,
        with_images: bool = True,
        summaries: Optional[Dict[int, str]] = None,
        slide_count: Optional[int] = None,
    ):
        async def _seed():
            lecture = await store.create_lecture("Untitled")
            if num_slides is not None:
                await store.update_lecture(
                    lecture.id,
                    {"num_slides": num_slides, "status": LectureStatus.ready},
                )
            for n in range(1, (slide_count or num_slides or 0) + 1):
                await store.create_slide(
                    lecture.id, n, SLIDE_IMAGE if with_images else None
                )
            for n, text in (summaries or {}).items():
                await store.update_slide(
                    SlideKey.by_position(lecture.id, n),
                    {"content": [text], "generate_status": GenerateStatus.ready},
                )
            return lecture

        return asyncio.run(_seed())

    return _make


@pytest.fixture
def job_recorder(store):
    """Registers the slide summary queue with a handler that only records slides."""
    executed = []

    async def handler(job):
        await asyncio.sleep(0)
        executed.append(job.data["slide_number"])

    queue = get_job_queue(SLIDE_SUMMARY_QUEUE_NAME, handler)
    return SimpleNamespace(queue=queue, executed=executed)


@pytest.fixture
def client(store, fake_openai):
    from app.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def settle(client):
    """Waits until spawned tasks and queued jobs in the app's event loop finish."""

    def _settle():
        client.portal.call(wait_for_background_tasks)
        queue = get_singleton(f"job_queue:{SLIDE_SUMMARY_QUEUE_NAME}")
        if queue is not None:
            client.portal.call(queue.wait_until_idle)
        client.portal.call(wait_for_background_tasks)

    return _settle


def _parse_sse(body: str):
    events = []
    for block in body.strip().split("\n\n"):
        event, data = None, []
        for line in block.splitlines():
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                data.append(line[len("data: "):])
        events.append((event, "\n".join(data)))
    return events


@pytest.fixture
def parse_sse():
    """Splits an SSE body into (event, data) pairs; event is None for messages."""
    return _parse_sse
