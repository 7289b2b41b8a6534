"""Best-effort work that follows a freshly saved slide summary."""

import asyncio
import logging
from typing import List
from uuid import UUID

from app.services.embedding.orchestrator import embed_slide_summary
from app.services.store.base import RecordStore
from app.services.summary.db_utils import save_lecture_title
from app.services.summary.llm_utils import infer_lecture_title
from app.utils.tasks import spawn


async def update_lecture_title(store: RecordStore, lecture_id: UUID, summary: str) -> str:
    """Infers a title from slide 1's summary and saves it on the lecture."""
    title = await infer_lecture_title(summary, lecture_id)
    await save_lecture_title(store, lecture_id, title)
    return title


def start_followup_tasks(
    store: RecordStore, lecture_id: UUID, slide_number: int, summary: str
) -> List[asyncio.Task]:
    """
    Spawns the summary's embedding and, for the first slide, the lecture title.

    Called only by the writer that won the summary write, so each runs at most
    once per slide. Neither task can fail the summary itself.
    """
    tasks = [
        spawn(
            embed_slide_summary(store, lecture_id, slide_number, summary),
            name=f"embed-summary:{lecture_id}-{slide_number}",
        )
    ]
    if slide_number == 1:
        logging.info(f"[{lecture_id}]: Inferring lecture title from slide 1.")
        tasks.append(
            spawn(
                update_lecture_title(store, lecture_id, summary),
                name=f"lecture-title:{lecture_id}",
            )
        )
    return tasks
