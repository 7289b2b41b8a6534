import logging
from uuid import UUID

from app.services.store.base import RecordStore
from app.utils.db_utils import get_lecture_or_raise


async def save_lecture_title(store: RecordStore, lecture_id: UUID, title: str) -> None:
    """Saves the inferred title onto the lecture record."""
    await get_lecture_or_raise(store, lecture_id)
    await store.update_lecture(lecture_id, {"title": title})
    logging.info(f"[{lecture_id}]: Lecture title set to '{title}'.")
