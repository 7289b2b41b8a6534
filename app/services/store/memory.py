import math
import threading
import uuid
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from app.schemas.lecture import ContextSlide, Lecture, LectureStatus, Slide
from app.services.store.base import (
    LECTURE_PATCH_COLUMNS,
    SLIDE_PATCH_COLUMNS,
    RecordStore,
    SlideGuard,
    SlideKey,
    validate_patch,
)


def _cosine_distance(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if not norm:
        return 1.0
    return 1.0 - dot / norm


class MemoryRecordStore(RecordStore):
    """
    Dict-backed store for local runs and tests.

    Every operation runs its read and write under one lock, which gives
    conditional updates the same single-winner behaviour as a guarded UPDATE.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._lectures: Dict[UUID, Lecture] = {}
        self._slides: Dict[UUID, Slide] = {}
        self._embeddings: Dict[Tuple[UUID, int], List[float]] = {}

    def _find_slide(self, key: SlideKey) -> Optional[Slide]:
        if key.id is not None:
            return self._slides.get(key.id)
        for slide in self._slides.values():
            if key.matches(slide):
                return slide
        return None

    def _replace_slide(self, slide: Slide, patch: Dict[str, Any]) -> None:
        updated = Slide.model_validate({**slide.model_dump(), **patch})
        self._slides[slide.id] = updated

    async def create_lecture(
        self,
        title: str,
        user_id: Optional[UUID] = None,
        status: LectureStatus = LectureStatus.processing,
    ) -> Lecture:
        lecture = Lecture(id=uuid.uuid4(), user_id=user_id, title=title, status=status)
        with self._lock:
            self._lectures[lecture.id] = lecture
        return lecture

    async def get_lecture(self, lecture_id: UUID) -> Optional[Lecture]:
        with self._lock:
            return self._lectures.get(lecture_id)

    async def update_lecture(self, lecture_id: UUID, patch: Dict[str, Any]) -> None:
        patch = validate_patch(patch, LECTURE_PATCH_COLUMNS)
        with self._lock:
            lecture = self._lectures.get(lecture_id)
            if lecture is None:
                return
            self._lectures[lecture_id] = Lecture.model_validate(
                {**lecture.model_dump(), **patch}
            )

    async def create_slide(
        self, lecture_id: UUID, slide_number: int, base64: Optional[str] = None
    ) -> Slide:
        with self._lock:
            existing = self._find_slide(SlideKey.by_position(lecture_id, slide_number))
            if existing is not None:
                self._replace_slide(existing, {"base64": base64})
                return self._slides[existing.id]
            slide = Slide(
                id=uuid.uuid4(),
                lecture_id=lecture_id,
                slide_number=slide_number,
                base64=base64,
            )
            self._slides[slide.id] = slide
            return slide

    async def delete_slides(self, lecture_id: UUID) -> int:
        with self._lock:
            doomed = [s.id for s in self._slides.values() if s.lecture_id == lecture_id]
            for slide_id in doomed:
                del self._slides[slide_id]
            for embedding_key in [k for k in self._embeddings if k[0] == lecture_id]:
                del self._embeddings[embedding_key]
            return len(doomed)

    async def get_slide(self, key: SlideKey) -> Optional[Slide]:
        with self._lock:
            return self._find_slide(key)

    async def update_slide_where(
        self, key: SlideKey, guard: SlideGuard, patch: Dict[str, Any]
    ) -> int:
        patch = validate_patch(patch, SLIDE_PATCH_COLUMNS)
        with self._lock:
            slide = self._find_slide(key)
            if slide is None or not guard.matches(slide):
                return 0
            self._replace_slide(slide, patch)
            return 1

    async def update_slide(self, key: SlideKey, patch: Dict[str, Any]) -> None:
        patch = validate_patch(patch, SLIDE_PATCH_COLUMNS)
        with self._lock:
            slide = self._find_slide(key)
            if slide is not None:
                self._replace_slide(slide, patch)

    async def get_context_slides(
        self, lecture_id: UUID, slide_number: int, limit: int
    ) -> List[ContextSlide]:
        with self._lock:
            candidates = [
                s
                for s in self._slides.values()
                if s.lecture_id == lecture_id
                and s.slide_number < slide_number
                and s.content
            ]
        candidates.sort(key=lambda s: s.slide_number, reverse=True)
        return [
            ContextSlide(slide_number=s.slide_number, summary=s.content[0], base64=s.base64)
            for s in candidates[:limit]
        ]

    async def upsert_slide_embedding(
        self, lecture_id: UUID, slide_number: int, vector: List[float]
    ) -> None:
        with self._lock:
            self._embeddings[(lecture_id, slide_number)] = list(vector)

    async def search_slide_embeddings(
        self,
        lecture_id: UUID,
        vector: List[float],
        before_slide_number: int,
        limit: int,
    ) -> List[ContextSlide]:
        with self._lock:
            scored = []
            for (embedded_lecture, number), stored in self._embeddings.items():
                if embedded_lecture != lecture_id or number >= before_slide_number:
                    continue
                slide = self._find_slide(SlideKey.by_position(lecture_id, number))
                if slide is None or not slide.content:
                    continue
                scored.append((_cosine_distance(vector, stored), slide))
        scored.sort(key=lambda pair: pair[0])
        return [
            ContextSlide(slide_number=s.slide_number, summary=s.content[0], base64=s.base64)
            for _, s in scored[:limit]
        ]
