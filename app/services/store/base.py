from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from app.schemas.lecture import (
    ContextSlide,
    GenerateStatus,
    Lecture,
    LectureStatus,
    Slide,
)

SLIDE_PATCH_COLUMNS = ("content", "generate_status", "base64")
LECTURE_PATCH_COLUMNS = ("title", "num_slides", "status")


@dataclass(frozen=True)
class SlideKey:
    """Addresses a slide either by its primary id or by (lecture_id, slide_number)."""

    id: Optional[UUID] = None
    lecture_id: Optional[UUID] = None
    slide_number: Optional[int] = None

    def __post_init__(self):
        if self.id is None and (self.lecture_id is None or self.slide_number is None):
            raise ValueError("SlideKey needs an id or a lecture_id and slide_number")

    @classmethod
    def by_id(cls, slide_id: UUID) -> "SlideKey":
        return cls(id=slide_id)

    @classmethod
    def by_position(cls, lecture_id: UUID, slide_number: int) -> "SlideKey":
        return cls(lecture_id=lecture_id, slide_number=slide_number)

    def matches(self, slide: Slide) -> bool:
        if self.id is not None:
            return slide.id == self.id
        return (
            slide.lecture_id == self.lecture_id
            and slide.slide_number == self.slide_number
        )

    def __str__(self) -> str:
        if self.id is not None:
            return f"slide {self.id}"
        return f"slide {self.slide_number} of lecture {self.lecture_id}"


@dataclass(frozen=True)
class SlideGuard:
    """
    Predicate for a conditional slide update.

    ``statuses`` lists the generate statuses the row may currently have (None
    standing for "unset"); ``content_length`` pins the exact number of content
    entries. A field left as None is not checked.
    """

    statuses: Optional[Tuple[Optional[GenerateStatus], ...]] = None
    content_length: Optional[int] = None

    def matches(self, slide: Slide) -> bool:
        if self.statuses is not None and slide.generate_status not in self.statuses:
            return False
        if self.content_length is not None and len(slide.content) != self.content_length:
            return False
        return True

    def to_sql(self, first_param: int) -> Tuple[str, List[Any]]:
        """Renders the guard as a SQL condition using positional params from ``first_param``."""
        clauses: List[str] = []
        params: List[Any] = []
        index = first_param

        if self.statuses is not None:
            allow_null = None in self.statuses
            values = [s.value for s in self.statuses if s is not None]
            parts = []
            if allow_null:
                parts.append("generate_status IS NULL")
            if values:
                parts.append(f"generate_status = ANY(${index}::text[])")
                params.append(values)
                index += 1
            clauses.append("(" + " OR ".join(parts) + ")" if parts else "FALSE")

        if self.content_length is not None:
            clauses.append(f"cardinality(content) = ${index}")
            params.append(self.content_length)
            index += 1

        return " AND ".join(clauses) or "TRUE", params


class RecordStore(ABC):
    """Lecture and slide persistence with conditional (optimistic) slide updates."""

    @abstractmethod
    async def create_lecture(
        self,
        title: str,
        user_id: Optional[UUID] = None,
        status: LectureStatus = LectureStatus.processing,
    ) -> Lecture: ...

    @abstractmethod
    async def get_lecture(self, lecture_id: UUID) -> Optional[Lecture]: ...

    @abstractmethod
    async def update_lecture(self, lecture_id: UUID, patch: Dict[str, Any]) -> None: ...

    @abstractmethod
    async def create_slide(
        self, lecture_id: UUID, slide_number: int, base64: Optional[str] = None
    ) -> Slide:
        """Creates an empty slide, or replaces the image of an existing one."""

    @abstractmethod
    async def delete_slides(self, lecture_id: UUID) -> int: ...

    @abstractmethod
    async def get_slide(self, key: SlideKey) -> Optional[Slide]: ...

    @abstractmethod
    async def update_slide_where(
        self, key: SlideKey, guard: SlideGuard, patch: Dict[str, Any]
    ) -> int:
        """Applies ``patch`` only if the row matches ``guard``; returns the affected-row count."""

    @abstractmethod
    async def update_slide(self, key: SlideKey, patch: Dict[str, Any]) -> None: ...

    @abstractmethod
    async def get_context_slides(
        self, lecture_id: UUID, slide_number: int, limit: int
    ) -> List[ContextSlide]:
        """Summarised slides before ``slide_number``, nearest first, at most ``limit``."""

    @abstractmethod
    async def upsert_slide_embedding(
        self, lecture_id: UUID, slide_number: int, vector: List[float]
    ) -> None: ...

    @abstractmethod
    async def search_slide_embeddings(
        self,
        lecture_id: UUID,
        vector: List[float],
        before_slide_number: int,
        limit: int,
    ) -> List[ContextSlide]: ...

    async def close(self) -> None:
        return None


def validate_patch(patch: Dict[str, Any], allowed: Tuple[str, ...]) -> Dict[str, Any]:
    unknown = set(patch) - set(allowed)
    if unknown:
        raise ValueError(f"Unsupported fields in patch: {', '.join(sorted(unknown))}")
    if not patch:
        raise ValueError("Patch must not be empty")
    return {
        field: value.value if isinstance(value, (GenerateStatus, LectureStatus)) else value
        for field, value in patch.items()
    }
