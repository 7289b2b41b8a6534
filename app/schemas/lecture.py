from enum import Enum
from uuid import UUID
from typing import List, Optional

from pydantic import BaseModel, Field


class GenerateStatus(str, Enum):
    processing = "PROCESSING"
    ready = "READY"
    failed = "FAILED"


class LectureStatus(str, Enum):
    processing = "PROCESSING"
    ready = "READY"
    failed = "FAILED"


class Lecture(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    title: str = ""
    num_slides: Optional[int] = None
    status: LectureStatus = LectureStatus.processing


class Slide(BaseModel):
    id: UUID
    lecture_id: UUID
    slide_number: int
    base64: Optional[str] = None
    # content[0] is the summary; odd indices are user questions, even indices
    # from 2 on are assistant answers.
    content: List[str] = Field(default_factory=list)
    generate_status: Optional[GenerateStatus] = None

    @property
    def summary(self) -> Optional[str]:
        return self.content[0] if self.content else None


class ContextSlide(BaseModel):
    slide_number: int
    summary: str
    base64: Optional[str] = None


class SlideView(BaseModel):
    slide_id: UUID
    lecture_id: UUID
    slide_number: int
    generate_status: Optional[GenerateStatus] = None
    content: List[str]
    has_image: bool
