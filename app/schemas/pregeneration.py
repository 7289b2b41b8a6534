from uuid import UUID
from typing import List, Optional

from pydantic import BaseModel, Field


class QueueSummariesRequest(BaseModel):
    lecture_id: UUID
    slide_number: int = Field(..., ge=1)
    fanout: Optional[int] = Field(None, ge=2)


class QueueSummariesResponse(BaseModel):
    status: str
    slide_numbers: List[int]


class SlideSummaryJobData(BaseModel):
    lecture_id: UUID
    slide_number: int


class SlideSummaryChainPayload(BaseModel):
    """A job chain as carried over Pub/Sub, in execution order."""

    lecture_id: UUID
    slide_numbers: List[int] = Field(..., min_length=1)
