from uuid import UUID
from pydantic import BaseModel


class ExtractionPayload(BaseModel):
    lecture_id: UUID
    storage_path: str
