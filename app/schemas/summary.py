import json
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class StreamEvent(BaseModel):
    """One server-sent event. ``event`` is None for plain token messages."""

    event: Optional[str] = None
    data: str

    @property
    def is_terminal(self) -> bool:
        return self.event in ("end", "error")

    def encode(self) -> str:
        lines = []
        if self.event:
            lines.append(f"event: {self.event}")
        for line in self.data.splitlines() or [""]:
            lines.append(f"data: {line}")
        return "\n".join(lines) + "\n\n"

    @classmethod
    def token(cls, text: str) -> "StreamEvent":
        # JSON-encode so newlines in the token survive the SSE framing
        return cls(data=json.dumps(text))

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(event="error", data=json.dumps({"message": message}))

    @classmethod
    def end(cls) -> "StreamEvent":
        return cls(event="end", data=json.dumps({"message": "Stream complete"}))


class LectureTitle(BaseModel):
    title: str = Field(..., description="A 2-6 word title for the lecture.")

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be empty")
        return v
