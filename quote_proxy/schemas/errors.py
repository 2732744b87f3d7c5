"""Error envelope returned by every failing route."""

from __future__ import annotations

import uuid
from typing import List

from pydantic import BaseModel, Field


class ErrorObject(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: str
    title: str
    detail: str


class ErrorEnvelope(BaseModel):
    errors: List[ErrorObject]

    @classmethod
    def single(cls, status: int, title: str, detail: str) -> "ErrorEnvelope":
        return cls(errors=[ErrorObject(status=str(status), title=title, detail=detail)])


__all__ = ["ErrorEnvelope", "ErrorObject"]
