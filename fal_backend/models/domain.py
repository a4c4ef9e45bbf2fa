from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class ReadyOutcome(BaseModel):
    kind: Literal["ready"] = "ready"
    url: str
    payload: Any = None


class PendingOutcome(BaseModel):
    kind: Literal["pending"] = "pending"
    job_id: Optional[str] = None
    payload: Any = None


class FailedOutcome(BaseModel):
    kind: Literal["failed"] = "failed"
    status_code: int
    error: str
    payload: Any = None


ResultOutcome = Annotated[Union[ReadyOutcome, PendingOutcome, FailedOutcome], Field(discriminator="kind")]


class MediaAssetRef(BaseModel):
    role: Literal["video", "audio", "media"]
    url: str


class PublishedMedia(BaseModel):
    filename: str
    path: str
    size: Optional[int] = None
