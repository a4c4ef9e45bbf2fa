from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import FailedOutcome, PendingOutcome, PublishedMedia, ReadyOutcome


def _require_http_url(value: str) -> str:
    candidate = (value or "").strip()
    if not candidate.lower().startswith(("http://", "https://")):
        raise ValueError("must be an http(s) URL")
    return candidate


class MergeRequest(BaseModel):
    video_url: str = Field(..., validation_alias="video_url")
    audio_url: str = Field(..., validation_alias="audio_url")

    @field_validator("video_url", "audio_url")
    @classmethod
    def validate_urls(cls, value: str) -> str:
        return _require_http_url(value)


class MirrorRequest(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        return _require_http_url(value)


class MediaResponse(BaseModel):
    success: bool = True
    path: str
    filename: str
    size: Optional[int] = None

    @classmethod
    def from_published(cls, media: PublishedMedia) -> "MediaResponse":
        return cls(path=media.path, filename=media.filename, size=media.size)


class GenerationResponse(BaseModel):
    success: bool = True
    pending: bool
    video_url: Optional[str] = None
    request_id: Optional[str] = None
    data: Any = None

    @classmethod
    def from_outcome(cls, outcome: ReadyOutcome | PendingOutcome) -> "GenerationResponse":
        if isinstance(outcome, ReadyOutcome):
            return cls(pending=False, video_url=outcome.url, data=outcome.payload)
        return cls(pending=True, request_id=outcome.job_id, data=outcome.payload)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
    details: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    ts: datetime
    fal_key_present: bool = Field(serialization_alias="falKeyPresent")
    fast_configured: bool = Field(serialization_alias="fastConfigured")
    quality_configured: bool = Field(serialization_alias="qualityConfigured")
    merge_enabled: bool = Field(serialization_alias="mergeEnabled")
    encoder_found: bool = Field(serialization_alias="encoderFound")


class VoiceInfo(BaseModel):
    voice_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    preview_url: Optional[str] = None


class VoiceListResponse(BaseModel):
    items: List[VoiceInfo]


def failed_details(outcome: FailedOutcome) -> dict[str, Any]:
    return {"upstream_status": outcome.status_code, "data": outcome.payload}
