from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class ResponseFormat(str, Enum):
    json = "json"
    text = "text"
    srt = "srt"
    vtt = "vtt"
    verbose_json = "verbose_json"


# --- Pipeline data ---

class AudioSource(BaseModel):
    path: str
    size_bytes: int
    original_extension: str = ""

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)


class TranscriptionOptions(BaseModel, frozen=True):
    model: str = "whisper-1"
    response_format: ResponseFormat = ResponseFormat.json
    prompt: Optional[str] = None
    temperature: Optional[float] = None
    language: Optional[str] = None


class Segment(BaseModel, frozen=True):
    index: int
    start_seconds: float
    duration_seconds: float
    path: str


class SegmentResult(BaseModel, frozen=True):
    index: int
    text: str


class Transcript(BaseModel):
    text: str
    # Provider response as returned on the direct path; None when merged from segments.
    raw: Any = None

    @property
    def segmented(self) -> bool:
        return self.raw is None


# --- HTTP request / response ---

class UrlTranscriptionRequest(BaseModel):
    url: Optional[str] = None
    prompt: Optional[str] = None
    temperature: Optional[float | str] = None
    language: Optional[str] = None
    response_format: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
    upstream_status: Optional[int] = None
