from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from common.config import TranscribeSettings
from common.schemas import (
    ErrorResponse,
    ResponseFormat,
    Transcript,
    TranscriptionOptions,
    UrlTranscriptionRequest,
)
from transcribe_service.exceptions import (
    DownloadError,
    PayloadTooLargeError,
    TranscribeServiceError,
    TranscriptionProviderError,
    ValidationError,
)
from transcribe_service.pipeline import TranscriptionPipeline, build_options
from transcribe_service.provider import OpenAITranscriptionClient

logger = logging.getLogger(__name__)

settings = TranscribeSettings()
app = FastAPI(title="Audio Transcription Service")

SUBTITLE_MEDIA_TYPES = {
    ResponseFormat.text: "text/plain",
    ResponseFormat.srt: "application/x-subrip",
    ResponseFormat.vtt: "text/vtt",
}

# Room for multipart boundaries and form fields on top of the file itself.
MULTIPART_OVERHEAD_BYTES = 1024 * 1024
UPLOAD_PATH = "/api/transcribe"


@app.middleware("http")
async def limit_upload_size(request: Request, call_next):
    """Reject oversize uploads from Content-Length before the body is spooled."""
    if request.method == "POST" and request.url.path == UPLOAD_PATH:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit():
            if int(declared) > settings.max_upload_bytes + MULTIPART_OVERHEAD_BYTES:
                exc = PayloadTooLargeError(settings.max_upload_bytes)
                logger.info("Rejected upload of %s bytes on %s", declared, request.url.path)
                body = ErrorResponse(error="Payload Too Large", details=exc.message)
                return JSONResponse(status_code=413, content=body.model_dump(exclude_none=True))
    return await call_next(request)


# CORS is registered after the size check so it stays outermost.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=86400,
)


@lru_cache
def get_pipeline() -> TranscriptionPipeline:
    return TranscriptionPipeline(OpenAITranscriptionClient.from_settings(settings), settings)


def render_transcript(transcript: Transcript, options: TranscriptionOptions) -> Response:
    # Segmented results only carry merged text.
    if transcript.segmented:
        return JSONResponse({"text": transcript.text})

    raw = transcript.raw
    if isinstance(raw, str):
        media_type = SUBTITLE_MEDIA_TYPES.get(options.response_format, "text/plain")
        return PlainTextResponse(raw, media_type=media_type)
    if hasattr(raw, "model_dump"):
        return JSONResponse(raw.model_dump(mode="json", exclude_none=True))
    return JSONResponse(raw)


def _error_status(exc: TranscribeServiceError) -> tuple[int, str]:
    if isinstance(exc, PayloadTooLargeError):
        return 413, "Payload Too Large"
    if isinstance(exc, ValidationError):
        return 400, "Bad Request"
    if isinstance(exc, DownloadError):
        return 502, "Download failed"
    return 500, "Transcription failed"


@app.exception_handler(TranscribeServiceError)
async def service_error_handler(request: Request, exc: TranscribeServiceError):
    status, error = _error_status(exc)
    upstream = exc.status_code if isinstance(exc, TranscriptionProviderError) else None
    if status >= 500:
        logger.error("Transcription error on %s: %s", request.url.path, exc, exc_info=exc.cause)
    else:
        logger.info("Rejected request on %s: %s", request.url.path, exc)
    body = ErrorResponse(error=error, details=exc.message, upstream_status=upstream)
    return JSONResponse(status_code=status, content=body.model_dump(exclude_none=True))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    logger.info("Rejected malformed request on %s: %s", request.url.path, details)
    body = ErrorResponse(error="Bad Request", details=details)
    return JSONResponse(status_code=400, content=body.model_dump(exclude_none=True))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unexpected error on %s", request.url.path, exc_info=exc)
    body = ErrorResponse(error="Transcription failed", details=str(exc) or type(exc).__name__)
    return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/transcribe")
async def transcribe_upload(
    file: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    temperature: Optional[str] = Form(None),
    language: Optional[str] = Form(None),
    response_format: Optional[str] = Form(None),
    pipeline: TranscriptionPipeline = Depends(get_pipeline),
):
    """Transcribe an uploaded audio file (mp3, mp4, wav, webm, ogg or m4a)."""
    if file is None:
        raise ValidationError("No audio file provided")
    options = build_options(
        model=pipeline.settings.model,
        response_format=response_format,
        prompt=prompt,
        temperature=temperature,
        language=language,
    )
    transcript = await pipeline.transcribe_upload(file, options)
    return render_transcript(transcript, options)


@app.post("/api/transcribe/url")
async def transcribe_url(
    req: UrlTranscriptionRequest,
    pipeline: TranscriptionPipeline = Depends(get_pipeline),
):
    """Download audio from ``req.url`` and transcribe it."""
    options = build_options(
        model=pipeline.settings.model,
        response_format=req.response_format,
        prompt=req.prompt,
        temperature=req.temperature,
        language=req.language,
    )
    transcript = await pipeline.transcribe_url(req.url, options)
    return render_transcript(transcript, options)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
