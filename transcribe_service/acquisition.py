"""Getting source audio onto local scratch storage.

Uploads are checked against an allow-list of audio types and written in
bounded chunks; remote URLs are streamed to disk with ``httpx``. Wave files
are transcoded to mp3 before they reach the orchestrator.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Awaitable, Callable, Optional, Protocol
from urllib.parse import urlparse

import httpx

from common.schemas import AudioSource
from transcribe_service import media
from transcribe_service.cleanup import CleanupList
from transcribe_service.exceptions import DownloadError, PayloadTooLargeError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "audio/mpeg",
    "audio/mp4",
    "audio/wav",
    "audio/x-wav",
    "audio/webm",
    "audio/ogg",
    "audio/x-m4a",
    "audio/wave",
    "audio/x-pn-wav",
    "audio/vnd.wave",
}
ALLOWED_EXTENSIONS = {".mp3", ".mp4", ".wav", ".wave", ".webm", ".ogg", ".m4a"}
MIME_EXTENSIONS = {
    "audio/mpeg": ".mp3",
    "audio/mp4": ".mp4",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
    "audio/x-m4a": ".m4a",
    "audio/wave": ".wav",
    "audio/x-pn-wav": ".wav",
    "audio/vnd.wave": ".wav",
}
WAVE_EXTENSIONS = {".wav", ".wave"}

READ_CHUNK_BYTES = 1024 * 1024
DEFAULT_DOWNLOAD_EXTENSION = ".mp3"

TranscodeFn = Callable[[str, str], Awaitable[str]]


class UploadedAudio(Protocol):
    filename: Optional[str]
    content_type: Optional[str]

    async def read(self, size: int = -1) -> bytes: ...


def file_extension(name: str | None) -> str:
    return os.path.splitext(name or "")[1].lower()


def _mime(content_type: str | None) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def upload_extension(filename: str | None, content_type: str | None) -> str:
    """Extension to store an upload under; falls back to the MIME type when the name has none."""
    extension = file_extension(filename)
    if extension in ALLOWED_EXTENSIONS:
        return extension
    return MIME_EXTENSIONS.get(_mime(content_type), extension)


def is_allowed_audio(filename: str | None, content_type: str | None) -> bool:
    """Accept a file when either its MIME type or its extension is allow-listed."""
    return _mime(content_type) in ALLOWED_MIME_TYPES or file_extension(filename) in ALLOWED_EXTENSIONS


def _scratch_path(scratch_dir: str, prefix: str, extension: str) -> str:
    os.makedirs(scratch_dir, exist_ok=True)
    return os.path.join(scratch_dir, f"{prefix}_{uuid.uuid4().hex}{extension}")


async def save_upload(
    upload: UploadedAudio | None,
    scratch_dir: str,
    max_bytes: int,
    cleanup: CleanupList,
) -> AudioSource:
    """Write an uploaded file to scratch storage.

    Raises:
        ValidationError: If no file was sent or it is not an allowed audio type.
        PayloadTooLargeError: If the upload is larger than ``max_bytes``.
    """
    if upload is None or not upload.filename:
        raise ValidationError("No audio file provided")
    if not is_allowed_audio(upload.filename, upload.content_type):
        raise ValidationError("Invalid file type. Only audio files are allowed.")

    extension = upload_extension(upload.filename, upload.content_type)
    path = cleanup.add(_scratch_path(scratch_dir, "upload", extension))
    size = 0
    with open(path, "wb") as out:
        while True:
            chunk = await upload.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                raise PayloadTooLargeError(max_bytes)
            out.write(chunk)

    logger.info("Saved upload %s (%s, %d bytes) to %s", upload.filename, upload.content_type, size, path)
    return AudioSource(path=path, size_bytes=size, original_extension=extension)


async def download_url(
    url: str | None,
    scratch_dir: str,
    cleanup: CleanupList,
    *,
    timeout: float = 120.0,
    client: httpx.AsyncClient | None = None,
) -> AudioSource:
    """Stream a remote audio file to scratch storage.

    Raises:
        ValidationError: If ``url`` is empty or not http(s).
        DownloadError: On network failure or a non-success status.
    """
    if not url:
        raise ValidationError("No audio URL provided")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Unsupported audio URL: {url}")

    extension = file_extension(parsed.path)
    if extension not in ALLOWED_EXTENSIONS:
        extension = DEFAULT_DOWNLOAD_EXTENSION
    path = cleanup.add(_scratch_path(scratch_dir, "download", extension))

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    size = 0
    try:
        async with client.stream("GET", url) as resp:
            if resp.is_error:
                raise DownloadError(url, status_code=resp.status_code)
            with open(path, "wb") as out:
                async for chunk in resp.aiter_bytes():
                    size += len(chunk)
                    out.write(chunk)
    except httpx.HTTPError as exc:
        logger.error("Download failed for %s: %s", url, exc)
        raise DownloadError(url, exc) from exc
    finally:
        if owns_client:
            await client.aclose()

    logger.info("Downloaded %s (%d bytes) to %s", url, size, path)
    return AudioSource(path=path, size_bytes=size, original_extension=extension)


async def normalize_format(
    source: AudioSource,
    scratch_dir: str,
    cleanup: CleanupList,
    transcode: TranscodeFn | None = None,
) -> AudioSource:
    """Transcode wave sources to mp3; other formats pass through.

    Raises:
        ConversionError: If transcoding fails.
    """
    if source.original_extension not in WAVE_EXTENSIONS:
        return source

    transcode = transcode or media.transcode_to_mp3
    converted = cleanup.add(_scratch_path(scratch_dir, "converted", ".mp3"))
    await transcode(source.path, converted)
    return AudioSource(
        path=converted,
        size_bytes=os.path.getsize(converted),
        original_extension=source.original_extension,
    )
