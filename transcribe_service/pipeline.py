from __future__ import annotations

import functools
import logging
import math
import os

from common.config import TranscribeSettings
from common.schemas import ResponseFormat, Transcript, TranscriptionOptions
from transcribe_service import acquisition, media
from transcribe_service.acquisition import TranscodeFn, UploadedAudio
from transcribe_service.cleanup import CleanupList, cleanup_files
from transcribe_service.exceptions import ValidationError
from transcribe_service.orchestrator import ChunkOrchestrator
from transcribe_service.provider import TranscriptionClient
from transcribe_service.segmenter import Segmenter

logger = logging.getLogger(__name__)


def parse_temperature(value: float | str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        temp = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Temperature must be between 0 and 1") from None
    if math.isnan(temp) or not 0 <= temp <= 1:
        raise ValidationError("Temperature must be between 0 and 1")
    return temp


def build_options(
    model: str = "whisper-1",
    response_format: str | None = None,
    prompt: str | None = None,
    temperature: float | str | None = None,
    language: str | None = None,
) -> TranscriptionOptions:
    """Validate caller fields into immutable options. Empty strings count as absent."""
    try:
        fmt = ResponseFormat(response_format or ResponseFormat.json.value)
    except ValueError:
        allowed = ", ".join(f.value for f in ResponseFormat)
        raise ValidationError(f"Invalid response format. Must be one of: {allowed}") from None

    return TranscriptionOptions(
        model=model,
        response_format=fmt,
        prompt=prompt or None,
        temperature=parse_temperature(temperature),
        language=language or None,
    )


class TranscriptionPipeline:
    """Runs one request end to end and always removes its temporary files."""

    def __init__(
        self,
        client: TranscriptionClient,
        settings: TranscribeSettings | None = None,
        segmenter: Segmenter | None = None,
        transcode: TranscodeFn | None = None,
    ) -> None:
        self.settings = settings or TranscribeSettings()
        self._scratch_dir = self.settings.scratch_dir
        if segmenter is None:
            segmenter = Segmenter(
                probe=functools.partial(media.probe_duration, ffprobe=self.settings.ffprobe_path),
                extract=functools.partial(media.extract_segment, ffmpeg=self.settings.ffmpeg_path),
            )
        self._transcode = transcode or functools.partial(
            media.transcode_to_mp3, ffmpeg=self.settings.ffmpeg_path
        )
        self.orchestrator = ChunkOrchestrator(
            client,
            segmenter=segmenter,
            segment_dir=os.path.join(self._scratch_dir, "segments"),
            max_single_file_mb=self.settings.max_single_file_mb,
            max_chunk_seconds=self.settings.max_chunk_seconds,
        )

    async def transcribe_upload(
        self,
        upload: UploadedAudio | None,
        options: TranscriptionOptions,
        cleanup: CleanupList | None = None,
    ) -> Transcript:
        cleanup = cleanup if cleanup is not None else CleanupList()
        try:
            source = await acquisition.save_upload(
                upload, self._scratch_dir, self.settings.max_upload_bytes, cleanup
            )
            return await self._process(source, options, cleanup)
        finally:
            cleanup_files(cleanup.drain())

    async def transcribe_url(
        self,
        url: str | None,
        options: TranscriptionOptions,
        cleanup: CleanupList | None = None,
    ) -> Transcript:
        cleanup = cleanup if cleanup is not None else CleanupList()
        try:
            source = await acquisition.download_url(
                url, self._scratch_dir, cleanup, timeout=self.settings.download_timeout_s
            )
            return await self._process(source, options, cleanup)
        finally:
            cleanup_files(cleanup.drain())

    async def _process(self, source, options: TranscriptionOptions, cleanup: CleanupList) -> Transcript:
        source = await acquisition.normalize_format(
            source, self._scratch_dir, cleanup, transcode=self._transcode
        )
        transcript = await self.orchestrator.process(source, options, cleanup)
        logger.info("Transcription complete for %s (%d chars)", source.path, len(transcript.text))
        return transcript
