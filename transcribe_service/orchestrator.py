from __future__ import annotations

import asyncio
import logging

from common.schemas import AudioSource, Segment, SegmentResult, Transcript, TranscriptionOptions
from transcribe_service.cleanup import CleanupList
from transcribe_service.exceptions import TranscriptionProviderError
from transcribe_service.provider import TranscriptionClient, response_text
from transcribe_service.segmenter import Segmenter

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


def merge_segment_results(results: list[SegmentResult]) -> str:
    """Join segment texts in index order, regardless of completion order."""
    ordered = sorted(results, key=lambda r: r.index)
    return " ".join(r.text for r in ordered)


class ChunkOrchestrator:
    """Chooses between one direct provider call and a segmented fan-out."""

    def __init__(
        self,
        client: TranscriptionClient,
        segmenter: Segmenter | None = None,
        segment_dir: str = "segments",
        max_single_file_mb: float = 24.0,
        max_chunk_seconds: float = 24.0,
    ) -> None:
        self._client = client
        self._segmenter = segmenter or Segmenter()
        self._segment_dir = segment_dir
        self.max_single_file_mb = max_single_file_mb
        self.max_chunk_seconds = max_chunk_seconds

    def needs_segmentation(self, source: AudioSource) -> bool:
        return source.size_bytes / BYTES_PER_MB > self.max_single_file_mb

    async def process(
        self,
        source: AudioSource,
        options: TranscriptionOptions,
        cleanup: CleanupList,
    ) -> Transcript:
        if not self.needs_segmentation(source):
            logger.info("Transcribing %s directly (%.2fMB)", source.path, source.size_mb)
            raw = await self._client.transcribe(source.path, options)
            return Transcript(text=response_text(raw), raw=raw)

        logger.info(
            "Source %s is %.2fMB (> %gMB); transcribing in segments",
            source.path, source.size_mb, self.max_single_file_mb,
        )
        segments = await self._segmenter.segment(
            source, self.max_chunk_seconds, self._segment_dir, cleanup=cleanup
        )
        results = await self._transcribe_segments(segments, options)
        return Transcript(text=merge_segment_results(results))

    async def _transcribe_one(self, segment: Segment, options: TranscriptionOptions) -> SegmentResult:
        text = await self._client.transcribe(segment.path, options, part=segment.index + 1)
        return SegmentResult(index=segment.index, text=text)

    async def _transcribe_segments(
        self,
        segments: list[Segment],
        options: TranscriptionOptions,
    ) -> list[SegmentResult]:
        """Run every segment call concurrently; the first failure cancels the rest."""
        if not segments:
            return []

        tasks = [asyncio.create_task(self._transcribe_one(s, options)) for s in segments]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        failed = [t for t in tasks if t in done and not t.cancelled() and t.exception() is not None]
        if failed:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            exc = failed[0].exception()
            logger.error("Segment transcription failed; dropping %d segment results", len(segments))
            if isinstance(exc, TranscriptionProviderError):
                raise exc
            raise TranscriptionProviderError(str(exc), cause=exc) from exc

        results = [t.result() for t in tasks]
        logger.info("Transcribed %d segments", len(results))
        return results
