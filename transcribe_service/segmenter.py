from __future__ import annotations

import logging
import math
import os
import uuid
from typing import Awaitable, Callable

from common.schemas import AudioSource, Segment
from transcribe_service import media
from transcribe_service.cleanup import CleanupList
from transcribe_service.exceptions import SegmentationError

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str], Awaitable[float]]
ExtractFn = Callable[[str, str, float, float], Awaitable[None]]


def plan_segments(duration: float, max_chunk_seconds: float) -> list[tuple[int, float, float]]:
    """Split ``duration`` into ``(index, start, length)`` windows of at most ``max_chunk_seconds``.

    Windows start at ``0, L, 2L, ...`` and their lengths add up to ``duration``;
    only the last one may be shorter than ``L``.
    """
    if max_chunk_seconds <= 0:
        raise ValueError("max_chunk_seconds must be positive")
    if duration < 0:
        raise ValueError("duration must not be negative")

    count = math.ceil(duration / max_chunk_seconds)
    windows = []
    for i in range(count):
        start = i * max_chunk_seconds
        length = min(max_chunk_seconds, duration - start)
        windows.append((i, start, length))
    return windows


class Segmenter:
    """Cuts an audio file into time-bounded segment files."""

    def __init__(
        self,
        probe: ProbeFn | None = None,
        extract: ExtractFn | None = None,
        extension: str = ".mp3",
    ) -> None:
        self._probe = probe or media.probe_duration
        self._extract = extract or media.extract_segment
        self._extension = extension

    async def segment(
        self,
        source: AudioSource,
        max_chunk_seconds: float,
        output_dir: str,
        cleanup: CleanupList | None = None,
    ) -> list[Segment]:
        """Probe ``source`` and write one file per window into ``output_dir``.

        Each output path is registered with ``cleanup`` before it is written, so
        files produced before a failure are still removed by the caller.

        Raises:
            ProbeError: If the duration cannot be determined.
            SegmentationError: If any segment extraction fails.
        """
        duration = await self._probe(source.path)
        windows = plan_segments(duration, max_chunk_seconds)
        logger.info(
            "Splitting %s (%.1fs) into %d segments of %gs",
            source.path, duration, len(windows), max_chunk_seconds,
        )

        os.makedirs(output_dir, exist_ok=True)
        batch = uuid.uuid4().hex
        segments: list[Segment] = []
        for index, start, length in windows:
            out_path = os.path.join(output_dir, f"segment_{batch}_{index}{self._extension}")
            if cleanup is not None:
                cleanup.add(out_path)
            try:
                # Request the nominal length; ffmpeg stops at the end of the source.
                await self._extract(source.path, out_path, start, max_chunk_seconds)
            except Exception as exc:
                raise SegmentationError(source.path, exc) from exc
            segments.append(
                Segment(index=index, start_seconds=start, duration_seconds=length, path=out_path)
            )
        return segments
