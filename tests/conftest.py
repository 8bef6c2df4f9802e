import asyncio

import pytest

from common.config import TranscribeSettings
from transcribe_service.exceptions import TranscriptionProviderError
from transcribe_service.provider import TranscriptionClient
from transcribe_service.segmenter import Segmenter


class FakeTranscriptionClient(TranscriptionClient):
    """Records calls; segment ``n`` answers ``"text n"`` after ``delays[n]`` seconds."""

    def __init__(self, raw="hello world", fail_part=None, delays=None):
        self.raw = raw
        self.fail_part = fail_part
        self.delays = delays or {}
        self.calls = []
        self.cancelled = []

    async def transcribe(self, path, options, part=None):
        self.calls.append((path, options, part))
        if part is None:
            return self.raw
        try:
            await asyncio.sleep(self.delays.get(part, 0))
        except asyncio.CancelledError:
            self.cancelled.append(part)
            raise
        if part == self.fail_part:
            raise TranscriptionProviderError("Rate limit reached", status_code=429)
        return f"text {part}"


class FakeMedia:
    """Stands in for ffprobe/ffmpeg: a fixed duration and tiny segment files."""

    def __init__(self, duration=60.0, fail_index=None):
        self.duration = duration
        self.fail_index = fail_index
        self.extracted = []

    async def probe(self, path):
        return self.duration

    async def extract(self, input_path, output_path, start, duration):
        index = len(self.extracted)
        self.extracted.append((output_path, start, duration))
        with open(output_path, "wb") as f:
            f.write(b"partial")
        if index == self.fail_index:
            raise RuntimeError("ffmpeg exited with status 1")

    async def transcode(self, input_path, output_path):
        with open(output_path, "wb") as f:
            f.write(b"mp3 data")
        return output_path

    def segmenter(self):
        return Segmenter(probe=self.probe, extract=self.extract)


@pytest.fixture
def fake_media():
    return FakeMedia()


@pytest.fixture
def settings(tmp_path):
    return TranscribeSettings(
        scratch_dir=str(tmp_path / "scratch"),
        max_upload_mb=1,
        max_single_file_mb=0.001,
        max_chunk_seconds=24,
    )


@pytest.fixture
def make_client():
    return FakeTranscriptionClient
