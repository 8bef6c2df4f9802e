import io
import os

import pytest

from common.schemas import ResponseFormat
from transcribe_service.cleanup import CleanupList, cleanup_files
from transcribe_service.exceptions import TranscriptionProviderError, ValidationError
from transcribe_service.pipeline import TranscriptionPipeline, build_options


class FakeUpload:
    def __init__(self, data: bytes, filename="talk.mp3", content_type="audio/mpeg"):
        self.filename = filename
        self.content_type = content_type
        self._buf = io.BytesIO(data)

    async def read(self, size=-1):
        return self._buf.read(size)


class TestBuildOptions:
    def test_defaults(self):
        opts = build_options()
        assert opts.response_format == ResponseFormat.json
        assert opts.prompt is None and opts.temperature is None and opts.language is None

    @pytest.mark.parametrize("value,expected", [("0", 0.0), ("1", 1.0), ("0.4", 0.4), (0.7, 0.7)])
    def test_temperature_accepted(self, value, expected):
        assert build_options(temperature=value).temperature == expected

    @pytest.mark.parametrize("value", ["1.5", "-0.1", "warm", "nan"])
    def test_temperature_rejected(self, value):
        with pytest.raises(ValidationError, match="between 0 and 1"):
            build_options(temperature=value)

    def test_empty_strings_are_absent(self):
        opts = build_options(prompt="", temperature="", language="", response_format="")
        assert opts.prompt is None
        assert opts.temperature is None
        assert opts.language is None
        assert opts.response_format == ResponseFormat.json

    def test_unknown_response_format(self):
        with pytest.raises(ValidationError, match="Invalid response format"):
            build_options(response_format="docx")

    def test_options_are_immutable(self):
        opts = build_options(prompt="x")
        with pytest.raises(Exception):
            opts.prompt = "y"


class TestCleanup:
    def test_drain_is_exactly_once(self):
        cleanup = CleanupList()
        cleanup.extend(["a", "b"])
        assert len(cleanup) == 2
        assert cleanup.drain() == ["a", "b"]
        assert len(cleanup) == 0
        assert cleanup.drain() == []
        with pytest.raises(RuntimeError):
            cleanup.add("c")

    def test_cleanup_continues_past_failures(self, tmp_path, caplog):
        keep_going = tmp_path / "b.mp3"
        keep_going.write_bytes(b"x")
        a_directory = tmp_path / "dir"
        a_directory.mkdir()

        cleanup_files([str(tmp_path / "missing.mp3"), str(a_directory), str(keep_going)])

        assert not keep_going.exists()
        assert "Error deleting temp file" in caplog.text


class TestTranscriptionPipeline:
    @pytest.fixture
    def scratch_files(self, settings):
        def _list():
            found = []
            for root, _, files in os.walk(settings.scratch_dir):
                found.extend(os.path.join(root, f) for f in files)
            return found
        return _list

    @pytest.mark.asyncio
    async def test_small_upload_direct_and_cleaned(self, settings, make_client, fake_media, scratch_files):
        client = make_client(raw="hello world")
        pipeline = TranscriptionPipeline(client, settings, segmenter=fake_media.segmenter())
        cleanup = CleanupList()

        transcript = await pipeline.transcribe_upload(FakeUpload(b"x" * 100), build_options(), cleanup)

        assert transcript.raw == "hello world"
        assert len(client.calls) == 1
        assert scratch_files() == []
        assert cleanup.drain() == []

    @pytest.mark.asyncio
    async def test_large_upload_is_segmented(self, settings, make_client, fake_media, scratch_files):
        client = make_client()
        pipeline = TranscriptionPipeline(client, settings, segmenter=fake_media.segmenter())

        transcript = await pipeline.transcribe_upload(FakeUpload(b"x" * 2000), build_options(prompt="Call"))

        assert transcript.text == "text 1 text 2 text 3"
        assert transcript.raw is None
        assert scratch_files() == []

    @pytest.mark.asyncio
    async def test_wave_source_transcoded_before_transcription(
        self, settings, make_client, fake_media, scratch_files, monkeypatch
    ):
        client = make_client()
        pipeline = TranscriptionPipeline(
            client, settings, segmenter=fake_media.segmenter(), transcode=fake_media.transcode
        )
        cleanup = CleanupList()
        removed = []
        monkeypatch.setattr(
            "transcribe_service.pipeline.cleanup_files", lambda paths: removed.extend(paths)
        )

        await pipeline.transcribe_upload(
            FakeUpload(b"RIFF" * 10, filename="memo.wav", content_type="audio/wav"),
            build_options(),
            cleanup,
        )

        sent_path = client.calls[0][0]
        assert sent_path.endswith(".mp3")
        assert removed[0].endswith(".wav")
        assert removed[1] == sent_path

    @pytest.mark.asyncio
    async def test_failed_segment_removes_all_files(self, settings, make_client, fake_media, scratch_files):
        client = make_client(fail_part=2, delays={1: 0.01, 3: 0.2})
        pipeline = TranscriptionPipeline(client, settings, segmenter=fake_media.segmenter())
        cleanup = CleanupList()

        with pytest.raises(TranscriptionProviderError):
            await pipeline.transcribe_upload(FakeUpload(b"x" * 2000), build_options(), cleanup)

        assert len(fake_media.extracted) == 3
        assert scratch_files() == []
        for path, _, _ in fake_media.extracted:
            assert not os.path.exists(path)

    @pytest.mark.asyncio
    async def test_oversize_upload_cleaned(self, settings, make_client, fake_media, scratch_files):
        pipeline = TranscriptionPipeline(make_client(), settings, segmenter=fake_media.segmenter())
        with pytest.raises(ValidationError):
            await pipeline.transcribe_upload(FakeUpload(b"x" * (2 * 1024 * 1024)), build_options())
        assert scratch_files() == []

    @pytest.mark.asyncio
    async def test_segmentation_failure_cleans_partial_segments(
        self, settings, make_client, fake_media, scratch_files
    ):
        fake_media.fail_index = 1
        client = make_client()
        pipeline = TranscriptionPipeline(client, settings, segmenter=fake_media.segmenter())
        with pytest.raises(Exception, match="Failed to split"):
            await pipeline.transcribe_upload(FakeUpload(b"x" * 2000), build_options())
        assert client.calls == []
        assert scratch_files() == []
