import os
import tempfile

from pydantic import Field
from pydantic_settings import BaseSettings


class TranscribeSettings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 3000
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    model: str = "whisper-1"
    max_upload_mb: float = 25.0
    max_single_file_mb: float = 24.0
    max_chunk_seconds: float = 24.0
    scratch_dir: str = os.path.join(tempfile.gettempdir(), "transcribe-service")
    provider_timeout_s: float = 600.0
    provider_max_retries: int = 0
    download_timeout_s: float = 120.0
    cors_origins: list[str] = ["*"]
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    model_config = {"env_prefix": "TRANSCRIBE_", "populate_by_name": True}

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)
