"""Speech-to-text provider clients.

``TranscriptionClient`` is the seam the orchestrator talks to;
``OpenAITranscriptionClient`` implements it on top of the OpenAI audio
transcription endpoint.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import openai
from openai import AsyncOpenAI

from common.config import TranscribeSettings
from common.schemas import ResponseFormat, TranscriptionOptions
from transcribe_service.exceptions import TranscriptionProviderError

logger = logging.getLogger(__name__)


def part_prompt(prompt: str | None, part: int) -> str:
    """Tag a prompt with the 1-based segment number it is sent with."""
    if prompt:
        return f"{prompt} (Part {part})"
    return f"Part {part}"


def response_text(result: Any) -> str:
    """Best-effort plain text of a provider response."""
    if isinstance(result, str):
        return result
    text = getattr(result, "text", None)
    if text is None and isinstance(result, dict):
        text = result.get("text")
    return text or ""


class TranscriptionClient(ABC):
    """Transcribes one audio file through an external provider."""

    @abstractmethod
    async def transcribe(
        self,
        path: str,
        options: TranscriptionOptions,
        part: int | None = None,
    ) -> Any:
        """
        Transcribes the audio file at ``path``.

        Args:
            path: Local audio file.
            options: Request options shared by every call of a request.
            part: 1-based segment number for segmented requests. When set, the
                prompt is tagged with the part number and plain text is returned.

        Returns:
            The provider response unchanged, or a ``str`` when ``part`` is set.

        Raises:
            TranscriptionProviderError: If the provider call fails.
        """


class OpenAITranscriptionClient(TranscriptionClient):
    """Transcription through ``client.audio.transcriptions.create``."""

    def __init__(self, client: AsyncOpenAI):
        self._client = client

    @classmethod
    def from_settings(cls, settings: TranscribeSettings) -> "OpenAITranscriptionClient":
        client = AsyncOpenAI(
            api_key=settings.openai_api_key or None,
            timeout=settings.provider_timeout_s,
            max_retries=settings.provider_max_retries,
        )
        return cls(client)

    def _request_kwargs(self, options: TranscriptionOptions, part: int | None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": options.model,
            "response_format": options.response_format.value,
        }
        prompt = options.prompt
        if part is not None:
            prompt = part_prompt(prompt, part)
            kwargs["response_format"] = ResponseFormat.text.value
        if prompt:
            kwargs["prompt"] = prompt
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.language:
            kwargs["language"] = options.language
        return kwargs

    async def transcribe(
        self,
        path: str,
        options: TranscriptionOptions,
        part: int | None = None,
    ) -> Any:
        kwargs = self._request_kwargs(options, part)
        logger.info(
            "Sending %s to provider (model=%s, format=%s, part=%s)",
            path, kwargs["model"], kwargs["response_format"], part,
        )
        try:
            result = await self._client.audio.transcriptions.create(file=Path(path), **kwargs)
        except openai.APIStatusError as exc:
            logger.error("Provider returned %s for %s: %s", exc.status_code, path, exc.message)
            raise TranscriptionProviderError(exc.message, status_code=exc.status_code, cause=exc) from exc
        except openai.OpenAIError as exc:
            logger.error("Provider call failed for %s: %s", path, exc)
            raise TranscriptionProviderError(str(exc), cause=exc) from exc

        if part is not None:
            return response_text(result).strip()
        return result
