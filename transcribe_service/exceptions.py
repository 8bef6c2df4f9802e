"""Exceptions raised by the transcription pipeline."""

from __future__ import annotations


class TranscribeServiceError(Exception):
    """Base class for every error the pipeline raises on purpose."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class ValidationError(TranscribeServiceError):
    """Raised when caller input has the wrong shape, type or range."""


class PayloadTooLargeError(ValidationError):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        super().__init__(
            f"File too large. Maximum size is {max_bytes / (1024 * 1024):g}MB."
        )


class ProbeError(TranscribeServiceError):
    """Raised when the duration of an audio file cannot be determined."""

    def __init__(self, path: str, cause: Exception | None = None):
        self.path = path
        super().__init__(f"Failed to probe audio file '{path}'", cause)


class SegmentationError(TranscribeServiceError):
    """Raised when an audio file cannot be split into segments."""

    def __init__(self, path: str, cause: Exception | None = None):
        self.path = path
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to split audio file '{path}'{detail}", cause)


class ConversionError(TranscribeServiceError):
    """Raised when transcoding an audio file fails."""

    def __init__(self, path: str, cause: Exception | None = None):
        self.path = path
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to convert audio file '{path}'{detail}", cause)


class DownloadError(TranscribeServiceError):
    """Raised when fetching a remote audio file fails."""

    def __init__(self, url: str, cause: Exception | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        if status_code is not None:
            message = f"Failed to download '{url}': HTTP {status_code}"
        else:
            message = f"Failed to download '{url}'"
        super().__init__(message, cause)


class TranscriptionProviderError(TranscribeServiceError):
    """Raised when the speech-to-text provider rejects or fails a request."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, cause)
