"""
core/exceptions.py
Failure taxonomy of the /api/trial pipeline.

Every class maps to one HTTP status and one `error` category in the
response body:  {"error": "<category>", "details": "<message>"}
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for every failure the pipeline reports to the caller."""

    status_code: int = 500

    def __init__(self, details: str, cause: Optional[Exception] = None):
        self.details = details
        self.cause = cause
        super().__init__(details)

    @property
    def category(self) -> str:
        return type(self).__name__


class NoAudioSupplied(PipelineError):
    """Raised when the request carries no (or an empty) `audio` part."""

    status_code = 400

    def __init__(self, details: str = "No audio file."):
        super().__init__(details)


class TranscriptionFailed(PipelineError):
    """Raised when the speech-to-text call fails or returns no text."""

    def __init__(
        self,
        details: str,
        upstream_status: Optional[int] = None,
        cause: Optional[Exception] = None,
    ):
        self.upstream_status = upstream_status
        super().__init__(details, cause)


class ExtractionFailed(PipelineError):
    """Raised when the extraction provider cannot be reached or errors out."""

    def __init__(
        self,
        details: str,
        upstream_status: Optional[int] = None,
        cause: Optional[Exception] = None,
    ):
        self.upstream_status = upstream_status
        super().__init__(details, cause)


class ExtractionMalformed(ExtractionFailed):
    """Raised when the provider answers with non-JSON or the wrong shape."""
