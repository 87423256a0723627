"""Custom exceptions for paperless-gpt."""

from __future__ import annotations


class PaperlessGptError(Exception):
    """Base exception for all paperless-gpt errors."""


class ConfigError(PaperlessGptError):
    """Configuration is invalid or missing."""


class UpstreamError(PaperlessGptError):
    """Transient failure talking to a remote service. Not retried in place."""


class PaperlessAPIError(UpstreamError):
    """Paperless-NGX API returned an error."""

    def __init__(self, message: str, status_code: int | None = None, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class LLMError(UpstreamError):
    """LLM endpoint returned an error or unexpected response."""


class LLMTimeoutError(LLMError):
    """LLM request timed out."""


class OCRError(UpstreamError):
    """Text extraction job failed or timed out."""


class MalformedResponseError(PaperlessGptError):
    """LLM output was empty or did not contain a decodable JSON object."""


class ReconciliationError(PaperlessGptError):
    """Creating a catalog entry or updating a document failed."""

    def __init__(self, message: str, document_id: int | None = None):
        self.document_id = document_id
        super().__init__(message)


class BatchCancelledError(PaperlessGptError):
    """Batch was cancelled before the task could run."""
