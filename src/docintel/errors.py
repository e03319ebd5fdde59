"""
Exception hierarchy for the document intelligence pipeline.

Every exception carries a human-readable message plus an optional details
dict for logging. The hierarchy mirrors who can fix the problem:

    InvalidInputError, ExtractionError            user-correctable (re-upload, edit)
    ProviderError and subclasses                  upstream model failures
    ScopeViolationError                           internal invariant failure
    DocumentNotFoundError, SessionNotFoundError   unknown or foreign ids
    VectorStoreError                              storage backend failures
"""

from typing import Any, Optional


class DocIntelError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InvalidInputError(DocIntelError):
    """Input text or file cannot be used (binary, empty where text is required, ...)."""


class ExtractionError(DocIntelError):
    """Text could not be extracted from a stored file (empty, unreadable, encrypted)."""

    def __init__(
        self,
        message: str,
        locator: Optional[str] = None,
        media_type: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if locator:
            details["locator"] = locator
        if media_type:
            details["media_type"] = media_type
        super().__init__(message, details)


class ProviderError(DocIntelError):
    """
    An external model provider failed.

    status is the upstream status code when the provider reported one
    (HTTP status for the OpenAI/Anthropic clients), otherwise None.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if status is not None:
            details["status"] = status
        self.status = status
        super().__init__(message, details)


class EmbeddingServiceError(ProviderError):
    """The embedding provider returned an error or an unusable response."""


class CompletionServiceError(ProviderError):
    """The chat-completion provider returned an error."""


class RateLimitError(ProviderError):
    """
    The provider rejected the call for exceeding its rate limit.

    Always retried with backoff before surfacing. Raised as one of the
    two concrete subclasses below so callers catching the service error
    of their stage also catch the rate-limit case.
    """


class EmbeddingRateLimitError(RateLimitError, EmbeddingServiceError):
    """Rate limit hit on the embedding provider after all retries."""


class CompletionRateLimitError(RateLimitError, CompletionServiceError):
    """Rate limit hit on the chat-completion provider after all retries."""


class ServiceTimeoutError(DocIntelError, TimeoutError):
    """An upstream call exceeded its time budget."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, details)


class ScopeViolationError(DocIntelError):
    """
    A search returned a row outside the requested owner scope.

    This is never filtered away after the fact: it means the storage
    layer broke isolation and the request must fail.
    """


class VectorStoreError(DocIntelError):
    """A vector store operation failed."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class DocumentNotFoundError(DocIntelError):
    """The document does not exist or belongs to another owner."""

    def __init__(self, document_id: str, details: Optional[dict[str, Any]] = None) -> None:
        details = details or {}
        details["document_id"] = document_id
        super().__init__(f"Document not found: {document_id}", details)


class SessionNotFoundError(DocIntelError):
    """The chat session does not exist or belongs to another owner."""

    def __init__(self, session_id: str, details: Optional[dict[str, Any]] = None) -> None:
        details = details or {}
        details["session_id"] = session_id
        super().__init__(f"Chat session not found: {session_id}", details)
