"""
Error taxonomy for speech generation.

Every failure surfaced by the pipeline is one of these exception types.
"""

from typing import Optional


class TTSError(Exception):
    """Base class for all speech generation failures."""

    kind = "unknown"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class AuthenticationError(TTSError):
    """Provider rejected the credentials (HTTP 401/403)."""

    kind = "authentication"

    def __init__(self, detail: str = ""):
        super().__init__(f"Authentication error: {detail}" if detail else "Authentication error")
        self.detail = detail


class RateLimitError(TTSError):
    """Provider throttled the request (HTTP 429)."""

    kind = "rate_limit"

    def __init__(self, retry_after: Optional[int] = None):
        if retry_after is not None:
            message = f"Rate limit exceeded. Retry after {retry_after} seconds"
        else:
            message = "Rate limit exceeded"
        super().__init__(message)
        self.retry_after = retry_after


class ValidationError(TTSError):
    """Input rejected locally before any network call."""

    kind = "validation"

    def __init__(self, detail: str):
        super().__init__(f"Validation error: {detail}")
        self.detail = detail


class NetworkError(TTSError):
    """Transport failure, timeout, server error or media tool failure."""

    kind = "network"

    def __init__(self, detail: str):
        super().__init__(f"Network error: {detail}")
        self.detail = detail


class UnknownError(TTSError):
    """Any other non-success provider response."""

    kind = "unknown"

    def __init__(self, detail: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(f"Unknown error: {detail}")
        self.detail = detail
        self.status_code = status_code
        self.body = body


class StorageError(TTSError):
    """Usage ledger I/O failure or missing ledger."""

    kind = "storage"

    def __init__(self, detail: str):
        super().__init__(f"Storage error: {detail}")
        self.detail = detail


# Never retried: retrying cannot fix credentials, and throttling is the caller's call.
NON_RETRYABLE = (AuthenticationError, RateLimitError)


def should_retry(error: TTSError) -> bool:
    """Return True when an attempt that failed with ``error`` may be retried."""
    return not isinstance(error, NON_RETRYABLE)
