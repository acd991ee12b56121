"""
Exception hierarchy for the book translation pipeline.

Every error raised by the pipeline derives from TranslationError. The
``recoverable`` flag tells the retry manager whether another attempt can
succeed; non-recoverable errors are raised immediately.
"""

from typing import Optional, Dict, Any


class TranslationError(Exception):
    """Base exception for all translation-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context about the error
        recoverable: Whether the error can potentially be recovered from
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"{self.__class__.__name__}: {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base += f" (context: {context_str})"
        return base


# ============================================================================
# LLM-related errors
# ============================================================================

class LLMError(TranslationError):
    """Base exception for translation backend errors."""
    pass


class LLMConnectionError(LLMError):
    """Raised when the backend cannot be reached or the request times out."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=True)


class LLMRateLimitError(LLMError):
    """Raised when the backend answers 429."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if retry_after is not None:
            ctx['retry_after'] = retry_after
        super().__init__(message, ctx, recoverable=True)


class LLMResponseError(LLMError):
    """Raised on a non-2xx status or an unusable (empty, malformed) response.

    Recoverable: the same request may succeed on the next attempt.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if status_code is not None:
            ctx['status_code'] = status_code
        super().__init__(message, ctx, recoverable=True)
        self.status_code = status_code


class SegmentTranslationError(LLMError):
    """Raised when a single segment could not be translated after all retries.

    The orchestrator treats this as non-fatal and stores a placeholder.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if original_error is not None:
            ctx['original_error'] = str(original_error)
        super().__init__(message, ctx, recoverable=False)
        self.original_error = original_error


# ============================================================================
# Storage errors
# ============================================================================

class StoreError(TranslationError):
    """Base exception for persistence errors."""
    pass


class StoreConnectionError(StoreError):
    """Raised when the store cannot be reached (transport failure, timeout)."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=True)


class StoreRateLimitError(StoreError):
    """Raised when the store API answers 429."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=True)


class StoreServerError(StoreError):
    """Raised on a 5xx answer from the store API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if status_code is not None:
            ctx['status_code'] = status_code
        super().__init__(message, ctx, recoverable=True)
        self.status_code = status_code


class StoreRequestError(StoreError):
    """Raised on a 4xx answer (other than 429). Never retried."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if status_code is not None:
            ctx['status_code'] = status_code
        super().__init__(message, ctx, recoverable=False)
        self.status_code = status_code


class StoreQueryError(StoreError):
    """Raised when a statement itself fails (reported unsuccessful, SQL error)."""

    def __init__(self, message: str, sql: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        if sql:
            ctx['sql'] = sql[:120]
        super().__init__(message, ctx, recoverable=False)


# ============================================================================
# Job errors
# ============================================================================

class JobError(TranslationError):
    """Base exception for job lifecycle errors."""
    pass


class JobNotFoundError(JobError):
    """Raised when no translation job exists for a book."""

    def __init__(self, book_uuid: str):
        super().__init__("Translation job not found", {'book_uuid': book_uuid}, recoverable=False)
        self.book_uuid = book_uuid


class JobAlreadyRunningError(JobError):
    """Raised when a run is requested for a book whose job is already active in this process."""

    def __init__(self, book_uuid: str):
        super().__init__("Translation job already running", {'book_uuid': book_uuid}, recoverable=False)
        self.book_uuid = book_uuid


# ============================================================================
# Configuration errors
# ============================================================================

class ConfigurationError(TranslationError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=False)


# ============================================================================
# Retry exhaustion
# ============================================================================

class RetryExhaustedError(TranslationError):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        original_error: The last error seen before giving up
        attempts: Number of attempts made
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        attempts: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = context or {}
        if original_error:
            ctx['original_error'] = str(original_error)
            ctx['original_error_type'] = type(original_error).__name__
        if attempts is not None:
            ctx['attempts'] = attempts
        super().__init__(message, ctx, recoverable=False)
        self.original_error = original_error
        self.attempts = attempts
