"""Unit tests for the exception hierarchy."""

import pytest

from booktranslator.core.epub import EpubFormatError
from booktranslator.core.exceptions import (
    ConfigurationError,
    JobAlreadyRunningError,
    JobError,
    JobNotFoundError,
    LLMConnectionError,
    LLMError,
    LLMRateLimitError,
    LLMResponseError,
    RetryExhaustedError,
    SegmentTranslationError,
    StoreConnectionError,
    StoreError,
    StoreQueryError,
    StoreRateLimitError,
    StoreRequestError,
    StoreServerError,
    TranslationError,
)


class TestTranslationError:

    def test_message_and_context(self):
        error = TranslationError("Something failed", context={'chapter': 3})

        assert error.message == "Something failed"
        assert str(error) == "TranslationError: Something failed (context: chapter=3)"
        assert error.recoverable is False

    def test_without_context(self):
        assert str(TranslationError("Plain")) == "TranslationError: Plain"


class TestRecoverability:

    @pytest.mark.parametrize("error", [
        LLMConnectionError("down"),
        LLMRateLimitError("slow down"),
        LLMResponseError("empty"),
        StoreConnectionError("down"),
        StoreRateLimitError("slow down"),
        StoreServerError("500", status_code=500),
    ])
    def test_transient_errors_recoverable(self, error):
        assert error.recoverable is True

    @pytest.mark.parametrize("error", [
        SegmentTranslationError("gave up"),
        StoreRequestError("400", status_code=400),
        StoreQueryError("syntax error", sql="SELEC 1"),
        JobNotFoundError("book"),
        JobAlreadyRunningError("book"),
        ConfigurationError("bad"),
        RetryExhaustedError("gave up"),
        EpubFormatError("not an epub"),
    ])
    def test_permanent_errors_not_recoverable(self, error):
        assert error.recoverable is False


class TestHierarchy:

    def test_families(self):
        assert issubclass(SegmentTranslationError, LLMError)
        assert issubclass(StoreQueryError, StoreError)
        assert issubclass(JobNotFoundError, JobError)
        assert issubclass(EpubFormatError, TranslationError)

    def test_segment_error_keeps_original(self):
        original = LLMConnectionError("down")

        error = SegmentTranslationError("gave up", original_error=original)

        assert error.original_error is original
        assert "down" in error.context['original_error']

    def test_retry_exhausted_context(self):
        original = StoreServerError("503", status_code=503)

        error = RetryExhaustedError("store_query failed", original_error=original, attempts=4)

        assert error.attempts == 4
        assert error.context['original_error_type'] == "StoreServerError"

    def test_job_errors_carry_uuid(self):
        assert JobNotFoundError("abc").book_uuid == "abc"
        assert JobAlreadyRunningError("abc").context == {'book_uuid': "abc"}

    def test_query_error_truncates_sql(self):
        error = StoreQueryError("failed", sql="SELECT " + "x, " * 100)

        assert len(error.context['sql']) == 120
