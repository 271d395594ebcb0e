"""
Tests for the error taxonomy and localized error responses.
"""
import asyncio
import json
import logging
import pytest
from datastory.core.config import Settings
from datastory.core.errors import (
    ERROR_MESSAGES,
    DataValidationError,
    EmptyDatasetError,
    ErrorCodes,
    FileTooLargeError,
    GenerationAttemptsExhausted,
    InsightGenerationError,
    InvalidStateError,
    NoColumnsError,
    RecordNotFoundError,
    StoryGenerationError,
    get_error_response,
)
from datastory.core.logging import CorrelationIdFilter, JSONFormatter, configure_logging, correlation_id_var


def test_catalogs_cover_every_code():
    codes = {v for k, v in vars(ErrorCodes).items() if not k.startswith("_")}
    for locale, catalog in ERROR_MESSAGES.items():
        assert set(catalog) == codes, locale


def test_get_error_response_appends_detail():
    response = get_error_response(ErrorCodes.FILE_TOO_LARGE, "Maximum size is 10MB.")

    assert response["code"] == "FILE_TOO_LARGE"
    assert response["message"] == "Your file is too large"
    assert response["detail"].endswith("Maximum size is 10MB.")
    assert "suggestion" in response


def test_get_error_response_arabic_and_fallbacks():
    assert get_error_response(ErrorCodes.NOT_FOUND, locale="ar")["message"] == "العنصر غير موجود"
    assert get_error_response(ErrorCodes.NOT_FOUND, locale="fr")["message"] == "We couldn't find that record"
    assert get_error_response("NO_SUCH_CODE")["message"] == "Something unexpected happened"


@pytest.mark.parametrize("error,status", [
    (NoColumnsError("x"), 400),
    (FileTooLargeError("x"), 413),
    (RecordNotFoundError("x"), 404),
    (InvalidStateError("x"), 409),
    (InsightGenerationError("x"), 502),
    (StoryGenerationError("x"), 502),
])
def test_status_codes(error, status):
    assert error.status_code == status


def test_no_columns_is_an_empty_dataset_error():
    assert issubclass(NoColumnsError, EmptyDatasetError)
    assert issubclass(EmptyDatasetError, DataValidationError)


def test_to_response_uses_error_code_and_message():
    response = StoryGenerationError("groq timeout").to_response("en")
    assert response["code"] == ErrorCodes.STORY_GENERATION_FAILED
    assert response["detail"].endswith("groq timeout")


def test_attempts_exhausted_exposes_primary_error():
    first, second = RuntimeError("first"), RuntimeError("second")
    error = GenerationAttemptsExhausted([("groq", first), ("gemini", second)])

    assert error.primary_error is first
    assert "groq: first" in str(error)
    assert "gemini: second" in str(error)


def test_json_formatter_includes_correlation_id_and_extras():
    record = logging.LogRecord("datastory.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.correlation_id = "abc-123"
    record.source_id = "s1"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "hello world"
    assert payload["correlation_id"] == "abc-123"
    assert payload["source_id"] == "s1"
    assert payload["level"] == "INFO"


def test_correlation_filter_defaults_to_system():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "m", (), None)
    CorrelationIdFilter().filter(record)
    assert record.correlation_id == "system"


@pytest.mark.asyncio
async def test_correlation_ids_stay_with_their_own_task():
    stamped = {}

    async def handle(correlation_id, delay):
        token = correlation_id_var.set(correlation_id)
        try:
            await asyncio.sleep(delay)
            record = logging.LogRecord("x", logging.INFO, __file__, 1, "m", (), None)
            CorrelationIdFilter().filter(record)
            stamped[correlation_id] = record.correlation_id
        finally:
            correlation_id_var.reset(token)

    await asyncio.gather(handle("first", 0.02), handle("second", 0.0))

    assert stamped == {"first": "first", "second": "second"}
    assert correlation_id_var.get() == "system"


def test_configure_logging_installs_one_handler():
    root = logging.getLogger()
    previous_handlers, previous_level = root.handlers[:], root.level
    try:
        configure_logging(Settings(log_format="json", log_level="debug"))
        configure_logging(Settings(log_format="json", log_level="debug"))

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
        assert root.level == logging.DEBUG
    finally:
        root.handlers[:] = previous_handlers
        root.setLevel(previous_level)
