"""
Unit tests for error classification and handling.
"""

import asyncio
import random
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from storywriter.models.error import ErrorSeverity, ErrorType
from storywriter.utils.errors import (
    CHILD_FRIENDLY_MESSAGES,
    USER_MESSAGES,
    ClassifiedError,
    ErrorHandler,
    ErrorTracker,
    GenerationError,
    child_friendly_message,
    classify,
    user_message_for,
)
from storywriter.utils.logging import LogLevel


class PayloadWithMessage:
    def __init__(self, message):
        self.message = message


@pytest.fixture
def error_handler(logger) -> ErrorHandler:
    return ErrorHandler(logger)


class TestClassify:
    """Test suite for classify()."""

    def test_exception_message(self):
        record = classify(ConnectionError("socket closed"), ErrorType.NETWORK, ErrorSeverity.HIGH)

        assert record.kind == ErrorType.NETWORK
        assert record.severity == ErrorSeverity.HIGH
        assert record.technical_message == "socket closed"
        assert record.user_message == USER_MESSAGES[ErrorType.NETWORK]
        assert isinstance(record.cause, ConnectionError)

    def test_string_failure(self):
        assert classify("quota exceeded").technical_message == "quota exceeded"

    def test_mapping_with_message(self):
        record = classify({"message": "model overloaded", "code": 503})

        assert record.technical_message == "model overloaded"

    def test_object_with_message_attribute(self):
        assert classify(PayloadWithMessage("bad token")).technical_message == "bad token"

    @pytest.mark.parametrize("raw", [None, 42, object(), ""])
    def test_unknown_failure(self, raw):
        assert classify(raw).technical_message == "Unknown error occurred"

    def test_exception_without_message_uses_type_name(self):
        assert classify(TimeoutError()).technical_message == "TimeoutError"

    def test_defaults(self):
        record = classify(RuntimeError("x"))

        assert record.kind == ErrorType.SYSTEM
        assert record.severity == ErrorSeverity.MEDIUM
        assert record.context == {}
        assert record.created_at is not None

    def test_context_is_copied(self):
        context = {"screen": "story"}
        record = classify(RuntimeError("x"), context=context)
        context["screen"] = "home"

        assert record.context == {"screen": "story"}

    def test_user_message_depends_only_on_kind(self):
        first = classify(RuntimeError("Traceback: secret internals"), ErrorType.STORY_GENERATION)
        second = classify({"message": "provider payload"}, ErrorType.STORY_GENERATION)

        assert first.user_message == second.user_message
        assert "secret internals" not in first.user_message

    def test_classifying_twice_is_deterministic(self):
        failure = ValueError("same failure")

        assert classify(failure, ErrorType.AUDIO).user_message == classify(failure, ErrorType.AUDIO).user_message

    def test_every_kind_has_user_message(self):
        for kind in ErrorType:
            assert user_message_for(kind)
            assert classify("x", kind).user_message == USER_MESSAGES[kind]

    def test_classified_error_keeps_its_record(self):
        original = classify("HTTP 500", ErrorType.NETWORK, ErrorSeverity.HIGH, {"provider": "huggingface"})

        record = classify(GenerationError(original), ErrorType.STORY_GENERATION, context={"screen": "story"})

        assert record.kind == ErrorType.NETWORK
        assert record.severity == ErrorSeverity.HIGH
        assert record.context == {"provider": "huggingface", "screen": "story"}


class TestErrorRecord:
    """Test suite for the ErrorRecord model."""

    def test_record_is_immutable(self):
        record = classify("x")

        with pytest.raises(ValidationError):
            record.technical_message = "changed"

    def test_context_is_read_only(self):
        record = classify("x", context={"screen": "story"})

        with pytest.raises(TypeError):
            record.context["screen"] = "home"
        with pytest.raises(TypeError):
            record.with_context(attempt=1).context["attempt"] = 2
        with pytest.raises(TypeError):
            classify("x").context["screen"] = "home"

        assert record.context == {"screen": "story"}

    def test_context_serializes_as_dict(self):
        record = classify("x", context={"screen": "story"})

        dumped = record.model_dump()

        assert dumped["context"] == {"screen": "story"}
        assert type(dumped["context"]) is dict
        assert '"context":{"screen":"story"}' in record.model_dump_json()

    def test_error_id_and_recoverability(self):
        record = classify("x", ErrorType.STORAGE, ErrorSeverity.CRITICAL)

        assert record.error_id.startswith("storage_")
        assert record.is_recoverable is False
        assert classify("x", severity=ErrorSeverity.HIGH).is_recoverable is True

    def test_with_context_returns_new_record(self):
        record = classify("x", context={"a": 1})
        updated = record.with_context(b=2)

        assert record.context == {"a": 1}
        assert updated.context == {"a": 1, "b": 2}
        assert updated.created_at == record.created_at

    def test_severity_ordering(self):
        assert ErrorSeverity.LOW < ErrorSeverity.MEDIUM < ErrorSeverity.HIGH < ErrorSeverity.CRITICAL
        assert max(ErrorSeverity) == ErrorSeverity.CRITICAL

    def test_cause_is_not_serialized(self):
        record = classify(RuntimeError("x"))

        assert "cause" not in record.model_dump()


class TestErrorHandler:
    """Test suite for ErrorHandler logging and alerting."""

    def test_medium_severity_is_logged_once_as_warning(self, error_handler, logger, streams):
        record = classify(RuntimeError("disk full"), ErrorType.STORAGE)

        with patch.object(logger, "log", wraps=logger.log) as log:
            error_handler.handle(record)

        assert log.call_count == 1
        output = streams.warn.getvalue()
        assert "[STORAGE]" in output
        assert "disk full" in output
        assert '"severity": "medium"' in output

    def test_high_severity_flags_user_intervention(self, error_handler, streams, sink_events):
        error_handler.handle(classify("auth rejected", ErrorType.NETWORK, ErrorSeverity.HIGH))

        output = streams.error.getvalue()
        assert "[SYSTEM]" in output
        assert "User intervention may be needed" in output
        assert sink_events == []

    def test_critical_severity_reaches_external_sink(self, error_handler, sink_events):
        error_handler.handle(classify("state corrupted", ErrorType.SYSTEM, ErrorSeverity.CRITICAL))

        messages = [event.message for event in sink_events]
        assert "state corrupted" in messages
        assert "CRITICAL ERROR - Consider app restart" in messages

    def test_network_and_validation_log_under_system(self, error_handler, streams):
        error_handler.handle(classify("offline", ErrorType.NETWORK))

        assert "[SYSTEM]" in streams.warn.getvalue()

    def test_handle_never_raises(self, error_handler, logger):
        with patch.object(logger, "log", side_effect=RuntimeError("stream closed")):
            error_handler.handle(classify("x", severity=ErrorSeverity.CRITICAL))

    def test_suppressed_level_logs_nothing(self, error_handler, logger, streams):
        logger.set_level(LogLevel.CRITICAL)

        error_handler.handle(classify("x"))

        assert streams.warn.getvalue() == ""


class TestRunSafely:
    """Test suite for run_safely / run_safely_sync."""

    @pytest.mark.asyncio
    async def test_async_success(self, error_handler):
        async def operation():
            return "story text"

        result = await error_handler.run_safely(operation, ErrorType.STORY_GENERATION)

        assert result.ok is True
        assert result.value == "story text"
        assert result.error is None

    @pytest.mark.asyncio
    async def test_sync_callable(self, error_handler):
        result = await error_handler.run_safely(lambda: 42, ErrorType.SYSTEM)

        assert result.ok is True
        assert result.value == 42

    @pytest.mark.asyncio
    async def test_awaitable(self, error_handler):
        async def operation():
            return "done"

        result = await error_handler.run_safely(operation(), ErrorType.SYSTEM)

        assert result.value == "done"

    @pytest.mark.asyncio
    async def test_failure_is_classified_and_logged_once(self, error_handler):
        async def operation():
            raise ValueError("provider exploded")

        with patch.object(error_handler, "handle", wraps=error_handler.handle) as handle:
            result = await error_handler.run_safely(
                operation,
                ErrorType.STORY_GENERATION,
                ErrorSeverity.HIGH,
                {"screen": "story"},
            )

        assert result.ok is False
        assert result.value is None
        assert result.error.kind == ErrorType.STORY_GENERATION
        assert result.error.severity == ErrorSeverity.HIGH
        assert result.error.technical_message == "provider exploded"
        assert result.error.context == {"screen": "story"}
        handle.assert_called_once_with(result.error)

    @pytest.mark.asyncio
    async def test_classified_failure_keeps_kind(self, error_handler):
        record = classify("HTTP 502", ErrorType.NETWORK)

        async def operation():
            raise GenerationError(record)

        result = await error_handler.run_safely(operation, ErrorType.STORY_GENERATION)

        assert result.error.kind == ErrorType.NETWORK

    @pytest.mark.asyncio
    async def test_cancellation_is_not_swallowed(self, error_handler):
        async def operation():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await error_handler.run_safely(operation, ErrorType.SYSTEM)

    def test_sync_failure(self, error_handler):
        def operation():
            raise KeyError("story_id")

        with patch.object(error_handler, "handle", wraps=error_handler.handle) as handle:
            result = error_handler.run_safely_sync(operation, ErrorType.STORAGE)

        assert result.ok is False
        assert result.error.kind == ErrorType.STORAGE
        assert handle.call_count == 1

    def test_sync_success(self, error_handler):
        result = error_handler.run_safely_sync(lambda: [1, 2], ErrorType.SYSTEM)

        assert result.ok is True
        assert result.value == [1, 2]


class TestErrorTracker:
    """Test suite for ErrorTracker."""

    def test_add_and_query(self, error_handler):
        tracker = ErrorTracker(error_handler)
        audio = classify("tts down", ErrorType.AUDIO)
        network = classify("offline", ErrorType.NETWORK)

        with patch.object(error_handler, "handle") as handle:
            tracker.add("narration", audio)
            tracker.add("generation", network)

        assert handle.call_count == 2
        assert tracker.has_errors is True
        assert tracker.has_error_of_type(ErrorType.AUDIO) is True
        assert tracker.has_error_of_type(ErrorType.STORAGE) is False
        assert tracker.errors_of_type(ErrorType.NETWORK) == [network]

    def test_remove_and_clear(self, error_handler):
        tracker = ErrorTracker(error_handler)
        tracker.add("a", classify("x"))
        tracker.add("b", classify("y"))

        tracker.remove("a")
        tracker.remove("missing")
        assert list(tracker.errors) == ["b"]

        tracker.clear()
        assert tracker.has_errors is False


def test_child_friendly_message():
    """Test child-friendly copy comes from the kind's list."""
    rng = random.Random(7)

    assert child_friendly_message(ErrorType.AUDIO, rng) in CHILD_FRIENDLY_MESSAGES[ErrorType.AUDIO]
    assert child_friendly_message(ErrorType.CONVERSATION, rng) in CHILD_FRIENDLY_MESSAGES[ErrorType.CONVERSATION]
    assert (
        child_friendly_message(ErrorType.VALIDATION, rng)
        in CHILD_FRIENDLY_MESSAGES[ErrorType.STORY_GENERATION]
    )


def test_classified_error_message():
    """Test ClassifiedError exposes the technical message."""
    record = classify("HTTP 500", ErrorType.NETWORK)
    error = ClassifiedError(record)

    assert str(error) == "HTTP 500"
    assert error.record is record


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
