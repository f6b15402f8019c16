"""
Error classification and handling.

This module provides:
- classify() to turn any raised failure into an ErrorRecord
- A fixed user-message table keyed by error kind
- ErrorHandler for logging/alerting and for running fallible operations safely
- ErrorTracker for keeping the currently active errors of a screen or flow
"""

import inspect
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar, Union

from storywriter.models.error import ErrorRecord, ErrorSeverity, ErrorType
from storywriter.models.result import OperationResult
from storywriter.utils.logging import LogCategory, LogLevel, StructuredLogger, describe_error

T = TypeVar("T")

_fallback_logger = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"

USER_MESSAGES: Dict[ErrorType, str] = {
    ErrorType.NETWORK: "Network connection issue. Please check your internet and try again.",
    ErrorType.CONVERSATION: "Could not connect to the StoryWriter Agent. Please try again.",
    ErrorType.STORY_GENERATION: "Having trouble creating your story. Let's try again! ✨",
    ErrorType.AUDIO: "Audio generation is temporarily unavailable. Story creation will continue.",
    ErrorType.STORAGE: "Could not save your story. Please try again.",
    ErrorType.VALIDATION: "Please check your input and try again.",
    ErrorType.SYSTEM: "Something went wrong. Please try again.",
}

CHILD_FRIENDLY_MESSAGES: Dict[ErrorType, List[str]] = {
    ErrorType.STORY_GENERATION: [
        "Our story elves are working extra hard! Let's try again... 🧝‍♀️",
        "The story magic needs a moment to recharge! ✨",
        "Our story machine is being extra careful with your tale! 🔧",
        "Sometimes the best stories need a second try! 📚",
        "The story creators are making sure everything is perfect! 🎨",
    ],
    ErrorType.CONVERSATION: [
        "The StoryWriter Agent is taking a quick break! Let's try connecting again. 🤖",
        "Our story friend needs a moment to wake up! Try again in a second. 😊",
        "The connection sprites are being silly! Let's try once more. 🧚‍♀️",
    ],
    ErrorType.AUDIO: [
        "The voice magic is resting right now, but your story is still amazing! 🎭",
        "Our story narrator is taking a quick break, but we can still read together! 📖",
    ],
}

_LOG_CATEGORIES: Dict[ErrorType, LogCategory] = {
    ErrorType.CONVERSATION: LogCategory.CONVERSATION,
    ErrorType.STORY_GENERATION: LogCategory.STORY_GENERATION,
    ErrorType.AUDIO: LogCategory.AUDIO,
    ErrorType.STORAGE: LogCategory.STORAGE,
}

_LOG_LEVELS: Dict[ErrorSeverity, LogLevel] = {
    ErrorSeverity.CRITICAL: LogLevel.CRITICAL,
    ErrorSeverity.HIGH: LogLevel.ERROR,
    ErrorSeverity.MEDIUM: LogLevel.WARN,
    ErrorSeverity.LOW: LogLevel.WARN,
}


class ClassifiedError(Exception):
    """Exception carrying an already classified ErrorRecord."""

    def __init__(self, record: ErrorRecord):
        super().__init__(record.technical_message)
        self.record = record


class GenerationError(ClassifiedError):
    """Raised by the generation client for any failure it surfaces."""
    pass


class GenerationCancelledError(GenerationError):
    """Raised when a caller abandons an in-flight generation."""
    pass


def user_message_for(kind: ErrorType) -> str:
    """User-facing copy for an error kind. Never depends on technical detail."""
    return USER_MESSAGES.get(kind, USER_MESSAGES[ErrorType.SYSTEM])


def child_friendly_message(kind: ErrorType, rng: Optional[random.Random] = None) -> str:
    """Pick playful copy for an error kind, for screens aimed at children."""
    messages = CHILD_FRIENDLY_MESSAGES.get(kind, CHILD_FRIENDLY_MESSAGES[ErrorType.STORY_GENERATION])
    return (rng or random).choice(messages)


def extract_message(raw: Any) -> str:
    """Best-effort diagnostic message for an arbitrary failure value."""
    if isinstance(raw, BaseException):
        message = str(raw)
        return message or type(raw).__name__
    if isinstance(raw, str):
        return raw or UNKNOWN_ERROR_MESSAGE
    if isinstance(raw, Mapping) and raw.get("message") is not None:
        return str(raw["message"])
    message = getattr(raw, "message", None)
    if message is not None:
        return str(message)
    return UNKNOWN_ERROR_MESSAGE


def classify(
    raw: Any,
    kind: ErrorType = ErrorType.SYSTEM,
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    context: Optional[Dict[str, Any]] = None,
) -> ErrorRecord:
    """
    Convert any failure into an ErrorRecord.

    A failure that already carries a record (ClassifiedError) keeps its own
    classification; the given context is merged into it.

    Args:
        raw: The raised exception or failure value
        kind: Error kind to assign
        severity: Error severity to assign
        context: Optional diagnostic fields

    Returns:
        Immutable ErrorRecord
    """
    if isinstance(raw, ClassifiedError):
        return raw.record.with_context(**(context or {}))

    return ErrorRecord(
        kind=kind,
        severity=severity,
        technical_message=extract_message(raw),
        user_message=user_message_for(kind),
        cause=raw,
        context=dict(context or {}),
    )


class ErrorHandler:
    """
    Logs classified errors and runs fallible operations.

    Severity selects logging/alerting behaviour only:
    - CRITICAL: logged and escalated to the logger's external sink
    - HIGH: logged and flagged as possibly needing user intervention
    - MEDIUM/LOW: logged
    """

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def log_error(self, record: ErrorRecord) -> None:
        level = _LOG_LEVELS[record.severity]
        if not self.logger.is_enabled_for(level):
            return

        category = _LOG_CATEGORIES.get(record.kind, LogCategory.SYSTEM)
        context = {
            **record.context,
            "error_id": record.error_id,
            "error_type": record.kind.value,
            "severity": record.severity.value,
            "original_error": describe_error(record.cause, include_stack=self.logger.is_development),
        }

        self.logger.log(level, category, record.technical_message, context)

    def handle(self, record: ErrorRecord) -> None:
        """Log a record and apply severity-specific follow-up. Never raises."""
        try:
            self.log_error(record)

            if record.severity == ErrorSeverity.CRITICAL:
                self.logger.critical(
                    LogCategory.SYSTEM,
                    "CRITICAL ERROR - Consider app restart",
                    {"error_id": record.error_id, **record.context},
                )
            elif record.severity == ErrorSeverity.HIGH:
                self.logger.error(
                    LogCategory.SYSTEM,
                    "HIGH SEVERITY ERROR - User intervention may be needed",
                    {"error_id": record.error_id, **record.context},
                )
        except Exception:
            _fallback_logger.exception("Failed to handle error %s", record.error_id)

    async def run_safely(
        self,
        operation: Union[Callable[[], Any], Awaitable[T]],
        kind: ErrorType,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
    ) -> OperationResult[T]:
        """
        Run a sync or async operation and capture its outcome.

        Args:
            operation: Callable (sync or async) or awaitable to run
            kind: Error kind assigned to failures
            severity: Error severity assigned to failures
            context: Optional diagnostic fields attached to failures

        Returns:
            OperationResult with either the value or a handled ErrorRecord
        """
        try:
            value = operation() if callable(operation) else operation
            if inspect.isawaitable(value):
                value = await value
            return OperationResult.success(value)
        except Exception as e:
            record = classify(e, kind, severity, context)
            self.handle(record)
            return OperationResult.failure(record)

    def run_safely_sync(
        self,
        operation: Callable[[], T],
        kind: ErrorType,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
    ) -> OperationResult[T]:
        """Synchronous counterpart of run_safely."""
        try:
            return OperationResult.success(operation())
        except Exception as e:
            record = classify(e, kind, severity, context)
            self.handle(record)
            return OperationResult.failure(record)


class ErrorTracker:
    """Keyed set of currently active errors."""

    def __init__(self, handler: ErrorHandler):
        self.handler = handler
        self._errors: Dict[str, ErrorRecord] = {}

    @property
    def errors(self) -> Dict[str, ErrorRecord]:
        return dict(self._errors)

    @property
    def has_errors(self) -> bool:
        return bool(self._errors)

    def add(self, key: str, record: ErrorRecord) -> None:
        self.handler.handle(record)
        self._errors[key] = record

    def remove(self, key: str) -> None:
        self._errors.pop(key, None)

    def clear(self) -> None:
        self._errors.clear()

    def has_error_of_type(self, kind: ErrorType) -> bool:
        return any(record.kind == kind for record in self._errors.values())

    def errors_of_type(self, kind: ErrorType) -> List[ErrorRecord]:
        return [record for record in self._errors.values() if record.kind == kind]
