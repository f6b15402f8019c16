"""
Structured logging utilities with categories, context and environment awareness.

This module provides:
- Leveled, categorized log events (LogLevel, LogCategory, LogEvent)
- Console formatting with emoji decoration and a pretty-printed context block
- JSON formatting for machine-readable logs
- Level-band routing to info/warning/error streams on top of Python's logging module
- Convenience emitters for conversation, story generation, audio and provider calls
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from enum import Enum, IntEnum
from logging import LogRecord
from typing import Any, Callable, Dict, Optional, TextIO

from pydantic import BaseModel


class LogLevel(IntEnum):
    """Log levels, totally ordered from DEBUG to CRITICAL."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    CRITICAL = 4

    @property
    def stdlib_level(self) -> int:
        return _STDLIB_LEVELS[self]

    @classmethod
    def parse(cls, value: str) -> "LogLevel":
        """Parse a level name such as 'info', 'WARN' or 'WARNING'."""
        name = value.strip().upper()
        if name == "WARNING":
            name = "WARN"
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown log level: {value!r}") from None


_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


class LogCategory(str, Enum):
    """Subsystem tag attached to every log event."""

    # Core functionality
    CONVERSATION = "conversation"
    STORY_GENERATION = "story_generation"
    AUDIO = "audio"
    STORAGE = "storage"

    # Services
    ELEVENLABS = "elevenlabs"
    TOGETHER_AI = "together_ai"
    HUGGINGFACE = "huggingface"
    POLLY = "polly"
    TRANSCRIBE = "transcribe"

    # System
    SYSTEM = "system"
    ERROR_BOUNDARY = "error_boundary"
    NAVIGATION = "navigation"

    # Development
    TEST = "test"
    DEBUG = "debug"


DEFAULT_EMOJIS = {
    LogLevel.DEBUG: "🔍",
    LogLevel.INFO: "ℹ️",
    LogLevel.WARN: "⚠️",
    LogLevel.ERROR: "❌",
    LogLevel.CRITICAL: "🚨",
}


class LogEvent(BaseModel):
    """One observability record."""

    timestamp: datetime
    level: LogLevel
    category: LogCategory
    message: str
    context: Optional[Dict[str, Any]] = None
    emoji: Optional[str] = None


ExternalSink = Callable[[LogEvent], None]


def default_level_for_env(app_env: str) -> LogLevel:
    """
    Minimum log level for a runtime environment.

    Args:
        app_env: Environment name ('test', 'production', 'development', ...)

    Returns:
        CRITICAL for test runs, WARN for production, DEBUG otherwise
    """
    env = app_env.lower()
    if env == "test":
        return LogLevel.CRITICAL
    if env == "production":
        return LogLevel.WARN
    return LogLevel.DEBUG


def format_context(context: Dict[str, Any]) -> str:
    """Pretty-print a context mapping; non-JSON values are stringified."""
    return json.dumps(context, indent=2, default=str, ensure_ascii=False)


def format_event(event: LogEvent) -> str:
    """
    Format a log event for console output.

    Produces ``<emoji> [LEVEL] [CATEGORY] HH:MM:SS.mmm - message`` followed by
    an indented context block when the event carries context.
    """
    emoji = event.emoji or DEFAULT_EMOJIS.get(event.level, "📝")
    timestamp = event.timestamp.strftime("%H:%M:%S.%f")[:-3]
    formatted = (
        f"{emoji} [{event.level.name}] [{event.category.value.upper()}] "
        f"{timestamp} - {event.message}"
    )
    if event.context:
        formatted += f"\n  Context: {format_context(event.context)}"
    return formatted


def describe_error(error: Any, include_stack: bool = False) -> Any:
    """
    Describe an error for inclusion in a log context.

    Exceptions become a ``name``/``message`` mapping, with the formatted stack
    trace only when ``include_stack`` is set. Other values are returned as-is.
    """
    if isinstance(error, BaseException):
        return {
            "name": type(error).__name__,
            "message": str(error),
            "stack": (
                "".join(traceback.format_exception(type(error), error, error.__traceback__))
                if include_stack
                else None
            ),
        }
    return error


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for records carrying a LogEvent."""

    def format(self, record: LogRecord) -> str:
        event = getattr(record, "event", None)
        if not isinstance(event, LogEvent):
            return super().format(record)
        return format_event(event)


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs log records as JSON with standard fields:
    - timestamp: ISO 8601 formatted timestamp
    - level: Log level (DEBUG, INFO, WARN, ERROR, CRITICAL)
    - category: Subsystem tag
    - message: Log message
    - context: Event context, if any
    - source: File, line and function that emitted the record
    """

    def format(self, record: LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON formatted log string
        """
        event = getattr(record, "event", None)

        if isinstance(event, LogEvent):
            log_data: Dict[str, Any] = {
                "timestamp": event.timestamp.isoformat().replace("+00:00", "Z"),
                "level": event.level.name,
                "category": event.category.value,
                "message": event.message,
            }
            if event.context:
                log_data["context"] = event.context
            if event.emoji:
                log_data["emoji"] = event.emoji
        else:
            log_data = {
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }

        # Add exception info if present
        if record.exc_info:
            log_data["error"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stack_trace": "".join(traceback.format_exception(*record.exc_info)),
            }

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        return json.dumps(log_data, default=str, ensure_ascii=False)


class LevelBandFilter(logging.Filter):
    """Pass only records whose level lies in [min_level, max_level]."""

    def __init__(self, min_level: int, max_level: int):
        super().__init__()
        self.min_level = min_level
        self.max_level = max_level

    def filter(self, record: LogRecord) -> bool:
        return self.min_level <= record.levelno <= self.max_level


def _noop_sink(event: LogEvent) -> None:
    return None


class StructuredLogger:
    """
    Leveled, categorized event logger.

    A single instance is built at process start (see ``setup_logging``) and
    injected into the components that log. The minimum level is checked
    before any event is built, so suppressed calls never format or serialize
    their context.

    DEBUG/INFO events go to the info stream, WARN to the warning stream and
    ERROR/CRITICAL to the error stream. CRITICAL events are also handed to
    ``external_sink`` (a no-op unless one is wired in).
    """

    def __init__(
        self,
        name: str = "storywriter",
        min_level: LogLevel = LogLevel.DEBUG,
        app_env: str = "development",
        formatter: Optional[logging.Formatter] = None,
        info_stream: Optional[TextIO] = None,
        warn_stream: Optional[TextIO] = None,
        error_stream: Optional[TextIO] = None,
        external_sink: Optional[ExternalSink] = None,
    ):
        self.min_level = min_level
        self.app_env = app_env
        self.external_sink: ExternalSink = external_sink or _noop_sink

        formatter = formatter or ConsoleFormatter()
        bands = [
            (info_stream or sys.stdout, logging.DEBUG, logging.INFO),
            (warn_stream or sys.stderr, logging.WARNING, logging.WARNING),
            (error_stream or sys.stderr, logging.ERROR, logging.CRITICAL),
        ]

        # Unregistered logger: each instance owns its handlers, even when names repeat
        self._logger = logging.Logger(name, logging.DEBUG)
        self._logger.propagate = False
        for stream, low, high in bands:
            handler = logging.StreamHandler(stream)
            handler.setFormatter(formatter)
            handler.addFilter(LevelBandFilter(low, high))
            self._logger.addHandler(handler)

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    def set_level(self, level: LogLevel) -> None:
        """Set the minimum level; calls below it become no-ops."""
        self.min_level = level

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= self.min_level

    def log(
        self,
        level: LogLevel,
        category: LogCategory,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        emoji: Optional[str] = None,
    ) -> None:
        """
        Emit one log event.

        Args:
            level: Event level
            category: Subsystem the event belongs to
            message: Log message
            context: Optional diagnostic fields
            emoji: Optional decoration, defaults to a per-level emoji
        """
        if level < self.min_level:
            return

        event = LogEvent(
            timestamp=datetime.now(timezone.utc),
            level=level,
            category=category,
            message=message,
            context=context,
            emoji=emoji,
        )
        self._logger.log(level.stdlib_level, message, extra={"event": event})

        if level == LogLevel.CRITICAL:
            self._notify_external_sink(event)

    def _notify_external_sink(self, event: LogEvent) -> None:
        try:
            self.external_sink(event)
        except Exception:
            self._logger.error("External log sink failed", exc_info=True)

    def debug(self, category: LogCategory, message: str, context=None, emoji=None) -> None:
        self.log(LogLevel.DEBUG, category, message, context, emoji)

    def info(self, category: LogCategory, message: str, context=None, emoji=None) -> None:
        self.log(LogLevel.INFO, category, message, context, emoji)

    def warn(self, category: LogCategory, message: str, context=None, emoji=None) -> None:
        self.log(LogLevel.WARN, category, message, context, emoji)

    def error(self, category: LogCategory, message: str, context=None, emoji=None) -> None:
        self.log(LogLevel.ERROR, category, message, context, emoji)

    def critical(self, category: LogCategory, message: str, context=None, emoji=None) -> None:
        self.log(LogLevel.CRITICAL, category, message, context, emoji)

    # Convenience emitters

    def conversation_event(self, message: str, context=None, emoji=None) -> None:
        self.info(LogCategory.CONVERSATION, message, context, emoji)

    def story_generation(self, message: str, context=None, emoji=None) -> None:
        self.info(LogCategory.STORY_GENERATION, message, context, emoji)

    def audio_event(self, message: str, context=None, emoji=None) -> None:
        self.info(LogCategory.AUDIO, message, context, emoji)

    def system_event(self, message: str, context=None, emoji=None) -> None:
        self.info(LogCategory.SYSTEM, message, context, emoji)

    def test_event(self, message: str, context=None, emoji: str = "🧪") -> None:
        self.info(LogCategory.TEST, message, context, emoji)

    def service_call(self, service: LogCategory, message: str, context=None, emoji=None) -> None:
        self.info(service, message, context, emoji)

    def service_error(
        self,
        service: LogCategory,
        message: str,
        error: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log a provider/service failure at ERROR level.

        Stack traces are only included when running in development.
        """
        if not self.is_enabled_for(LogLevel.ERROR):
            return

        error_context = dict(context or {})
        error_context["error"] = describe_error(error, include_stack=self.is_development)
        self.error(service, message, error_context)


def setup_logging(settings=None, **overrides: Any) -> StructuredLogger:
    """
    Build the process-wide structured logger.

    Sets up:
    - Minimum level from LOG_LEVEL, or from APP_ENV when unset
    - Console or JSON formatting depending on LOG_FORMAT
    - Reduced noise from third-party HTTP libraries

    Args:
        settings: Application settings (defaults to the global instance)
        **overrides: Extra keyword arguments for StructuredLogger (streams, sink)

    Returns:
        The configured StructuredLogger
    """
    if settings is None:
        from storywriter.config import settings

    min_level = (
        LogLevel.parse(settings.log_level)
        if settings.log_level
        else default_level_for_env(settings.app_env)
    )
    formatter = JSONFormatter() if settings.log_format.lower() == "json" else ConsoleFormatter()

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return StructuredLogger(
        min_level=min_level,
        app_env=settings.app_env,
        formatter=formatter,
        **overrides,
    )


def log_generation_attempt(
    logger: StructuredLogger,
    service: LogCategory,
    attempt: int,
    elapsed_ms: float,
    error: Optional[str] = None,
    **context: Any,
) -> None:
    """
    Log one generation attempt with its timing and, on failure, its cause.

    Args:
        logger: Logger to use
        service: Provider category (e.g. LogCategory.HUGGINGFACE)
        attempt: 1-based attempt number
        elapsed_ms: Attempt duration in milliseconds
        error: Failure cause (if the attempt failed)
        **context: Additional context fields
    """
    if not logger.is_enabled_for(LogLevel.INFO):
        return

    extra = {"attempt": attempt, "elapsed_ms": round(elapsed_ms, 2), **context}
    if error is not None:
        extra["error"] = error
        logger.service_call(service, f"Generation attempt {attempt} failed", extra, "🔁")
    else:
        logger.service_call(service, f"Generation attempt {attempt} succeeded", extra, "✅")


def log_story_generating(logger: StructuredLogger, **context: Any) -> None:
    logger.story_generation("Generating story", context, "✨")


def log_story_complete(logger: StructuredLogger, **context: Any) -> None:
    logger.story_generation("Story generation complete", context, "📚")


def log_agent_message(logger: StructuredLogger, message: str, **context: Any) -> None:
    logger.conversation_event(f"Agent: {message}", context, "🤖")


def log_conversation_end(logger: StructuredLogger, pattern: str, **context: Any) -> None:
    logger.conversation_event(f"Conversation end detected via {pattern}", context, "🔚")
