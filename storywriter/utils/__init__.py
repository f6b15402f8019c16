"""
Utility modules for StoryWriter.
"""

from storywriter.utils.logging import (
    LogCategory,
    LogEvent,
    LogLevel,
    StructuredLogger,
    setup_logging,
)
from storywriter.utils.errors import (
    ClassifiedError,
    ErrorHandler,
    ErrorTracker,
    GenerationCancelledError,
    GenerationError,
    classify,
)
from storywriter.utils.metrics import GenerationMetrics, emit_metric
from storywriter.utils.resilience import RetryPolicy, backoff_delay

__all__ = [
    "LogCategory",
    "LogEvent",
    "LogLevel",
    "StructuredLogger",
    "setup_logging",
    "ClassifiedError",
    "ErrorHandler",
    "ErrorTracker",
    "GenerationCancelledError",
    "GenerationError",
    "classify",
    "GenerationMetrics",
    "emit_metric",
    "RetryPolicy",
    "backoff_delay",
]
