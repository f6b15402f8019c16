"""Data models for the StoryWriter generation core."""

from .error import ErrorRecord, ErrorSeverity, ErrorType
from .generation import (
    AttemptStatus,
    FailureSource,
    GenerationAttempt,
    GenerationParameters,
    InterviewStep,
)
from .result import OperationResult

__all__ = [
    # Error models
    "ErrorType",
    "ErrorSeverity",
    "ErrorRecord",
    # Generation models
    "GenerationParameters",
    "AttemptStatus",
    "FailureSource",
    "GenerationAttempt",
    "InterviewStep",
    # Result models
    "OperationResult",
]
