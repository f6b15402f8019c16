"""Operation result data models."""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

from .error import ErrorRecord

T = TypeVar("T")


class OperationResult(BaseModel, Generic[T]):
    """Result of a fallible operation: either a value or a classified error."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorRecord] = None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ErrorRecord) -> "OperationResult[T]":
        return cls(ok=False, error=error)
