"""Generation request and attempt data models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class GenerationParameters(BaseModel):
    """Fixed sampling parameters sent with every generation request."""

    max_new_tokens: int = 2000
    temperature: float = 0.7
    top_p: float = 0.95
    do_sample: bool = True
    return_full_text: bool = False
    wait_for_model: bool = True


class AttemptStatus(str, Enum):
    """Outcome of a single generation attempt."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


class FailureSource(str, Enum):
    """Layer a failed attempt originated from."""

    TRANSPORT = "transport"
    RESPONSE_SHAPE = "response_shape"


class GenerationAttempt(BaseModel):
    """One try of the resilient generation client."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    attempt_number: int
    prompt: str
    started_at: datetime
    duration_ms: float = 0.0
    status: AttemptStatus
    text: Optional[str] = None
    reason: Optional[str] = None
    wait_hint_seconds: Optional[float] = None
    failure_source: Optional[FailureSource] = None
    status_code: Optional[int] = None
    cause: Any = Field(default=None, exclude=True, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.status == AttemptStatus.SUCCESS


class InterviewStep(BaseModel):
    """Next step of the story interview: a question, or the final summary."""

    complete: bool
    question: Optional[str] = None
    summary: Optional[str] = None
