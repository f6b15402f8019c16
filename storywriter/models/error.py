"""Error tracking data models."""

from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any, Dict, Mapping

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer


class ErrorType(str, Enum):
    """Kind of failure, used to pick log category and user-facing copy."""

    NETWORK = "network"
    VALIDATION = "validation"
    SYSTEM = "system"
    AUDIO = "audio"
    STORY_GENERATION = "story_generation"
    CONVERSATION = "conversation"
    STORAGE = "storage"


class ErrorSeverity(str, Enum):
    """Severity of a failure, ordered from LOW to CRITICAL."""

    LOW = "low"  # Non-blocking, app continues to work
    MEDIUM = "medium"  # Blocks a specific feature
    HIGH = "high"  # May require restart or user intervention
    CRITICAL = "critical"  # App-breaking

    @property
    def rank(self) -> int:
        return list(ErrorSeverity).index(self)

    def __lt__(self, other):
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank >= other.rank


def _freeze_context(context: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(context))


def _thaw_context(context: Mapping[str, Any]) -> Dict[str, Any]:
    return dict(context)


# Read-only once validated; serialized back to a plain dict
FrozenContext = Annotated[
    Mapping[str, Any],
    AfterValidator(_freeze_context),
    PlainSerializer(_thaw_context),
]


class ErrorRecord(BaseModel):
    """Classified failure, safe to hand to UI code and logs."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: ErrorType
    severity: ErrorSeverity
    technical_message: str
    user_message: str
    cause: Any = Field(default=None, exclude=True, repr=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    context: FrozenContext = Field(default_factory=lambda: MappingProxyType({}))

    @property
    def error_id(self) -> str:
        return f"{self.kind.value}_{int(self.created_at.timestamp() * 1000)}"

    @property
    def is_recoverable(self) -> bool:
        return self.severity != ErrorSeverity.CRITICAL

    def with_context(self, **extra: Any) -> "ErrorRecord":
        """Return a copy of this record with additional context merged in."""
        if not extra:
            return self
        return self.model_copy(update={"context": _freeze_context({**self.context, **extra})})
