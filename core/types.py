from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Classification(StrEnum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"

    @property
    def rank(self) -> int:
        return _CLASSIFICATION_RANK[self]


_CLASSIFICATION_RANK: dict[Classification, int] = {
    Classification.PUBLIC: 0,
    Classification.INTERNAL: 1,
    Classification.CONFIDENTIAL: 2,
}


def highest_classification(*tiers: Classification) -> Classification:
    """Return the most restrictive tier of the given ones (PUBLIC if none)."""
    return max(tiers, key=lambda t: t.rank, default=Classification.PUBLIC)


class VerbosityLevel(StrEnum):
    MINIMAL = "minimal"
    STANDARD = "standard"
    DETAILED = "detailed"


class CapabilityTier(StrEnum):
    READ_ONLY = "read_only"
    MODIFY_TASKS = "modify_tasks"
    TIMER_CONTROL = "timer_control"
    FULL_ACCESS = "full_access"


class ImpactLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ExportFormat(StrEnum):
    JSON = "json"
    CSV = "csv"


class CaptureStatus(StrEnum):
    CAPTURE = "capture"
    ERROR = "error"


@dataclass
class BackendDescriptor:
    name: str
    provider: str
    version: str | None = None
    capability_tags: list[str] = field(default_factory=list)
    context_window_size: int = 0

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "context_window_size": self.context_window_size,
            "capability_tags": list(self.capability_tags),
        }


@dataclass
class ToolCall:
    id: str
    name: str
    args: dict[str, Any]


@dataclass
class AIResponse:
    text: str
    reasoning: str | None = None
    actions: list[dict] = field(default_factory=list)
    suggestions: list[dict] = field(default_factory=list)


@dataclass
class ResponseMetrics:
    token_count: int | None = None


@dataclass
class Response:
    text: str
    interaction_id: str | None = None
    tool_calls_made: list[ToolCall] = field(default_factory=list)
    latency_ms: dict[str, float] = field(default_factory=dict)
