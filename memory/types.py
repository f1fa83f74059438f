import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from core.types import BackendDescriptor, Classification


def utcnow() -> datetime:
    return datetime.now(UTC)


def _parse_dt(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass
class InteractionRecord:
    id: str
    timestamp: datetime
    session_id: str
    backend: BackendDescriptor
    user_message: str
    ai_response: str
    context: str = "{}"  # JSON snapshot of app context
    system_prompt: str | None = None
    reasoning: str | None = None
    actions: str = "[]"
    suggestions: str = "[]"
    response_time_ms: float = 0.0
    token_count: int | None = None
    error: str | None = None
    error_code: str | None = None
    contains_sensitive_data: bool = False
    classification: Classification = Classification.PUBLIC
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> dict[str, Any]:
        """Flat, serializable shape used across the storage boundary."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "session_id": self.session_id,
            "backend_name": self.backend.name,
            "backend_provider": self.backend.provider,
            "backend_version": self.backend.version,
            "backend_parameters": json.dumps(self.backend.parameters),
            "user_message": self.user_message,
            "ai_response": self.ai_response,
            "context": self.context,
            "system_prompt": self.system_prompt,
            "reasoning": self.reasoning,
            "actions": self.actions,
            "suggestions": self.suggestions,
            "response_time_ms": self.response_time_ms,
            "token_count": self.token_count,
            "error": self.error,
            "error_code": self.error_code,
            "contains_sensitive_data": int(self.contains_sensitive_data),
            "classification": self.classification.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "InteractionRecord":
        try:
            params = json.loads(row.get("backend_parameters") or "{}")
        except json.JSONDecodeError:
            params = {}
        backend = BackendDescriptor(
            name=row["backend_name"],
            provider=row["backend_provider"],
            version=row.get("backend_version"),
            capability_tags=list(params.get("capability_tags", [])),
            context_window_size=int(params.get("context_window_size", 0)),
        )
        return cls(
            id=row["id"],
            timestamp=_parse_dt(row["timestamp"]),
            session_id=row["session_id"],
            backend=backend,
            user_message=row["user_message"],
            ai_response=row["ai_response"],
            context=row.get("context") or "{}",
            system_prompt=row.get("system_prompt"),
            reasoning=row.get("reasoning"),
            actions=row.get("actions") or "[]",
            suggestions=row.get("suggestions") or "[]",
            response_time_ms=float(row.get("response_time_ms") or 0.0),
            token_count=row.get("token_count"),
            error=row.get("error"),
            error_code=row.get("error_code"),
            contains_sensitive_data=bool(row.get("contains_sensitive_data")),
            classification=Classification(row.get("classification") or "public"),
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    def size_bytes(self) -> int:
        return len(json.dumps(self.to_row()).encode())


@dataclass
class ToolExecutionRecord:
    id: str
    interaction_id: str
    tool_name: str
    arguments: str  # JSON
    result: str  # JSON
    execution_time_ms: float
    success: bool
    error: str | None = None
    reasoning: str | None = None
    user_confirmed: bool | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "interaction_id": self.interaction_id,
            "tool_name": self.tool_name,
            "arguments": self.arguments,
            "result": self.result,
            "execution_time_ms": self.execution_time_ms,
            "success": int(self.success),
            "error": self.error,
            "reasoning": self.reasoning,
            "user_confirmed": None if self.user_confirmed is None else int(self.user_confirmed),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ToolExecutionRecord":
        confirmed = row.get("user_confirmed")
        return cls(
            id=row["id"],
            interaction_id=row["interaction_id"],
            tool_name=row["tool_name"],
            arguments=row.get("arguments") or "{}",
            result=row.get("result") or "{}",
            execution_time_ms=float(row.get("execution_time_ms") or 0.0),
            success=bool(row.get("success")),
            error=row.get("error"),
            reasoning=row.get("reasoning"),
            user_confirmed=None if confirmed is None else bool(confirmed),
            created_at=_parse_dt(row["created_at"]),
        )


class FeedbackCategory(StrEnum):
    HELPFULNESS = "helpfulness"
    ACCURACY = "accuracy"
    CLARITY = "clarity"
    SPEED = "speed"
    PERSONALITY = "personality"


def _check_rating(rating: int) -> None:
    if not 1 <= rating <= 5:
        raise ValueError(f"rating must be between 1 and 5, got {rating}")


@dataclass(frozen=True)
class CategoryRating:
    category: FeedbackCategory
    rating: int

    def __post_init__(self) -> None:
        _check_rating(self.rating)


@dataclass(frozen=True)
class FeedbackEntry:
    """User feedback on one interaction. Resubmitting replaces the previous entry."""

    interaction_id: str
    rating: int
    comment: str | None = None
    categories: tuple[CategoryRating, ...] = ()
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        _check_rating(self.rating)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rating": self.rating,
            "comment": self.comment,
            "categories": [{"category": c.category.value, "rating": c.rating} for c in self.categories],
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, interaction_id: str, data: dict[str, Any]) -> "FeedbackEntry":
        categories = tuple(
            CategoryRating(FeedbackCategory(c["category"]), int(c["rating"]))
            for c in data.get("categories") or []
        )
        timestamp = _parse_dt(data["timestamp"]) if data.get("timestamp") else utcnow()
        return cls(
            interaction_id=interaction_id,
            rating=int(data["rating"]),
            comment=data.get("comment"),
            categories=categories,
            timestamp=timestamp,
        )


@dataclass
class LogFilter:
    start_date: datetime | None = None
    end_date: datetime | None = None
    backend: str | None = None
    has_errors: bool | None = None
    has_tool_calls: bool | None = None
    search_text: str | None = None
    limit: int | None = None
    offset: int | None = None
    oldest_first: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "backend": self.backend,
            "hasErrors": self.has_errors,
            "hasToolCalls": self.has_tool_calls,
            "searchText": self.search_text,
            "limit": self.limit,
            "offset": self.offset,
        }


@dataclass
class StorageStats:
    count: int = 0
    total_size: int = 0
    oldest: datetime | None = None
    newest: datetime | None = None
    by_backend: dict[str, int] = field(default_factory=dict)
    avg_latency_ms: float = 0.0
