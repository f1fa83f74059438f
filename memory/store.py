from datetime import datetime
from typing import Any, Protocol

from core.config import RetentionConfig
from memory.types import FeedbackEntry, InteractionRecord, LogFilter, StorageStats, ToolExecutionRecord


class StorageError(Exception):
    """Raised by a storage collaborator when the backing store fails."""


class InteractionStore(Protocol):
    """Storage collaborator consumed by the capture pipeline and analytics."""

    async def create(self, record: InteractionRecord) -> str: ...

    async def get(self, record_id: str) -> InteractionRecord | None: ...

    async def list_records(self, log_filter: LogFilter | None = None) -> list[InteractionRecord]: ...

    async def update(self, record_id: str, patch: dict[str, Any]) -> InteractionRecord: ...

    async def delete(self, record_id: str) -> None: ...

    async def clear(self) -> None: ...

    async def stats(self) -> StorageStats: ...

    async def cleanup_older_than(self, cutoff: datetime) -> int: ...

    async def create_tool_execution(self, record: ToolExecutionRecord) -> str: ...

    async def list_tool_executions(self, interaction_id: str) -> list[ToolExecutionRecord]: ...

    async def save_feedback(self, entry: FeedbackEntry) -> None: ...

    async def get_feedback(self, interaction_id: str) -> FeedbackEntry | None: ...

    async def get_retention_config(self) -> RetentionConfig | None: ...

    async def update_retention_config(self, patch: dict[str, Any]) -> RetentionConfig: ...
