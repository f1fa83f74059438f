import json
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from core.config import RetentionConfig
from core.log import get_logger
from core.types import Classification, highest_classification
from memory.store import StorageError
from memory.types import (
    FeedbackEntry,
    InteractionRecord,
    LogFilter,
    StorageStats,
    ToolExecutionRecord,
    utcnow,
)

logger = get_logger(__name__)

# Columns a patch may touch. The id is immutable.
UPDATABLE_FIELDS = frozenset(
    {
        "ai_response",
        "actions",
        "suggestions",
        "reasoning",
        "response_time_ms",
        "token_count",
        "error",
        "error_code",
        "contains_sensitive_data",
        "classification",
    }
)

_SIZE_EXPR = (
    "length(user_message) + length(ai_response) + length(context)"
    " + coalesce(length(system_prompt), 0) + coalesce(length(reasoning), 0)"
    " + length(actions) + length(suggestions)"
)


class SQLiteInteractionStore:
    def __init__(self, db_path: str = "~/.aitrace/interactions.db"):
        if db_path != ":memory:":
            db_path = os.path.expanduser(db_path)
            parent = os.path.dirname(db_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
        # Served from the event loop thread, which need not be the creating one.
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_db()

    def _init_db(self) -> None:
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS interactions (
                id TEXT PRIMARY KEY,
                timestamp TEXT NOT NULL,
                session_id TEXT NOT NULL,
                backend_name TEXT NOT NULL,
                backend_provider TEXT NOT NULL,
                backend_version TEXT,
                backend_parameters TEXT,
                user_message TEXT NOT NULL,
                ai_response TEXT NOT NULL,
                context TEXT NOT NULL,
                system_prompt TEXT,
                reasoning TEXT,
                actions TEXT NOT NULL,
                suggestions TEXT NOT NULL,
                response_time_ms REAL NOT NULL,
                token_count INTEGER,
                error TEXT,
                error_code TEXT,
                contains_sensitive_data INTEGER NOT NULL,
                classification TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_interactions_timestamp ON interactions(timestamp);
            CREATE TABLE IF NOT EXISTS tool_executions (
                id TEXT PRIMARY KEY,
                interaction_id TEXT NOT NULL REFERENCES interactions(id) ON DELETE CASCADE,
                tool_name TEXT NOT NULL,
                arguments TEXT NOT NULL,
                result TEXT NOT NULL,
                execution_time_ms REAL NOT NULL,
                success INTEGER NOT NULL,
                error TEXT,
                reasoning TEXT,
                user_confirmed INTEGER,
                created_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_tool_executions_parent ON tool_executions(interaction_id);
            CREATE TABLE IF NOT EXISTS feedback (
                interaction_id TEXT PRIMARY KEY REFERENCES interactions(id) ON DELETE CASCADE,
                data TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS retention_config (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                data TEXT NOT NULL
            );
        """)
        self.conn.commit()

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            with suppress(sqlite3.Error):
                self.conn.rollback()
            logger.error("Storage failure while trying to %s: %s", action, e)
            raise StorageError(f"Failed to {action}: {e}") from e

    async def create(self, record: InteractionRecord) -> str:
        row = record.to_row()
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        with self._guard("create interaction record"):
            self.conn.execute(
                f"INSERT INTO interactions ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            self.conn.commit()
        return record.id

    async def get(self, record_id: str) -> InteractionRecord | None:
        with self._guard("read interaction record"):
            row = self.conn.execute("SELECT * FROM interactions WHERE id = ?", (record_id,)).fetchone()
        return InteractionRecord.from_row(dict(row)) if row else None

    async def list_records(self, log_filter: LogFilter | None = None) -> list[InteractionRecord]:
        log_filter = log_filter or LogFilter()
        clauses: list[str] = []
        params: list[Any] = []

        if log_filter.start_date:
            clauses.append("timestamp >= ?")
            params.append(log_filter.start_date.isoformat())
        if log_filter.end_date:
            clauses.append("timestamp <= ?")
            params.append(log_filter.end_date.isoformat())
        if log_filter.backend:
            clauses.append("backend_name = ?")
            params.append(log_filter.backend)
        if log_filter.has_errors is not None:
            clauses.append("error IS NOT NULL" if log_filter.has_errors else "error IS NULL")
        if log_filter.has_tool_calls is not None:
            exists = "EXISTS (SELECT 1 FROM tool_executions t WHERE t.interaction_id = interactions.id)"
            clauses.append(exists if log_filter.has_tool_calls else f"NOT {exists}")
        if log_filter.search_text:
            clauses.append("(user_message LIKE ? OR ai_response LIKE ?)")
            pattern = f"%{log_filter.search_text}%"
            params.extend([pattern, pattern])

        sql = "SELECT * FROM interactions"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY timestamp " + ("ASC" if log_filter.oldest_first else "DESC")
        if log_filter.limit is not None or log_filter.offset:
            sql += " LIMIT ? OFFSET ?"
            params.extend([log_filter.limit if log_filter.limit is not None else -1, log_filter.offset or 0])

        with self._guard("list interaction records"):
            rows = self.conn.execute(sql, params).fetchall()
        return [InteractionRecord.from_row(dict(r)) for r in rows]

    async def update(self, record_id: str, patch: dict[str, Any]) -> InteractionRecord:
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        current = await self.get(record_id)
        if current is None:
            raise KeyError(record_id)

        values = dict(patch)
        if "classification" in values:
            # Tiers only ever move up.
            values["classification"] = highest_classification(
                current.classification, Classification(values["classification"])
            ).value
        if "contains_sensitive_data" in values:
            values["contains_sensitive_data"] = int(current.contains_sensitive_data or values["contains_sensitive_data"])
        values["updated_at"] = utcnow().isoformat()

        assignments = ", ".join(f"{column} = ?" for column in values)
        with self._guard("update interaction record"):
            self.conn.execute(
                f"UPDATE interactions SET {assignments} WHERE id = ?",
                (*values.values(), record_id),
            )
            self.conn.commit()
        updated = await self.get(record_id)
        assert updated is not None
        return updated

    async def delete(self, record_id: str) -> None:
        with self._guard("delete interaction record"):
            self.conn.execute("DELETE FROM interactions WHERE id = ?", (record_id,))
            self.conn.commit()

    async def clear(self) -> None:
        with self._guard("clear interaction records"):
            self.conn.execute("DELETE FROM interactions")
            self.conn.commit()

    async def cleanup_older_than(self, cutoff: datetime) -> int:
        with self._guard("clean up old interaction records"):
            cursor = self.conn.execute("DELETE FROM interactions WHERE timestamp < ?", (cutoff.isoformat(),))
            self.conn.commit()
        return cursor.rowcount

    async def stats(self) -> StorageStats:
        with self._guard("compute storage stats"):
            row = self.conn.execute(
                f"SELECT COUNT(*), COALESCE(SUM({_SIZE_EXPR}), 0), MIN(timestamp), MAX(timestamp),"
                " COALESCE(AVG(response_time_ms), 0) FROM interactions"
            ).fetchone()
            by_backend = self.conn.execute(
                "SELECT backend_name, COUNT(*) FROM interactions GROUP BY backend_name"
            ).fetchall()
        count, total_size, oldest, newest, avg_latency = tuple(row)
        return StorageStats(
            count=count,
            total_size=int(total_size),
            oldest=datetime.fromisoformat(oldest) if oldest else None,
            newest=datetime.fromisoformat(newest) if newest else None,
            by_backend={name: n for name, n in by_backend},
            avg_latency_ms=float(avg_latency),
        )

    async def create_tool_execution(self, record: ToolExecutionRecord) -> str:
        row = record.to_row()
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        with self._guard("create tool execution record"):
            self.conn.execute(
                f"INSERT INTO tool_executions ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            self.conn.commit()
        return record.id

    async def list_tool_executions(self, interaction_id: str) -> list[ToolExecutionRecord]:
        with self._guard("list tool execution records"):
            rows = self.conn.execute(
                "SELECT * FROM tool_executions WHERE interaction_id = ? ORDER BY created_at",
                (interaction_id,),
            ).fetchall()
        return [ToolExecutionRecord.from_row(dict(r)) for r in rows]

    async def save_feedback(self, entry: FeedbackEntry) -> None:
        with self._guard("save feedback"):
            self.conn.execute(
                "INSERT OR REPLACE INTO feedback (interaction_id, data) VALUES (?, ?)",
                (entry.interaction_id, json.dumps(entry.to_dict())),
            )
            self.conn.commit()

    async def get_feedback(self, interaction_id: str) -> FeedbackEntry | None:
        with self._guard("read feedback"):
            row = self.conn.execute(
                "SELECT data FROM feedback WHERE interaction_id = ?", (interaction_id,)
            ).fetchone()
        if row is None:
            return None
        return FeedbackEntry.from_dict(interaction_id, json.loads(row["data"]))

    async def get_retention_config(self) -> RetentionConfig | None:
        with self._guard("read retention config"):
            row = self.conn.execute("SELECT data FROM retention_config WHERE id = 1").fetchone()
        if row is None:
            return None
        try:
            return RetentionConfig.model_validate_json(row["data"])
        except ValidationError as e:
            raise StorageError(f"Stored retention config is invalid: {e}") from e

    async def update_retention_config(self, patch: dict[str, Any]) -> RetentionConfig:
        try:
            current = await self.get_retention_config() or RetentionConfig()
        except StorageError:
            logger.warning("Replacing unreadable retention config with defaults")
            current = RetentionConfig()
        updated = RetentionConfig.model_validate({**current.model_dump(), **patch})
        with self._guard("update retention config"):
            self.conn.execute(
                "INSERT OR REPLACE INTO retention_config (id, data) VALUES (1, ?)",
                (updated.model_dump_json(),),
            )
            self.conn.commit()
        return updated

    def close(self) -> None:
        self.conn.close()
