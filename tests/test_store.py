import json
import uuid
from datetime import timedelta

import pytest
from conftest import make_record

from core.types import Classification, VerbosityLevel
from memory.store import StorageError
from memory.types import (
    CategoryRating,
    FeedbackCategory,
    FeedbackEntry,
    LogFilter,
    ToolExecutionRecord,
    utcnow,
)


def tool_record(interaction_id: str, name: str = "get_tasks") -> ToolExecutionRecord:
    return ToolExecutionRecord(
        id=str(uuid.uuid4()),
        interaction_id=interaction_id,
        tool_name=name,
        arguments=json.dumps({"search": "report"}),
        result=json.dumps({"success": True}),
        execution_time_ms=12.5,
        success=True,
    )


def test_store_init(store):
    cursor = store.conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='interactions'")
    assert cursor.fetchone() is not None


@pytest.mark.asyncio
async def test_create_get_roundtrip(store):
    record = make_record(user_message="hello", token_count=42)
    record_id = await store.create(record)
    assert record_id == record.id

    loaded = await store.get(record_id)
    assert loaded is not None
    assert loaded.user_message == "hello"
    assert loaded.token_count == 42
    assert loaded.backend.name == "test-model"
    assert loaded.backend.context_window_size == 4096
    assert loaded.timestamp == record.timestamp


@pytest.mark.asyncio
async def test_get_missing(store):
    assert await store.get("nope") is None


@pytest.mark.asyncio
async def test_list_ordering(store):
    for i in range(3):
        await store.create(make_record(user_message=f"msg {i}", days_ago=3 - i))
    records = await store.list_records()
    # Most recent first
    assert [r.user_message for r in records] == ["msg 2", "msg 1", "msg 0"]

    oldest = await store.list_records(LogFilter(oldest_first=True, limit=1))
    assert [r.user_message for r in oldest] == ["msg 0"]


@pytest.mark.asyncio
async def test_list_filters(store):
    ok = make_record(user_message="plan my week", backend="alpha")
    failed = make_record(user_message="broken", backend="beta", error="timeout")
    await store.create(ok)
    await store.create(failed)
    await store.create_tool_execution(tool_record(ok.id))

    assert [r.id for r in await store.list_records(LogFilter(backend="beta"))] == [failed.id]
    assert [r.id for r in await store.list_records(LogFilter(has_errors=True))] == [failed.id]
    assert [r.id for r in await store.list_records(LogFilter(has_errors=False))] == [ok.id]
    assert [r.id for r in await store.list_records(LogFilter(has_tool_calls=True))] == [ok.id]
    assert [r.id for r in await store.list_records(LogFilter(has_tool_calls=False))] == [failed.id]
    assert [r.id for r in await store.list_records(LogFilter(search_text="week"))] == [ok.id]


@pytest.mark.asyncio
async def test_list_date_range_and_paging(store):
    for days in (10, 5, 1):
        await store.create(make_record(user_message=f"{days} days", days_ago=days))
    window = LogFilter(start_date=utcnow() - timedelta(days=7), end_date=utcnow())
    assert [r.user_message for r in await store.list_records(window)] == ["5 days", "1 days"]

    page = await store.list_records(LogFilter(limit=1, offset=1))
    assert [r.user_message for r in page] == ["5 days"]
    assert len(await store.list_records(LogFilter(offset=1))) == 2


@pytest.mark.asyncio
async def test_update(store):
    record = make_record()
    await store.create(record)
    updated = await store.update(record.id, {"ai_response": "changed", "token_count": 7})
    assert updated.ai_response == "changed"
    assert updated.token_count == 7
    assert updated.updated_at >= record.updated_at


@pytest.mark.asyncio
async def test_update_never_downgrades(store):
    record = make_record(classification=Classification.CONFIDENTIAL, contains_sensitive_data=True)
    await store.create(record)
    updated = await store.update(record.id, {"classification": "public", "contains_sensitive_data": False})
    assert updated.classification == Classification.CONFIDENTIAL
    assert updated.contains_sensitive_data is True


@pytest.mark.asyncio
async def test_update_rejects_id_and_missing(store):
    record = make_record()
    await store.create(record)
    with pytest.raises(ValueError):
        await store.update(record.id, {"id": "other"})
    with pytest.raises(KeyError):
        await store.update("missing", {"ai_response": "x"})


@pytest.mark.asyncio
async def test_delete_cascades(store):
    record = make_record()
    await store.create(record)
    await store.create_tool_execution(tool_record(record.id))
    await store.save_feedback(FeedbackEntry(interaction_id=record.id, rating=4))

    await store.delete(record.id)
    assert await store.get(record.id) is None
    assert await store.list_tool_executions(record.id) == []
    assert await store.get_feedback(record.id) is None


@pytest.mark.asyncio
async def test_clear(store):
    for _ in range(3):
        await store.create(make_record())
    await store.clear()
    assert await store.list_records() == []


@pytest.mark.asyncio
async def test_cleanup_older_than(store):
    await store.create(make_record(days_ago=40))
    await store.create(make_record(days_ago=1))
    deleted = await store.cleanup_older_than(utcnow() - timedelta(days=30))
    assert deleted == 1
    assert len(await store.list_records()) == 1


@pytest.mark.asyncio
async def test_stats(store):
    empty = await store.stats()
    assert empty.count == 0
    assert empty.oldest is None

    await store.create(make_record(backend="alpha", days_ago=2))
    await store.create(make_record(backend="alpha"))
    await store.create(make_record(backend="beta"))
    stats = await store.stats()
    assert stats.count == 3
    assert stats.by_backend == {"alpha": 2, "beta": 1}
    assert stats.total_size > 0
    assert stats.avg_latency_ms == pytest.approx(100.0)
    assert stats.oldest < stats.newest


@pytest.mark.asyncio
async def test_tool_executions(store):
    record = make_record()
    await store.create(record)
    await store.create_tool_execution(tool_record(record.id, "get_tasks"))
    await store.create_tool_execution(tool_record(record.id, "create_task"))
    executions = await store.list_tool_executions(record.id)
    assert {e.tool_name for e in executions} == {"get_tasks", "create_task"}
    assert executions[0].user_confirmed is None


@pytest.mark.asyncio
async def test_tool_execution_requires_parent(store):
    with pytest.raises(StorageError):
        await store.create_tool_execution(tool_record("missing"))


@pytest.mark.asyncio
async def test_feedback_replace(store):
    record = make_record()
    await store.create(record)
    await store.save_feedback(FeedbackEntry(interaction_id=record.id, rating=2, comment="slow"))
    await store.save_feedback(
        FeedbackEntry(
            interaction_id=record.id,
            rating=5,
            categories=(CategoryRating(FeedbackCategory.CLARITY, 4),),
        )
    )
    entry = await store.get_feedback(record.id)
    assert entry is not None
    assert entry.rating == 5
    assert entry.comment is None
    assert entry.categories[0].category == FeedbackCategory.CLARITY


def test_feedback_rating_bounds():
    with pytest.raises(ValueError):
        FeedbackEntry(interaction_id="x", rating=6)
    with pytest.raises(ValueError):
        CategoryRating(FeedbackCategory.SPEED, 0)


@pytest.mark.asyncio
async def test_retention_config(store):
    assert await store.get_retention_config() is None
    config = await store.update_retention_config({"log_level": "minimal", "retention_days": 10})
    assert config.log_level == VerbosityLevel.MINIMAL
    loaded = await store.get_retention_config()
    assert loaded is not None
    assert loaded.retention_days == 10
    assert loaded.max_log_count == 10000


@pytest.mark.asyncio
async def test_retention_config_rejects_invalid(store):
    from pydantic import ValidationError

    with pytest.raises(ValidationError):
        await store.update_retention_config({"retention_days": 0})
    assert await store.get_retention_config() is None


@pytest.mark.asyncio
async def test_closed_store_raises_storage_error(tmp_path):
    from memory.sqlite_store import SQLiteInteractionStore

    s = SQLiteInteractionStore(str(tmp_path / "closed.db"))
    s.close()
    with pytest.raises(StorageError):
        await s.get("anything")
