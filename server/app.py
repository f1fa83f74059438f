from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, ValidationError

from analytics.service import SearchQuery
from core.config import load_config
from core.log import get_logger, setup_logging
from core.orchestrator import Orchestrator
from core.services import Services, build_services
from core.types import ExportFormat
from llm.client import LLMClient
from memory.retention import CleanupInProgressError
from memory.store import StorageError
from memory.types import CategoryRating, FeedbackCategory, FeedbackEntry, LogFilter
from tools import register_all_tools
from tools.tasks import TaskBoard

logger = get_logger(__name__)

# Global state, initialized on startup
services: Services | None = None
orchestrator: Orchestrator | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global services, orchestrator

    config = load_config()
    setup_logging(config.log.level)

    services = await build_services(config)
    await services.analytics.migrate_legacy_feedback()
    await services.retention.start()

    orchestrator = Orchestrator(
        config=config,
        llm_client=LLMClient(config.llm),
        engine=services.engine,
        pipeline=services.pipeline,
    )
    register_all_tools(orchestrator, TaskBoard())

    yield

    # Cleanup
    await services.retention.stop()
    services.close()
    services = None
    orchestrator = None


app = FastAPI(title="aitrace", lifespan=lifespan)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": exc.errors(include_url=False, include_context=False)})


def _services() -> Services:
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


class CategoryRatingIn(BaseModel):
    category: FeedbackCategory
    rating: int = Field(ge=1, le=5)


class FeedbackIn(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = None
    categories: list[CategoryRatingIn] = []


class SearchIn(BaseModel):
    text: str | None = None
    intent: str | None = None
    tools_used: list[str] = []
    max_response_time_ms: float | None = None
    emotional_state: str | None = None
    limit: int = Field(default=50, gt=0)


class ChatIn(BaseModel):
    text: str


def _log_filter(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    backend: str | None = None,
    has_errors: bool | None = None,
    has_tool_calls: bool | None = None,
    search: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> LogFilter:
    return LogFilter(
        start_date=start_date,
        end_date=end_date,
        backend=backend,
        has_errors=has_errors,
        has_tool_calls=has_tool_calls,
        search_text=search,
        limit=limit,
        offset=offset,
    )


@app.get("/health")
async def health() -> dict[str, Any]:
    llm_health: dict[str, Any] = (
        await orchestrator.llm.health() if orchestrator else {"status": "not initialized"}
    )
    return {
        "status": "ok" if services else "not initialized",
        "llm": llm_health,
        "pending_captures": services.pipeline.pending_count if services else 0,
        "retention_running": services.retention.is_running if services else False,
    }


@app.post("/chat")
async def chat(body: ChatIn) -> dict[str, Any]:
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator not initialized")
    response = await orchestrator.process(body.text)
    return {
        "text": response.text,
        "interaction_id": response.interaction_id,
        "tool_calls": [tc.name for tc in response.tool_calls_made],
        "latency_ms": response.latency_ms,
    }


@app.get("/logs")
async def list_logs(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    backend: str | None = None,
    has_errors: bool | None = None,
    has_tool_calls: bool | None = None,
    search: str | None = None,
    limit: int | None = 100,
    offset: int | None = None,
) -> list[dict[str, Any]]:
    log_filter = _log_filter(start_date, end_date, backend, has_errors, has_tool_calls, search, limit, offset)
    records = await _services().analytics.get_records(log_filter)
    return [r.to_dict() for r in records]


@app.get("/logs/{record_id}")
async def get_log(record_id: str) -> dict[str, Any]:
    record = await _services().analytics.get_record(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Unknown record: {record_id}")
    return record.to_dict()


@app.delete("/logs/{record_id}", status_code=204)
async def delete_log(record_id: str) -> Response:
    svc = _services()
    if await svc.store.get(record_id) is None:
        raise HTTPException(status_code=404, detail=f"Unknown record: {record_id}")
    await svc.store.delete(record_id)
    return Response(status_code=204)


@app.post("/logs/search")
async def search_logs(body: SearchIn) -> list[dict[str, Any]]:
    results = await _services().analytics.search(SearchQuery(**body.model_dump()))
    return [r.to_dict() for r in results]


@app.post("/logs/{record_id}/feedback", status_code=201)
async def submit_feedback(record_id: str, body: FeedbackIn) -> dict[str, Any]:
    entry = FeedbackEntry(
        interaction_id=record_id,
        rating=body.rating,
        comment=body.comment,
        categories=tuple(CategoryRating(c.category, c.rating) for c in body.categories),
    )
    svc = _services()
    try:
        await svc.analytics.submit_feedback(entry)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown record: {record_id}") from None
    return {
        "feedback": entry.to_dict(),
        "improvements": [asdict(s) for s in svc.feedback.suggest_improvements(entry)],
    }


@app.get("/analytics")
async def analytics(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    backend: str | None = None,
) -> dict[str, Any]:
    result = await _services().analytics.get_analytics(_log_filter(start_date, end_date, backend))
    return result.to_dict()


@app.get("/stats")
async def stats() -> dict[str, Any]:
    s = await _services().store.stats()
    return {
        "count": s.count,
        "total_size": s.total_size,
        "oldest": s.oldest.isoformat() if s.oldest else None,
        "newest": s.newest.isoformat() if s.newest else None,
        "by_backend": s.by_backend,
        "avg_latency_ms": s.avg_latency_ms,
    }


@app.get("/export")
async def export(
    fmt: ExportFormat = Query(ExportFormat.JSON, alias="format"),
    include_sensitive: bool = False,
    anonymize: bool = False,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    backend: str | None = None,
    has_errors: bool | None = None,
    has_tool_calls: bool | None = None,
) -> Response:
    log_filter = _log_filter(start_date, end_date, backend, has_errors, has_tool_calls)
    result = await _services().exporter.export(fmt, log_filter, include_sensitive, anonymize)
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@app.get("/feedback/analysis")
async def feedback_analysis(start_date: datetime | None = None, end_date: datetime | None = None) -> dict[str, Any]:
    result = await _services().feedback.analyze_patterns(start_date, end_date)
    return result.to_dict()


@app.get("/feedback/summary")
async def feedback_summary(days: int = 7) -> dict[str, Any]:
    result = await _services().feedback.summarize(days)
    return result.to_dict()


@app.get("/config/retention")
async def get_retention_config() -> dict[str, Any]:
    svc = _services()
    config = await svc.store.get_retention_config() or svc.config.retention
    return config.model_dump(mode="json")


@app.patch("/config/retention")
async def update_retention_config(patch: dict[str, Any]) -> dict[str, Any]:
    config = await _services().store.update_retention_config(patch)
    return config.model_dump(mode="json")


@app.post("/retention/cleanup")
async def retention_cleanup() -> dict[str, Any]:
    try:
        report = await _services().retention.perform_cleanup()
    except CleanupInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    return report.to_dict()


@app.get("/retention/warnings")
async def retention_warnings() -> list[dict[str, Any]]:
    warnings = await _services().retention.storage_warnings()
    return [w.to_dict() for w in warnings]
