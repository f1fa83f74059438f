"""Request/response correlation and capture of AI interactions.

The pipeline wraps calls made elsewhere: ``open`` before the backend is
asked, ``close`` (or ``fail``) once it answers. Nothing here raises into
the conversational flow. Storage failures are reported through the
status callback and the pending entry is dropped either way.
"""

import json
import re
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from core.config import RetentionConfig
from core.log import get_logger
from core.types import (
    AIResponse,
    BackendDescriptor,
    CaptureStatus,
    Classification,
    ResponseMetrics,
    VerbosityLevel,
    highest_classification,
)
from memory.store import InteractionStore, StorageError
from memory.types import InteractionRecord, ToolExecutionRecord, utcnow
from privacy.filter import PrivacyFilter

logger = get_logger(__name__)

StatusCallback = Callable[[CaptureStatus, str | None], None]

_ERROR_CODE_RE = re.compile(r"code:\s*([A-Z_]+)", re.IGNORECASE)


@dataclass
class PendingCapture:
    """Everything known about an exchange between open and close."""

    id: str
    timestamp: datetime
    session_id: str
    backend: BackendDescriptor
    user_message: str
    context: str
    system_prompt: str | None
    contains_sensitive_data: bool
    classification: Classification
    started: float = field(default_factory=time.monotonic)


def new_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def extract_error_code(error: BaseException) -> str | None:
    code = getattr(error, "code", None)
    if isinstance(code, str) and code:
        return code
    name = type(error).__name__
    if name != "Exception":
        return name
    m = _ERROR_CODE_RE.search(str(error))
    return m.group(1) if m else None


class CapturePipeline:
    def __init__(
        self,
        store: InteractionStore,
        privacy: PrivacyFilter | None = None,
        status_callback: StatusCallback | None = None,
        default_config: RetentionConfig | None = None,
    ):
        self.store = store
        self.privacy = privacy or PrivacyFilter()
        self.status_callback = status_callback
        self.default_config = default_config or RetentionConfig()
        self.session_id = new_session_id()
        self._pending: dict[str, PendingCapture] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def start_new_session(self) -> str:
        self.session_id = new_session_id()
        return self.session_id

    def reset(self) -> None:
        """Forget every open correlation. Later closes for them are no-ops."""
        self._pending.clear()

    async def open(
        self,
        actor_text: str,
        context: dict[str, Any] | None = None,
        backend: BackendDescriptor | None = None,
        system_prompt: str | None = None,
    ) -> str:
        correlation_id = str(uuid.uuid4())
        config = await self._load_config()
        if not config.enabled:
            return correlation_id

        try:
            analysis = self.privacy.analyze(actor_text)
            verbosity = config.log_level
            keep_prompt = config.include_system_prompts and verbosity != VerbosityLevel.MINIMAL
            self._pending[correlation_id] = PendingCapture(
                id=correlation_id,
                timestamp=utcnow(),
                session_id=self.session_id,
                backend=backend or BackendDescriptor(name="unknown", provider="unknown"),
                user_message=self.privacy.redact(actor_text) if analysis.contains_sensitive_data else actor_text,
                context=json.dumps(self._snapshot_context(context or {}, verbosity)),
                system_prompt=self.privacy.redact(system_prompt) if keep_prompt and system_prompt else None,
                contains_sensitive_data=analysis.contains_sensitive_data,
                classification=analysis.classification,
            )
        except Exception:
            logger.warning("Failed to open capture %s", correlation_id, exc_info=True)
        return correlation_id

    async def close(
        self,
        correlation_id: str,
        response: AIResponse,
        metrics: ResponseMetrics | None = None,
    ) -> str | None:
        """Persist the finished exchange. Returns the stored record id, if any."""
        pending = self._pending.get(correlation_id)
        if pending is None:
            logger.debug("No pending capture for %s", correlation_id)
            return None

        try:
            config = await self._load_config()
            if not config.enabled:
                return None

            analysis = self.privacy.analyze(response.text)
            verbosity = config.log_level
            detailed = verbosity != VerbosityLevel.MINIMAL
            metrics = metrics or ResponseMetrics()

            record = InteractionRecord(
                id=pending.id,
                timestamp=pending.timestamp,
                session_id=pending.session_id,
                backend=pending.backend,
                user_message=pending.user_message,
                ai_response=self.privacy.redact(response.text) if analysis.contains_sensitive_data else response.text,
                context=pending.context,
                system_prompt=pending.system_prompt,
                reasoning=self.privacy.redact(response.reasoning) if detailed and response.reasoning else None,
                actions=json.dumps(self.privacy.redact_object(response.actions)) if detailed else "[]",
                suggestions=json.dumps(self.privacy.redact_object(response.suggestions)) if detailed else "[]",
                response_time_ms=(time.monotonic() - pending.started) * 1000,
                token_count=metrics.token_count if config.include_performance_metrics else None,
                contains_sensitive_data=pending.contains_sensitive_data or analysis.contains_sensitive_data,
                classification=highest_classification(pending.classification, analysis.classification),
            )
            record_id = await self._persist(record)
            if record_id and config.include_tool_executions and detailed:
                await self._log_actions(record_id, response.actions, record.response_time_ms)
            return record_id
        except Exception as e:
            logger.warning("Failed to close capture %s: %s", correlation_id, e)
            self._notify(CaptureStatus.ERROR, str(e))
            return None
        finally:
            self._pending.pop(correlation_id, None)

    async def fail(self, correlation_id: str, error: BaseException) -> str | None:
        """Record a backend failure for an open correlation."""
        pending = self._pending.get(correlation_id)
        if pending is None:
            logger.debug("No pending capture for %s", correlation_id)
            return None

        try:
            config = await self._load_config()
            if not config.enabled:
                return None
            record = InteractionRecord(
                id=pending.id,
                timestamp=pending.timestamp,
                session_id=pending.session_id,
                backend=pending.backend,
                user_message=pending.user_message,
                ai_response="",
                context=pending.context,
                system_prompt=pending.system_prompt,
                response_time_ms=(time.monotonic() - pending.started) * 1000,
                error=self.privacy.redact(str(error)) or type(error).__name__,
                error_code=extract_error_code(error),
                contains_sensitive_data=pending.contains_sensitive_data,
                classification=pending.classification,
            )
            record_id = await self._persist(record, status=CaptureStatus.ERROR, message=str(error))
            return record_id
        except Exception as e:
            logger.warning("Failed to record error for %s: %s", correlation_id, e)
            self._notify(CaptureStatus.ERROR, str(e))
            return None
        finally:
            self._pending.pop(correlation_id, None)

    async def log_tool_execution(
        self,
        parent_id: str,
        tool_name: str,
        args: dict[str, Any],
        result: Any,
        duration_ms: float,
        reasoning: str | None = None,
        confirmed: bool | None = None,
    ) -> str | None:
        config = await self._load_config()
        if not config.enabled or not config.include_tool_executions:
            return None

        try:
            if await self.store.get(parent_id) is None:
                logger.debug("Skipping tool record for unknown interaction %s", parent_id)
                return None

            success, error = _result_outcome(result)
            record = ToolExecutionRecord(
                id=str(uuid.uuid4()),
                interaction_id=parent_id,
                tool_name=tool_name,
                arguments=self._scrub_json(args),
                result=self._scrub_json(_result_payload(result)),
                execution_time_ms=duration_ms,
                success=success,
                error=self.privacy.redact(error) if error else None,
                reasoning=self.privacy.redact(reasoning) if reasoning else None,
                user_confirmed=confirmed,
            )
            return await self.store.create_tool_execution(record)
        except StorageError as e:
            logger.warning("Failed to log tool execution %s: %s", tool_name, e)
            self._notify(CaptureStatus.ERROR, str(e))
            return None

    async def _persist(
        self,
        record: InteractionRecord,
        status: CaptureStatus = CaptureStatus.CAPTURE,
        message: str | None = None,
    ) -> str | None:
        try:
            record_id = await self.store.create(record)
        except StorageError as e:
            logger.warning("Failed to store interaction %s: %s", record.id, e)
            self._notify(CaptureStatus.ERROR, str(e))
            return None
        self._notify(status, message)
        return record_id

    async def _log_actions(self, record_id: str, actions: list[dict], total_ms: float) -> None:
        """Store structured ``{"type", "parameters"}`` actions as tool records."""
        typed = [a for a in actions if isinstance(a.get("type"), str) and isinstance(a.get("parameters"), dict)]
        if not typed:
            return
        per_action = total_ms / len(typed)
        for action in typed:
            name = action["type"].lower()
            await self.log_tool_execution(
                record_id,
                name,
                action["parameters"],
                {"success": True, "data": action["parameters"], "user_message": f"Executed {name}"},
                per_action,
            )

    async def _load_config(self) -> RetentionConfig:
        try:
            config = await self.store.get_retention_config()
        except Exception as e:
            logger.warning("Failed to load retention config, using defaults: %s", e)
            return self.default_config
        return config or self.default_config

    def _snapshot_context(self, context: dict[str, Any], verbosity: VerbosityLevel) -> dict[str, Any]:
        if verbosity == VerbosityLevel.MINIMAL:
            return {}
        if verbosity == VerbosityLevel.DETAILED:
            return self.privacy.redact_object(context)

        sanitized = {k: v for k, v in context.items() if k != "recent_activity"}
        task = sanitized.get("current_task")
        if isinstance(task, dict) and "description" in task:
            sanitized["current_task"] = {**task, "description": "[TASK_DESCRIPTION]"}
        session = sanitized.get("active_session")
        if isinstance(session, dict) and "notes" in session:
            sanitized["active_session"] = {**session, "notes": "[SESSION_NOTES]"}
        return self.privacy.redact_object(sanitized)

    def _scrub_json(self, value: Any) -> str:
        text = json.dumps(value, default=str)
        if self.privacy.analyze(text).contains_sensitive_data:
            return json.dumps(self.privacy.redact_object(json.loads(text)))
        return text

    def _notify(self, status: CaptureStatus, message: str | None = None) -> None:
        if self.status_callback is None:
            return
        try:
            self.status_callback(status, message)
        except Exception:
            logger.warning("Capture status callback failed", exc_info=True)


def _result_payload(result: Any) -> Any:
    if hasattr(result, "to_dict"):
        return result.to_dict()
    return result


def _result_outcome(result: Any) -> tuple[bool, str | None]:
    payload = _result_payload(result)
    if isinstance(payload, dict):
        return bool(payload.get("success", True)), payload.get("error")
    return True, None
