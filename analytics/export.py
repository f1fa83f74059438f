import csv
import io
import json
from dataclasses import dataclass
from typing import Any

from analytics.enrichment import EnrichedToolExecution
from core.log import get_logger
from core.types import ExportFormat
from memory.store import InteractionStore
from memory.types import InteractionRecord, LogFilter, ToolExecutionRecord, utcnow
from privacy.filter import PrivacyFilter

logger = get_logger(__name__)

CSV_HEADER = [
    "ID",
    "Timestamp",
    "Session ID",
    "Backend",
    "User Message",
    "AI Response",
    "Response Time",
    "Tokens",
    "Has Error",
    "Classification",
]

MEDIA_TYPES = {
    ExportFormat.JSON: "application/json",
    ExportFormat.CSV: "text/csv",
}


@dataclass
class ExportResult:
    content: str
    filename: str
    media_type: str
    total_records: int
    contains_sensitive_data: bool


def export_filename(fmt: ExportFormat, log_filter: LogFilter | None = None) -> str:
    name = f"ai-interaction-logs_{utcnow().date().isoformat()}"
    if log_filter is not None:
        if log_filter.start_date and log_filter.end_date:
            name += f"_{log_filter.start_date.date().isoformat()}_to_{log_filter.end_date.date().isoformat()}"
        if log_filter.backend:
            name += f"_{log_filter.backend}"
        if log_filter.has_errors is True:
            name += "_errors-only"
        elif log_filter.has_errors is False:
            name += "_success-only"
        if log_filter.has_tool_calls is True:
            name += "_with-tools"
        elif log_filter.has_tool_calls is False:
            name += "_no-tools"
    return f"{name}.{fmt.value}"


class LogExporter:
    def __init__(self, store: InteractionStore, privacy: PrivacyFilter | None = None):
        self.store = store
        self.privacy = privacy or PrivacyFilter()

    async def export(
        self,
        fmt: ExportFormat,
        log_filter: LogFilter | None = None,
        include_sensitive: bool = False,
        anonymize: bool = False,
    ) -> ExportResult:
        records = await self.store.list_records(log_filter)
        processed = [self._process(r, include_sensitive, anonymize) for r in records]

        if fmt == ExportFormat.JSON:
            tool_calls = []
            for r in records:
                executions = await self.store.list_tool_executions(r.id)
                tool_calls.append([self._process_tool(r, t, include_sensitive, anonymize) for t in executions])
            content = self.to_json(processed, tool_calls, log_filter)
        else:
            content = self.to_csv(processed)

        logger.info("Exported %d records as %s", len(records), fmt.value)
        return ExportResult(
            content=content,
            filename=export_filename(fmt, log_filter),
            media_type=MEDIA_TYPES[fmt],
            total_records=len(records),
            contains_sensitive_data=any(r.contains_sensitive_data for r in records),
        )

    def _process(self, record: InteractionRecord, include_sensitive: bool, anonymize: bool) -> InteractionRecord:
        if self.privacy.should_filter_for_export(record, include_sensitive):
            record = self.privacy.redact_record(record)
        if anonymize:
            record = self.privacy.anonymize_record(record)
        return record

    def _process_tool(
        self,
        parent: InteractionRecord,
        execution: ToolExecutionRecord,
        include_sensitive: bool,
        anonymize: bool,
    ) -> ToolExecutionRecord:
        # Tool calls follow their parent record's export treatment.
        if self.privacy.should_filter_for_export(parent, include_sensitive):
            execution = self.privacy.redact_tool_execution(execution)
        if anonymize:
            execution = self.privacy.anonymize_tool_execution(execution)
        return execution

    @staticmethod
    def to_json(records: list[InteractionRecord], tool_calls: list[list], log_filter: LogFilter | None) -> str:
        payload = {
            "metadata": {
                "totalRecords": len(records),
                "generatedAt": utcnow().isoformat(),
                "filters": log_filter.to_dict() if log_filter else {},
            },
            "records": [_record_dict(r, calls) for r, calls in zip(records, tool_calls, strict=True)],
        }
        return json.dumps(payload, indent=2)

    @staticmethod
    def to_csv(records: list[InteractionRecord]) -> str:
        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow(CSV_HEADER)
        for r in records:
            writer.writerow(
                [
                    r.id,
                    r.timestamp.isoformat(),
                    r.session_id,
                    r.backend.name,
                    r.user_message,
                    r.ai_response,
                    r.response_time_ms,
                    r.token_count if r.token_count is not None else "",
                    "true" if r.error else "false",
                    r.classification.value,
                ]
            )
        return buf.getvalue()


def _record_dict(record: InteractionRecord, tool_calls: list) -> dict[str, Any]:
    return {
        "id": record.id,
        "timestamp": record.timestamp.isoformat(),
        "sessionId": record.session_id,
        "backend": {
            "name": record.backend.name,
            "provider": record.backend.provider,
            "version": record.backend.version,
            "parameters": record.backend.parameters,
        },
        "userMessage": record.user_message,
        "systemPrompt": record.system_prompt,
        "context": record.context,
        "aiResponse": record.ai_response,
        "actions": record.actions,
        "suggestions": record.suggestions,
        "reasoning": record.reasoning,
        "toolCalls": [EnrichedToolExecution.from_record(t).to_dict() for t in tool_calls],
        "responseTime": record.response_time_ms,
        "tokenCount": record.token_count,
        "error": record.error,
        "errorCode": record.error_code,
        "containsSensitiveData": record.contains_sensitive_data,
        "classification": record.classification.value,
        "createdAt": record.created_at.isoformat(),
        "updatedAt": record.updated_at.isoformat(),
    }
