import json
import re
from dataclasses import dataclass, field
from typing import Any

from analytics.heuristics import KeywordIntentClassifier, KeywordStressClassifier, TextClassifier
from core.log import get_logger
from core.types import ImpactLevel
from memory.store import InteractionStore
from memory.types import FeedbackEntry, InteractionRecord, ToolExecutionRecord

logger = get_logger(__name__)

FEEDBACK_MARKER = "[USER_FEEDBACK]:"

_REASONING_STEP_RE = re.compile(r"\b\d+\.(?!\d)|Step \d+:|First,|Then,|Next,|Finally,", re.IGNORECASE)
_RESOURCE_KEYS = ("file", "path", "id")


def extract_reasoning_chain(reasoning: str | None) -> list[str]:
    if not reasoning:
        return []
    text = strip_legacy_feedback(reasoning)
    return [step.strip() for step in _REASONING_STEP_RE.split(text) if step.strip()]


def _find_legacy_feedback(reasoning: str) -> tuple[int, int, dict[str, Any]] | None:
    start = reasoning.find(FEEDBACK_MARKER)
    if start < 0:
        return None
    brace = reasoning.find("{", start + len(FEEDBACK_MARKER))
    if brace < 0:
        raise ValueError("feedback marker without a JSON object")
    data, end = json.JSONDecoder().raw_decode(reasoning, brace)
    if not isinstance(data, dict):
        raise ValueError("feedback block is not a JSON object")
    return start, end, data


def parse_legacy_feedback(interaction_id: str, reasoning: str | None) -> FeedbackEntry | None:
    """Read feedback appended to the reasoning field by older versions."""
    if not reasoning:
        return None
    try:
        found = _find_legacy_feedback(reasoning)
        if found is None:
            return None
        return FeedbackEntry.from_dict(interaction_id, found[2])
    except (ValueError, KeyError, TypeError) as e:
        logger.warning("Ignoring unreadable legacy feedback on %s: %s", interaction_id, e)
        return None


def strip_legacy_feedback(reasoning: str) -> str:
    try:
        found = _find_legacy_feedback(reasoning)
    except ValueError:
        return reasoning
    if found is None:
        return reasoning
    start, end, _ = found
    return (reasoning[:start].rstrip() + reasoning[end:]).strip()


def assess_impact(tool_name: str) -> ImpactLevel:
    name = tool_name.lower()
    if "delete" in name or "remove" in name:
        return ImpactLevel.HIGH
    if "update" in name or "modify" in name:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def extract_resources(arguments: str) -> list[str]:
    try:
        parsed = json.loads(arguments)
    except ValueError:
        return []
    if not isinstance(parsed, dict):
        return []
    return [f"{key}: {value}" for key, value in parsed.items() if any(k in key for k in _RESOURCE_KEYS)]


@dataclass
class EnrichedToolExecution:
    """Stored tool record plus advisory fields. Impact and resources are never used for authorization."""

    record: ToolExecutionRecord
    impact: ImpactLevel
    resources_accessed: list[str]

    @property
    def tool_name(self) -> str:
        return self.record.tool_name

    @classmethod
    def from_record(cls, record: ToolExecutionRecord) -> "EnrichedToolExecution":
        return cls(record, assess_impact(record.tool_name), extract_resources(record.arguments))

    def to_dict(self) -> dict[str, Any]:
        r = self.record
        return {
            "id": r.id,
            "toolName": r.tool_name,
            "arguments": _loads_or_raw(r.arguments),
            "result": _loads_or_raw(r.result),
            "executionTime": r.execution_time_ms,
            "success": r.success,
            "error": r.error,
            "reasoning": r.reasoning,
            "userConfirmed": r.user_confirmed,
            "impactLevel": self.impact.value,
            "resourcesAccessed": self.resources_accessed,
            "createdAt": r.created_at.isoformat(),
        }


@dataclass
class EnrichedRecord:
    record: InteractionRecord
    tool_executions: list[EnrichedToolExecution] = field(default_factory=list)
    intent: str = "general_interaction"
    reasoning_chain: list[str] = field(default_factory=list)
    feedback: FeedbackEntry | None = None
    stress_indicators: list[str] = field(default_factory=list)

    @property
    def tool_names(self) -> list[str]:
        return [t.tool_name for t in self.tool_executions]

    def to_dict(self) -> dict[str, Any]:
        r = self.record
        return {
            "id": r.id,
            "timestamp": r.timestamp.isoformat(),
            "sessionId": r.session_id,
            "backend": {
                "name": r.backend.name,
                "provider": r.backend.provider,
                "version": r.backend.version,
                "parameters": r.backend.parameters,
            },
            "userMessage": r.user_message,
            "aiResponse": r.ai_response,
            "systemPrompt": r.system_prompt,
            "context": _loads_or_raw(r.context),
            "reasoning": strip_legacy_feedback(r.reasoning) if r.reasoning else None,
            "actions": _loads_or_raw(r.actions),
            "suggestions": _loads_or_raw(r.suggestions),
            "responseTime": r.response_time_ms,
            "tokenCount": r.token_count,
            "error": r.error,
            "errorCode": r.error_code,
            "containsSensitiveData": r.contains_sensitive_data,
            "classification": r.classification.value,
            "intent": self.intent,
            "reasoningChain": self.reasoning_chain,
            "stressIndicators": self.stress_indicators,
            "feedback": self.feedback.to_dict() if self.feedback else None,
            "toolCalls": [t.to_dict() for t in self.tool_executions],
            "createdAt": r.created_at.isoformat(),
            "updatedAt": r.updated_at.isoformat(),
        }


class RecordEnricher:
    """Re-hydrates stored records with their tool executions and derived fields."""

    def __init__(
        self,
        store: InteractionStore,
        intent_classifier: TextClassifier | None = None,
        stress_classifier: KeywordStressClassifier | None = None,
    ):
        self.store = store
        self.intent_classifier = intent_classifier or KeywordIntentClassifier()
        self.stress_classifier = stress_classifier or KeywordStressClassifier()

    async def enrich(self, record: InteractionRecord) -> EnrichedRecord:
        executions = await self.store.list_tool_executions(record.id)
        feedback = await self.store.get_feedback(record.id)
        if feedback is None:
            feedback = parse_legacy_feedback(record.id, record.reasoning)
        return EnrichedRecord(
            record=record,
            tool_executions=[EnrichedToolExecution.from_record(e) for e in executions],
            intent=self.intent_classifier.classify(record.user_message),
            reasoning_chain=extract_reasoning_chain(record.reasoning),
            feedback=feedback,
            stress_indicators=self.stress_classifier.indicators(record.user_message),
        )

    async def enrich_all(self, records: list[InteractionRecord]) -> list[EnrichedRecord]:
        return [await self.enrich(r) for r in records]


def _loads_or_raw(value: str | None) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except ValueError:
        return value
