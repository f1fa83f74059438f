"""Sensitive-data detection, classification and redaction for AI interactions.

Detection is pattern based and best-effort. Nothing here raises on odd
input: a value that cannot be scanned is treated as having no matches.
"""

import dataclasses
import json
import uuid
from dataclasses import dataclass
from typing import Any

from core.types import Classification
from memory.types import InteractionRecord, ToolExecutionRecord
from privacy.patterns import (
    ANONYMIZE_PATTERNS,
    CLASSIFICATION_KEYWORDS,
    DEFAULT_PLACEHOLDER,
    HIGH_CONFIDENCE,
    KEYWORD_CONFIDENCE,
    KEYWORD_PATTERNS,
    PLACEHOLDER_PATTERN,
    PLACEHOLDERS,
    RECORD_PLACEHOLDER,
    SENSITIVE_PATTERNS,
    TYPED_PLACEHOLDER_PATTERN,
    pattern_confidence,
)


@dataclass(frozen=True)
class SensitiveMatch:
    type: str
    match: str
    start: int
    end: int
    confidence: float

    def overlaps(self, start: int, end: int) -> bool:
        return start < self.end and end > self.start


@dataclass(frozen=True)
class PrivacyAnalysis:
    contains_sensitive_data: bool
    classification: Classification
    matches: tuple[SensitiveMatch, ...]
    confidence_score: float


class PrivacyFilter:
    def analyze(self, text: str) -> PrivacyAnalysis:
        """Classify text and report every sensitive span found in it."""
        if not isinstance(text, str):
            text = ""
        matches = self.detect(text)
        return PrivacyAnalysis(
            contains_sensitive_data=bool(matches),
            classification=self._classify(text, matches),
            matches=tuple(matches),
            confidence_score=self._confidence_score(text, matches),
        )

    def detect(self, text: str) -> list[SensitiveMatch]:
        matches: list[SensitiveMatch] = []
        placeholders = [(m.start(), m.end()) for m in PLACEHOLDER_PATTERN.finditer(text)]

        def claim(kind: str, start: int, end: int, confidence: float) -> None:
            if any(start < p_end and end > p_start for p_start, p_end in placeholders):
                return
            if any(m.overlaps(start, end) for m in matches):
                return
            matches.append(SensitiveMatch(kind, text[start:end], start, end, confidence))

        for kind, pattern in SENSITIVE_PATTERNS:
            for m in pattern.finditer(text):
                claim(kind, m.start(), m.end(), pattern_confidence(kind, m.group(0)))

        # A typed placeholder means a pattern pass already ran over this text.
        already_redacted = TYPED_PLACEHOLDER_PATTERN.search(text) is not None
        if not already_redacted and not any(m.confidence > HIGH_CONFIDENCE for m in matches):
            for pattern in KEYWORD_PATTERNS:
                for m in pattern.finditer(text):
                    claim("keyword", m.start(), m.end(), KEYWORD_CONFIDENCE)

        return matches

    def redact(self, text: str) -> str:
        """Replace each detected span with a typed placeholder."""
        if not isinstance(text, str) or not text:
            return text
        redacted = text
        # Right to left so earlier offsets stay valid.
        for m in sorted(self.detect(text), key=lambda m: m.start, reverse=True):
            placeholder = PLACEHOLDERS.get(m.type, DEFAULT_PLACEHOLDER)
            redacted = redacted[: m.start] + placeholder + redacted[m.end :]
        return redacted

    def anonymize(self, text: str) -> str:
        """Blank names, contacts and dates, then redact what remains."""
        if not isinstance(text, str) or not text:
            return text
        anonymized = text
        for pattern, placeholder in ANONYMIZE_PATTERNS:
            anonymized = pattern.sub(placeholder, anonymized)
        return self.redact(anonymized)

    def redact_object(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.redact(value)
        if isinstance(value, list):
            return [self.redact_object(item) for item in value]
        if isinstance(value, dict):
            return {key: self.redact_object(item) for key, item in value.items()}
        return value

    def anonymize_object(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.anonymize(value)
        if isinstance(value, list):
            return [self.anonymize_object(item) for item in value]
        if isinstance(value, dict):
            return {key: self.anonymize_object(item) for key, item in value.items()}
        return value

    def redact_record(self, record: InteractionRecord) -> InteractionRecord:
        """Redact a stored record; flagged records lose their message bodies entirely."""
        flagged = self.should_filter_for_export(record)

        def scrub(value: str | None) -> str | None:
            if not value:
                return value
            return RECORD_PLACEHOLDER if flagged else self.redact(value)

        return dataclasses.replace(
            record,
            user_message=scrub(record.user_message) or "",
            ai_response=scrub(record.ai_response) or "",
            system_prompt=scrub(record.system_prompt),
            reasoning=scrub(record.reasoning),
            context=self.redact(record.context),
            actions=self.redact(record.actions),
            suggestions=self.redact(record.suggestions),
        )

    def anonymize_record(self, record: InteractionRecord) -> InteractionRecord:
        return dataclasses.replace(
            record,
            id=_anonymous_id(),
            session_id=_anonymous_id(),
            user_message=self.anonymize(record.user_message),
            ai_response=self.anonymize(record.ai_response),
            system_prompt=self.anonymize(record.system_prompt) if record.system_prompt else None,
            reasoning=self.anonymize(record.reasoning) if record.reasoning else None,
            context=self.anonymize(record.context),
            actions=self.anonymize(record.actions),
            suggestions=self.anonymize(record.suggestions),
        )

    def redact_tool_execution(self, execution: ToolExecutionRecord) -> ToolExecutionRecord:
        """Blank a tool call belonging to a flagged record; timing and outcome are kept."""

        def scrub(value: str | None) -> str | None:
            return RECORD_PLACEHOLDER if value else value

        return dataclasses.replace(
            execution,
            arguments=json.dumps(RECORD_PLACEHOLDER),
            result=json.dumps(RECORD_PLACEHOLDER),
            error=scrub(execution.error),
            reasoning=scrub(execution.reasoning),
        )

    def anonymize_tool_execution(self, execution: ToolExecutionRecord) -> ToolExecutionRecord:
        return dataclasses.replace(
            execution,
            id=_anonymous_id(),
            arguments=self._anonymize_json(execution.arguments),
            result=self._anonymize_json(execution.result),
            error=self.anonymize(execution.error) if execution.error else None,
            reasoning=self.anonymize(execution.reasoning) if execution.reasoning else None,
        )

    def _anonymize_json(self, raw: str) -> str:
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            return self.anonymize(raw)
        return json.dumps(self.anonymize_object(value))

    @staticmethod
    def should_filter_for_export(record: InteractionRecord, include_sensitive: bool = False) -> bool:
        if include_sensitive:
            return False
        return record.contains_sensitive_data or record.classification == Classification.CONFIDENTIAL

    @staticmethod
    def _classify(text: str, matches: list[SensitiveMatch]) -> Classification:
        lowered = text.lower()
        scores = {
            tier: sum(1 for keyword in keywords if keyword in lowered)
            for tier, keywords in CLASSIFICATION_KEYWORDS.items()
        }

        if any(m.confidence > 0.8 for m in matches):
            return Classification.CONFIDENTIAL
        if scores["confidential"] >= 3:
            return Classification.CONFIDENTIAL
        if matches or scores["internal"] > scores["public"]:
            return Classification.INTERNAL
        return Classification.PUBLIC

    @staticmethod
    def _confidence_score(text: str, matches: list[SensitiveMatch]) -> float:
        if not matches or not text:
            return 0.0
        mean = sum(m.confidence for m in matches) / len(matches)
        density = min(len(matches) / (len(text) / 100), 1.0)
        return min(mean * 0.8 + density * 0.2, 1.0)


def _anonymous_id() -> str:
    return f"anon_{uuid.uuid4().hex[:9]}"
