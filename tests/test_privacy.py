import json

import pytest
from conftest import make_record

from core.types import Classification
from memory.types import ToolExecutionRecord
from privacy.filter import PrivacyFilter
from privacy.patterns import RECORD_PLACEHOLDER


def test_redacts_email_and_phone(privacy):
    redacted = privacy.redact("Contact me at a@b.com or call 555-123-4567")
    assert redacted == "Contact me at [EMAIL_REDACTED] or call [PHONE_REDACTED]"


def test_analyze_email_phone(privacy):
    analysis = privacy.analyze("Contact me at a@b.com or call 555-123-4567")
    assert analysis.contains_sensitive_data
    assert [m.type for m in analysis.matches] == ["email", "phone"]
    assert analysis.classification == Classification.CONFIDENTIAL
    assert 0 < analysis.confidence_score <= 1


def test_analyze_empty(privacy):
    analysis = privacy.analyze("")
    assert analysis.matches == ()
    assert not analysis.contains_sensitive_data
    assert analysis.classification == Classification.PUBLIC
    assert analysis.confidence_score == 0


@pytest.mark.parametrize(
    "text",
    [
        "Contact me at a@b.com or call 555-123-4567",
        "password: eyJhbGciOiJIUzI1NiJ9",
        "secret=Bearer abcdefghijklmnop",
        "pass: a@b.com",
        "confidential: password=hunter2",
        "this memo is classified",
        "token sk-abcdefghijklmnopqrstuvwxyz123456 on 10.0.0.1",
        "postgres://admin:pw@db.local/app in /home/alice/project",
    ],
)
def test_redact_is_idempotent(privacy, text):
    once = privacy.redact(text)
    assert privacy.redact(once) == once


def test_value_inside_assignment_keeps_specific_placeholder(privacy):
    assert privacy.redact("password: eyJhbGciOiJIUzI1NiJ9") == "password: [JWT_REDACTED]"
    assert privacy.detect("password: [JWT_REDACTED]") == []


def test_password_is_confidential(privacy):
    analysis = privacy.analyze("my password: hunter2")
    assert analysis.contains_sensitive_data
    assert analysis.classification == Classification.CONFIDENTIAL
    assert "hunter2" not in privacy.redact("my password: hunter2")


def test_public_text(privacy):
    analysis = privacy.analyze("Can you share a tutorial example for the documentation?")
    assert not analysis.contains_sensitive_data
    assert analysis.classification == Classification.PUBLIC
    assert analysis.confidence_score == 0.0


def test_internal_text(privacy):
    analysis = privacy.analyze("Plan the team meeting about the project budget")
    assert analysis.classification == Classification.INTERNAL


def test_many_confidential_keywords(privacy):
    analysis = privacy.analyze("this personal credential is sensitive")
    assert analysis.classification == Classification.CONFIDENTIAL


def test_keyword_is_word_bounded(privacy):
    # "classified" inside "declassified" is not a standalone word
    assert privacy.detect("the report was declassified") == []
    matches = privacy.detect("this memo is classified")
    assert [m.type for m in matches] == ["keyword"]
    assert matches[0].confidence == pytest.approx(0.4)


def test_keyword_redaction_uses_generic_placeholder(privacy):
    assert privacy.redact("this memo is classified") == "this memo is [REDACTED]"


def test_keywords_skipped_after_confident_match(privacy):
    matches = privacy.detect("confidential: mail bob@example.com")
    assert [m.type for m in matches] == ["email"]


def test_bearer_token_not_double_matched(privacy):
    matches = privacy.detect("Authorization: Bearer abcdefghijklmnop")
    assert len(matches) == 1
    assert matches[0].type == "bearer_token"


def test_api_key_confidence(privacy):
    short = privacy.detect("key sk-abcdefghijklmnopqrstuv")
    long = privacy.detect("key sk-" + "a" * 40)
    assert short[0].confidence == pytest.approx(0.6)
    assert long[0].confidence == pytest.approx(0.9)


def test_db_connection_and_paths(privacy):
    text = "connect to postgres://admin:pw@db.local/app from /home/alice/project"
    redacted = privacy.redact(text)
    assert "[DB_CONNECTION_REDACTED]" in redacted
    assert "[PATH_REDACTED]/project" in redacted
    assert "alice" not in redacted


def test_empty_and_non_string(privacy):
    assert privacy.redact("") == ""
    analysis = privacy.analyze(None)  # type: ignore[arg-type]
    assert not analysis.contains_sensitive_data
    assert analysis.classification == Classification.PUBLIC


def test_anonymize(privacy):
    text = "John Smith emailed jane@example.com on 2024-03-01"
    anonymized = privacy.anonymize(text)
    assert "[NAME]" in anonymized
    assert "[EMAIL]" in anonymized
    assert "[DATE]" in anonymized
    assert "John Smith" not in anonymized


def test_redact_object_nested(privacy):
    value = {"to": ["a@example.com"], "count": 3, "meta": {"note": "call 555-123-4567"}}
    redacted = privacy.redact_object(value)
    assert redacted["to"] == ["[EMAIL_REDACTED]"]
    assert redacted["count"] == 3
    assert "[PHONE_REDACTED]" in redacted["meta"]["note"]


def test_should_filter_for_export():
    clean = make_record()
    flagged = make_record(contains_sensitive_data=True)
    confidential = make_record(classification=Classification.CONFIDENTIAL)
    assert not PrivacyFilter.should_filter_for_export(clean)
    assert PrivacyFilter.should_filter_for_export(flagged)
    assert PrivacyFilter.should_filter_for_export(confidential)
    assert not PrivacyFilter.should_filter_for_export(flagged, include_sensitive=True)


def test_redact_record_blanks_flagged_bodies(privacy):
    record = make_record(user_message="my password: hunter2", contains_sensitive_data=True)
    redacted = privacy.redact_record(record)
    assert redacted.user_message == RECORD_PLACEHOLDER
    assert redacted.ai_response == RECORD_PLACEHOLDER
    assert redacted.id == record.id


def test_anonymize_record_replaces_ids(privacy):
    record = make_record(user_message="ask Jane Doe")
    anonymized = privacy.anonymize_record(record)
    assert anonymized.id.startswith("anon_")
    assert anonymized.session_id.startswith("anon_")
    assert anonymized.user_message == "ask [NAME]"


def _tool_execution(**overrides) -> ToolExecutionRecord:
    fields = dict(
        id="tool-1",
        interaction_id="rec-1",
        tool_name="create_task",
        arguments=json.dumps({"title": "call Jane Doe on 2024-03-01"}),
        result=json.dumps({"success": True}),
        execution_time_ms=5.0,
        success=True,
        reasoning="user asked to call Jane Doe",
    )
    fields.update(overrides)
    return ToolExecutionRecord(**fields)


def test_redact_tool_execution_blanks_payloads(privacy):
    redacted = privacy.redact_tool_execution(_tool_execution(error="Jane Doe not found"))
    assert json.loads(redacted.arguments) == RECORD_PLACEHOLDER
    assert json.loads(redacted.result) == RECORD_PLACEHOLDER
    assert redacted.error == RECORD_PLACEHOLDER
    assert redacted.reasoning == RECORD_PLACEHOLDER
    assert redacted.tool_name == "create_task"
    assert redacted.success is True


def test_redact_tool_execution_keeps_missing_fields(privacy):
    redacted = privacy.redact_tool_execution(_tool_execution(reasoning=None))
    assert redacted.error is None
    assert redacted.reasoning is None


def test_anonymize_tool_execution(privacy):
    anonymized = privacy.anonymize_tool_execution(_tool_execution())
    assert anonymized.id.startswith("anon_")
    assert json.loads(anonymized.arguments) == {"title": "call [NAME] on [DATE]"}
    assert json.loads(anonymized.result) == {"success": True}
    assert anonymized.reasoning == "user asked to call [NAME]"


def test_anonymize_tool_execution_non_json(privacy):
    anonymized = privacy.anonymize_tool_execution(_tool_execution(arguments="for Jane Doe"))
    assert anonymized.arguments == "for [NAME]"
