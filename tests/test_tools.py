import json

import pytest

from core.config import ToolsConfig
from core.types import CapabilityTier
from tools import register_all_tools
from tools.engine import CapabilityGrant, ToolExecutionEngine
from tools.formatters import display_name, format_priority, format_status, user_message
from tools.tasks import TaskBoard


@pytest.fixture
def engine():
    return ToolExecutionEngine(
        CapabilityGrant.of([CapabilityTier.READ_ONLY, CapabilityTier.MODIFY_TASKS, CapabilityTier.TIMER_CONTROL])
    )


def test_default_grant_is_read_only():
    engine = ToolExecutionEngine()
    assert engine.has_permission("get_tasks")
    assert not engine.has_permission("create_task")
    assert not engine.has_permission("start_timer")


def test_full_access_overrides():
    engine = ToolExecutionEngine(CapabilityGrant.of([CapabilityTier.FULL_ACCESS]))
    for name in ("get_tasks", "create_task", "update_task", "start_timer", "stop_timer"):
        assert engine.has_permission(name)


def test_unknown_tool(engine):
    verdict = engine.validate("unknown_tool")
    assert verdict.allowed is False
    assert "unknown tool" in verdict.reason
    assert engine.has_permission("unknown_tool") is False
    assert engine.requires_confirmation("unknown_tool") is True


def test_validate_missing_permission():
    engine = ToolExecutionEngine(CapabilityGrant.of([CapabilityTier.READ_ONLY]))
    verdict = engine.validate("create_task", {"title": "x"})
    assert verdict.allowed is False
    assert verdict.reason == "insufficient permissions: missing modify_tasks"


def test_validate_requires_confirmation(engine):
    assert engine.validate("create_task").requires_confirmation is True
    assert engine.validate("update_task").requires_confirmation is True
    assert engine.validate("get_tasks").requires_confirmation is False
    assert engine.validate("start_timer").requires_confirmation is False


def test_auto_approve_skips_confirmation():
    engine = ToolExecutionEngine(
        CapabilityGrant.of([CapabilityTier.MODIFY_TASKS], auto_approve=["create_task"])
    )
    verdict = engine.validate("create_task")
    assert verdict.allowed is True
    assert verdict.requires_confirmation is False


def test_grant_from_config():
    grant = CapabilityGrant.from_config(ToolsConfig(permissions=["timer_control"], confirmation_timeout=5))
    assert grant.tiers == frozenset({CapabilityTier.TIMER_CONTROL})
    assert grant.confirmation_timeout == 5


def test_replace_grant(engine):
    engine.replace_grant(CapabilityGrant())
    assert engine.available_tools() == ["get_tasks", "get_time_data", "analyze_productivity"]


def test_available_tools(engine):
    assert set(engine.available_tools()) == {
        "get_tasks",
        "get_time_data",
        "analyze_productivity",
        "create_task",
        "update_task",
        "start_timer",
        "stop_timer",
    }


def test_tool_info(engine):
    info = engine.tool_info("create_task")
    assert info is not None
    assert info.requires_confirmation is True
    assert engine.tool_info("nope") is None


def test_format_empty_task_list(engine):
    result = engine.format_result("get_tasks", '{"success":true,"tasks":[]}', 50)
    assert result.success is True
    assert result.user_message == "No tasks found matching your criteria"
    assert result.metadata["execution_time_ms"] == 50
    assert result.metadata["tool_name"] == "get_tasks"


def test_format_task_list_preview(engine):
    tasks = [
        {"title": f"Task {i}", "priority": 2, "status": "in_progress", "due_date": "2024-05-01T10:00:00"}
        for i in range(5)
    ]
    result = engine.format_result("get_tasks", json.dumps({"success": True, "tasks": tasks}), 1)
    lines = result.user_message.splitlines()
    assert lines[0] == "Found 5 tasks:"
    assert "1. **Task 0** (High, In Progress)" in lines
    assert "   Due: 2024-05-01" in lines
    assert "Task 3" not in result.user_message
    assert lines[-1] == "...and 2 more tasks"


def test_format_malformed_result(engine):
    result = engine.format_result("create_task", "not json", 5)
    assert result.success is False
    assert result.user_message == "Error executing Task Creation: invalid response format"
    assert result.error == "Failed to parse tool result"


def test_format_missing_fields(engine):
    result = engine.format_result("create_task", '{"success": true}', 5)
    assert result.success is False
    assert "invalid response format" in result.user_message


def test_format_failed_result(engine):
    result = engine.format_result("start_timer", '{"success": false, "error": "No task selected"}', 5)
    assert result.success is False
    assert result.user_message == "Timer Start failed: No task selected"
    assert result.error == "No task selected"


def test_format_unknown_tool_success(engine):
    result = engine.format_result("export_report", '{"success": true}', 5)
    assert result.user_message == "export report executed successfully"


def test_format_translation_hook():
    engine = ToolExecutionEngine(translate=str.upper)
    result = engine.format_result("get_tasks", '{"success": true, "tasks": []}', 1)
    assert result.user_message == "NO TASKS FOUND MATCHING YOUR CRITERIA"


def test_formatter_messages():
    created = {"success": True, "task": {"title": "Write report", "priority": 3}}
    assert user_message("create_task", created) == "Created task: **Write report** (Urgent priority)"
    assert user_message("update_task", {"success": True, "task": {"title": "X"}}) == "Updated task: **X**"
    assert user_message("start_timer", {"success": True}).startswith("Timer started!")
    stopped = {"success": True, "session": {"duration": 90_000}}
    assert user_message("stop_timer", stopped) == "Timer stopped! You worked for 2 minutes."
    one = {"success": True, "session": {"duration": 60_000}}
    assert user_message("stop_timer", one) == "Timer stopped! You worked for 1 minute."


def test_format_time_data():
    result = {
        "success": True,
        "time_data": {"total_sessions": 4, "total_time": 5_400_000, "average_session": 1_350_000},
    }
    message = user_message("get_time_data", result)
    assert "- Sessions: 4" in message
    assert "- Total time: 1.5 hours" in message
    assert "- Average session: 23 minutes" in message


def test_format_productivity():
    result = {
        "success": True,
        "analysis": {
            "insights": {
                "most_productive_time": {"start": "09:00", "end": "11:00"},
                "completion_rate": 0.756,
                "focus_efficiency": 0.5,
            },
            "recommendations": ["a", "b", "c", "d"],
        },
    }
    message = user_message("analyze_productivity", result)
    assert "- Most productive: 09:00-11:00" in message
    assert "- Completion rate: 76%" in message
    assert "3. c" in message
    assert "4. d" not in message


def test_format_helpers():
    assert format_priority(0) == "Low"
    assert format_priority(9) == "Medium"
    assert format_status("in_progress") == "In Progress"
    assert display_name("get_time_data") == "Time Analysis"
    assert display_name("some_tool") == "some tool"


@pytest.mark.asyncio
async def test_task_board_flow():
    board = TaskBoard()
    created = json.loads(await board.create_task(title="Write report", priority=2))
    task_id = created["task"]["id"]

    found = json.loads(await board.get_tasks(search="report"))
    assert [t["id"] for t in found["tasks"]] == [task_id]

    updated = json.loads(await board.update_task(task_id, status="done"))
    assert updated["task"]["status"] == "done"
    assert json.loads(await board.get_tasks(status="todo"))["tasks"] == []

    assert json.loads(await board.start_timer(task_id))["success"] is True
    assert json.loads(await board.start_timer(task_id))["success"] is False
    stopped = json.loads(await board.stop_timer())
    assert stopped["session"]["task_id"] == task_id

    time_data = json.loads(await board.get_time_data())["time_data"]
    assert time_data["total_sessions"] == 1

    analysis = json.loads(await board.analyze_productivity())["analysis"]
    assert analysis["insights"]["completion_rate"] == 1.0


@pytest.mark.asyncio
async def test_task_board_missing_task():
    board = TaskBoard()
    assert json.loads(await board.update_task("nope", status="done"))["success"] is False
    assert json.loads(await board.stop_timer())["success"] is False


def test_register_all_tools():
    registered = {}

    class Target:
        def register(self, name, handler):
            registered[name] = handler

    register_all_tools(Target(), TaskBoard())
    assert set(registered) == set(ToolExecutionEngine(CapabilityGrant.of([CapabilityTier.FULL_ACCESS])).available_tools())
