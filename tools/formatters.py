"""User-facing messages for tool results. Presentation only, nothing here mutates state."""

from collections.abc import Callable
from datetime import datetime
from enum import StrEnum
from typing import Any

PREVIEW_LIMIT = 3
MAX_RECOMMENDATIONS = 3

PRIORITIES = ["Low", "Medium", "High", "Urgent"]


class ToolKind(StrEnum):
    GET_TASKS = "get_tasks"
    GET_TIME_DATA = "get_time_data"
    ANALYZE_PRODUCTIVITY = "analyze_productivity"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    START_TIMER = "start_timer"
    STOP_TIMER = "stop_timer"

    @classmethod
    def parse(cls, name: str) -> "ToolKind | None":
        try:
            return cls(name)
        except ValueError:
            return None


DISPLAY_NAMES: dict[ToolKind, str] = {
    ToolKind.GET_TASKS: "Task Search",
    ToolKind.CREATE_TASK: "Task Creation",
    ToolKind.UPDATE_TASK: "Task Update",
    ToolKind.START_TIMER: "Timer Start",
    ToolKind.STOP_TIMER: "Timer Stop",
    ToolKind.GET_TIME_DATA: "Time Analysis",
    ToolKind.ANALYZE_PRODUCTIVITY: "Productivity Analysis",
}


def display_name(tool_name: str) -> str:
    kind = ToolKind.parse(tool_name)
    if kind is None:
        return tool_name.replace("_", " ")
    return DISPLAY_NAMES[kind]


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" + ("" if n == 1 else "s")


def format_priority(priority: Any) -> str:
    if isinstance(priority, int) and 0 <= priority < len(PRIORITIES):
        return PRIORITIES[priority]
    return "Medium"


def format_status(status: Any) -> str:
    return str(status or "").replace("_", " ").title()


def format_task_list(result: dict[str, Any]) -> str:
    tasks = result.get("tasks") or []
    if not tasks:
        return "No tasks found matching your criteria"

    lines = [f"Found {_plural(len(tasks), 'task')}:", ""]
    for i, task in enumerate(tasks[:PREVIEW_LIMIT], start=1):
        lines.append(
            f"{i}. **{task['title']}** ({format_priority(task.get('priority'))}, {format_status(task.get('status'))})"
        )
        if task.get("due_date"):
            due = datetime.fromisoformat(str(task["due_date"]))
            lines.append(f"   Due: {due.date().isoformat()}")
        if task.get("time_estimate"):
            lines.append(f"   Estimated: {task['time_estimate']} minutes")

    overflow = len(tasks) - PREVIEW_LIMIT
    if overflow > 0:
        lines.append("")
        lines.append(f"...and {overflow} more task" + ("" if overflow == 1 else "s"))
    return "\n".join(lines)


def format_task_created(result: dict[str, Any]) -> str:
    task = result["task"]
    return f"Created task: **{task['title']}** ({format_priority(task.get('priority'))} priority)"


def format_task_updated(result: dict[str, Any]) -> str:
    return f"Updated task: **{result['task']['title']}**"


def format_timer_started(result: dict[str, Any]) -> str:
    return "Timer started! Now tracking time for your task."


def format_timer_stopped(result: dict[str, Any]) -> str:
    # Half-up rounding to whole minutes.
    minutes = int(result["session"]["duration"] / 60000 + 0.5)
    return f"Timer stopped! You worked for {_plural(minutes, 'minute')}."


def format_time_data(result: dict[str, Any]) -> str:
    data = result["time_data"]
    hours = round(data["total_time"] / 3_600_000, 1)
    avg_minutes = int(data["average_session"] / 60000 + 0.5)
    return "\n".join(
        [
            "Time Summary:",
            f"- Sessions: {data['total_sessions']}",
            f"- Total time: {hours} hours",
            f"- Average session: {avg_minutes} minutes",
        ]
    )


def format_productivity(result: dict[str, Any]) -> str:
    analysis = result["analysis"]
    insights = analysis["insights"]
    window = insights["most_productive_time"]
    lines = [
        "Productivity Analysis:",
        "",
        "**Key Insights:**",
        f"- Most productive: {window['start']}-{window['end']}",
        f"- Completion rate: {round(insights['completion_rate'] * 100)}%",
        f"- Focus efficiency: {round(insights['focus_efficiency'] * 100)}%",
    ]
    recommendations = analysis.get("recommendations") or []
    if recommendations:
        lines.append("")
        lines.append("**Recommendations:**")
        for i, rec in enumerate(recommendations[:MAX_RECOMMENDATIONS], start=1):
            lines.append(f"{i}. {rec}")
    return "\n".join(lines)


FORMATTERS: dict[ToolKind, Callable[[dict[str, Any]], str]] = {
    ToolKind.GET_TASKS: format_task_list,
    ToolKind.CREATE_TASK: format_task_created,
    ToolKind.UPDATE_TASK: format_task_updated,
    ToolKind.START_TIMER: format_timer_started,
    ToolKind.STOP_TIMER: format_timer_stopped,
    ToolKind.GET_TIME_DATA: format_time_data,
    ToolKind.ANALYZE_PRODUCTIVITY: format_productivity,
}


def user_message(tool_name: str, result: dict[str, Any]) -> str:
    if not result.get("success"):
        return f"{display_name(tool_name)} failed: {result.get('error') or 'Unknown error'}"

    kind = ToolKind.parse(tool_name)
    if kind is None:
        return f"{display_name(tool_name)} executed successfully"
    return FORMATTERS[kind](result)
