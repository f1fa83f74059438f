from tools.engine import ToolExecutionEngine

TASK_TOOLS: list[dict] = [
    {
        "type": "function",
        "function": {
            "name": "get_tasks",
            "description": "Search the user's tasks. Returns matching tasks with priority and status.",
            "parameters": {
                "type": "object",
                "properties": {
                    "status": {
                        "type": "string",
                        "enum": ["todo", "in_progress", "done"],
                        "description": "Only return tasks with this status",
                    },
                    "search": {
                        "type": "string",
                        "description": "Text to look for in task titles and descriptions",
                    },
                },
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "create_task",
            "description": "Create a new task.",
            "parameters": {
                "type": "object",
                "properties": {
                    "title": {
                        "type": "string",
                        "description": "Short task title",
                    },
                    "description": {
                        "type": "string",
                        "description": "Longer task description",
                    },
                    "priority": {
                        "type": "integer",
                        "description": "0 low, 1 medium, 2 high, 3 urgent (default 1)",
                    },
                    "due_date": {
                        "type": "string",
                        "description": "Due date in ISO format (YYYY-MM-DD)",
                    },
                    "time_estimate": {
                        "type": "integer",
                        "description": "Estimated effort in minutes",
                    },
                },
                "required": ["title"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "update_task",
            "description": "Change fields of an existing task, e.g. mark it done.",
            "parameters": {
                "type": "object",
                "properties": {
                    "task_id": {
                        "type": "string",
                        "description": "ID of the task to update",
                    },
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "priority": {"type": "integer"},
                    "status": {
                        "type": "string",
                        "enum": ["todo", "in_progress", "done"],
                    },
                    "due_date": {"type": "string"},
                },
                "required": ["task_id"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "start_timer",
            "description": "Start tracking time on a task.",
            "parameters": {
                "type": "object",
                "properties": {
                    "task_id": {
                        "type": "string",
                        "description": "ID of the task to track",
                    },
                },
                "required": ["task_id"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "stop_timer",
            "description": "Stop the running timer session.",
            "parameters": {"type": "object", "properties": {}, "required": []},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_time_data",
            "description": "Summarize tracked time: session count, total and average duration.",
            "parameters": {"type": "object", "properties": {}, "required": []},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "analyze_productivity",
            "description": "Productivity insights and up to three recommendations.",
            "parameters": {"type": "object", "properties": {}, "required": []},
        },
    },
]


def get_tools(engine: ToolExecutionEngine) -> list[dict]:
    """Return tool definitions the current grant allows."""
    allowed = set(engine.available_tools())
    return [t for t in TASK_TOOLS if t["function"]["name"] in allowed]
