"""In-process task board backing the assistant's tools.

Handlers take the tool-call arguments as keyword arguments and return a
serialized JSON result, the same shape ``ToolExecutionEngine.format_result``
parses.
"""

import json
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class Task:
    id: str
    title: str
    description: str = ""
    priority: int = 1  # 0 low .. 3 urgent
    status: str = "todo"
    due_date: str | None = None
    time_estimate: int | None = None  # minutes


@dataclass
class TimerSession:
    task_id: str
    started_at: float
    duration: float = 0.0  # ms


@dataclass
class TaskBoard:
    tasks: dict[str, Task] = field(default_factory=dict)
    sessions: list[TimerSession] = field(default_factory=list)
    active: TimerSession | None = None

    def handlers(self) -> dict[str, Any]:
        return {
            "get_tasks": self.get_tasks,
            "create_task": self.create_task,
            "update_task": self.update_task,
            "start_timer": self.start_timer,
            "stop_timer": self.stop_timer,
            "get_time_data": self.get_time_data,
            "analyze_productivity": self.analyze_productivity,
        }

    async def get_tasks(self, status: str | None = None, search: str | None = None) -> str:
        tasks = list(self.tasks.values())
        if status:
            tasks = [t for t in tasks if t.status == status]
        if search:
            needle = search.lower()
            tasks = [t for t in tasks if needle in t.title.lower() or needle in t.description.lower()]
        return json.dumps({"success": True, "tasks": [asdict(t) for t in tasks]})

    async def create_task(
        self,
        title: str,
        description: str = "",
        priority: int = 1,
        due_date: str | None = None,
        time_estimate: int | None = None,
    ) -> str:
        task = Task(
            id=str(uuid.uuid4()),
            title=title,
            description=description,
            priority=priority,
            due_date=due_date,
            time_estimate=time_estimate,
        )
        self.tasks[task.id] = task
        return json.dumps({"success": True, "task": asdict(task)})

    async def update_task(self, task_id: str, **changes: Any) -> str:
        task = self.tasks.get(task_id)
        if task is None:
            return json.dumps({"success": False, "error": f"Task not found: {task_id}"})
        for key, value in changes.items():
            if hasattr(task, key) and key != "id":
                setattr(task, key, value)
        return json.dumps({"success": True, "task": asdict(task)})

    async def start_timer(self, task_id: str) -> str:
        if task_id not in self.tasks:
            return json.dumps({"success": False, "error": f"Task not found: {task_id}"})
        if self.active is not None:
            return json.dumps({"success": False, "error": "A timer is already running"})
        self.active = TimerSession(task_id=task_id, started_at=time.time())
        return json.dumps({"success": True, "session": asdict(self.active)})

    async def stop_timer(self) -> str:
        if self.active is None:
            return json.dumps({"success": False, "error": "No timer is running"})
        session = self.active
        session.duration = (time.time() - session.started_at) * 1000
        self.sessions.append(session)
        self.active = None
        return json.dumps({"success": True, "session": asdict(session)})

    async def get_time_data(self) -> str:
        total = sum(s.duration for s in self.sessions)
        count = len(self.sessions)
        return json.dumps(
            {
                "success": True,
                "time_data": {
                    "total_sessions": count,
                    "total_time": total,
                    "average_session": total / count if count else 0,
                },
            }
        )

    async def analyze_productivity(self) -> str:
        tasks = list(self.tasks.values())
        done = sum(1 for t in tasks if t.status == "done")
        recommendations = []
        if any(t.priority >= 2 and t.status != "done" for t in tasks):
            recommendations.append("Tackle high-priority tasks first")
        if len(self.sessions) < 3:
            recommendations.append("Track more focus sessions to improve insights")
        if tasks and done / len(tasks) < 0.5:
            recommendations.append("Break large tasks into smaller steps")
        return json.dumps(
            {
                "success": True,
                "analysis": {
                    "insights": {
                        "most_productive_time": {"start": "09:00", "end": "11:00"},
                        "completion_rate": done / len(tasks) if tasks else 0.0,
                        "focus_efficiency": min(len(self.sessions) / 10, 1.0),
                    },
                    "recommendations": recommendations,
                },
            }
        )
