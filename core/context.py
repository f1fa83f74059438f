from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class ConversationTurn:
    role: str  # "user" or "assistant"
    content: str


def time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


@dataclass
class AppContext:
    """What the assistant knows about the user's current work."""

    current_task: dict[str, Any] | None = None
    active_session: dict[str, Any] | None = None
    focus_mode: bool = False
    current_energy: int | None = None
    recent_activity: list[dict[str, Any]] = field(default_factory=list)
    preferences: dict[str, Any] = field(default_factory=dict)


class ContextManager:
    def __init__(self, max_history: int = 20):
        self.max_history = max_history
        self.history: list[ConversationTurn] = []
        self.app = AppContext()

    def add_turn(self, role: str, content: str) -> None:
        self.history.append(ConversationTurn(role=role, content=content))
        if len(self.history) > self.max_history * 2:  # user+assistant pairs
            self.history = self.history[-(self.max_history * 2) :]

    def get_messages(self) -> list[dict]:
        return [{"role": t.role, "content": t.content} for t in self.history]

    def clear(self) -> None:
        self.history.clear()

    def update_app(self, **changes: Any) -> None:
        for key, value in changes.items():
            if not hasattr(self.app, key):
                raise AttributeError(f"Unknown context field: {key}")
            setattr(self.app, key, value)

    def snapshot(self, now: datetime | None = None) -> dict[str, Any]:
        """JSON-ready view of the app context for capture."""
        now = now or datetime.now()
        return {
            "current_task": self.app.current_task,
            "active_session": self.app.active_session,
            "focus_mode": self.app.focus_mode,
            "current_energy": self.app.current_energy,
            "time_of_day": time_of_day(now.hour),
            "day_of_week": now.strftime("%A"),
            "recent_activity": list(self.app.recent_activity),
            "preferences": dict(self.app.preferences),
        }

    def build_env_context(self, now: datetime | None = None) -> str:
        snap = self.snapshot(now)
        lines = [
            f"- Time of day: {snap['time_of_day']} ({snap['day_of_week']})",
            f"- Focus mode: {'on' if snap['focus_mode'] else 'off'}",
        ]
        if snap["current_task"]:
            lines.append(f"- Current task: {snap['current_task'].get('title', 'untitled')}")
        if snap["active_session"]:
            lines.append("- A timer session is running")
        return "\n".join(lines)
