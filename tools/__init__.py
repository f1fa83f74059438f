from typing import Any

from tools.tasks import TaskBoard


def register_all_tools(target: Any, board: TaskBoard) -> None:
    """Register the task board's handlers on anything exposing ``register(name, handler)``."""
    for name, handler in board.handlers().items():
        target.register(name, handler)
