import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from core.config import ToolsConfig
from core.log import get_logger
from core.types import CapabilityTier
from tools.formatters import ToolKind, display_name, user_message

logger = get_logger(__name__)


@dataclass(frozen=True)
class ToolPermission:
    kind: ToolKind
    required: tuple[CapabilityTier, ...]
    requires_confirmation: bool
    description: str


TOOL_PERMISSIONS: dict[ToolKind, ToolPermission] = {
    p.kind: p
    for p in [
        ToolPermission(ToolKind.GET_TASKS, (CapabilityTier.READ_ONLY,), False, "Retrieve and search tasks"),
        ToolPermission(
            ToolKind.GET_TIME_DATA, (CapabilityTier.READ_ONLY,), False, "View time tracking data and statistics"
        ),
        ToolPermission(
            ToolKind.ANALYZE_PRODUCTIVITY,
            (CapabilityTier.READ_ONLY,),
            False,
            "Generate productivity insights and recommendations",
        ),
        ToolPermission(ToolKind.CREATE_TASK, (CapabilityTier.MODIFY_TASKS,), True, "Create new tasks"),
        ToolPermission(ToolKind.UPDATE_TASK, (CapabilityTier.MODIFY_TASKS,), True, "Modify existing tasks"),
        ToolPermission(ToolKind.START_TIMER, (CapabilityTier.TIMER_CONTROL,), False, "Start time tracking"),
        ToolPermission(ToolKind.STOP_TIMER, (CapabilityTier.TIMER_CONTROL,), False, "Stop the current session"),
    ]
}


@dataclass(frozen=True)
class CapabilityGrant:
    """What the current actor may do. Replace it wholesale, never mutate it."""

    tiers: frozenset[CapabilityTier] = frozenset({CapabilityTier.READ_ONLY})
    auto_approve: frozenset[str] = frozenset()
    confirmation_timeout: int = 30

    @classmethod
    def of(cls, tiers: Iterable[CapabilityTier], auto_approve: Iterable[str] = (), confirmation_timeout: int = 30):
        return cls(frozenset(tiers), frozenset(auto_approve), confirmation_timeout)

    @classmethod
    def from_config(cls, config: ToolsConfig) -> "CapabilityGrant":
        return cls.of(config.permissions, config.auto_approve, config.confirmation_timeout)


@dataclass(frozen=True)
class ValidationResult:
    allowed: bool
    requires_confirmation: bool = False
    reason: str | None = None


@dataclass
class ToolExecutionResult:
    success: bool
    user_message: str
    data: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "user_message": self.user_message,
            "data": self.data,
            "error": self.error,
            "metadata": self.metadata,
        }


class ToolExecutionEngine:
    def __init__(self, grant: CapabilityGrant | None = None, translate: Callable[[str], str] | None = None):
        self.grant = grant or CapabilityGrant()
        self.translate = translate or (lambda text: text)

    def replace_grant(self, grant: CapabilityGrant) -> None:
        self.grant = grant

    def has_permission(self, tool_name: str) -> bool:
        kind = ToolKind.parse(tool_name)
        if kind is None:
            return False
        if CapabilityTier.FULL_ACCESS in self.grant.tiers:
            return True
        return all(tier in self.grant.tiers for tier in TOOL_PERMISSIONS[kind].required)

    def requires_confirmation(self, tool_name: str) -> bool:
        kind = ToolKind.parse(tool_name)
        if kind is None:
            return True
        if tool_name in self.grant.auto_approve:
            return False
        return TOOL_PERMISSIONS[kind].requires_confirmation

    def validate(self, tool_name: str, args: dict[str, Any] | None = None) -> ValidationResult:
        """Decide whether a tool call may run. Denial is returned, never raised."""
        kind = ToolKind.parse(tool_name)
        if kind is None:
            return ValidationResult(allowed=False, reason=f"unknown tool: {tool_name}")

        if not self.has_permission(tool_name):
            missing = [t.value for t in TOOL_PERMISSIONS[kind].required if t not in self.grant.tiers]
            return ValidationResult(
                allowed=False,
                reason=f"insufficient permissions: missing {', '.join(missing)}",
            )

        return ValidationResult(allowed=True, requires_confirmation=self.requires_confirmation(tool_name))

    def format_result(self, tool_name: str, raw_result: str, elapsed_ms: float) -> ToolExecutionResult:
        metadata = {
            "execution_time_ms": elapsed_ms,
            "tool_name": tool_name,
            "permissions": sorted(t.value for t in self.grant.tiers),
        }
        try:
            parsed = json.loads(raw_result)
            if not isinstance(parsed, dict):
                raise TypeError("tool result is not an object")
            message = user_message(tool_name, parsed)
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            logger.debug("Unparseable result from %s: %s", tool_name, e)
            return ToolExecutionResult(
                success=False,
                user_message=self.translate(f"Error executing {display_name(tool_name)}: invalid response format"),
                error="Failed to parse tool result",
                metadata=metadata,
            )

        success = bool(parsed.get("success"))
        return ToolExecutionResult(
            success=success,
            user_message=self.translate(message),
            data=parsed,
            error=None if success else parsed.get("error") or "Unknown error",
            metadata=metadata,
        )

    def available_tools(self) -> list[str]:
        return [kind.value for kind in TOOL_PERMISSIONS if self.has_permission(kind.value)]

    def tool_info(self, tool_name: str) -> ToolPermission | None:
        kind = ToolKind.parse(tool_name)
        return TOOL_PERMISSIONS[kind] if kind else None
