import asyncio
import json
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from core.config import Config
from core.context import ContextManager
from core.log import get_logger
from core.types import AIResponse, Response, ResponseMetrics, ToolCall
from llm.client import LLMClient
from llm.prompts import build_system_prompt
from llm.tools import get_tools
from memory.capture import CapturePipeline
from tools.engine import ToolExecutionEngine, ToolExecutionResult

logger = get_logger(__name__)

# Type alias for async handler functions
Handler = Callable[..., Coroutine[Any, Any, str]]
ConfirmCallback = Callable[[ToolCall], Coroutine[Any, Any, bool]]


@dataclass
class ToolOutcome:
    call: ToolCall
    result: ToolExecutionResult
    duration_ms: float
    confirmed: bool | None


class Orchestrator:
    def __init__(
        self,
        config: Config,
        llm_client: LLMClient,
        engine: ToolExecutionEngine,
        pipeline: CapturePipeline,
    ):
        self.config = config
        self.llm = llm_client
        self.engine = engine
        self.pipeline = pipeline
        self.context = ContextManager(max_history=config.context.max_history)
        self._handlers: dict[str, Handler] = {}
        # Confirmation callback, set by the CLI or server
        self.on_confirm_request: ConfirmCallback | None = None

    def register(self, name: str, handler: Handler) -> None:
        self._handlers[name] = handler

    async def process(self, user_input: str) -> Response:
        """Run one exchange with the backend and capture it.

        Returns a Response with text, tool calls made, the stored
        interaction id (if capture persisted it) and latency info.
        """
        timing: dict[str, float] = {}
        outcomes: list[ToolOutcome] = []

        system_prompt = build_system_prompt(env_context=self.context.build_env_context())
        messages: list[dict] = [{"role": "system", "content": system_prompt}]
        messages.extend(self.context.get_messages())
        messages.append({"role": "user", "content": user_input})

        correlation_id = await self.pipeline.open(
            user_input,
            context=self.context.snapshot(),
            backend=self.llm.descriptor(),
            system_prompt=system_prompt,
        )

        t0 = time.time()
        result: dict = {}
        token_count = 0
        try:
            for _ in range(self.config.llm.max_tool_iterations):
                result = await self.llm.chat(messages, tools=get_tools(self.engine))
                token_count += result.get("token_count") or 0

                if not result["tool_calls"]:
                    break

                for tc in result["tool_calls"]:
                    outcome = await self._run_tool(tc)
                    outcomes.append(outcome)
                    messages.append(
                        {
                            "role": "assistant",
                            "content": None,
                            "tool_calls": [
                                {
                                    "id": tc.id,
                                    "type": "function",
                                    "function": {"name": tc.name, "arguments": json.dumps(tc.args)},
                                }
                            ],
                        }
                    )
                    messages.append(
                        {"role": "tool", "tool_call_id": tc.id, "content": outcome.result.user_message}
                    )
        except Exception as e:
            logger.error("Backend call failed: %s", e)
            await self.pipeline.fail(correlation_id, e)
            raise
        timing["llm_total"] = (time.time() - t0) * 1000

        final_text = result.get("content") or ""
        self.context.add_turn("user", user_input)
        self.context.add_turn("assistant", final_text)

        interaction_id = await self.pipeline.close(
            correlation_id,
            AIResponse(text=final_text),
            ResponseMetrics(token_count=token_count or None),
        )
        if interaction_id:
            for o in outcomes:
                await self.pipeline.log_tool_execution(
                    interaction_id,
                    o.call.name,
                    o.call.args,
                    o.result,
                    o.duration_ms,
                    confirmed=o.confirmed,
                )

        return Response(
            text=final_text,
            interaction_id=interaction_id,
            tool_calls_made=[o.call for o in outcomes],
            latency_ms=timing,
        )

    async def _run_tool(self, tc: ToolCall) -> ToolOutcome:
        t0 = time.time()
        verdict = self.engine.validate(tc.name, tc.args)
        if not verdict.allowed:
            return self._denied(tc, verdict.reason or "not allowed", t0)

        confirmed: bool | None = None
        if verdict.requires_confirmation:
            confirmed = await self._confirm(tc)
            if not confirmed:
                return self._denied(tc, "cancelled by user", t0, confirmed=False)

        handler = self._handlers.get(tc.name)
        if handler is None:
            return self._denied(tc, f"no handler registered for {tc.name}", t0, confirmed)

        try:
            raw = await handler(**tc.args)
        except Exception as e:
            raw = json.dumps({"success": False, "error": f"{type(e).__name__}: {e}"})
        elapsed = (time.time() - t0) * 1000
        return ToolOutcome(tc, self.engine.format_result(tc.name, raw, elapsed), elapsed, confirmed)

    async def _confirm(self, tc: ToolCall) -> bool:
        if self.on_confirm_request is None:
            return False
        try:
            return await asyncio.wait_for(
                self.on_confirm_request(tc), timeout=self.engine.grant.confirmation_timeout
            )
        except TimeoutError:
            logger.info("Confirmation for %s timed out", tc.name)
            return False

    def _denied(self, tc: ToolCall, reason: str, t0: float, confirmed: bool | None = None) -> ToolOutcome:
        elapsed = (time.time() - t0) * 1000
        raw = json.dumps({"success": False, "error": reason})
        return ToolOutcome(tc, self.engine.format_result(tc.name, raw, elapsed), elapsed, confirmed)
