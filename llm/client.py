import json
import os

from openai import AsyncOpenAI

from core.config import LLMConfig
from core.log import get_logger
from core.types import BackendDescriptor, ToolCall

logger = get_logger(__name__)


class LLMClient:
    def __init__(self, config: LLMConfig):
        self.config = config
        if config.backend == "api":
            api_key = os.environ.get(config.api.api_key_env, "")
            self.client = AsyncOpenAI(
                base_url=config.api.base_url,
                api_key=api_key,
            )
            self.model = config.api.model
            self.context_window_size = config.api.context_window_size
        else:
            self.client = AsyncOpenAI(
                base_url=config.local.base_url,
                api_key="not-needed",
            )
            self.model = config.local.model
            self.context_window_size = config.local.context_window_size

    def descriptor(self) -> BackendDescriptor:
        """Describe this backend for captured records."""
        return BackendDescriptor(
            name=self.model,
            provider="openai-compatible" if self.config.backend == "api" else "local",
            capability_tags=["chat", "tools"],
            context_window_size=self.context_window_size,
        )

    async def chat(self, messages: list[dict], tools: list[dict] | None = None) -> dict:
        """Send messages to LLM, optionally with tool definitions.

        Returns dict with:
          - content: str | None (text response)
          - tool_calls: list[ToolCall] | None (if LLM wants to call tools)
          - token_count: int | None (total tokens, when the backend reports usage)
          - raw: the full API response object
        """
        kwargs: dict = {
            "model": self.model,
            "messages": messages,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        response = await self.client.chat.completions.create(**kwargs)
        choice = response.choices[0]
        usage = getattr(response, "usage", None)

        result: dict = {
            "content": choice.message.content,
            "tool_calls": None,
            "token_count": getattr(usage, "total_tokens", None),
            "raw": response,
        }

        if choice.message.tool_calls:
            calls = []
            for tc in choice.message.tool_calls:
                try:
                    args = json.loads(tc.function.arguments or "{}")
                except json.JSONDecodeError:
                    logger.warning("Backend sent malformed arguments for %s", tc.function.name)
                    args = {}
                calls.append(ToolCall(id=tc.id, name=tc.function.name, args=args))
            result["tool_calls"] = calls

        return result

    async def health(self) -> dict:
        """Check if LLM endpoint is reachable."""
        try:
            await self.client.models.list()
            return {"status": "ok", "model": self.model, "backend": self.config.backend}
        except Exception as e:
            return {"status": "error", "error": str(e)}
