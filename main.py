import argparse
import asyncio

import aiofiles
import uvicorn

from core.config import Config, load_config
from core.log import setup_logging
from core.orchestrator import Orchestrator
from core.services import build_services
from core.types import CaptureStatus, ExportFormat, ToolCall
from llm.client import LLMClient
from tools import register_all_tools
from tools.tasks import TaskBoard


def print_status(status: CaptureStatus, message: str | None) -> None:
    if status == CaptureStatus.ERROR:
        print(f"  [capture error: {message}]")


async def confirm_in_terminal(tc: ToolCall) -> bool:
    answer = await asyncio.to_thread(input, f"  Allow {tc.name}({tc.args})? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


async def text_repl(config: Config) -> None:
    """Text REPL: every exchange goes through capture."""
    services = await build_services(config, status_callback=print_status)
    llm_client = LLMClient(config.llm)
    orchestrator = Orchestrator(
        config=config,
        llm_client=llm_client,
        engine=services.engine,
        pipeline=services.pipeline,
    )
    orchestrator.on_confirm_request = confirm_in_terminal
    register_all_tools(orchestrator, TaskBoard())

    health = await llm_client.health()
    print(f"LLM: {health}")
    print(f"Tools available: {', '.join(services.engine.available_tools())}")
    print(f"Session: {services.pipeline.session_id}")
    print()

    print("aitrace text mode (type 'quit' to exit, 'new' for a new session)")
    print("-" * 40)
    try:
        while True:
            user_input = input("\nYou: ").strip()
            if user_input.lower() in ("quit", "exit", "q"):
                break
            if user_input.lower() == "new":
                print(f"  [Session: {services.pipeline.start_new_session()}]")
                orchestrator.context.clear()
                continue
            if not user_input:
                continue

            try:
                response = await orchestrator.process(user_input)
            except Exception as e:
                print(f"\nError: {type(e).__name__}: {e}")
                continue
            print(f"\nAssistant: {response.text}")
            if response.tool_calls_made:
                print(f"  [Tools used: {', '.join(tc.name for tc in response.tool_calls_made)}]")
            print(f"  [Latency: {response.latency_ms}]")
    finally:
        services.close()


async def export(config: Config, fmt: ExportFormat, include_sensitive: bool, out: str | None) -> None:
    services = await build_services(config)
    try:
        result = await services.exporter.export(fmt, include_sensitive=include_sensitive)
    finally:
        services.close()

    path = out or result.filename
    async with aiofiles.open(path, "w", newline="") as f:
        await f.write(result.content)
    print(f"Exported {result.total_records} records to {path}")


def server(config: Config) -> None:
    """Start FastAPI server."""
    print(f"Server: http://{config.server.host}:{config.server.port}")
    uvicorn.run(
        "server.app:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="AI interaction capture and analytics")
    parser.add_argument("--config", default="config/default.toml", help="Path to the TOML config")
    parser.add_argument("--text", action="store_true", help="Run the text REPL")
    parser.add_argument("--export", choices=[f.value for f in ExportFormat], help="Export captured records")
    parser.add_argument("--include-sensitive", action="store_true", help="Do not redact sensitive records")
    parser.add_argument("--out", help="Export destination (default: generated filename)")
    args = parser.parse_args()

    config = load_config(args.config)
    setup_logging(config.log.level)

    if args.export:
        asyncio.run(export(config, ExportFormat(args.export), args.include_sensitive, args.out))
    elif args.text:
        asyncio.run(text_repl(config))
    else:
        server(config)


if __name__ == "__main__":
    main()
