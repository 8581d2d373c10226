"""
Run Agent — interactive REPL over live MCP tool servers.

This is the script that closes the loop. It:
1. Loads the MCP server config (mcp_settings.json / MCP_CONFIG_PATH)
2. Connects to every server and discovers its tools
3. Builds the agent with the chosen model strategy
4. Reads user input, streams the agent's events to the console
5. Asks before each tool call unless the policy approves it

Usage:
    # Native function calling (default)
    python run_agent.py

    # Prompt-engineered JSON tool calls, custom config
    python run_agent.py --strategy react --config ./servers.json

    # LangChain chat model, approve every non-dangerous tool
    python run_agent.py --strategy langchain --yes-all

    # Wait for each answer instead of streaming it
    python run_agent.py --no-stream
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from mcp_agent import (
    AgentSettings,
    AuthorizationPolicy,
    ConfigError,
    StopReason,
    create_agent,
    load_server_config,
)
from mcp_agent.console import ConsoleConfirmationChannel, StreamConsoleRenderer, read_line
from mcp_agent.strategies import STRATEGY_NAMES

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

HELP_TEXT = """
Commands:
  /help   Show this help
  /tools  List the available tools
  /reset  Clear the conversation history
  /exit   Quit
Anything else is sent to the agent.
"""


def print_tools(agent) -> None:
    print(f"\nAvailable tools ({len(agent.catalog)}):\n")
    for tool in agent.catalog:
        print(f"  {tool.name:<35} {tool.description}")
        for key, spec in tool.parameters.items():
            flag = "required" if spec.required else "optional"
            print(f"      - {key} ({spec.kind.value}, {flag})")
    print()


async def handle_command(line: str, agent) -> bool:
    """Run a /command. Returns False when the REPL should exit."""
    command = line[1:].strip().lower()
    if command in ("exit", "quit"):
        return False
    if command == "help":
        print(HELP_TEXT)
    elif command in ("tools", "list-tools"):
        print_tools(agent)
    elif command == "reset":
        agent.reset()
        print("Conversation history cleared.\n")
    else:
        print(f"Unknown command: /{command}. Type /help for the list.\n")
    return True


async def run_turn(agent, line: str, stream: bool) -> None:
    if not stream:
        result = await agent.invoke(line)
        print(f"\n{result.output}\n")
        return

    renderer = StreamConsoleRenderer()
    async for event in agent.stream(line):
        renderer.handle(event)
    result = agent.last_result
    fallback = result.output if result and result.stop_reason == StopReason.ITERATION_LIMIT else None
    renderer.complete(fallback)


async def repl(args: argparse.Namespace) -> int:
    try:
        descriptors = load_server_config(args.config)
        settings = AgentSettings.from_env(
            model=args.model,
            strategy=args.strategy,
            max_iterations=args.max_iterations,
        )
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    policy = AuthorizationPolicy.from_env()
    policy.auto_approve_all = args.yes_all

    print("Connecting to MCP servers...")
    try:
        agent = await create_agent(
            descriptors,
            settings,
            policy=policy,
            channel=ConsoleConfirmationChannel(),
        )
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    # Graceful shutdown on Ctrl+C
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    try:
        loop.add_signal_handler(signal.SIGINT, main_task.cancel)
    except NotImplementedError:
        pass

    print(f"Agent ready ({agent.strategy_name}, {len(agent.catalog)} tools). Type /help for commands.\n")
    try:
        while True:
            line = await read_line("> ")
            if line is None:
                break
            line = line.strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await handle_command(line, agent):
                    break
                continue
            try:
                await run_turn(agent, line, stream=not args.no_stream)
            except Exception as e:
                logger.debug("Turn failed", exc_info=True)
                print(f"\nAgent invocation failed: {e}\n")
    except asyncio.CancelledError:
        print("\nShutting down MCP servers...")
    finally:
        await agent.aclose()
        print("MCP servers stopped.")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Chat with an LLM agent that calls tools on MCP servers.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_agent.py
  python run_agent.py --strategy react --config ./mcp_settings.json
  python run_agent.py --strategy langchain --model gpt-4o --yes-all
        """,
    )
    parser.add_argument("--config", "-c", type=str, default=None, help="Server config file (default: $MCP_CONFIG_PATH or ./mcp_settings.json)")
    parser.add_argument("--strategy", "-s", type=str, choices=STRATEGY_NAMES, default=None, help="Model invocation strategy (default: $AGENT_STRATEGY or native)")
    parser.add_argument("--model", "-m", type=str, default=None, help="Model override (default: $OPENAI_MODEL or gpt-4o-mini)")
    parser.add_argument("--max-iterations", type=int, default=None, help="Max model round-trips per input (default: 10)")
    parser.add_argument("--yes-all", action="store_true", help="Auto-approve every non-dangerous tool call")
    parser.add_argument("--no-stream", action="store_true", help="Print each answer once it is complete")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    sys.exit(asyncio.run(repl(args)))


if __name__ == "__main__":
    main()
