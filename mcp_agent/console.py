"""Console rendering of protocol events and console confirmation prompts."""

from __future__ import annotations

import asyncio
import json
import threading

from mcp_agent.authorization import ConfirmationChannel
from mcp_agent.events import EventType, ProtocolEvent, ToolCallRequest

RESULT_PREVIEW = 200


async def read_line(prompt: str = "") -> str | None:
    """
    Read one line from stdin without blocking the event loop (None on EOF).

    The read runs on a daemon thread, so a pending prompt never keeps the
    process alive once the loop has shut down.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def _resolve(line: str | None) -> None:
        if not future.done():
            future.set_result(line)

    def _read() -> None:
        try:
            line = input(prompt)
        except EOFError:
            line = None
        try:
            loop.call_soon_threadsafe(_resolve, line)
        except RuntimeError:
            # loop already closed
            pass

    threading.Thread(target=_read, daemon=True).start()
    return await future


def _format_arguments(call: ToolCallRequest) -> str | None:
    if not call.raw_arguments:
        return None
    try:
        return json.dumps(json.loads(call.raw_arguments), indent=2, ensure_ascii=False)
    except json.JSONDecodeError:
        return call.raw_arguments


class StreamConsoleRenderer:
    """Prints ProtocolEvents to stdout as they arrive."""

    def __init__(self):
        self.has_visible_output = False
        self._final_output: str | None = None

    def handle(self, event: ProtocolEvent) -> None:
        if event.type == EventType.CONTENT:
            print(event.content, end="", flush=True)
        elif event.type == EventType.TOOL_CALL_START:
            print(f"\n\nCalling tool:\n  - {event.tool_call.name}")
            arguments = _format_arguments(event.tool_call)
            if arguments:
                print(f"    arguments: {arguments}")
        elif event.type == EventType.TOOL_CALL_DELTA:
            if not event.argument_delta.strip():
                return
            print(f"    arguments chunk: {event.argument_delta.strip()}")
        elif event.type == EventType.TOOL_CALLS_COMPLETE:
            if len(event.tool_calls) <= 1:
                return
            print("\nCalling tools (batch):")
            for call in event.tool_calls:
                print(f"  - {call.name}")
        elif event.type == EventType.TOOL_EXECUTE:
            print(f"\nRunning tool: {event.tool_call.name}...")
        elif event.type == EventType.TOOL_RESULT:
            if not event.confirmed:
                print("\nTool call was not confirmed or was cancelled")
            result = event.result
            if event.confirmed and len(result) > RESULT_PREVIEW:
                result = result[:RESULT_PREVIEW] + "..."
            print(f"\nTool result:\n{result}\n")
        elif event.type == EventType.TOOL_ERROR:
            print(f"\nTool error: {event.error}\n")
        elif event.type == EventType.STOPPED:
            print(f"\n{event.message}")
        elif event.type == EventType.FINAL_OUTPUT:
            self._final_output = event.output
            return
        self.has_visible_output = True

    def complete(self, fallback: str | None = None) -> None:
        """Call after the stream ends so a final answer is always shown."""
        output = self._final_output or fallback
        if not self.has_visible_output and output:
            print(output)
            self.has_visible_output = True
        if not self.has_visible_output:
            print("(no response)")
        print()
        self._final_output = None
        self.has_visible_output = False


class ConsoleConfirmationChannel(ConfirmationChannel):
    """Reads answers from stdin without blocking the event loop."""

    async def ask(self, question: str) -> str | None:
        return await read_line(question)
