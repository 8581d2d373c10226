"""
Prompt-engineered tool calling (no function-calling API).

The tool manual and a JSON response envelope live in the system prompt.
The model's streamed text is shown as content; once the turn is over the
text is searched for the envelope and, if found, turned into one call.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, AsyncIterator

from openai import AsyncOpenAI

from mcp_agent.catalog import ToolCatalog
from mcp_agent.state import Role, Turn
from mcp_agent.strategies.base import ModelInvocationStrategy
from mcp_agent.stream import ModelDelta, TextDelta, ToolCallChunk

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"```json\s*([\s\S]*?)\s*```")


def parse_envelope(content: str) -> tuple[str, dict[str, Any]] | None:
    """Extract (tool_name, arguments) from a tool_call envelope, if any."""
    match = _JSON_BLOCK.search(content)
    candidate = match.group(1) if match else content.strip()
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        if match:
            logger.warning(f"Could not parse tool call JSON block: {candidate[:200]}")
        return None

    if not isinstance(parsed, dict) or parsed.get("action") != "tool_call":
        return None
    name = parsed.get("tool_name")
    arguments = parsed.get("arguments")
    if not name or not isinstance(arguments, dict):
        return None
    return name, arguments


def render_tool_feedback(turn: Turn) -> str:
    if turn.is_error:
        return (
            f"Tool call failed:\nTool: {turn.tool_name}\nError: {turn.content}\n\n"
            "Try another approach or tell the user about the problem."
        )
    return (
        f"Tool call result:\nTool: {turn.tool_name}\nResult: {turn.content}\n\n"
        "Continue answering the user's question based on this result. "
        "You may call another tool if you need more information."
    )


def to_react_messages(history: list[Turn]) -> list[dict[str, str]]:
    messages = []
    for turn in history:
        if turn.role == Role.TOOL:
            messages.append({"role": "user", "content": render_tool_feedback(turn)})
        else:
            messages.append({"role": turn.role.value, "content": turn.content})
    return messages


class PromptJsonStrategy(ModelInvocationStrategy):
    name = "react"

    def __init__(self, client: AsyncOpenAI, model: str, temperature: float = 0.0):
        self.client = client
        self.model = model
        self.temperature = temperature

    def system_prompt(self, catalog: ToolCatalog) -> str:
        return catalog.prompt_manual()

    async def stream_turn(self, history: list[Turn], catalog: ToolCatalog) -> AsyncIterator[ModelDelta]:
        stream = await self.client.chat.completions.create(
            model=self.model,
            messages=to_react_messages(history),
            temperature=self.temperature,
            stream=True,
        )
        text = []
        async for chunk in stream:
            if not chunk.choices or chunk.choices[0].delta is None:
                continue
            content = chunk.choices[0].delta.content
            if content:
                text.append(content)
                yield TextDelta(content)

        envelope = parse_envelope("".join(text))
        if envelope:
            name, arguments = envelope
            yield ToolCallChunk(index=0, name=name, arguments=json.dumps(arguments))
