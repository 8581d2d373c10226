"""Native function calling through the OpenAI chat completions API."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from openai import AsyncOpenAI

from mcp_agent.catalog import ToolCatalog
from mcp_agent.state import Role, Turn
from mcp_agent.strategies.base import ModelInvocationStrategy
from mcp_agent.stream import ModelDelta, TextDelta, ToolCallChunk

logger = logging.getLogger(__name__)


def to_openai_messages(history: list[Turn]) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    for turn in history:
        if turn.role == Role.ASSISTANT:
            message: dict[str, Any] = {"role": "assistant", "content": turn.content or None}
            if turn.tool_calls:
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.raw_arguments or "{}"},
                    }
                    for call in turn.tool_calls
                ]
            messages.append(message)
        elif turn.role == Role.TOOL:
            messages.append({"role": "tool", "tool_call_id": turn.tool_call_id, "content": turn.content})
        else:
            messages.append({"role": turn.role.value, "content": turn.content})
    return messages


class NativeFunctionCallingStrategy(ModelInvocationStrategy):
    name = "native"

    def __init__(self, client: AsyncOpenAI, model: str, temperature: float = 0.0):
        self.client = client
        self.model = model
        self.temperature = temperature

    async def stream_turn(self, history: list[Turn], catalog: ToolCatalog) -> AsyncIterator[ModelDelta]:
        request: dict[str, Any] = {
            "model": self.model,
            "messages": to_openai_messages(history),
            "temperature": self.temperature,
            "stream": True,
        }
        tools = catalog.function_schemas()
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        logger.debug(f"chat.completions.create model={self.model} messages={len(history)} tools={len(tools)}")
        stream = await self.client.chat.completions.create(**request)
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta is None:
                continue
            if delta.content:
                yield TextDelta(delta.content)
            for tool_call in delta.tool_calls or []:
                function = tool_call.function
                yield ToolCallChunk(
                    index=tool_call.index,
                    id=tool_call.id,
                    name=function.name if function else None,
                    arguments=(function.arguments or "") if function else "",
                )
