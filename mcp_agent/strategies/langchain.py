"""
Tool calling through a LangChain chat model.

The catalog is projected into StructuredTools and bound with bind_tools();
streamed AIMessageChunk.tool_call_chunks become ToolCallChunks.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from mcp_agent.catalog import ToolCatalog
from mcp_agent.state import Role, Turn
from mcp_agent.strategies.base import ModelInvocationStrategy
from mcp_agent.stream import ModelDelta, TextDelta, ToolCallChunk

logger = logging.getLogger(__name__)


def to_langchain_messages(history: list[Turn]) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    for turn in history:
        if turn.role == Role.SYSTEM:
            messages.append(SystemMessage(content=turn.content))
        elif turn.role == Role.USER:
            messages.append(HumanMessage(content=turn.content))
        elif turn.role == Role.ASSISTANT:
            messages.append(AIMessage(
                content=turn.content,
                tool_calls=[
                    {"name": call.name, "args": call.arguments or {}, "id": call.id, "type": "tool_call"}
                    for call in turn.tool_calls
                ],
            ))
        else:
            messages.append(ToolMessage(content=turn.content, tool_call_id=turn.tool_call_id or ""))
    return messages


def _chunk_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LangChainStrategy(ModelInvocationStrategy):
    name = "langchain"

    def __init__(self, model: BaseChatModel):
        self.model = model
        self.tools: list = []
        self._runnable = None

    def prepare(self, catalog: ToolCatalog, executor) -> None:
        self.tools = catalog.structured_tools(executor)
        self._runnable = self.model.bind_tools(self.tools) if self.tools else self.model

    async def stream_turn(self, history: list[Turn], catalog: ToolCatalog) -> AsyncIterator[ModelDelta]:
        if self._runnable is None:
            raise RuntimeError("LangChainStrategy.prepare() must run before the first turn")

        async for chunk in self._runnable.astream(to_langchain_messages(history)):
            text = _chunk_text(chunk.content)
            if text:
                yield TextDelta(text)
            for tool_chunk in getattr(chunk, "tool_call_chunks", None) or []:
                yield ToolCallChunk(
                    index=tool_chunk.get("index"),
                    id=tool_chunk.get("id"),
                    name=tool_chunk.get("name"),
                    arguments=tool_chunk.get("args") or "",
                )
