"""
Model-invocation strategy interface.

A strategy knows how to talk to one kind of model API. It renders the
neutral conversation history into that API's message format and streams
the reply back as TextDelta / ToolCallChunk items. The end of the async
iterator is the signal that the turn is complete. Everything else (tool
execution, authorization, events, iteration cap) lives in ConversationLoop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, AsyncIterator

from mcp_agent.catalog import DEFAULT_SYSTEM_PROMPT, ToolCatalog
from mcp_agent.state import Turn
from mcp_agent.stream import ModelDelta

if TYPE_CHECKING:
    from mcp_agent.loop import ToolExecutor


class ModelInvocationStrategy(ABC):
    """Proposes the next assistant turn given history and tool catalog."""

    name: str = ""

    def prepare(self, catalog: ToolCatalog, executor: ToolExecutor) -> None:
        """Called once by the loop before the first turn."""

    def system_prompt(self, catalog: ToolCatalog) -> str:
        return DEFAULT_SYSTEM_PROMPT

    @abstractmethod
    def stream_turn(self, history: list[Turn], catalog: ToolCatalog) -> AsyncIterator[ModelDelta]:
        """Stream one assistant turn as normalized deltas."""
        ...
