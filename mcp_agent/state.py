"""Conversation history owned by one ConversationLoop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from mcp_agent.events import ToolCallRequest


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class Turn:
    role: Role
    content: str = ""
    # assistant turns: the calls it proposed
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    # tool-result turns: which call this answers
    tool_call_id: str | None = None
    tool_name: str | None = None
    is_error: bool = False

    @classmethod
    def system(cls, content: str) -> "Turn":
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str, tool_calls: list[ToolCallRequest] | None = None) -> "Turn":
        return cls(Role.ASSISTANT, content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool_result(cls, call: ToolCallRequest, content: str, is_error: bool = False) -> "Turn":
        return cls(Role.TOOL, content, tool_call_id=call.id, tool_name=call.name, is_error=is_error)


class ConversationState:
    """Ordered turns for one session; reset() keeps only the system prompt."""

    def __init__(self, system_prompt: str | None = None):
        self.system_prompt = system_prompt
        self.turns: list[Turn] = []
        self.reset()

    def reset(self) -> None:
        self.turns = [Turn.system(self.system_prompt)] if self.system_prompt else []

    def append(self, turn: Turn) -> None:
        self.turns.append(turn)

    def __len__(self) -> int:
        return len(self.turns)
