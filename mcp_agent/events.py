"""
Canonical protocol events, shared by every model-invocation strategy.

Order within one model turn:

    content*  (tool_call_start  tool_call_delta*)*  tool_calls_complete?
    then per call:  tool_execute  (tool_result | tool_error)  stopped?
    final_output   only when the turn ends with no tool calls
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class EventType(str, Enum):
    CONTENT = "content"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_DELTA = "tool_call_delta"
    TOOL_CALLS_COMPLETE = "tool_calls_complete"
    TOOL_EXECUTE = "tool_execute"
    TOOL_RESULT = "tool_result"
    TOOL_ERROR = "tool_error"
    STOPPED = "stopped"
    FINAL_OUTPUT = "final_output"


@dataclass
class ToolCallRequest:
    """
    A tool call proposed by the model.

    raw_arguments grows while the call streams in; arguments is only set
    once the turn is complete and the text parsed as a JSON object.
    """
    name: str
    id: str | None = None
    raw_arguments: str = ""
    arguments: dict[str, Any] | None = None
    index: int = 0
    parse_error: str | None = None

    def snapshot(self) -> "ToolCallRequest":
        return copy.deepcopy(self)


@dataclass
class ToolCallOutcome:
    call_id: str | None
    result: str
    succeeded: bool
    confirmed: bool


@dataclass
class ContentEvent:
    content: str
    type: EventType = field(default=EventType.CONTENT, init=False)


@dataclass
class ToolCallStartEvent:
    tool_call: ToolCallRequest
    type: EventType = field(default=EventType.TOOL_CALL_START, init=False)


@dataclass
class ToolCallDeltaEvent:
    tool_call: ToolCallRequest
    argument_delta: str
    type: EventType = field(default=EventType.TOOL_CALL_DELTA, init=False)


@dataclass
class ToolCallsCompleteEvent:
    tool_calls: list[ToolCallRequest]
    type: EventType = field(default=EventType.TOOL_CALLS_COMPLETE, init=False)


@dataclass
class ToolExecuteEvent:
    tool_call: ToolCallRequest
    type: EventType = field(default=EventType.TOOL_EXECUTE, init=False)


@dataclass
class ToolResultEvent:
    tool_call: ToolCallRequest
    result: str
    confirmed: bool
    type: EventType = field(default=EventType.TOOL_RESULT, init=False)

    @property
    def tool_call_id(self) -> str | None:
        return self.tool_call.id


@dataclass
class ToolErrorEvent:
    tool_call: ToolCallRequest
    error: str
    type: EventType = field(default=EventType.TOOL_ERROR, init=False)

    @property
    def tool_call_id(self) -> str | None:
        return self.tool_call.id


@dataclass
class StoppedEvent:
    message: str
    type: EventType = field(default=EventType.STOPPED, init=False)


@dataclass
class FinalOutputEvent:
    output: str
    type: EventType = field(default=EventType.FINAL_OUTPUT, init=False)


ProtocolEvent = Union[
    ContentEvent,
    ToolCallStartEvent,
    ToolCallDeltaEvent,
    ToolCallsCompleteEvent,
    ToolExecuteEvent,
    ToolResultEvent,
    ToolErrorEvent,
    StoppedEvent,
    FinalOutputEvent,
]
