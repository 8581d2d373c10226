"""
StreamNormalizer — turns strategy deltas into canonical ProtocolEvents.

Strategies yield two kinds of deltas while a model turn streams in:

    TextDelta(text)                              visible assistant text
    ToolCallChunk(index, id, name, arguments)    a piece of one tool call

Chunks are keyed by index (falling back to id). A call is announced with
tool_call_start once its name is known; later argument text produces
tool_call_delta events. Nothing is parsed or executed until close(),
which the loop calls only after the strategy's stream has ended.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from mcp_agent.events import (
    ContentEvent,
    FinalOutputEvent,
    ProtocolEvent,
    StoppedEvent,
    ToolCallDeltaEvent,
    ToolCallOutcome,
    ToolCallRequest,
    ToolCallsCompleteEvent,
    ToolCallStartEvent,
    ToolErrorEvent,
    ToolExecuteEvent,
    ToolResultEvent,
)

logger = logging.getLogger(__name__)


@dataclass
class TextDelta:
    text: str


@dataclass
class ToolCallChunk:
    index: int | None = None
    id: str | None = None
    name: str | None = None
    arguments: str = ""


ModelDelta = TextDelta | ToolCallChunk


class StreamNormalizer:
    """Assembles one model turn. Create a fresh normalizer per turn."""

    def __init__(self):
        self._text: list[str] = []
        self._calls: dict[int, ToolCallRequest] = {}
        self._started: set[int] = set()
        self._last_key: int | None = None
        self._closed = False

    @property
    def text(self) -> str:
        return "".join(self._text)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def calls(self) -> list[ToolCallRequest]:
        """Finalized calls in request order (empty until close())."""
        if not self._closed:
            return []
        return [self._calls[key] for key in sorted(self._calls)]

    def feed(self, delta: ModelDelta) -> list[ProtocolEvent]:
        if self._closed:
            raise RuntimeError("Turn already closed")
        if isinstance(delta, TextDelta):
            if not delta.text:
                return []
            self._text.append(delta.text)
            return [ContentEvent(delta.text)]
        return self._feed_chunk(delta)

    def _key_for(self, chunk: ToolCallChunk) -> int:
        if chunk.index is not None:
            return chunk.index
        if chunk.id is not None:
            for key, call in self._calls.items():
                if call.id == chunk.id:
                    return key
            return max(self._calls, default=-1) + 1
        return self._last_key if self._last_key is not None else 0

    def _feed_chunk(self, chunk: ToolCallChunk) -> list[ProtocolEvent]:
        key = self._key_for(chunk)
        self._last_key = key
        call = self._calls.get(key)
        if call is None:
            call = self._calls[key] = ToolCallRequest(name="", index=key)

        if chunk.id and not call.id:
            call.id = chunk.id
        if chunk.name and not call.name:
            call.name = chunk.name

        if key not in self._started:
            call.raw_arguments += chunk.arguments or ""
            if not call.name:
                return []
            self._started.add(key)
            return [ToolCallStartEvent(call.snapshot())]

        if not chunk.arguments:
            return []
        call.raw_arguments += chunk.arguments
        return [ToolCallDeltaEvent(call.snapshot(), chunk.arguments)]

    def close(self) -> list[ProtocolEvent]:
        """
        Mark the turn done and parse every call's arguments.

        Returns the tool_calls_complete event, or nothing if the turn
        proposed no calls. Unparseable arguments are recorded on the call
        (parse_error) and fail only that call at execution time.
        """
        self._closed = True
        for key in list(self._calls):
            call = self._calls[key]
            if not call.name:
                logger.warning(f"Dropping tool call #{key} without a name")
                del self._calls[key]
                continue
            _parse_arguments(call)

        calls = self.calls
        if not calls:
            return []
        return [ToolCallsCompleteEvent([call.snapshot() for call in calls])]

    # Execution-phase events, emitted by the loop through the normalizer
    # so every ProtocolEvent has a single producer.

    @staticmethod
    def executing(call: ToolCallRequest) -> ToolExecuteEvent:
        return ToolExecuteEvent(call.snapshot())

    @staticmethod
    def result(call: ToolCallRequest, outcome: ToolCallOutcome) -> ToolResultEvent:
        return ToolResultEvent(call.snapshot(), outcome.result, outcome.confirmed)

    @staticmethod
    def error(call: ToolCallRequest, message: str) -> ToolErrorEvent:
        return ToolErrorEvent(call.snapshot(), message)

    @staticmethod
    def stopped(message: str) -> StoppedEvent:
        return StoppedEvent(message)

    @staticmethod
    def final(output: str) -> FinalOutputEvent:
        return FinalOutputEvent(output)


def _parse_arguments(call: ToolCallRequest) -> None:
    raw = call.raw_arguments.strip()
    if not raw:
        call.arguments = {}
        return
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        call.parse_error = f"Invalid tool arguments: {raw} ({e})"
        return
    if not isinstance(parsed, dict):
        call.parse_error = f"Tool arguments must be a JSON object: {raw}"
        return
    call.arguments = parsed
