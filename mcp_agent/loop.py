"""
ConversationLoop — the per-input tool-calling state machine.

    AwaitModel ──no tool calls──▶ Complete (final_output)
        │
        └─tool calls──▶ ExecuteEach (sequential, in request order) ──▶ AwaitModel

The loop ends early on a stop verdict and soft-fails (no exception) when
max_iterations model round-trips have been used. Tool failures never end
the loop: they become error tool-result turns the model can react to.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator

from mcp_agent.authorization import AuthorizationGate, ToolCallInfo
from mcp_agent.catalog import ToolCatalog
from mcp_agent.config import DEFAULT_MAX_ITERATIONS
from mcp_agent.errors import AuthorizationDenied, SessionStopped, ToolInvocationError
from mcp_agent.events import ProtocolEvent, ToolCallOutcome, ToolCallRequest
from mcp_agent.state import ConversationState, Turn
from mcp_agent.strategies.base import ModelInvocationStrategy
from mcp_agent.stream import StreamNormalizer

logger = logging.getLogger(__name__)

STOPPED_MESSAGE = "User stopped the conversation"
SKIPPED_MESSAGE = "Skipped: the conversation was stopped before this tool call ran"
ITERATION_LIMIT_MESSAGE = "Reached the maximum number of iterations without a final answer."


class StopReason(str, Enum):
    COMPLETED = "completed"
    STOPPED = "stopped"
    ITERATION_LIMIT = "iteration_limit"


@dataclass
class TurnResult:
    output: str
    stop_reason: StopReason
    iterations: int


class ToolExecutor:
    """
    Runs one tool call: lookup, argument check, authorization, RPC.

    Shared by the loop and by the StructuredTool projection, so every
    execution path goes through the same AuthorizationGate.
    """

    def __init__(self, catalog: ToolCatalog, gate: AuthorizationGate):
        self.catalog = catalog
        self.gate = gate

    async def execute(self, call: ToolCallRequest) -> ToolCallOutcome:
        """
        Returns:
            The outcome; a denial is an outcome with confirmed=False.

        Raises:
            SessionStopped: the user chose stop.
            ToolInvocationError / MCPConnectionError: the call could not run.
        """
        descriptor = self.catalog.get(call.name)
        if descriptor is None:
            raise ToolInvocationError(f"Tool {call.name} does not exist", tool=call.name)
        if call.parse_error:
            raise ToolInvocationError(call.parse_error, tool=call.name)
        if descriptor.client is None:
            raise ToolInvocationError(f"Tool {call.name} has no server connection", tool=call.name)

        arguments = call.arguments or {}
        try:
            await self.gate.check(ToolCallInfo(call.name, arguments, descriptor.server_name))
        except AuthorizationDenied as e:
            logger.info(f"Denied {call.name}")
            return ToolCallOutcome(call.id, str(e), succeeded=False, confirmed=False)

        logger.info(f"Calling {descriptor.server_name}/{descriptor.tool_name}")
        result = await descriptor.client.call_tool(descriptor.tool_name, arguments)
        return ToolCallOutcome(call.id, result, succeeded=True, confirmed=True)


class ConversationLoop:
    """Drives one session's conversation. Not safe for concurrent turns."""

    def __init__(
        self,
        strategy: ModelInvocationStrategy,
        catalog: ToolCatalog,
        gate: AuthorizationGate,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.strategy = strategy
        self.catalog = catalog
        self.gate = gate
        self.max_iterations = max_iterations
        self.executor = ToolExecutor(catalog, gate)
        strategy.prepare(catalog, self.executor)
        self.state = ConversationState(strategy.system_prompt(catalog))
        self.last_result: TurnResult | None = None

    def reset(self) -> None:
        self.state.reset()
        self.last_result = None

    async def stream(self, user_input: str) -> AsyncIterator[ProtocolEvent]:
        """Run one user input, yielding protocol events as they happen."""
        self.state.append(Turn.user(user_input))
        self.last_result = None
        last_text = ""

        for iteration in range(1, self.max_iterations + 1):
            normalizer = StreamNormalizer()
            async for delta in self.strategy.stream_turn(list(self.state.turns), self.catalog):
                for event in normalizer.feed(delta):
                    yield event
            complete_events = normalizer.close()
            calls = normalizer.calls

            self.state.append(Turn.assistant(normalizer.text, calls))
            last_text = normalizer.text or last_text

            if not calls:
                yield normalizer.final(normalizer.text)
                self.last_result = TurnResult(normalizer.text, StopReason.COMPLETED, iteration)
                return

            for event in complete_events:
                yield event

            for position, call in enumerate(calls):
                yield normalizer.executing(call)
                try:
                    outcome = await self.executor.execute(call)
                except SessionStopped as e:
                    logger.info(f"Stopped at {call.name}")
                    stopped = ToolCallOutcome(call.id, str(e), succeeded=False, confirmed=False)
                    yield normalizer.result(call, stopped)
                    self.state.append(Turn.tool_result(call, str(e)))
                    for skipped in calls[position + 1:]:
                        self.state.append(Turn.tool_result(skipped, SKIPPED_MESSAGE))
                    yield normalizer.stopped(STOPPED_MESSAGE)
                    self.last_result = TurnResult(STOPPED_MESSAGE, StopReason.STOPPED, iteration)
                    return
                except Exception as e:
                    logger.warning(f"Tool {call.name} failed: {e}")
                    yield normalizer.error(call, str(e))
                    self.state.append(Turn.tool_result(call, f"Error: {e}", is_error=True))
                    continue

                yield normalizer.result(call, outcome)
                self.state.append(Turn.tool_result(call, outcome.result))

        output = last_text or ITERATION_LIMIT_MESSAGE
        logger.warning(f"Iteration limit ({self.max_iterations}) reached with tool calls pending")
        self.last_result = TurnResult(output, StopReason.ITERATION_LIMIT, self.max_iterations)

    async def invoke(self, user_input: str) -> TurnResult:
        """Run one user input to completion and return its result."""
        async for _ in self.stream(user_input):
            pass
        return self.last_result
