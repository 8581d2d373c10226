"""Tests for ConversationLoop and ToolExecutor."""

import pytest

from mcp_agent.authorization import AuthorizationGate, AuthorizationPolicy
from mcp_agent.catalog import DEFAULT_SYSTEM_PROMPT
from mcp_agent.errors import ToolInvocationError
from mcp_agent.events import EventType, ToolCallRequest
from mcp_agent.loop import (
    ITERATION_LIMIT_MESSAGE,
    SKIPPED_MESSAGE,
    STOPPED_MESSAGE,
    ConversationLoop,
    StopReason,
    ToolExecutor,
)
from mcp_agent.state import Role
from mcp_agent.stream import TextDelta, ToolCallChunk

from tests.fakes import FakeToolClient, ScriptedChannel, ScriptedStrategy, call_chunk, make_catalog


def _loop(turns, answers=None, policy=None, client=None, max_iterations=10, repeat=False, channel=...):
    client = client or FakeToolClient("math", {"add": "8", "multiply": "15"})
    strategy = ScriptedStrategy(turns, repeat=repeat)
    if channel is ...:
        channel = ScriptedChannel(answers)
    gate = AuthorizationGate(policy or AuthorizationPolicy(), channel)
    loop = ConversationLoop(strategy, make_catalog(client), gate, max_iterations)
    return loop, strategy, client, channel


async def _collect(loop, text):
    return [event async for event in loop.stream(text)]


def _types(events):
    return [event.type for event in events]


class TestPlainAnswers:

    @pytest.mark.asyncio
    async def test_no_tool_calls_yields_content_then_final(self):
        loop, strategy, client, _ = _loop([[TextDelta("Hello"), TextDelta(" there")]])

        events = await _collect(loop, "hi")

        assert _types(events) == [EventType.CONTENT, EventType.CONTENT, EventType.FINAL_OUTPUT]
        assert events[-1].output == "Hello there"
        assert client.calls == []
        assert loop.last_result.stop_reason == StopReason.COMPLETED
        assert loop.last_result.iterations == 1

    @pytest.mark.asyncio
    async def test_empty_reply_still_emits_final(self):
        loop, _, _, _ = _loop([[]])

        events = await _collect(loop, "hi")

        assert _types(events) == [EventType.FINAL_OUTPUT]
        assert events[0].output == ""

    @pytest.mark.asyncio
    async def test_history_starts_with_system_prompt(self):
        loop, strategy, _, _ = _loop([[TextDelta("ok")]])

        await loop.invoke("hi")

        first = strategy.histories[0]
        assert first[0].role == Role.SYSTEM
        assert first[0].content == DEFAULT_SYSTEM_PROMPT
        assert first[1].role == Role.USER
        assert first[1].content == "hi"

    def test_strategy_prepared_with_executor(self):
        loop, strategy, _, _ = _loop([[TextDelta("ok")]])
        assert strategy.prepared_with is loop.executor


class TestToolCalls:

    @pytest.mark.asyncio
    async def test_confirmed_call_then_answer(self):
        loop, strategy, client, channel = _loop(
            [[call_chunk("math_add", {"a": 3, "b": 5})], [TextDelta("3 + 5 = 8")]],
            answers=["y"],
        )

        events = await _collect(loop, "What is 3 + 5?")

        assert _types(events) == [
            EventType.TOOL_CALL_START,
            EventType.TOOL_CALLS_COMPLETE,
            EventType.TOOL_EXECUTE,
            EventType.TOOL_RESULT,
            EventType.CONTENT,
            EventType.FINAL_OUTPUT,
        ]
        result = events[3]
        assert result.result == "8"
        assert result.confirmed is True
        assert result.tool_call_id == "call_1"
        assert client.calls == [("add", {"a": 3, "b": 5})]
        assert len(channel.questions) == 1
        assert "math_add" in channel.questions[0]

        tool_turn = strategy.histories[1][-1]
        assert tool_turn.role == Role.TOOL
        assert tool_turn.content == "8"
        assert tool_turn.tool_call_id == "call_1"
        assert loop.last_result.output == "3 + 5 = 8"
        assert loop.last_result.iterations == 2

    @pytest.mark.asyncio
    async def test_nothing_executes_before_complete(self):
        loop, _, _, _ = _loop(
            [[call_chunk("math_add", {"a": 1, "b": 2}), call_chunk("math_multiply", {"a": 3, "b": 5}, "call_2", 1)]],
            policy=AuthorizationPolicy(require_confirmation=False),
        )

        events = await _collect(loop, "go")

        types = _types(events)
        complete_at = types.index(EventType.TOOL_CALLS_COMPLETE)
        assert types[:complete_at] == [EventType.TOOL_CALL_START, EventType.TOOL_CALL_START]
        assert types.index(EventType.TOOL_EXECUTE) > complete_at
        assert len(events[complete_at].tool_calls) == 2

    @pytest.mark.asyncio
    async def test_batch_executes_in_request_order(self):
        loop, _, client, _ = _loop(
            [[call_chunk("math_multiply", {"a": 3, "b": 5}, "call_1", 0), call_chunk("math_add", {"a": 1, "b": 2}, "call_2", 1)]],
            policy=AuthorizationPolicy(require_confirmation=False),
        )

        await loop.invoke("go")

        assert [name for name, _ in client.calls] == ["multiply", "add"]

    @pytest.mark.asyncio
    async def test_all_answer_skips_later_prompts(self):
        loop, _, client, channel = _loop(
            [
                [call_chunk("math_add", {"a": 1, "b": 2})],
                [call_chunk("math_multiply", {"a": 2, "b": 3}, "call_2")],
                [TextDelta("done")],
            ],
            answers=["all"],
        )

        await loop.invoke("go")

        assert len(channel.questions) == 1
        assert len(client.calls) == 2
        assert loop.gate.policy.auto_approve_all is True


class TestDenialAndStop:

    @pytest.mark.asyncio
    async def test_denied_call_is_reported_and_next_call_runs(self):
        loop, strategy, client, _ = _loop(
            [
                [call_chunk("math_add", {"a": 1, "b": 2}, "call_1", 0), call_chunk("math_multiply", {"a": 3, "b": 5}, "call_2", 1)],
                [TextDelta("15")],
            ],
            answers=["n", "y"],
        )

        events = await _collect(loop, "go")

        results = [e for e in events if e.type == EventType.TOOL_RESULT]
        assert [r.confirmed for r in results] == [False, True]
        assert results[0].result == "Tool call cancelled by user"
        assert results[1].result == "15"
        assert client.calls == [("multiply", {"a": 3, "b": 5})]
        assert loop.last_result.stop_reason == StopReason.COMPLETED

        tool_turns = [t for t in strategy.histories[1] if t.role == Role.TOOL]
        assert [t.content for t in tool_turns] == ["Tool call cancelled by user", "15"]

    @pytest.mark.asyncio
    async def test_stop_ends_turn_and_skips_remaining_calls(self):
        loop, strategy, client, _ = _loop(
            [[call_chunk("math_add", {"a": 1, "b": 2}, "call_1", 0), call_chunk("math_multiply", {"a": 3, "b": 5}, "call_2", 1)]],
            answers=["stop"],
        )

        events = await _collect(loop, "go")

        assert _types(events)[-3:] == [EventType.TOOL_EXECUTE, EventType.TOOL_RESULT, EventType.STOPPED]
        assert events[-2].confirmed is False
        assert events[-1].message == STOPPED_MESSAGE
        assert _types(events).count(EventType.TOOL_EXECUTE) == 1
        assert client.calls == []
        assert len(strategy.histories) == 1
        assert loop.last_result.stop_reason == StopReason.STOPPED

        tool_turns = [t for t in loop.state.turns if t.role == Role.TOOL]
        assert [t.tool_call_id for t in tool_turns] == ["call_1", "call_2"]
        assert tool_turns[1].content == SKIPPED_MESSAGE

    @pytest.mark.asyncio
    async def test_no_channel_denies_by_default(self):
        loop, _, client, _ = _loop(
            [[call_chunk("math_add", {"a": 1, "b": 2})], [TextDelta("could not")]],
            channel=None,
        )

        events = await _collect(loop, "go")

        result = next(e for e in events if e.type == EventType.TOOL_RESULT)
        assert result.confirmed is False
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_dangerous_tool_asks_even_with_auto_approve_all(self):
        policy = AuthorizationPolicy(auto_approve_all=True, dangerous_tools=["delete_file"])
        loop, _, _, channel = _loop(
            [[call_chunk("files_delete_file", {"path": "/tmp/x"})], [TextDelta("kept")]],
            answers=["n"],
            policy=policy,
        )

        await loop.invoke("delete it")

        assert len(channel.questions) == 1
        assert "dangerous" in channel.questions[0]


class TestFailures:

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_error_turn(self):
        client = FakeToolClient("math", {"add": ToolInvocationError("server exploded", tool="add")})
        loop, strategy, _, _ = _loop(
            [[call_chunk("math_add", {"a": 1, "b": 2})], [TextDelta("Sorry, the tool failed.")]],
            policy=AuthorizationPolicy(require_confirmation=False),
            client=client,
        )

        events = await _collect(loop, "go")

        error = next(e for e in events if e.type == EventType.TOOL_ERROR)
        assert "server exploded" in error.error
        assert events[-1].type == EventType.FINAL_OUTPUT

        tool_turn = strategy.histories[1][-1]
        assert tool_turn.is_error is True
        assert tool_turn.content.startswith("Error: ")

    @pytest.mark.asyncio
    async def test_unknown_tool_is_an_error_not_a_crash(self):
        loop, _, client, _ = _loop(
            [[call_chunk("math_divide", {"a": 1, "b": 0})], [TextDelta("no divide tool")]],
            policy=AuthorizationPolicy(require_confirmation=False),
        )

        events = await _collect(loop, "go")

        error = next(e for e in events if e.type == EventType.TOOL_ERROR)
        assert "does not exist" in error.error
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_invalid_json_arguments_fail_only_that_call(self):
        loop, _, client, _ = _loop(
            [
                [call_chunk("math_add", '{"a": 1,', "call_1", 0), call_chunk("math_multiply", {"a": 2, "b": 3}, "call_2", 1)],
                [TextDelta("done")],
            ],
            policy=AuthorizationPolicy(require_confirmation=False),
        )

        events = await _collect(loop, "go")

        errors = [e for e in events if e.type == EventType.TOOL_ERROR]
        assert len(errors) == 1
        assert errors[0].tool_call.name == "math_add"
        assert client.calls == [("multiply", {"a": 2, "b": 3})]


class TestIterationLimit:

    @pytest.mark.asyncio
    async def test_soft_fails_after_max_iterations(self):
        loop, strategy, client, _ = _loop(
            [[call_chunk("math_add", {"a": 1, "b": 1})]],
            policy=AuthorizationPolicy(require_confirmation=False),
            max_iterations=3,
            repeat=True,
        )

        events = await _collect(loop, "loop forever")

        assert len(strategy.histories) == 3
        assert len(client.calls) == 3
        assert EventType.FINAL_OUTPUT not in _types(events)
        assert loop.last_result.stop_reason == StopReason.ITERATION_LIMIT
        assert loop.last_result.output == ITERATION_LIMIT_MESSAGE
        assert loop.last_result.iterations == 3

    @pytest.mark.asyncio
    async def test_limit_output_is_last_assistant_text(self):
        loop, _, _, _ = _loop(
            [[TextDelta("Still working"), call_chunk("math_add", {"a": 1, "b": 1})]],
            policy=AuthorizationPolicy(require_confirmation=False),
            max_iterations=2,
            repeat=True,
        )

        result = await loop.invoke("go")

        assert result.output == "Still working"

    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            _loop([], max_iterations=0)


class TestReset:

    @pytest.mark.asyncio
    async def test_reset_keeps_only_system_prompt(self):
        loop, _, _, _ = _loop([[TextDelta("one")], [TextDelta("two")]])
        await loop.invoke("first")
        assert len(loop.state) == 3

        loop.reset()

        assert len(loop.state) == 1
        assert loop.state.turns[0].role == Role.SYSTEM
        assert loop.last_result is None

    @pytest.mark.asyncio
    async def test_history_accumulates_across_inputs(self):
        loop, strategy, _, _ = _loop([[TextDelta("one")], [TextDelta("two")]])

        await loop.invoke("first")
        await loop.invoke("second")

        contents = [t.content for t in strategy.histories[1]]
        assert contents == [DEFAULT_SYSTEM_PROMPT, "first", "one", "second"]


class TestToolExecutor:

    @pytest.mark.asyncio
    async def test_routes_to_unqualified_tool_name(self):
        client = FakeToolClient("math", {"add": "8"})
        executor = ToolExecutor(make_catalog(client), AuthorizationGate(AuthorizationPolicy(require_confirmation=False)))

        outcome = await executor.execute(ToolCallRequest(name="math_add", id="c1", arguments={"a": 3, "b": 5}))

        assert outcome.result == "8"
        assert outcome.succeeded and outcome.confirmed
        assert outcome.call_id == "c1"
        assert client.calls == [("add", {"a": 3, "b": 5})]

    @pytest.mark.asyncio
    async def test_parse_error_raises(self):
        executor = ToolExecutor(make_catalog(), AuthorizationGate(AuthorizationPolicy(require_confirmation=False)))
        call = ToolCallRequest(name="math_add", parse_error="Invalid tool arguments: {")

        with pytest.raises(ToolInvocationError):
            await executor.execute(call)

    @pytest.mark.asyncio
    async def test_streamed_argument_chunks_reach_the_tool(self):
        loop, _, client, _ = _loop(
            [
                [
                    ToolCallChunk(index=0, id="call_1", name="math_add", arguments=""),
                    ToolCallChunk(index=0, arguments='{"a": 3, '),
                    ToolCallChunk(index=0, arguments='"b": 5}'),
                ],
                [TextDelta("8")],
            ],
            policy=AuthorizationPolicy(require_confirmation=False),
        )

        events = await _collect(loop, "go")

        assert _types(events)[:3] == [EventType.TOOL_CALL_START, EventType.TOOL_CALL_DELTA, EventType.TOOL_CALL_DELTA]
        assert client.calls == [("add", {"a": 3, "b": 5})]
