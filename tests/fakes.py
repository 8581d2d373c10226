"""In-memory stand-ins for MCP servers, models and humans."""

from __future__ import annotations

import json
from typing import Any

from mcp_agent.authorization import ConfirmationChannel
from mcp_agent.catalog import ToolCatalog
from mcp_agent.errors import TransportError
from mcp_agent.strategies.base import ModelInvocationStrategy
from mcp_agent.stream import TextDelta, ToolCallChunk
from mcp_agent.transport import JsonRpcRequest, JsonRpcResponse, Transport

MATH_TOOLS = [
    {
        "name": "add",
        "description": "Add two numbers",
        "inputSchema": {
            "type": "object",
            "properties": {
                "a": {"type": "number", "description": "First number"},
                "b": {"type": "number", "description": "Second number"},
            },
            "required": ["a", "b"],
        },
    },
    {
        "name": "multiply",
        "description": "Multiply two numbers",
        "inputSchema": {
            "type": "object",
            "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
            "required": ["a", "b"],
        },
    },
]

FILE_TOOLS = [
    {
        "name": "delete_file",
        "description": "Delete a file",
        "inputSchema": {
            "type": "object",
            "properties": {"path": {"type": "string"}},
            "required": ["path"],
        },
    },
]


class FakeTransport(Transport):
    """
    Answers initialize, tools/list and tools/call from canned data.

    pages: tools/list pages, chained with nextCursor.
    call_results: tool name → raw tools/call result (or a callable of arguments).
    fail_starts: number of start() calls that raise before one succeeds.
    errors: method → JSON-RPC error object returned for that method.
    """

    def __init__(self, tools=None, pages=None, call_results=None, fail_starts=0, errors=None):
        super().__init__()
        self.pages = pages if pages is not None else [list(tools or [])]
        self.call_results = call_results or {}
        self.fail_starts = fail_starts
        self.errors = errors or {}
        self.requests: list[JsonRpcRequest] = []
        self.notifications: list[JsonRpcRequest] = []
        self.starts = 0
        self.stops = 0
        self._alive = False

    async def start(self) -> None:
        self.starts += 1
        if self.starts <= self.fail_starts:
            raise TransportError("server not ready")
        self._alive = True

    async def stop(self) -> None:
        self.stops += 1
        self._alive = False

    def is_alive(self) -> bool:
        return self._alive

    async def notify(self, request: JsonRpcRequest) -> None:
        self.notifications.append(request)

    async def send(self, request: JsonRpcRequest) -> JsonRpcResponse:
        self.requests.append(request)
        if request.method in self.errors:
            return JsonRpcResponse(request.id, error=self.errors[request.method])

        if request.method == "initialize":
            return JsonRpcResponse(request.id, {
                "protocolVersion": request.params["protocolVersion"],
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "fake", "version": "0.0.1"},
            })

        if request.method == "tools/list":
            page = int(request.params.get("cursor", 0))
            result: dict[str, Any] = {"tools": self.pages[page] if self.pages else []}
            if page + 1 < len(self.pages):
                result["nextCursor"] = str(page + 1)
            return JsonRpcResponse(request.id, result)

        if request.method == "tools/call":
            result = self.call_results.get(request.params["name"])
            if callable(result):
                result = result(request.params["arguments"])
            return JsonRpcResponse(request.id, result)

        return JsonRpcResponse(request.id, error={"code": -32601, "message": "Method not found"})

    def methods(self) -> list[str]:
        return [r.method for r in self.requests]


class FakeToolClient:
    """Duck-typed ToolClient recording every call_tool()."""

    def __init__(self, name: str = "math", results: dict[str, Any] | None = None):
        self.name = name
        self.results = results or {}
        self.calls: list[tuple[str, dict]] = []
        self.connected = True

    async def call_tool(self, name: str, arguments: dict | None = None) -> str:
        self.calls.append((name, arguments))
        result = self.results.get(name, "ok")
        if isinstance(result, Exception):
            raise result
        return result

    async def disconnect(self) -> None:
        self.connected = False


class ScriptedChannel(ConfirmationChannel):
    """Returns the queued answers in order; None once they run out."""

    def __init__(self, answers: list[str] | None = None):
        self.answers = list(answers or [])
        self.questions: list[str] = []

    async def ask(self, question: str) -> str | None:
        self.questions.append(question)
        return self.answers.pop(0) if self.answers else None


class ScriptedStrategy(ModelInvocationStrategy):
    """
    Replays one list of deltas per model turn.

    With repeat=True the last scripted turn is replayed forever;
    otherwise an exhausted script answers "done".
    """

    name = "scripted"

    def __init__(self, turns: list[list], repeat: bool = False):
        self.turns = list(turns)
        self.repeat = repeat
        self.histories: list[list] = []
        self.prepared_with = None

    def prepare(self, catalog, executor) -> None:
        self.prepared_with = executor

    async def stream_turn(self, history, catalog):
        self.histories.append(list(history))
        if self.repeat and len(self.turns) == 1:
            deltas = self.turns[0]
        elif self.turns:
            deltas = self.turns.pop(0)
        else:
            deltas = [TextDelta("done")]
        for delta in deltas:
            yield delta


def call_chunk(name: str, arguments: dict | str, call_id: str = "call_1", index: int = 0) -> ToolCallChunk:
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return ToolCallChunk(index=index, id=call_id, name=name, arguments=raw)


def make_catalog(client: FakeToolClient | None = None, files_client: FakeToolClient | None = None) -> ToolCatalog:
    catalog = ToolCatalog()
    catalog.add_server_tools("math", MATH_TOOLS, client or FakeToolClient("math"))
    catalog.add_server_tools("files", FILE_TOOLS, files_client or FakeToolClient("files"))
    return catalog
