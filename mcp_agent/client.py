"""
ToolClient — owns one MCP server connection.

Usage:
    client = ToolClient(ServerDescriptor(name="math", command="python", args=["-m", "math_server"]))
    tools = await client.list_tools()              # connects on first use
    text = await client.call_tool("add", {"a": 3, "b": 5})
    await client.disconnect()

Every reply of tools/call is flattened into a single string (see
flatten_tool_result). Calls on one client never overlap: MCP server
processes are not assumed to handle concurrent requests.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from mcp_agent.config import ServerDescriptor
from mcp_agent.errors import MCPConnectionError, MCPAgentError, ToolInvocationError
from mcp_agent.transport import JsonRpcRequest, Transport, create_transport

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-03-26"
CLIENT_VERSION = "1.0.0"


def flatten_tool_result(reply: Any) -> str:
    """
    Normalize a tools/call reply into one string.

    - content is a list: text blocks contribute their text, strings are
      kept, anything else is JSON-encoded; parts joined by newlines
    - content is a single value: kept if a string, else JSON-encoded
    - no content: the whole reply is JSON-encoded
    """
    content = reply.get("content") if isinstance(reply, dict) else None

    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text" and item.get("text"):
                parts.append(item["text"])
            else:
                parts.append(json.dumps(item))
        return "\n".join(parts)

    if content:
        return content if isinstance(content, str) else json.dumps(content)

    return json.dumps(reply)


class ToolClient:
    """Connection lifecycle and RPCs for a single MCP server."""

    def __init__(self, descriptor: ServerDescriptor, transport: Transport | None = None):
        """
        Args:
            descriptor: The server to talk to.
            transport: Pre-built transport (tests); built from the
                       descriptor otherwise. Raises ConfigError early.
        """
        self.descriptor = descriptor
        self.transport = transport or create_transport(descriptor)
        self.server_info: dict[str, Any] = {}
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Open the transport and run the MCP handshake (no-op if connected)."""
        async with self._lock:
            await self._connect_locked()

    async def _connect_locked(self) -> None:
        if self._connected:
            return

        policy = self.descriptor.retry_policy
        attempts = policy.attempts if policy else 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                await self._handshake()
                self._connected = True
                logger.info(f"Connected to {self.name} (attempt {attempt}/{attempts})")
                return
            except (MCPAgentError, OSError) as e:
                last_error = e
                logger.warning(f"Connection attempt {attempt}/{attempts} to {self.name} failed: {e}")
                await self._safe_stop()
                if attempt < attempts and policy and policy.delay_ms:
                    await asyncio.sleep(policy.delay_ms / 1000)

        raise MCPConnectionError(
            f"Failed to connect to MCP server ({self.name}): {last_error}",
            server=self.name,
        ) from last_error

    async def _handshake(self) -> None:
        await self.transport.start()
        self.server_info = await self._request("initialize", {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": f"mcp-agent-client-{self.name}", "version": CLIENT_VERSION},
        }) or {}
        await self.transport.notify(JsonRpcRequest(method="notifications/initialized", params={}))

    async def _request(self, method: str, params: dict[str, Any]) -> Any:
        request = JsonRpcRequest(method=method, params=params, id=self.transport.next_id())
        response = await self.transport.send(request)
        return response.unwrap()

    async def _safe_stop(self) -> None:
        try:
            await self.transport.stop()
        except Exception as e:
            logger.error(f"Failed to stop transport for {self.name}: {e}")

    async def disconnect(self) -> None:
        """Close the connection. Never raises; always ends disconnected."""
        async with self._lock:
            if not self._connected:
                return
            await self._safe_stop()
            self._connected = False
            logger.info(f"Disconnected from {self.name}")

    async def list_tools(self) -> list[dict[str, Any]]:
        """Return the raw tool schemas advertised by the server."""
        async with self._lock:
            await self._connect_locked()
            tools: list[dict[str, Any]] = []
            cursor = None
            try:
                while True:
                    result = await self._request("tools/list", {"cursor": cursor} if cursor else {})
                    tools.extend((result or {}).get("tools", []))
                    cursor = (result or {}).get("nextCursor")
                    if not cursor:
                        break
            except MCPAgentError as e:
                raise MCPConnectionError(
                    f"Failed to list tools ({self.name}): {e}", server=self.name
                ) from e
            return tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> str:
        """
        Call a tool and return its flattened textual result.

        Raises:
            MCPConnectionError: the server could not be reached.
            ToolInvocationError: the RPC failed.
        """
        async with self._lock:
            await self._connect_locked()
            try:
                reply = await self._request("tools/call", {"name": name, "arguments": arguments or {}})
            except MCPAgentError as e:
                raise ToolInvocationError(
                    f"Tool call failed ({self.name}/{name}): {e}", tool=name
                ) from e

        if isinstance(reply, dict) and reply.get("isError"):
            logger.warning(f"{self.name}/{name} reported an error result")
        return flatten_tool_result(reply)
