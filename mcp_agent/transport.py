"""
Transport layer abstraction for MCP communication.

Implements:
  - StdioTransport: JSON-RPC over stdin/stdout pipes of a subprocess
  - HttpTransport:  JSON-RPC over streamable HTTP (POST, JSON or SSE reply)
  - SseTransport:   JSON-RPC over the legacy SSE transport (GET stream + POST)

create_transport() picks one from a ServerDescriptor. Construction never
performs I/O; everything happens in start().
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator
from urllib.parse import urljoin

import httpx

from mcp_agent.config import ServerDescriptor, TransportKind
from mcp_agent.errors import ConfigError, JsonRpcError, TransportError

logger = logging.getLogger(__name__)

# Bytes per stdio line; tool results can be large
STDIO_LINE_LIMIT = 16 * 1024 * 1024
ENDPOINT_TIMEOUT = 30.0
SESSION_HEADER = "mcp-session-id"


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request. A request without an id is a notification."""
    method: str
    params: dict[str, Any]
    id: int | str | None = None

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": self.method}
        if self.params:
            message["params"] = self.params
        if self.id is not None:
            message["id"] = self.id
        return message

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response."""
    id: int | str | None
    result: Any = None
    error: dict | None = None

    @classmethod
    def from_dict(cls, parsed: dict[str, Any]) -> "JsonRpcResponse":
        return cls(
            id=parsed.get("id"),
            result=parsed.get("result"),
            error=parsed.get("error"),
        )

    @classmethod
    def from_json(cls, data: str) -> "JsonRpcResponse":
        parsed = json.loads(data)
        if not isinstance(parsed, dict):
            raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
        return cls.from_dict(parsed)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def unwrap(self) -> Any:
        """Return the result, raising JsonRpcError for error replies."""
        if self.error is not None:
            raise JsonRpcError(
                self.error.get("code"),
                self.error.get("message", "unknown error"),
                self.error.get("data"),
            )
        return self.result


def _is_response(message: Any) -> bool:
    return isinstance(message, dict) and "method" not in message and (
        "result" in message or "error" in message
    )


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, str]]:
    """Parse a text/event-stream into (event, data) pairs."""
    event = "message"
    data: list[str] = []
    async for line in lines:
        if line == "":
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        key, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if key == "event":
            event = value
        elif key == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class Transport(ABC):
    """Abstract transport layer for MCP communication."""

    def __init__(self):
        self._request_id = 0

    @abstractmethod
    async def send(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Send a request and return its response."""
        ...

    @abstractmethod
    async def notify(self, request: JsonRpcRequest) -> None:
        """Send a notification (no response expected)."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Open the transport (launch subprocess, open HTTP client)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Close the transport."""
        ...

    @abstractmethod
    def is_alive(self) -> bool:
        """Check if the transport is active."""
        ...

    def next_id(self) -> int:
        """Generate the next request ID."""
        self._request_id += 1
        return self._request_id


class StdioTransport(Transport):
    """
    JSON-RPC over stdin/stdout pipes to a subprocess.

    This is MCP's native local transport. The tool server runs as
    a child process. We write JSON-RPC requests to its stdin and
    read responses from its stdout. One line = one message.
    """

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        env: dict[str, str] | None = None,
        line_limit: int = STDIO_LINE_LIMIT,
    ):
        super().__init__()
        self.command = command
        self.args = list(args or [])
        self.env = env
        self.line_limit = line_limit
        self._process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task | None = None

    async def start(self) -> None:
        """Launch the tool server subprocess."""
        if self.is_alive():
            logger.warning("Transport already running, stopping first")
            await self.stop()

        env = {**os.environ, **self.env} if self.env else None
        logger.info(f"Starting stdio transport: {' '.join([self.command, *self.args])}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                limit=self.line_limit,
            )
        except OSError as e:
            raise TransportError(f"Failed to launch '{self.command}': {e}") from e
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    async def _drain_stderr(self) -> None:
        stream = self._process.stderr if self._process else None
        if stream is None:
            return
        async for raw in stream:
            logger.debug(f"[{self.command}] {raw.decode(errors='replace').rstrip()}")

    async def stop(self) -> None:
        """Terminate the tool server subprocess."""
        process, self._process = self._process, None
        if process is None:
            return
        if process.returncode is None:
            if process.stdin:
                process.stdin.close()
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=5)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
        if self._stderr_task:
            self._stderr_task.cancel()
            self._stderr_task = None
        logger.info("Stdio transport stopped")

    def is_alive(self) -> bool:
        """Check if the subprocess is running."""
        return self._process is not None and self._process.returncode is None

    async def _write(self, request: JsonRpcRequest) -> None:
        if not self.is_alive():
            raise TransportError("Transport not running. Call start() first.")
        self._process.stdin.write((request.to_json() + "\n").encode())
        try:
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TransportError(f"Tool server process closed its stdin: {e}") from e

    async def notify(self, request: JsonRpcRequest) -> None:
        await self._write(request)

    async def send(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Send JSON-RPC request via stdin, read its response from stdout."""
        await self._write(request)

        while True:
            try:
                line = await self._process.stdout.readline()
            except (ValueError, asyncio.LimitOverrunError) as e:
                raise TransportError(f"Invalid JSON-RPC reply from {self.command}: {e}") from e
            if not line:
                raise TransportError(
                    f"Tool server process exited (code {self._process.returncode})"
                )
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(f"Ignoring non-JSON output: {line[:200]!r}")
                continue
            if _is_response(message) and message.get("id") == request.id:
                return JsonRpcResponse.from_dict(message)
            logger.debug(f"Skipping message while waiting for id={request.id}: {message}")


class HttpTransport(Transport):
    """
    JSON-RPC over MCP's streamable HTTP transport.

    Every message is POSTed to the server URL. The reply is either a
    JSON body or an event stream whose message events carry the reply.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__()
        self.url = url
        self.headers = dict(headers or {})
        self.http_transport = http_transport
        self.session_id: str | None = None
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        if self._client is None:
            logger.info(f"Opening HTTP transport: {self.url}")
            self._client = httpx.AsyncClient(
                headers=self.headers, timeout=None, transport=self.http_transport
            )

    async def stop(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        if self.session_id:
            try:
                await client.delete(self.url, headers={SESSION_HEADER: self.session_id})
            except httpx.HTTPError as e:
                logger.debug(f"Session close failed for {self.url}: {e}")
            self.session_id = None
        await client.aclose()
        logger.info("HTTP transport stopped")

    def is_alive(self) -> bool:
        return self._client is not None

    def _request_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json, text/event-stream",
            "Content-Type": "application/json",
        }
        if self.session_id:
            headers[SESSION_HEADER] = self.session_id
        return headers

    async def notify(self, request: JsonRpcRequest) -> None:
        if not self._client:
            raise TransportError("Transport not running. Call start() first.")
        try:
            response = await self._client.post(
                self.url, content=request.to_json(), headers=self._request_headers()
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP notification failed: {e}") from e

    async def send(self, request: JsonRpcRequest) -> JsonRpcResponse:
        if not self._client:
            raise TransportError("Transport not running. Call start() first.")
        try:
            async with self._client.stream(
                "POST", self.url, content=request.to_json(), headers=self._request_headers()
            ) as response:
                response.raise_for_status()
                if SESSION_HEADER in response.headers:
                    self.session_id = response.headers[SESSION_HEADER]

                content_type = response.headers.get("content-type", "")
                if content_type.startswith("text/event-stream"):
                    async for event, data in iter_sse_events(response.aiter_lines()):
                        if event != "message":
                            continue
                        message = json.loads(data)
                        if _is_response(message) and message.get("id") == request.id:
                            return JsonRpcResponse.from_dict(message)
                    raise TransportError(f"Event stream ended without a reply to id={request.id}")

                body = await response.aread()
                return JsonRpcResponse.from_json(body.decode())
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP request '{request.method}' failed: {e}") from e
        except ValueError as e:
            # HTML pages and empty 202 bodies land here
            raise TransportError(f"Invalid JSON-RPC reply from {self.url}: {e}") from e


class SseTransport(Transport):
    """
    JSON-RPC over the legacy HTTP+SSE transport.

    A long-lived GET stream delivers an "endpoint" event naming the POST
    URL, then one "message" event per server message. Requests are
    POSTed and their replies matched by id from the stream.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__()
        self.url = url
        self.headers = dict(headers or {})
        self.http_transport = http_transport
        self.endpoint: str | None = None
        self._client: httpx.AsyncClient | None = None
        self._reader: asyncio.Task | None = None
        self._endpoint_ready = asyncio.Event()
        self._pending: dict[int | str, asyncio.Future] = {}

    async def start(self) -> None:
        if self.is_alive():
            return
        logger.info(f"Opening SSE transport: {self.url}")
        self._endpoint_ready = asyncio.Event()
        self._client = httpx.AsyncClient(
            headers=self.headers, timeout=None, transport=self.http_transport
        )
        self._reader = asyncio.create_task(self._read_stream())
        try:
            await asyncio.wait_for(self._endpoint_ready.wait(), timeout=ENDPOINT_TIMEOUT)
        except asyncio.TimeoutError:
            await self.stop()
            raise TransportError(f"No endpoint event from {self.url}") from None
        if self.endpoint is None:
            await self.stop()
            raise TransportError(f"SSE stream from {self.url} closed before the endpoint event")

    async def _read_stream(self) -> None:
        try:
            async with self._client.stream(
                "GET", self.url, headers={"Accept": "text/event-stream"}
            ) as response:
                response.raise_for_status()
                async for event, data in iter_sse_events(response.aiter_lines()):
                    if event == "endpoint":
                        self.endpoint = urljoin(self.url, data.strip())
                        self._endpoint_ready.set()
                    elif event == "message":
                        self._dispatch(json.loads(data))
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            logger.warning(f"SSE stream from {self.url} failed: {e}")
            self._fail_pending(TransportError(f"SSE stream failed: {e}"))
        finally:
            self._endpoint_ready.set()
            self._fail_pending(TransportError("SSE stream closed"))

    def _dispatch(self, message: Any) -> None:
        if not _is_response(message):
            logger.debug(f"Ignoring server message: {message}")
            return
        future = self._pending.pop(message.get("id"), None)
        if future and not future.done():
            future.set_result(JsonRpcResponse.from_dict(message))

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def stop(self) -> None:
        reader, self._reader = self._reader, None
        if reader:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        client, self._client = self._client, None
        if client:
            await client.aclose()
            logger.info("SSE transport stopped")
        self.endpoint = None

    def is_alive(self) -> bool:
        return self._reader is not None and not self._reader.done() and self.endpoint is not None

    async def _post(self, request: JsonRpcRequest) -> None:
        if not self.is_alive():
            raise TransportError("Transport not running. Call start() first.")
        try:
            response = await self._client.post(
                self.endpoint,
                content=request.to_json(),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"SSE POST '{request.method}' failed: {e}") from e

    async def notify(self, request: JsonRpcRequest) -> None:
        await self._post(request)

    async def send(self, request: JsonRpcRequest) -> JsonRpcResponse:
        future = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future
        try:
            await self._post(request)
            return await future
        finally:
            self._pending.pop(request.id, None)


def create_transport(descriptor: ServerDescriptor) -> Transport:
    """
    Build an unconnected transport for one server.

    Raises:
        ConfigError: required field missing or unknown transport kind.
    """
    kind = descriptor.transport_kind
    name = descriptor.name

    if kind == TransportKind.STDIO:
        if not descriptor.command:
            raise ConfigError(
                f"Stdio transport config error: missing 'command' (server: {name})",
                server=name, field="command",
            )
        return StdioTransport(descriptor.command, descriptor.args, descriptor.env)

    if kind in (TransportKind.HTTP, TransportKind.SSE):
        if not descriptor.url:
            label = "HTTP" if kind == TransportKind.HTTP else "SSE"
            raise ConfigError(
                f"{label} transport config error: missing 'url' (server: {name})",
                server=name, field="url",
            )
        if kind == TransportKind.HTTP:
            return HttpTransport(descriptor.url, descriptor.headers)
        return SseTransport(descriptor.url, descriptor.headers)

    raise ConfigError(
        f"Unsupported transport type: {kind} (server: {name})",
        server=name, field="transport",
    )
